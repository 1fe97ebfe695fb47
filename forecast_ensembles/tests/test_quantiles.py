import numpy as np
import pandas as pd
import pytest

from forecast_ensembles.data.forecasts import QuantileForecast, as_forecast_quantile, as_forecast_sample
from forecast_ensembles.exceptions import InsufficientSamplesError
from forecast_ensembles.utils.quantiles import sample_to_quantile


def test_quantiles_of_evenly_spaced_draws(make_samples):
    samples = as_forecast_sample(make_samples({'A': np.arange(101)}))

    quantiles = sample_to_quantile(samples, [0.1, 0.5, 0.9])

    assert isinstance(quantiles, QuantileForecast)
    assert quantiles.quantile_levels == [0.1, 0.5, 0.9]
    assert np.allclose(quantiles.data['predicted_value'], [10, 50, 90])


def test_quantiles_are_computed_per_forecast_unit(make_samples):
    table = pd.concat([
        make_samples({'A': np.zeros(50)}, origin_day=1, horizon=1),
        make_samples({'A': np.full(50, 7.0)}, origin_day=1, horizon=2),
    ], ignore_index=True)

    quantiles = sample_to_quantile(as_forecast_sample(table), [0.5]).data

    assert quantiles.set_index('horizon')['predicted_value'].to_dict() == {1: 0.0, 2: 7.0}


def test_output_is_monotonic(three_model_samples):
    quantiles = sample_to_quantile(as_forecast_sample(three_model_samples)).data
    diffs = quantiles.groupby(['model', 'target_day'])['predicted_value'].diff().dropna()
    assert (diffs >= 0).all()


def test_empty_samples_raise():
    empty = pd.DataFrame(columns=['model', 'origin_day', 'target_day', 'draw_id', 'predicted_value'])
    with pytest.raises(InsufficientSamplesError):
        sample_to_quantile(as_forecast_sample(empty))


def test_invalid_levels_raise(make_samples):
    samples = as_forecast_sample(make_samples({'A': np.arange(10)}))
    with pytest.raises(ValueError):
        sample_to_quantile(samples, [0.5, 1.0])


def test_quantile_input_is_rejected(make_quantiles):
    quantiles = as_forecast_quantile(make_quantiles({'A': lambda o, h: [1, 2, 3]}, [0.25, 0.5, 0.75]))
    with pytest.raises(TypeError):
        sample_to_quantile(quantiles)
