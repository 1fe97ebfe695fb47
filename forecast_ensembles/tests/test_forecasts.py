import pandas as pd
import pytest

from forecast_ensembles.data.forecasts import (
    as_forecast_quantile,
    as_forecast_sample,
    as_observations,
    join_observations,
)
from forecast_ensembles.exceptions import CrossingQuantilesError, ForecastEnsembleError


def quantile_rows(values, levels=(0.25, 0.5, 0.75), model='A', origin_day=10, horizon=2):
    return pd.DataFrame({
        'model': model,
        'origin_day': origin_day,
        'horizon': horizon,
        'target_day': origin_day + horizon,
        'quantile_level': list(levels),
        'predicted_value': list(values),
    })


def test_horizon_is_derived_when_absent():
    df = pd.DataFrame({
        'model': ['A', 'A'],
        'origin_day': [10, 10],
        'target_day': [13, 13],
        'draw_id': [1, 2],
        'predicted_value': [4, 5],
    })
    samples = as_forecast_sample(df)
    assert samples.data['horizon'].tolist() == [3, 3]
    assert samples.forecast_unit == ['model', 'origin_day', 'horizon', 'target_day']


def test_horizon_mismatch_is_rejected():
    df = quantile_rows([1, 2, 3])
    df['horizon'] = 5
    with pytest.raises(ValueError, match="horizon"):
        as_forecast_quantile(df)


def test_horizon_must_be_positive():
    df = quantile_rows([1, 2, 3], horizon=0)
    with pytest.raises(ValueError, match=">= 1"):
        as_forecast_quantile(df)


def test_missing_columns_are_named():
    df = quantile_rows([1, 2, 3]).drop(columns='model')
    with pytest.raises(ValueError, match="model"):
        as_forecast_quantile(df)


def test_duplicate_draw_ids_are_rejected():
    df = pd.DataFrame({
        'model': 'A',
        'origin_day': 1,
        'target_day': 2,
        'draw_id': [1, 1],
        'predicted_value': [3.0, 4.0],
    })
    with pytest.raises(ValueError, match="duplicate"):
        as_forecast_sample(df)


def test_crossing_quantiles_are_rejected():
    with pytest.raises(CrossingQuantilesError):
        as_forecast_quantile(quantile_rows([3, 2, 4]))


def test_crossing_quantiles_error_is_a_value_error():
    assert issubclass(CrossingQuantilesError, ForecastEnsembleError)
    assert issubclass(CrossingQuantilesError, ValueError)


def test_degenerate_quantiles_are_allowed():
    forecast = as_forecast_quantile(quantile_rows([0, 0, 0]))
    assert len(forecast) == 3


def test_quantile_levels_outside_unit_interval_are_rejected():
    with pytest.raises(ValueError, match="between 0 and 1"):
        as_forecast_quantile(quantile_rows([1, 2, 3], levels=(0.0, 0.5, 1.0)))


def test_quantile_levels_are_sorted_within_units():
    df = quantile_rows([3, 1, 2], levels=(0.75, 0.25, 0.5))
    forecast = as_forecast_quantile(df)
    assert forecast.quantile_levels == [0.25, 0.5, 0.75]
    assert forecast.data['predicted_value'].tolist() == [1.0, 2.0, 3.0]


def test_filter_by_model_and_horizon():
    df = pd.concat([
        quantile_rows([1, 2, 3], model='A', horizon=1),
        quantile_rows([1, 2, 3], model='A', horizon=2),
        quantile_rows([2, 3, 4], model='B', horizon=1),
    ], ignore_index=True)
    forecast = as_forecast_quantile(df)

    assert forecast.models == ['A', 'B']
    assert forecast.filter(models=['B']).models == ['B']
    assert forecast.filter(exclude_models=['B']).models == ['A']
    assert len(forecast.filter(horizons=[2])) == 3


def test_observations_require_unique_days():
    with pytest.raises(ValueError, match="more than one observation"):
        as_observations(pd.DataFrame({'day': [1, 1], 'observed_value': [2, 3]}))


def test_join_drops_unobserved_targets():
    df = pd.concat([
        quantile_rows([1, 2, 3], origin_day=10, horizon=1),
        quantile_rows([1, 2, 3], origin_day=10, horizon=2),
    ], ignore_index=True)
    observations = pd.DataFrame({'day': [11], 'observed_value': [2]})

    joined = join_observations(as_forecast_quantile(df).data, observations)

    assert joined['target_day'].unique().tolist() == [11]
    assert (joined['observed_value'] == 2).all()
