import numpy as np
import pandas as pd
import pytest

from forecast_ensembles.data.forecasts import as_forecast_quantile
from forecast_ensembles.exceptions import InsufficientTrainingDataError
from forecast_ensembles.models.quantile_regression import (
    QuantileRegressionAveraging,
    solve_quantile_weights,
)
from forecast_ensembles.training.rolling_weights import rolling_qra_ensemble

LEVELS = [0.1, 0.5, 0.9]


def truth(day):
    return 100 + 10 * np.sin(day / 3)


@pytest.fixture
def observations():
    days = np.arange(1, 50)
    return pd.DataFrame({'day': days, 'observed_value': truth(days)})


@pytest.fixture
def good_and_bad(make_quantiles):
    """'good' is centred on the truth, 'bad' is 50 too high."""
    return as_forecast_quantile(make_quantiles(
        {
            'good': lambda o, h: truth(o + h) + np.array([-1, 0, 1]),
            'bad': lambda o, h: truth(o + h) + np.array([49, 50, 51]),
        },
        LEVELS,
        origin_days=range(1, 41),
        horizons=(1, 2, 3),
    ))


def test_solver_recovers_exact_combination():
    rng = np.random.default_rng(1)
    X = rng.uniform(0, 10, size=(60, 2))
    y = 2 * X[:, 0]
    tau = np.tile([0.1, 0.5, 0.9], 20)

    weights = solve_quantile_weights(X, y, tau, constrained=False)

    assert np.allclose(weights, [2, 0], atol=1e-6)


def test_constrained_weights_lie_on_simplex(good_and_bad, observations):
    qra = QuantileRegressionAveraging(window=21).fit(good_and_bad, observations, origin_day=30)

    weights = qra.weights_.set_index('model')['weight']
    assert (weights >= 0).all()
    assert weights.sum() == pytest.approx(1.0)
    assert weights['good'] == pytest.approx(1.0, abs=1e-6)


def test_prediction_uses_fitted_origin_day(good_and_bad, observations):
    ensemble = QuantileRegressionAveraging(window=21).fit_predict(good_and_bad, observations, origin_day=30)

    data = ensemble.data
    assert ensemble.models == ['QRA ensemble']
    assert data['origin_day'].unique().tolist() == [30]
    good = good_and_bad.filter(models=['good'], origin_days=[30]).data
    assert np.allclose(data['predicted_value'], good['predicted_value'], atol=1e-5)


def test_future_data_does_not_change_weights(good_and_bad, observations):
    origin_day = 30
    future_obs = observations.copy()
    future_obs.loc[future_obs['day'] > origin_day, 'observed_value'] += 1000

    future_forecasts = good_and_bad.data
    late = future_forecasts['target_day'] > origin_day
    future_forecasts.loc[late, 'predicted_value'] += 500
    future_forecasts = as_forecast_quantile(future_forecasts)

    original = QuantileRegressionAveraging(constrained=False).fit(good_and_bad, observations, origin_day)
    perturbed = QuantileRegressionAveraging(constrained=False).fit(future_forecasts, future_obs, origin_day)

    pd.testing.assert_frame_equal(original.weights_, perturbed.weights_)


def test_insufficient_training_data(good_and_bad, observations):
    qra = QuantileRegressionAveraging(window=21)
    with pytest.raises(InsufficientTrainingDataError):
        qra.fit(good_and_bad, observations, origin_day=2)


def test_min_training_is_enforced(good_and_bad, observations):
    qra = QuantileRegressionAveraging(window=21, min_training=1000)
    with pytest.raises(InsufficientTrainingDataError, match="1000"):
        qra.fit(good_and_bad, observations, origin_day=30)


def test_predict_before_fit(good_and_bad):
    with pytest.raises(ValueError, match="fitted"):
        QuantileRegressionAveraging().predict(good_and_bad)


def test_unconstrained_weights_can_exceed_one(make_quantiles, observations):
    forecasts = as_forecast_quantile(make_quantiles(
        {
            'half': lambda o, h: np.repeat(truth(o + h) / 2, 3),
            'constant': lambda o, h: np.repeat(7.0, 3),
        },
        LEVELS,
        origin_days=range(1, 41),
        horizons=(1, 2),
    ))

    qra = QuantileRegressionAveraging(constrained=False).fit(forecasts, observations, origin_day=35)

    weights = qra.weights_.set_index('model')['weight']
    assert weights['half'] == pytest.approx(2.0, abs=1e-6)
    assert weights['constant'] == pytest.approx(0.0, abs=1e-6)


def test_weights_by_horizon(good_and_bad, observations):
    qra = QuantileRegressionAveraging(by_horizon=True).fit(good_and_bad, observations, origin_day=30)

    sums = qra.weights_.groupby('horizon')['weight'].sum()
    assert sums.index.tolist() == [1, 2, 3]
    assert np.allclose(sums, 1.0)

    ensemble = qra.predict(good_and_bad)
    assert sorted(ensemble.data['horizon'].unique()) == [1, 2, 3]


def test_rolling_qra_skips_days_without_history(good_and_bad, observations):
    weights, ensemble = rolling_qra_ensemble(good_and_bad, observations, origin_days=[2, 30, 35])

    assert sorted(weights['origin_day'].unique()) == [30, 35]
    assert ensemble.origin_days == [30, 35]


def test_rolling_qra_can_raise(good_and_bad, observations):
    with pytest.raises(InsufficientTrainingDataError):
        rolling_qra_ensemble(good_and_bad, observations, origin_days=[2], skip_insufficient=False)
