import numpy as np
import pandas as pd
import pytest

from forecast_ensembles.data.forecasts import as_forecast_sample
from forecast_ensembles.data.synthetic_data import MODELS, generate_synthetic_data
from forecast_ensembles.evaluation.metrics import score
from forecast_ensembles.training.pipeline import run_pipeline
from forecast_ensembles.training.rolling_weights import rolling_inverse_error_ensemble, rolling_qra_ensemble
from forecast_ensembles.utils.config import DEFAULT_CONFIG, _merge
from forecast_ensembles.utils.quantiles import sample_to_quantile


@pytest.fixture(scope='module')
def synthetic():
    samples, observations = generate_synthetic_data(n_days=50, n_draws=100, seed=1)
    return as_forecast_sample(samples), observations


def test_synthetic_data_shape(synthetic):
    samples, observations = synthetic

    assert samples.models == sorted(MODELS)
    assert samples.origin_days == [22, 29, 36, 43, 50]
    assert sorted(samples.data['horizon'].unique()) == list(range(1, 15))
    assert (samples.data['predicted_value'] >= 0).all()
    assert np.all(np.mod(samples.data['predicted_value'], 1) == 0)
    assert observations['day'].tolist() == list(range(1, 51))


def test_synthetic_data_is_reproducible():
    first, _ = generate_synthetic_data(n_days=30, n_draws=10, seed=5)
    second, _ = generate_synthetic_data(n_days=30, n_draws=10, seed=5)
    assert first.equals(second)


def test_rolling_inverse_error_weights(synthetic):
    samples, observations = synthetic
    quantiles = sample_to_quantile(samples)
    scores = score(quantiles, observations)

    weights, ensemble = rolling_inverse_error_ensemble(quantiles, scores, lag=14)

    sums = weights.groupby('origin_day')['weight'].sum()
    assert np.allclose(sums, 1.0)
    first_day = weights[weights['origin_day'] == 22]
    # nothing has been observed yet on the first origin day
    assert np.allclose(first_day['weight'], 1 / 3)
    assert ensemble.origin_days == quantiles.origin_days


def test_pipeline_end_to_end(synthetic, tmp_path):
    samples, observations = synthetic
    config = _merge(DEFAULT_CONFIG, {'ensemble': {'exclude_models': ['Random walk']}})

    results = run_pipeline(samples, observations, config, output_dir=tmp_path)

    expected = {
        'quantiles', 'ensembles', 'inverse_weights', 'qra_weights', 'scores', 'summary',
        'summary_by_horizon', 'relative_skill', 'sample_scores', 'pit',
    }
    assert set(results) == expected
    for name in expected:
        assert (tmp_path / f"{name}.csv").exists()

    summary = results['summary']
    models = set(summary['model'])
    assert set(MODELS) <= models
    assert {'Mean ensemble', 'Median ensemble', 'Filtered mean ensemble',
            'Weighted ensemble', 'QRA ensemble'} <= models
    assert set(summary['scale']) == {'natural', 'log'}
    assert (summary['wis'] >= 0).all()

    qra_weights = results['qra_weights']
    assert 22 not in set(qra_weights['origin_day'])
    assert np.allclose(qra_weights.groupby('origin_day')['weight'].sum(), 1.0)

    pit = results['pit']
    assert len(pit) == len(MODELS) * DEFAULT_CONFIG['scoring']['pit_bins']


def test_pipeline_with_unconstrained_qra(synthetic):
    samples, observations = synthetic
    config = _merge(DEFAULT_CONFIG, {'qra': {'constrained': False}})

    results = run_pipeline(samples, observations, config)

    qra = results['ensembles']
    qra = qra[qra['model'] == 'QRA ensemble']
    assert len(qra) > 0
    assert (qra['predicted_value'] >= 0).all()
    for _, target in qra.groupby(['origin_day', 'horizon']):
        values = target.sort_values('quantile_level')['predicted_value'].to_numpy()
        assert np.all(np.diff(values) >= 0)
    assert 'QRA ensemble' in set(results['summary']['model'])


def test_worker_pool_matches_serial_run(synthetic):
    samples, observations = synthetic
    quantiles = sample_to_quantile(samples)
    scores = score(quantiles, observations)

    serial_weights, serial_ensemble = rolling_inverse_error_ensemble(quantiles, scores, workers=1)
    pool_weights, pool_ensemble = rolling_inverse_error_ensemble(quantiles, scores, workers=2)
    pd.testing.assert_frame_equal(serial_weights, pool_weights)
    pd.testing.assert_frame_equal(serial_ensemble.data, pool_ensemble.data)

    serial_weights, serial_ensemble = rolling_qra_ensemble(quantiles, observations, workers=1)
    pool_weights, pool_ensemble = rolling_qra_ensemble(quantiles, observations, workers=2)
    pd.testing.assert_frame_equal(serial_weights, pool_weights)
    pd.testing.assert_frame_equal(serial_ensemble.data, pool_ensemble.data)
