import numpy as np
import pandas as pd
import pytest

from forecast_ensembles.models.inverse_error import (
    check_weights,
    inverse_error_weights,
    training_scores,
)


def score_table(entries):
    """Rows of (model, origin_day, horizon, wis)."""
    df = pd.DataFrame(entries, columns=['model', 'origin_day', 'horizon', 'wis'])
    df['target_day'] = df['origin_day'] + df['horizon']
    return df


def as_dict(weights):
    return weights.set_index('model')['weight'].to_dict()


def test_inverse_scores_give_expected_weights():
    scores = score_table([('A', 1, 1, 1.0), ('B', 1, 1, 4.0)])

    weights = inverse_error_weights(scores, origin_days=[20], lag=14)

    assert as_dict(weights) == pytest.approx({'A': 0.8, 'B': 0.2})


def test_weights_use_mean_score():
    scores = score_table([
        ('A', 1, 1, 1.0), ('A', 2, 1, 3.0),
        ('B', 1, 1, 1.0), ('B', 2, 1, 1.0),
    ])
    weights = inverse_error_weights(scores, origin_days=[30], lag=14)
    # mean scores 2 and 1
    assert as_dict(weights) == pytest.approx({'A': 1 / 3, 'B': 2 / 3})


def test_no_usable_scores_gives_uniform_weights():
    scores = score_table([('A', 10, 1, 1.0), ('B', 10, 1, 4.0)])

    weights = inverse_error_weights(scores, origin_days=[15], lag=14)

    assert as_dict(weights) == pytest.approx({'A': 0.5, 'B': 0.5})


def test_unscored_model_gets_fallback_share():
    scores = score_table([('A', 1, 1, 1.0), ('B', 1, 1, 4.0)])

    weights = inverse_error_weights(scores, origin_days=[20], lag=14, models=['A', 'B', 'C'])

    assert as_dict(weights) == pytest.approx({'A': 0.8 * 2 / 3, 'B': 0.2 * 2 / 3, 'C': 1 / 3})
    check_weights(weights)


def test_perfect_models_share_the_weight():
    scores = score_table([('A', 1, 1, 0.0), ('B', 1, 1, 0.0), ('C', 1, 1, 2.0)])
    weights = inverse_error_weights(scores, origin_days=[20], lag=14)
    assert as_dict(weights) == pytest.approx({'A': 0.5, 'B': 0.5, 'C': 0.0})


def test_future_scores_do_not_change_weights():
    rng = np.random.default_rng(0)
    entries = [
        (model, origin, horizon, float(rng.uniform(1, 10)))
        for model in ('A', 'B', 'C')
        for origin in range(1, 40)
        for horizon in (1, 7, 14)
    ]
    scores = score_table(entries)
    origin_day = 25

    perturbed = scores.copy()
    unavailable = (perturbed['origin_day'] + 14 > origin_day) | (perturbed['target_day'] > origin_day)
    perturbed.loc[unavailable, 'wis'] *= 100

    original = inverse_error_weights(scores, origin_days=[origin_day], lag=14)
    changed = inverse_error_weights(perturbed, origin_days=[origin_day], lag=14)

    pd.testing.assert_frame_equal(original, changed)


def test_training_window_limits_history():
    scores = score_table([('A', 1, 1, 10.0), ('A', 5, 1, 1.0), ('B', 1, 1, 1.0), ('B', 5, 1, 1.0)])

    usable = training_scores(scores, origin_day=20, lag=14, window=2)

    # origin days 5 and 6 are inside the window, origin day 1 is not
    assert usable['origin_day'].unique().tolist() == [5]


def test_weights_by_horizon():
    scores = score_table([
        ('A', 1, 1, 1.0), ('B', 1, 1, 4.0),
        ('A', 1, 2, 4.0), ('B', 1, 2, 1.0),
    ])

    weights = inverse_error_weights(scores, origin_days=[20], lag=14, by_horizon=True)

    by_horizon = weights.set_index(['horizon', 'model'])['weight']
    assert by_horizon[(1, 'A')] == pytest.approx(0.8)
    assert by_horizon[(2, 'A')] == pytest.approx(0.2)
    check_weights(weights)


def test_missing_metric_column():
    scores = score_table([('A', 1, 1, 1.0)])
    with pytest.raises(ValueError, match="crps"):
        inverse_error_weights(scores, origin_days=[20], metric='crps')


def test_check_weights_rejects_bad_sums():
    weights = pd.DataFrame({'model': ['A', 'B'], 'origin_day': [1, 1], 'weight': [0.5, 0.6]})
    with pytest.raises(ValueError, match="sum to one"):
        check_weights(weights)
