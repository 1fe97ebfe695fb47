import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def training_scores(scores, origin_day, lag=14, window=None):
    """
    Select the scores that are known on ``origin_day``.

    A score is usable when its forecast was made at least ``lag`` days before
    ``origin_day`` and its target day is not after ``origin_day``. With
    ``window`` only the most recent ``window`` usable origin days are kept.
    """
    available = (scores['origin_day'] + lag <= origin_day) & (scores['target_day'] <= origin_day)
    if window is not None:
        available &= scores['origin_day'] > origin_day - lag - window
    return scores[available]


def _normalise_inverse(mean_scores, models, fallback):
    """Turn mean scores into weights summing to one over ``models``."""
    n_models = len(models)
    scored = mean_scores.reindex(models).dropna()
    unscored = [m for m in models if m not in scored.index]

    if fallback == 'uniform':
        fallback_share = 1.0 / n_models
    else:
        fallback_share = float(fallback)
        if not 0 <= fallback_share <= 1:
            raise ValueError(f"Fallback weight must lie in [0, 1], got {fallback}")

    if scored.empty:
        return pd.Series(1.0 / n_models, index=models)

    if (scored < 0).any():
        raise ValueError("Inverse-error weighting needs non-negative scores")

    perfect = scored == 0
    if perfect.any():
        inverse = perfect.astype(float)
    else:
        inverse = 1.0 / scored
    scored_weights = inverse / inverse.sum()

    remaining = max(1.0 - fallback_share * len(unscored), 0.0)
    weights = pd.Series(fallback_share, index=unscored, dtype=float)
    weights = pd.concat([scored_weights * remaining, weights]).reindex(models)

    total = weights.sum()
    if total <= 0:
        return pd.Series(1.0 / n_models, index=models)
    return weights / total


def inverse_error_weights(scores, origin_days, metric='wis', lag=14, window=None,
                          by_horizon=False, fallback='uniform', models=None, horizons=None):
    """
    Weight models by the inverse of their mean historical score.

    Parameters
    ----------
    scores : pd.DataFrame
        Score table with ``model``, ``origin_day``, ``horizon``,
        ``target_day`` and the ``metric`` column.
    origin_days : iterable of int
        Days to compute weights for.
    metric : str
        Score column to use (lower is better).
    lag : int
        Days before a forecast can be scored; scores need
        ``origin_day' + lag <= origin_day``.
    window : int, optional
        Number of trailing usable origin days to average over (default: all).
    by_horizon : bool
        Compute a separate weight set for every horizon.
    fallback : 'uniform' or float
        Weight share for models without any usable score; 'uniform' gives
        1 / n_models.
    models : sequence of str, optional
        Models to weight (default: every model in ``scores``).
    horizons : sequence of int, optional
        Horizons to produce weights for with ``by_horizon`` (default: every
        horizon in ``scores``).

    Returns
    -------
    pd.DataFrame
        ``model``, ``origin_day``, [``horizon``], ``weight``; weights sum to one
        within each origin day (and horizon).
    """
    required = ['model', 'origin_day', 'target_day', metric] + (['horizon'] if by_horizon else [])
    missing = [col for col in required if col not in scores.columns]
    if missing:
        raise ValueError(f"Score table is missing required columns: {missing}")
    if lag < 0:
        raise ValueError("lag must be non-negative")
    if window is not None and window < 1:
        raise ValueError("window must be at least one day")

    models = sorted(scores['model'].unique()) if models is None else list(models)
    if not models:
        raise ValueError("No models to weight")

    if not by_horizon:
        horizons = [None]
    elif horizons is None:
        horizons = sorted(scores['horizon'].unique())
    rows = []
    for origin_day in origin_days:
        past = training_scores(scores, origin_day, lag=lag, window=window)
        for horizon in horizons:
            subset = past if horizon is None else past[past['horizon'] == horizon]
            mean_scores = subset.groupby('model')[metric].mean()
            weights = _normalise_inverse(mean_scores, models, fallback)
            for model, weight in weights.items():
                row = {'model': model, 'origin_day': int(origin_day), 'weight': float(weight)}
                if horizon is not None:
                    row['horizon'] = int(horizon)
                rows.append(row)

        logger.debug(f"Origin day {origin_day}: {len(past)} usable scores")

    columns = ['model', 'origin_day'] + (['horizon'] if by_horizon else []) + ['weight']
    weights = pd.DataFrame(rows, columns=columns)
    logger.info(f"Computed inverse-{metric} weights for {len(models)} models on {weights['origin_day'].nunique()} origin days")
    return weights


def check_weights(weights, tolerance=1e-8):
    """Raise if any group's weights are negative or do not sum to one."""
    if (weights['weight'] < 0).any():
        raise ValueError("Negative weights found")
    keys = [col for col in ('origin_day', 'horizon') if col in weights.columns]
    sums = weights.groupby(keys)['weight'].sum() if keys else pd.Series([weights['weight'].sum()])
    if not np.allclose(sums, 1.0, atol=tolerance):
        raise ValueError("Weights do not sum to one within every group")
