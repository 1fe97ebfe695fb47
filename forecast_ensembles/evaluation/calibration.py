"""
Probability integral transform (PIT) checks of forecast calibration.

A calibrated forecast yields PIT values that are uniform on [0, 1]. A U-shaped
histogram indicates an overconfident forecast, an inverted U an underconfident
one, and a skewed histogram a directional bias.
"""

import logging

import numpy as np
import pandas as pd

from ..data.forecasts import SampleForecast, join_observations

logger = logging.getLogger(__name__)


def pit_values(forecast, observations, seed=None):
    """
    Compute one PIT value per forecast unit.

    The PIT value is ``P(X < y) + v * P(X = y)`` with ``v ~ U(0, 1)``, which
    equals the empirical CDF at ``y`` for continuous draws and randomises ties
    for count data.

    Parameters
    ----------
    forecast : SampleForecast
    observations : pd.DataFrame
        Columns ``day`` and ``observed_value``.
    seed : int, optional
        Seed for the tie-breaking uniform draws.

    Returns
    -------
    pd.DataFrame
        Forecast unit columns plus ``pit_value``.
    """
    if not isinstance(forecast, SampleForecast):
        raise TypeError("PIT values are computed from sample forecasts")

    rng = np.random.default_rng(seed)
    unit = forecast.forecast_unit
    data = join_observations(forecast.data, observations)

    rows = []
    for key, group in data.groupby(unit, sort=True):
        draws = group['predicted_value'].to_numpy(dtype=float)
        observed = float(group['observed_value'].iat[0])
        below = np.mean(draws < observed)
        equal = np.mean(draws == observed)
        row = dict(zip(unit, key if isinstance(key, tuple) else (key,)))
        row['pit_value'] = float(below + rng.uniform() * equal)
        rows.append(row)

    return pd.DataFrame(rows, columns=unit + ['pit_value'])


def pit_histogram(forecast, observations, bins=10, by=('model',), seed=None):
    """
    Bin PIT values into equal-width buckets over [0, 1] per group.

    Parameters
    ----------
    forecast : SampleForecast
    observations : pd.DataFrame
    bins : int
        Number of equal-width bins.
    by : sequence of str
        Forecast unit columns to compute separate histograms for.
    seed : int, optional
        Seed for randomised tie-breaking.

    Returns
    -------
    pd.DataFrame
        ``by`` columns plus ``bin_lower``, ``bin_upper``, ``mid`` and
        ``density`` (integrates to one over [0, 1]).
    """
    if bins < 1:
        raise ValueError("bins must be a positive integer")

    by = list(by)
    values = pit_values(forecast, observations, seed=seed)
    unknown = [col for col in by if col not in values.columns]
    if unknown:
        raise ValueError(f"Cannot group PIT values by unknown columns: {unknown}")

    edges = np.linspace(0.0, 1.0, bins + 1)
    mids = (edges[:-1] + edges[1:]) / 2

    groups = values.groupby(by, sort=True) if by else [((), values)]
    rows = []
    for key, group in groups:
        density, _ = np.histogram(group['pit_value'].to_numpy(), bins=edges, density=True)
        labels = dict(zip(by, key if isinstance(key, tuple) else (key,)))
        for lower, upper, mid, dens in zip(edges[:-1], edges[1:], mids, density):
            rows.append({**labels, 'bin_lower': lower, 'bin_upper': upper, 'mid': mid, 'density': dens})

    logger.info(f"Computed PIT histograms over {len(values)} forecast units with {bins} bins")
    return pd.DataFrame(rows, columns=by + ['bin_lower', 'bin_upper', 'mid', 'density'])
