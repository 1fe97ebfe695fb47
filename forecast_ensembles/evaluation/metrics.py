import logging

import numpy as np
import pandas as pd

from ..data.forecasts import QuantileForecast, SampleForecast, join_observations
from ..exceptions import IncompatibleQuantileGridError

logger = logging.getLogger(__name__)

COVERAGE_RANGES = (50, 90)


def crps_sample(predicted, observed):
    """
    Calculate the Continuous Ranked Probability Score (CRPS) from draws

    Parameters:
    predicted: array-like, shape (n_samples,) - draws from the forecast distribution
    observed: float - the observed value

    Returns:
    float: CRPS, lower is better; 0 when every draw equals the observation
    """
    predicted = np.asarray(predicted, dtype=float)
    n_samples = predicted.size
    if n_samples == 0:
        raise ValueError("CRPS needs at least one draw")

    # Term 1: E[|X - y|]
    term1 = np.mean(np.abs(predicted - observed))

    # Term 2: E[|X - X'|] from sorted samples
    sorted_samples = np.sort(predicted)
    indices = np.arange(1, n_samples + 1)
    weights = 2 * indices - n_samples - 1
    term2 = 2 * np.sum(weights * sorted_samples) / (n_samples ** 2)

    return float(term1 - 0.5 * term2)


def dispersion_sample(predicted):
    """Half the mean absolute difference between draws, the spread part of the CRPS"""
    sorted_samples = np.sort(np.asarray(predicted, dtype=float))
    n_samples = sorted_samples.size
    weights = 2 * np.arange(1, n_samples + 1) - n_samples - 1
    return float(np.sum(weights * sorted_samples) / (n_samples ** 2))


def _is_integer_valued(values):
    return bool(np.all(np.mod(values, 1) == 0))


def bias_sample(predicted, observed):
    """
    Calculate the bias of a sample forecast

    Parameters:
    predicted: array-like - draws from the forecast distribution
    observed: float - the observed value

    Returns:
    float: value in [-1, 1]; positive when the forecast is too high
    """
    predicted = np.asarray(predicted, dtype=float)
    below_or_equal = np.mean(predicted <= observed)
    if _is_integer_valued(predicted) and float(observed).is_integer():
        below = np.mean(predicted <= observed - 1)
        return float(1 - (below_or_equal + below))
    return float(1 - 2 * below_or_equal)


def _pair_levels(quantile_levels):
    """Split quantile levels into (lower, upper) interval pairs and the median flag."""
    levels = np.round(np.asarray(quantile_levels, dtype=float), 10)
    level_set = set(levels.tolist())
    pairs = []
    unpaired = []
    for q in sorted(level_set):
        if q >= 0.5:
            continue
        partner = round(1 - q, 10)
        if partner in level_set:
            pairs.append((q, partner))
        else:
            unpaired.append(q)
    paired_upper = {upper for _, upper in pairs}
    unpaired += [q for q in level_set if q > 0.5 and q not in paired_upper]
    if unpaired:
        raise IncompatibleQuantileGridError(
            f"Quantile levels {sorted(unpaired)} have no symmetric partner for interval scoring"
        )
    return pairs, 0.5 in level_set


def wis_quantile(quantile_levels, predicted, observed, return_components=False):
    """
    Calculate the Weighted Interval Score (WIS) of one quantile forecast

    Each central prediction interval (q, 1-q) with alpha = 2q contributes its
    interval score weighted by alpha / 2:
        (alpha/2) * (upper - lower) + (lower - y)+ + (y - upper)+
    The median, when present, contributes 0.5 * |y - median|. The sum is
    normalised by K + 0.5 (K intervals) or K without a median.

    Parameters:
    quantile_levels: array-like - quantile levels, symmetric around 0.5
    predicted: array-like - predicted values at those levels
    observed: float - the observed value
    return_components: bool - also return dispersion / over- / underprediction

    Returns:
    float or dict: WIS, or a dict with 'wis', 'dispersion', 'overprediction', 'underprediction'
    """
    levels = np.round(np.asarray(quantile_levels, dtype=float), 10)
    values = dict(zip(levels.tolist(), np.asarray(predicted, dtype=float).tolist()))
    pairs, has_median = _pair_levels(levels)

    dispersion = 0.0
    overprediction = 0.0
    underprediction = 0.0

    for lower_level, upper_level in pairs:
        alpha = 2 * lower_level
        lower = values[lower_level]
        upper = values[upper_level]
        dispersion += alpha / 2 * (upper - lower)
        overprediction += max(lower - observed, 0.0)
        underprediction += max(observed - upper, 0.0)

    n_intervals = len(pairs)
    if has_median:
        median = values[0.5]
        overprediction += 0.5 * max(median - observed, 0.0)
        underprediction += 0.5 * max(observed - median, 0.0)
        n_intervals += 0.5

    if n_intervals == 0:
        raise IncompatibleQuantileGridError("No intervals or median to score")

    components = {
        'dispersion': dispersion / n_intervals,
        'overprediction': overprediction / n_intervals,
        'underprediction': underprediction / n_intervals,
    }
    wis = sum(components.values())
    if return_components:
        return {'wis': wis, **components}
    return wis


def bias_quantile(quantile_levels, predicted, observed):
    """
    Calculate the bias of a quantile forecast

    Below the median: 1 - 2 * (highest level whose value is <= y), 0 if none.
    Above the median: 1 - 2 * (lowest level whose value is >= y), 1 if none.
    """
    levels = np.asarray(quantile_levels, dtype=float)
    values = np.asarray(predicted, dtype=float)
    order = np.argsort(levels)
    levels, values = levels[order], values[order]

    median = np.interp(0.5, levels, values)
    if observed == median:
        return 0.0
    if observed < median:
        at_or_below = levels[values <= observed]
        level = at_or_below.max() if at_or_below.size else 0.0
    else:
        at_or_above = levels[values >= observed]
        level = at_or_above.min() if at_or_above.size else 1.0
    return float(1 - 2 * level)


def interval_coverage(quantile_levels, predicted, observed, interval_range):
    """Whether the observation falls inside the central interval of the given range (in %)"""
    lower_level = round((100 - interval_range) / 200, 10)
    upper_level = round(1 - lower_level, 10)
    values = dict(zip(np.round(np.asarray(quantile_levels, dtype=float), 10).tolist(),
                      np.asarray(predicted, dtype=float).tolist()))
    if lower_level not in values or upper_level not in values:
        return np.nan
    return bool(values[lower_level] <= observed <= values[upper_level])


def _score_samples(data, unit):
    rows = []
    for key, group in data.groupby(unit, sort=True):
        values = group['predicted_value'].to_numpy(dtype=float)
        observed = float(group['observed_value'].iat[0])
        row = dict(zip(unit, key if isinstance(key, tuple) else (key,)))
        row.update({
            'crps': crps_sample(values, observed),
            'dispersion': dispersion_sample(values),
            'bias': bias_sample(values, observed),
            'ae_median': abs(float(np.median(values)) - observed),
            'se_mean': (float(np.mean(values)) - observed) ** 2,
        })
        rows.append(row)
    return pd.DataFrame(rows, columns=unit + ['crps', 'dispersion', 'bias', 'ae_median', 'se_mean'])


def _score_quantiles(data, unit, coverage_ranges):
    rows = []
    for key, group in data.groupby(unit, sort=True):
        levels = group['quantile_level'].to_numpy(dtype=float)
        values = group['predicted_value'].to_numpy(dtype=float)
        observed = float(group['observed_value'].iat[0])
        row = dict(zip(unit, key if isinstance(key, tuple) else (key,)))
        row.update(wis_quantile(levels, values, observed, return_components=True))
        row['bias'] = bias_quantile(levels, values, observed)
        for interval_range in coverage_ranges:
            row[f'interval_coverage_{interval_range}'] = interval_coverage(
                levels, values, observed, interval_range
            )
        row['ae_median'] = abs(float(np.interp(0.5, levels, values)) - observed)
        rows.append(row)

    columns = unit + ['wis', 'dispersion', 'overprediction', 'underprediction', 'bias']
    coverage_cols = [f'interval_coverage_{r}' for r in coverage_ranges]
    scores = pd.DataFrame(rows, columns=columns + coverage_cols + ['ae_median'])

    # drop coverage columns the quantile grid cannot support
    for col in coverage_cols:
        available = scores[col].notna()
        if not available.any():
            scores = scores.drop(columns=col)
        else:
            scores[col] = scores[col].astype(float)
    return scores


def score(forecast, observations, coverage_ranges=COVERAGE_RANGES):
    """
    Score every forecast unit against the observations

    Parameters:
    forecast: SampleForecast or QuantileForecast
    observations: pd.DataFrame - 'day' and 'observed_value' (plus shared identifiers)
    coverage_ranges: tuple - central interval ranges (%) for coverage columns (quantile only)

    Returns:
    pd.DataFrame: one row per forecast unit with metric columns
        samples: crps, dispersion, bias, ae_median, se_mean
        quantiles: wis, dispersion, overprediction, underprediction, bias,
                   interval_coverage_<range>, ae_median
    """
    unit = forecast.forecast_unit
    data = join_observations(forecast.data, observations)

    if isinstance(forecast, SampleForecast):
        scores = _score_samples(data, unit)
    elif isinstance(forecast, QuantileForecast):
        scores = _score_quantiles(data, unit, coverage_ranges)
    else:
        raise TypeError(f"Cannot score object of type {type(forecast).__name__}")

    logger.info(f"Scored {len(scores)} forecast units for models {forecast.models}")
    return scores


def crps(sample_forecast, observations):
    """CRPS per forecast unit of a sample forecast"""
    if not isinstance(sample_forecast, SampleForecast):
        raise TypeError("CRPS is defined for sample forecasts; use weighted_interval_score for quantiles")
    scores = score(sample_forecast, observations)
    return scores[sample_forecast.forecast_unit + ['crps']]


def weighted_interval_score(quantile_forecast, observations):
    """WIS and its components per forecast unit of a quantile forecast"""
    if not isinstance(quantile_forecast, QuantileForecast):
        raise TypeError("WIS is defined for quantile forecasts; convert samples first")
    scores = score(quantile_forecast, observations)
    return scores[quantile_forecast.forecast_unit + ['wis', 'dispersion', 'overprediction', 'underprediction']]
