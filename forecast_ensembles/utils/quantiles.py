import logging

import numpy as np

from ..data.forecasts import QuantileForecast, SampleForecast
from ..exceptions import InsufficientSamplesError

logger = logging.getLogger(__name__)

DEFAULT_QUANTILE_LEVELS = (0.01, 0.05, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 0.95, 0.99)


def sample_to_quantile(forecast, quantile_levels=DEFAULT_QUANTILE_LEVELS):
    """
    Convert a sample forecast into a quantile forecast.

    Quantiles are computed independently for every forecast unit (marginal
    per-target quantiles, trajectories are not preserved) using linear
    interpolation between order statistics.

    Parameters
    ----------
    forecast : SampleForecast
        Draws per (model, origin_day, horizon, target_day).
    quantile_levels : sequence of float
        Levels in (0, 1) to evaluate.

    Returns
    -------
    QuantileForecast
    """
    if not isinstance(forecast, SampleForecast):
        raise TypeError(f"Expected a SampleForecast, got {type(forecast).__name__}")

    levels = np.unique(np.asarray(quantile_levels, dtype=float))
    if levels.size == 0:
        raise ValueError("At least one quantile level is required")
    if np.any((levels <= 0) | (levels >= 1)):
        raise ValueError("Quantile levels must lie strictly between 0 and 1")

    data = forecast.data
    if data.empty:
        raise InsufficientSamplesError("Sample forecast contains no draws")

    unit = forecast.forecast_unit
    grouped = data.groupby(unit, sort=True)['predicted_value']

    counts = grouped.count()
    empty = counts[counts == 0]
    if not empty.empty:
        raise InsufficientSamplesError(
            f"{len(empty)} forecast units have no draws, first: {empty.index[0]}"
        )

    quantiles = grouped.quantile(list(levels), interpolation='linear')
    quantiles.index = quantiles.index.set_names(unit + ['quantile_level'])
    result = quantiles.rename('predicted_value').reset_index()

    logger.debug(f"Converted {len(counts)} forecast units to {levels.size} quantile levels")
    return QuantileForecast(result)
