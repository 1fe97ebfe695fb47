import logging

import numpy as np
import pandas as pd

from ..data.forecasts import as_observations
from ..exceptions import InvalidOffsetError

logger = logging.getLogger(__name__)


def log_shift(values, offset=0.0):
    """Natural logarithm of ``values + offset``."""
    return np.log(np.asarray(values, dtype=float) + offset)


def transform_forecasts(forecast, observations, fun, label, append=True, natural_label='natural'):
    """
    Apply a transformation to predicted and observed values alike.

    Parameters
    ----------
    forecast : SampleForecast or QuantileForecast
    observations : pd.DataFrame
        Columns ``day`` and ``observed_value``.
    fun : callable
        Vectorised function applied to both value columns.
    label : str
        Value of the ``scale`` column for transformed rows.
    append : bool
        Keep the untransformed rows as well (tagged ``natural_label``), so that
        scores on both scales come out of a single scoring call.

    Returns
    -------
    tuple
        (forecast of the same type, observations DataFrame)
    """
    data = forecast.data
    obs = as_observations(observations)

    if 'scale' in data.columns or 'scale' in obs.columns:
        raise ValueError("Forecasts already carry a 'scale' column; transform the natural scale only")

    transformed = data.assign(predicted_value=fun(data['predicted_value']), scale=label)
    transformed_obs = obs.assign(observed_value=fun(obs['observed_value']), scale=label)

    if append:
        transformed = pd.concat([data.assign(scale=natural_label), transformed], ignore_index=True)
        transformed_obs = pd.concat([obs.assign(scale=natural_label), transformed_obs], ignore_index=True)

    return type(forecast)(transformed), transformed_obs


def log_transform(forecast, observations, offset=1.0, append=True):
    """
    Score on a log scale: apply ``log(value + offset)`` to forecasts and observations.

    Raises
    ------
    InvalidOffsetError
        If ``offset <= -min(value)`` over all predicted and observed values,
        which would give ``-inf`` or undefined logarithms.
    """
    data = forecast.data
    obs = as_observations(observations)
    values = np.concatenate([
        data['predicted_value'].to_numpy(dtype=float),
        obs['observed_value'].to_numpy(dtype=float),
    ])
    values = values[~np.isnan(values)]
    if values.size and offset <= -values.min():
        raise InvalidOffsetError(
            f"Offset {offset} must be greater than {-values.min()} to keep log(value + offset) finite"
        )

    logger.info(f"Log-transforming forecasts with offset {offset}")
    return transform_forecasts(
        forecast, obs, fun=lambda v: log_shift(v, offset), label='log', append=append
    )
