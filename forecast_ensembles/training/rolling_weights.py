"""
Rolling estimation of ensemble weights over origin days.

Each origin day's weights only read scores and observations that were
available on that day, so origin days are independent of each other and can
be processed in a multiprocessing pool.
"""

import logging
import multiprocessing as mp
from functools import partial

import pandas as pd
from tqdm import tqdm

from ..data.forecasts import QuantileForecast, as_observations
from ..exceptions import InsufficientTrainingDataError
from ..models.inverse_error import check_weights, inverse_error_weights
from ..models.quantile_regression import QuantileRegressionAveraging
from ..utils.ensemble import weighted_combine

logger = logging.getLogger(__name__)


def _inverse_weights_for_day(origin_day, scores, params):
    return inverse_error_weights(scores, origin_days=[origin_day], **params)


def rolling_inverse_error_ensemble(forecasts, scores, origin_days=None, metric='wis', lag=14,
                                   window=None, by_horizon=False, fallback='uniform',
                                   model_name='Weighted ensemble', workers=1):
    """
    Inverse-error weighted ensemble for every origin day.

    Parameters
    ----------
    forecasts : QuantileForecast
        Forecasts of the models to combine.
    scores : pd.DataFrame
        Past scores of the same models (e.g. WIS from ``score``).
    origin_days : iterable of int, optional
        Days to build the ensemble for (default: all origin days in ``forecasts``).
    metric, lag, window, by_horizon, fallback
        Passed to ``inverse_error_weights``.
    workers : int
        Number of worker processes; 1 runs in-process.

    Returns
    -------
    tuple
        (weights DataFrame, QuantileForecast)
    """
    if origin_days is None:
        origin_days = forecasts.origin_days
    origin_days = list(origin_days)

    params = {
        'metric': metric,
        'lag': lag,
        'window': window,
        'by_horizon': by_horizon,
        'fallback': fallback,
        'models': forecasts.models,
        'horizons': sorted(int(h) for h in forecasts.data['horizon'].unique()) if by_horizon else None,
    }

    num_workers = max(1, min(workers, len(origin_days)))
    if num_workers > 1:
        logger.info(f"Using {num_workers} worker processes for {len(origin_days)} origin days")
        worker_func = partial(_inverse_weights_for_day, scores=scores, params=params)
        with mp.Pool(processes=num_workers) as pool:
            weights = pd.concat(pool.map(worker_func, origin_days), ignore_index=True)
    else:
        weights = inverse_error_weights(scores, origin_days=origin_days, **params)
    check_weights(weights)

    current = forecasts.filter(origin_days=origin_days)
    ensemble = weighted_combine(current, weights, model_name=model_name)
    return weights, ensemble


def _qra_for_day(origin_day, forecasts, observations, params, skip_insufficient):
    """Fit QRA for one origin day; returns (origin_day, weights, ensemble table)."""
    qra = QuantileRegressionAveraging(**params)
    try:
        ensemble = qra.fit_predict(forecasts, observations, origin_day)
    except InsufficientTrainingDataError as e:
        if not skip_insufficient:
            raise
        logger.warning(f"Skipping origin day {origin_day}: {e}")
        return origin_day, None, None
    return origin_day, qra.weights_, ensemble.data


def rolling_qra_ensemble(forecasts, observations, origin_days=None, window=21, constrained=True,
                         by_horizon=False, min_training=None, model_name='QRA ensemble',
                         skip_insufficient=True, workers=1):
    """
    Quantile regression averaging refitted on every origin day.

    Parameters
    ----------
    forecasts : QuantileForecast
        Forecasts of the models to combine.
    observations : pd.DataFrame
        Columns ``day`` and ``observed_value``.
    origin_days : iterable of int, optional
        Days to build the ensemble for (default: all origin days in ``forecasts``).
    window, constrained, by_horizon, min_training, model_name
        Passed to ``QuantileRegressionAveraging``.
    skip_insufficient : bool
        Skip origin days without enough training data instead of raising.
    workers : int
        Number of worker processes; 1 runs in-process.

    Returns
    -------
    tuple
        (weights DataFrame, QuantileForecast or None if no day could be fitted)
    """
    if origin_days is None:
        origin_days = forecasts.origin_days
    origin_days = list(origin_days)
    observations = as_observations(observations)

    params = {
        'window': window,
        'constrained': constrained,
        'by_horizon': by_horizon,
        'min_training': min_training,
        'model_name': model_name,
    }
    worker_func = partial(
        _qra_for_day,
        forecasts=forecasts,
        observations=observations,
        params=params,
        skip_insufficient=skip_insufficient,
    )

    num_workers = max(1, min(workers, len(origin_days)))
    if num_workers > 1:
        logger.info(f"Using {num_workers} worker processes for {len(origin_days)} origin days")
        with mp.Pool(processes=num_workers) as pool:
            results = pool.map(worker_func, origin_days)
    else:
        results = [worker_func(day) for day in tqdm(origin_days, desc="QRA origin days")]

    fitted = [(day, w, e) for day, w, e in results if w is not None]
    skipped = [day for day, w, _ in results if w is None]
    logger.info(f"QRA fitted for {len(fitted)} of {len(origin_days)} origin days")
    if skipped:
        logger.info(f"Skipped origin days: {skipped}")

    if not fitted:
        columns = ['model', 'origin_day'] + (['horizon'] if by_horizon else []) + ['weight']
        return pd.DataFrame(columns=columns), None

    weights = pd.concat([w for _, w, _ in fitted], ignore_index=True)
    ensemble = QuantileForecast(pd.concat([e for _, _, e in fitted], ignore_index=True))
    return weights, ensemble
