import logging

import numpy as np
import pandas as pd

from ..data.forecasts import QuantileForecast
from ..exceptions import IncompatibleQuantileGridError, MissingWeightError

logger = logging.getLogger(__name__)

STATISTICS = ('mean', 'median')
WEIGHT_KEYS = ('origin_day', 'horizon')


def _target_unit(forecast):
    """Forecast unit without the model column: the ensemble output unit."""
    return [col for col in forecast.forecast_unit if col != 'model']


def _warn_incomplete_targets(forecast, model_name):
    """Log targets that only some of the models forecast."""
    data = forecast.data
    n_models = data['model'].nunique()
    counts = data.groupby(_target_unit(forecast))['model'].nunique()
    partial = counts[counts < n_models]
    if len(partial) > 0:
        first = partial.reset_index().drop(columns='model').iloc[0].to_dict()
        logger.warning(
            f"'{model_name}': {len(partial)} of {len(counts)} targets are not forecast by all "
            f"{n_models} models, first: {first}"
        )


def check_quantile_grid(forecast):
    """
    Ensure every forecast unit of every model uses the same quantile levels.

    Parameters:
    -----------
    forecast : QuantileForecast
        Forecasts from one or more models

    Returns:
    --------
    tuple: The shared quantile grid
    """
    data = forecast.data
    grids = data.groupby(forecast.forecast_unit)['quantile_level'].agg(tuple)
    unique_grids = set(grids)
    if len(unique_grids) > 1:
        per_model = {model: sorted(set(g)) for model, g in grids.groupby(level='model')}
        raise IncompatibleQuantileGridError(
            f"Models do not share a quantile grid: {per_model}"
        )
    return next(iter(unique_grids)) if unique_grids else ()


def unweighted_combine(forecasts, statistic='mean', model_name=None):
    """
    Combine quantile forecasts by averaging each quantile across models.

    Parameters:
    -----------
    forecasts : QuantileForecast
        Forecasts from the contributing models
    statistic : str
        'mean' or 'median' across models at each quantile level
    model_name : str, optional
        Name of the ensemble (default: 'Mean ensemble' / 'Median ensemble')

    Returns:
    --------
    QuantileForecast: One ensemble forecast per target and quantile level
    """
    if statistic not in STATISTICS:
        raise ValueError(f"Unsupported ensemble statistic: {statistic}. Use one of {STATISTICS}")
    if not isinstance(forecasts, QuantileForecast):
        raise TypeError("Ensembles are built from quantile forecasts; convert samples first")

    check_quantile_grid(forecasts)

    if model_name is None:
        model_name = f"{statistic.capitalize()} ensemble"
    _warn_incomplete_targets(forecasts, model_name)

    keys = _target_unit(forecasts) + ['quantile_level']
    combined = (
        forecasts.data
        .groupby(keys, sort=True)['predicted_value']
        .agg(statistic)
        .reset_index()
    )
    combined.insert(0, 'model', model_name)

    logger.info(f"Built '{model_name}' from {len(forecasts.models)} models")
    return QuantileForecast(combined)


def filtered_combine(forecasts, exclude_models, statistic='mean', model_name=None):
    """
    Combine quantile forecasts after removing a set of models.

    Which models to exclude is the caller's decision. Choosing them by looking
    at scores from the period being evaluated leaks outcome information into
    the ensemble.
    """
    exclude_models = list(exclude_models)
    unknown = sorted(set(exclude_models) - set(forecasts.models))
    if unknown:
        logger.warning(f"Excluded models not present in forecasts: {unknown}")

    remaining = forecasts.filter(exclude_models=exclude_models)
    if len(remaining) == 0:
        raise ValueError(f"Excluding {exclude_models} leaves no models to combine")

    if model_name is None:
        model_name = f"Filtered {statistic} ensemble"

    return unweighted_combine(remaining, statistic=statistic, model_name=model_name)


def weighted_combine(forecasts, weights, model_name='Weighted ensemble'):
    """
    Combine quantile forecasts as a weighted average across models.

    Parameters:
    -----------
    forecasts : QuantileForecast
        Forecasts from the contributing models
    weights : pd.DataFrame
        Columns 'model', 'weight' and optionally 'origin_day' and/or 'horizon'.
        The optional columns determine the groups weights apply to.
    model_name : str
        Name of the ensemble

    Returns:
    --------
    QuantileForecast: Weighted ensemble forecast

    Raises:
    -------
    MissingWeightError: a model in ``forecasts`` has no weight for its group
    """
    missing_cols = [col for col in ('model', 'weight') if col not in weights.columns]
    if missing_cols:
        raise ValueError(f"Weight table is missing required columns: {missing_cols}")

    check_quantile_grid(forecasts)

    weight_keys = ['model'] + [col for col in WEIGHT_KEYS if col in weights.columns]
    weights = weights[weight_keys + ['weight']].copy()
    weights['model'] = weights['model'].astype(str)
    weights['weight'] = pd.to_numeric(weights['weight'], errors='raise').astype(float)

    if weights.duplicated(subset=weight_keys).any():
        raise ValueError(f"Weight table has duplicate entries for {weight_keys}")
    if weights['weight'].isna().any():
        raise MissingWeightError("Weight table contains missing weights")
    if (weights['weight'] < 0).any():
        raise ValueError("Weights must be non-negative")

    _warn_incomplete_targets(forecasts, model_name)
    data = forecasts.data.merge(weights, on=weight_keys, how='left')

    unweighted = data['weight'].isna()
    if unweighted.any():
        offenders = data.loc[unweighted, weight_keys].drop_duplicates()
        raise MissingWeightError(
            f"No weight for {len(offenders)} model/group combinations, "
            f"first: {offenders.iloc[0].to_dict()}"
        )

    keys = _target_unit(forecasts) + ['quantile_level']
    data['weighted_value'] = data['weight'] * data['predicted_value']
    grouped = data.groupby(keys, sort=True)
    totals = grouped['weight'].sum()
    if (totals <= 0).any():
        raise ValueError("Weights sum to zero for at least one target")

    combined = (grouped['weighted_value'].sum() / totals).rename('predicted_value').reset_index()
    combined.insert(0, 'model', model_name)

    logger.info(f"Built '{model_name}' from {len(forecasts.models)} models")
    return QuantileForecast(combined)


def linear_combine(forecasts, coefficients, model_name, sort_levels=False):
    """
    Combine forecasts with fixed per-model coefficients, without normalising.

    Used for regression-based weights which may be unconstrained. Negative
    coefficients can make the combined quantiles cross; with ``sort_levels``
    each target's values are rearranged into increasing order over the
    quantile levels.
    """
    coefficients = pd.Series(coefficients, dtype=float)
    missing = sorted(set(forecasts.models) - set(coefficients.index))
    if missing:
        raise MissingWeightError(f"No coefficient for models: {missing}")

    data = forecasts.data
    data['weighted_value'] = data['model'].map(coefficients) * data['predicted_value']
    keys = _target_unit(forecasts) + ['quantile_level']
    grouped = data.groupby(keys, sort=True)

    # only targets forecast by every weighted model
    n_models = grouped['model'].nunique()
    complete = n_models[n_models == len(coefficients)].index
    if len(complete) < len(n_models):
        logger.warning(f"Dropping {len(n_models) - len(complete)} targets not forecast by every model")
    combined = grouped['weighted_value'].sum().loc[complete]

    combined = combined.rename('predicted_value').reset_index()
    if sort_levels:
        target = _target_unit(forecasts)
        combined = combined.sort_values(keys).reset_index(drop=True)
        combined['predicted_value'] = combined.groupby(target)['predicted_value'].transform(
            lambda values: np.sort(values.to_numpy())
        )
    combined.insert(0, 'model', model_name)
    return QuantileForecast(combined)


def combine_all(forecasts, statistics=STATISTICS, exclude_models=None):
    """
    Build the standard set of unweighted ensembles in one call.

    Returns a single QuantileForecast with the mean and median ensembles, and
    filtered versions of each when ``exclude_models`` is given.
    """
    ensembles = [unweighted_combine(forecasts, statistic=s).data for s in statistics]
    if exclude_models:
        ensembles += [
            filtered_combine(forecasts, exclude_models, statistic=s).data for s in statistics
        ]
    return QuantileForecast(pd.concat(ensembles, ignore_index=True))


def append_forecasts(*forecasts):
    """Concatenate quantile forecasts from models and ensembles."""
    tables = [f.data for f in forecasts if f is not None and len(f) > 0]
    if not tables:
        raise ValueError("No forecasts to append")
    return QuantileForecast(pd.concat(tables, ignore_index=True))


def ensemble_spread(forecasts, quantile_level=0.5):
    """Range of model predictions at one quantile level for every target."""
    data = forecasts.data
    data = data[np.isclose(data['quantile_level'], quantile_level)]
    keys = _target_unit(forecasts)
    return data.groupby(keys)['predicted_value'].agg(['min', 'max']).reset_index()
