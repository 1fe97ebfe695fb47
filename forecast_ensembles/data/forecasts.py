"""
Canonical representations of probabilistic forecasts.

Forecasts are stored as long-format ``pandas.DataFrame`` tables. Each row
belongs to a *forecast unit*: the combination of identifying columns
(``model``, ``origin_day``, ``horizon``, ``target_day`` plus any extra
identifiers such as ``scale``). Sample forecasts add ``draw_id`` and
``predicted_value``; quantile forecasts add ``quantile_level`` and
``predicted_value``.

Observations are a separate table with ``day`` and ``observed_value``.

Example
-------
>>> samples = as_forecast_sample(df)
>>> samples.forecast_unit
['model', 'origin_day', 'horizon', 'target_day']
"""

import logging

import numpy as np
import pandas as pd

from ..exceptions import CrossingQuantilesError

logger = logging.getLogger(__name__)

VALUE_COLUMNS = ('draw_id', 'quantile_level', 'predicted_value', 'observed_value')
BASE_UNIT = ('model', 'origin_day', 'horizon', 'target_day')
DAY_COLUMNS = ('origin_day', 'horizon', 'target_day')


def get_forecast_unit(df):
    """Return the identifying columns of a forecast table, in canonical order."""
    base = [col for col in BASE_UNIT if col in df.columns]
    extra = [col for col in df.columns if col not in BASE_UNIT and col not in VALUE_COLUMNS]
    return base + extra


def _as_integer(series, name):
    values = pd.to_numeric(series, errors='raise')
    if values.isna().any():
        raise ValueError(f"Column '{name}' contains missing values")
    if not np.all(np.mod(values.to_numpy(dtype=float), 1) == 0):
        raise ValueError(f"Column '{name}' must contain whole days")
    return values.astype('int64')


def _prepare_table(df, value_column):
    required = ['model', 'origin_day', 'target_day', value_column, 'predicted_value']
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(f"Forecast table is missing required columns: {missing}")

    data = df.copy()
    data['model'] = data['model'].astype(str)
    data['origin_day'] = _as_integer(data['origin_day'], 'origin_day')
    data['target_day'] = _as_integer(data['target_day'], 'target_day')

    derived = data['target_day'] - data['origin_day']
    if 'horizon' in data.columns:
        data['horizon'] = _as_integer(data['horizon'], 'horizon')
        mismatched = data['horizon'] != derived
        if mismatched.any():
            raise ValueError(
                f"{int(mismatched.sum())} rows have horizon != target_day - origin_day"
            )
    else:
        data['horizon'] = derived

    if (data['horizon'] < 1).any():
        raise ValueError("Forecast horizons must be >= 1")

    data['predicted_value'] = pd.to_numeric(data['predicted_value'], errors='raise').astype(float)

    unit = get_forecast_unit(data)
    duplicated = data.duplicated(subset=unit + [value_column])
    if duplicated.any():
        raise ValueError(
            f"{int(duplicated.sum())} duplicate '{value_column}' entries within forecast units"
        )

    ordered = unit + [value_column, 'predicted_value']
    return data[ordered].sort_values(unit + [value_column]).reset_index(drop=True)


def check_monotonic(data, unit=None):
    """
    Raise ``CrossingQuantilesError`` if values decrease with quantile level.

    Equal values at neighbouring levels are allowed (degenerate forecasts).
    """
    if unit is None:
        unit = get_forecast_unit(data)
    if data.empty:
        return

    ordered = data.sort_values(unit + ['quantile_level'])
    diffs = ordered.groupby(unit, sort=False)['predicted_value'].diff()
    tolerance = 1e-9 * np.maximum(1.0, ordered['predicted_value'].abs())
    crossing = diffs < -tolerance
    if crossing.any():
        offenders = ordered.loc[crossing, unit].drop_duplicates()
        raise CrossingQuantilesError(
            f"Quantile forecasts decrease with quantile level for {len(offenders)} forecast units, "
            f"first: {offenders.iloc[0].to_dict()}"
        )


class _Forecast:
    """Shared behaviour of sample and quantile forecasts."""

    value_column = None

    def __init__(self, data):
        self._data = self._validate(data)

    def _validate(self, data):
        return _prepare_table(data, self.value_column)

    @property
    def data(self):
        """Copy of the underlying long-format table."""
        return self._data.copy()

    @property
    def forecast_unit(self):
        return get_forecast_unit(self._data)

    @property
    def models(self):
        return sorted(self._data['model'].unique())

    @property
    def origin_days(self):
        return sorted(int(day) for day in self._data['origin_day'].unique())

    def filter(self, models=None, exclude_models=None, origin_days=None, horizons=None):
        """Return a new forecast restricted to the given models/days/horizons."""
        mask = pd.Series(True, index=self._data.index)
        if models is not None:
            mask &= self._data['model'].isin(list(models))
        if exclude_models is not None:
            mask &= ~self._data['model'].isin(list(exclude_models))
        if origin_days is not None:
            mask &= self._data['origin_day'].isin(list(origin_days))
        if horizons is not None:
            mask &= self._data['horizon'].isin(list(horizons))
        return type(self)(self._data[mask])

    def __len__(self):
        return len(self._data)

    def __repr__(self):
        return (f"{type(self).__name__}(models={self.models}, "
                f"units={len(self._data[self.forecast_unit].drop_duplicates())}, rows={len(self._data)})")


class SampleForecast(_Forecast):
    """Sample-based forecast: ``draw_id`` and ``predicted_value`` per forecast unit."""

    value_column = 'draw_id'


class QuantileForecast(_Forecast):
    """Quantile-based forecast: ``quantile_level`` and ``predicted_value`` per forecast unit."""

    value_column = 'quantile_level'

    def _validate(self, data):
        if 'quantile_level' in data.columns:
            levels = pd.to_numeric(data['quantile_level'], errors='raise')
            if ((levels <= 0) | (levels >= 1)).any():
                raise ValueError("quantile_level values must lie strictly between 0 and 1")
            data = data.assign(quantile_level=levels.astype(float).round(10))
        prepared = _prepare_table(data, 'quantile_level')
        check_monotonic(prepared)
        return prepared

    @property
    def quantile_levels(self):
        return sorted(float(q) for q in self._data['quantile_level'].unique())


def as_forecast_sample(df):
    """Validate a table of draws and wrap it as a ``SampleForecast``."""
    return SampleForecast(df)


def as_forecast_quantile(df):
    """Validate a table of quantiles and wrap it as a ``QuantileForecast``."""
    return QuantileForecast(df)


def as_observations(df):
    """
    Validate an observation table.

    Requires ``day`` and ``observed_value``; any further columns (e.g.
    ``scale``) are treated as identifiers. Each day may appear only once per
    identifier combination.
    """
    missing = [col for col in ('day', 'observed_value') if col not in df.columns]
    if missing:
        raise ValueError(f"Observation table is missing required columns: {missing}")

    data = df.copy()
    data['day'] = _as_integer(data['day'], 'day')
    data['observed_value'] = pd.to_numeric(data['observed_value'], errors='raise').astype(float)

    keys = [col for col in data.columns if col != 'observed_value']
    duplicated = data.duplicated(subset=keys)
    if duplicated.any():
        raise ValueError(f"{int(duplicated.sum())} days have more than one observation")

    return data.sort_values(keys).reset_index(drop=True)


def join_observations(forecast_data, observations):
    """
    Attach ``observed_value`` to each forecast row on ``target_day == day``.

    Extra identifier columns shared by both tables (such as ``scale``) are
    joined on as well. Forecast units without an observation are dropped.
    """
    obs = as_observations(observations).rename(columns={'day': 'target_day'})
    keys = ['target_day'] + [
        col for col in obs.columns
        if col in forecast_data.columns and col not in ('target_day', 'observed_value')
    ]
    merged = forecast_data.merge(obs[keys + ['observed_value']], on=keys, how='left')

    unobserved = merged['observed_value'].isna()
    if unobserved.any():
        unit = get_forecast_unit(forecast_data)
        n_units = len(merged.loc[unobserved, unit].drop_duplicates())
        logger.info(f"Dropping {n_units} forecast units without observations")
        merged = merged[~unobserved]

    return merged.reset_index(drop=True)
