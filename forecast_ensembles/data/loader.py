"""
Reading and writing forecast and observation tables.

This module provides the ForecastDataLoader class for loading sample forecasts
and observations from CSV or Parquet files into the canonical long format, and
for writing result tables.
"""

import logging
from pathlib import Path

import pandas as pd

from .forecasts import SampleForecast, as_observations


class ForecastDataLoader:
    """
    Loader for sample forecasts and observations.

    Handles:
    - CSV and Parquet files (chosen by file suffix)
    - Common alternative column names (``day``, ``sample``, ``predicted``, ...)

    Parameters
    ----------
    config : dict, optional
        Configuration dictionary; ``runtime.output_dir`` is the default
        location for ``save_table``.

    Example
    -------
    >>> loader = ForecastDataLoader(config=config)
    >>> samples = loader.load_samples('data/forecasts.csv')
    >>> observations = loader.load_observations('data/onsets.csv')
    """

    SAMPLE_ALIASES = {
        'day': 'target_day',
        'sample': 'draw_id',
        'draw': 'draw_id',
        '.draw': 'draw_id',
        'predicted': 'predicted_value',
        'value': 'predicted_value',
    }

    OBSERVATION_ALIASES = {
        'target_day': 'day',
        'observed': 'observed_value',
        'onsets': 'observed_value',
        'value': 'observed_value',
    }

    def __init__(self, config=None):
        self.config = config or {}
        self.logger = logging.getLogger(__name__)

    def _read(self, path):
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")

        self.logger.info(f"Loading data from {path}")
        if path.suffix in ('.parquet', '.pq'):
            return pd.read_parquet(path)
        if path.suffix == '.csv':
            return pd.read_csv(path)
        raise ValueError(f"Unsupported file type '{path.suffix}', expected .csv or .parquet")

    @staticmethod
    def _rename(df, aliases):
        renames = {
            alias: target for alias, target in aliases.items()
            if alias in df.columns and target not in df.columns
        }
        return df.rename(columns=renames)

    def load_samples(self, path):
        """
        Load sample forecasts.

        Returns
        -------
        SampleForecast
        """
        df = self._read(path)
        df = self._rename(df, self.SAMPLE_ALIASES)

        samples = SampleForecast(df)
        self.logger.info(f"Loaded {len(samples)} draws from models {samples.models}")
        return samples

    def load_observations(self, path):
        """
        Load observations.

        Returns
        -------
        pd.DataFrame
            Columns ``day`` and ``observed_value``.
        """
        df = self._read(path)
        df = self._rename(df, self.OBSERVATION_ALIASES)
        observations = as_observations(df)
        self.logger.info(
            f"Loaded {len(observations)} observations from day {observations['day'].min()} "
            f"to {observations['day'].max()}"
        )
        return observations

    def save_table(self, df, path):
        """Write a table as CSV or Parquet, creating parent directories.

        Relative paths are resolved against ``runtime.output_dir`` when configured.
        """
        path = Path(path)
        output_dir = self.config.get('runtime', {}).get('output_dir')
        if output_dir and not path.is_absolute():
            path = Path(output_dir) / path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix in ('.parquet', '.pq'):
            df.to_parquet(path, engine='pyarrow', index=False)
        else:
            df.to_csv(path, index=False)
        self.logger.info(f"Saved {len(df)} rows to {path}")
        return path
