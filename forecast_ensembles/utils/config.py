"""
YAML configuration loading.

Values from a configuration file are merged over ``DEFAULT_CONFIG`` so that a
file only needs to contain the settings it changes.
"""

import copy
import logging
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / 'config' / 'default_config.yml'

DEFAULT_CONFIG = {
    'quantiles': {
        'levels': [0.01, 0.05, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 0.95, 0.99],
    },
    'ensemble': {
        'statistics': ['mean', 'median'],
        'exclude_models': [],
    },
    'weighting': {
        'metric': 'wis',
        'lag': 14,
        'window': None,
        'by_horizon': False,
        'fallback': 'uniform',
    },
    'qra': {
        'window': 21,
        'constrained': True,
        'by_horizon': False,
        'min_training': None,
        'lower_bound': 0.0,
    },
    'scoring': {
        'log_offset': 1,
        'pit_bins': 10,
        'seed': 42,
    },
    'runtime': {
        'workers': 1,
        'logs_dir': './results/logs',
        'output_dir': './results/ensembles',
    },
}


def _merge(base, override):
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path=None):
    """
    Load a configuration file and merge it over the defaults.

    Parameters
    ----------
    config_path : str or Path, optional
        YAML file to read. When omitted, ``config/default_config.yml`` is used
        if present, otherwise the built-in defaults are returned.

    Returns
    -------
    dict
        Complete configuration dictionary.
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return copy.deepcopy(DEFAULT_CONFIG)
        config_path = DEFAULT_CONFIG_PATH

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        user_config = yaml.safe_load(f) or {}

    if not isinstance(user_config, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping, got {type(user_config).__name__}")

    logger.info(f"Loaded configuration from {config_path}")
    return _merge(DEFAULT_CONFIG, user_config)
