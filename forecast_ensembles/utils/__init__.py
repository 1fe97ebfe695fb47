"""
Utility functions for converting and combining forecasts.

Modules
-------
quantiles.py
    Conversion of sample forecasts to quantile forecasts.

ensemble.py
    Ensemble methods for combining quantile forecasts:
    - Quantile-wise mean and median
    - Filtered ensembles excluding named models
    - Weighted averaging with per-origin-day (and horizon) weights
    - Linear combination with fitted coefficients

config.py
    YAML configuration loading with built-in defaults.

Usage Example
-------------
>>> from forecast_ensembles.utils.ensemble import weighted_combine
>>> ensemble = weighted_combine(quantiles, weights, model_name='Weighted ensemble')
"""
