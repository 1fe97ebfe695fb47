"""
Forecast ensembles for infectious disease incidence

This package combines probabilistic forecasts from several models into
ensemble forecasts and evaluates models and ensembles with proper scoring
rules.

Main Components
---------------
- data: Forecast and observation tables, file I/O and synthetic data generation
- utils: Sample-to-quantile conversion, ensemble combination and configuration
- models: Ensemble weight estimators
- training: Rolling weight estimation and the end-to-end pipeline
- evaluation: Scoring rules, calibration checks, transforms and summaries

Ensembles Implemented
---------------------
1. Unweighted ensembles
   - Quantile-wise mean or median across models
   - Filtered variants that exclude named models

2. Inverse-error weighted ensemble
   - Weights proportional to the inverse of each model's mean past score
   - Only scores observable on the origin day are used

3. Quantile regression averaging (QRA)
   - Weights fitted by minimising the pinball loss over a trailing window

Usage Example
-------------
>>> from forecast_ensembles.data.forecasts import as_forecast_sample
>>> from forecast_ensembles.utils.quantiles import sample_to_quantile
>>> from forecast_ensembles.utils.ensemble import unweighted_combine
>>> quantiles = sample_to_quantile(as_forecast_sample(draws))
>>> median_ensemble = unweighted_combine(quantiles, statistic='median')
"""

__version__ = "1.0.0"
