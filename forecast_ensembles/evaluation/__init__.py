"""
Evaluation of probabilistic forecasts.

Modules
-------
metrics.py
    Proper scoring rules per forecast unit:
    - Continuous Ranked Probability Score (CRPS) from samples
    - Weighted Interval Score (WIS) and its components from quantiles
    - Bias, interval coverage and absolute error of the median

calibration.py
    Probability integral transform (PIT) values and histograms.

transforms.py
    Scoring on transformed scales, e.g. log(value + offset).

summarise.py
    Aggregation of scores and pairwise relative skill.

Usage Example
-------------
>>> from forecast_ensembles.evaluation.metrics import score
>>> from forecast_ensembles.evaluation.summarise import summarise
>>> scores = score(quantiles, observations)
>>> summarise(scores, by=['model', 'horizon'])
"""
