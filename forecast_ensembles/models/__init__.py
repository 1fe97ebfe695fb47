"""
Ensemble weight estimators.

Modules
-------
inverse_error.py
    Weights inversely proportional to each model's mean historical score,
    using only scores available on the origin day.

quantile_regression.py
    Quantile regression averaging: weights fitted by linear programming to
    minimise the pinball loss of the combined forecast over a trailing window.

Key Classes
-----------
QuantileRegressionAveraging (quantile_regression.py)
    Fit and apply QRA weights for one origin day
"""
