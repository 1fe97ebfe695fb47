import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import sparse
from scipy.optimize import linprog
from sklearn.metrics import mean_pinball_loss

from ..data.forecasts import QuantileForecast, as_observations, get_forecast_unit, join_observations
from ..exceptions import InsufficientTrainingDataError
from ..utils.ensemble import check_quantile_grid, linear_combine


def solve_quantile_weights(X: np.ndarray,
                           y: np.ndarray,
                           tau: np.ndarray,
                           constrained: bool = True,
                           solver: str = 'highs') -> np.ndarray:
    """
    Find model weights minimising the summed pinball loss.

    Solves the linear program
        min  sum_r tau_r * u+_r + (1 - tau_r) * u-_r
        s.t. X w + u+ - u- = y,  u+ >= 0,  u- >= 0
    with ``w >= 0`` and ``sum(w) = 1`` when ``constrained``.

    Parameters:
    -----------
    X : np.ndarray, shape (n_rows, n_models)
        Model predictions, one row per (target, quantile level)
    y : np.ndarray, shape (n_rows,)
        Observed value of each row's target
    tau : np.ndarray, shape (n_rows,)
        Quantile level of each row
    constrained : bool
        Restrict weights to the probability simplex
    solver : str
        scipy linprog method ('highs', 'highs-ds', 'highs-ipm')

    Returns:
    --------
    np.ndarray, shape (n_models,)
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    tau = np.asarray(tau, dtype=float)
    n_rows, n_models = X.shape

    c = np.concatenate([np.zeros(n_models), tau, 1 - tau])
    identity = sparse.identity(n_rows, format='csr')
    A_eq = sparse.hstack([sparse.csr_matrix(X), identity, -identity], format='csr')
    b_eq = y

    if constrained:
        simplex_row = sparse.csr_matrix(
            np.concatenate([np.ones(n_models), np.zeros(2 * n_rows)]).reshape(1, -1)
        )
        A_eq = sparse.vstack([A_eq, simplex_row], format='csr')
        b_eq = np.append(y, 1.0)
        weight_bounds = [(0, None)] * n_models
    else:
        weight_bounds = [(None, None)] * n_models

    bounds = weight_bounds + [(0, None)] * (2 * n_rows)
    result = linprog(c, A_eq=A_eq, b_eq=b_eq, bounds=bounds, method=solver)
    if not result.success:
        raise RuntimeError(f"Quantile regression averaging failed: {result.message}")

    weights = result.x[:n_models]
    if constrained:
        weights = np.clip(weights, 0, None)
        weights = weights / weights.sum()
    return weights


class QuantileRegressionAveraging:
    """
    Quantile regression averaging (QRA) of model forecasts.

    For an origin day, model weights are fitted by regressing observed values
    on the models' quantile predictions over a trailing window of past
    forecasts, minimising the weighted interval score of the combination.
    Only forecasts whose target day is on or before the origin day enter the
    fit. Weights are shared across quantile levels; with ``by_horizon`` a
    separate set is fitted for every horizon.
    Unconstrained combinations are rearranged per target into increasing
    order over the quantile levels, so predicted quantiles never cross.
    """

    def __init__(self,
                 window: int = 21,
                 constrained: bool = True,
                 by_horizon: bool = False,
                 min_training: Optional[int] = None,
                 solver: str = 'highs',
                 model_name: str = 'QRA ensemble'):
        """
        Initialize the QRA estimator.

        Parameters:
        -----------
        window : int
            Number of trailing origin days used for training (default 3 weeks)
        constrained : bool
            Non-negative weights summing to one; otherwise free coefficients
        by_horizon : bool
            Fit a separate weight set per horizon
        min_training : int, optional
            Minimum number of training targets; never fewer than the number
            of models
        solver : str
            scipy linprog method
        model_name : str
            Name of the combined forecast
        """
        if window < 1:
            raise ValueError("window must be at least one day")

        self.window = window
        self.constrained = constrained
        self.by_horizon = by_horizon
        self.min_training = min_training
        self.solver = solver
        self.model_name = model_name

        self.weights_ = None
        self.models_ = None
        self.origin_day_ = None
        self.train_losses_: Dict = {}
        self.is_fitted = False
        self.logger = logging.getLogger(self.__class__.__name__)

    def _training_rows(self, forecasts: QuantileForecast, observations: pd.DataFrame,
                       origin_day: int) -> pd.DataFrame:
        data = forecasts.data
        in_window = (
            (data['origin_day'] > origin_day - self.window)
            & (data['origin_day'] <= origin_day)
            & (data['target_day'] <= origin_day)
        )
        known = observations[observations['day'] <= origin_day]
        return join_observations(data[in_window], known)

    def _fit_group(self, rows: pd.DataFrame, models: List[str], label: str) -> np.ndarray:
        required = max(self.min_training or 0, len(models))
        if rows.empty:
            raise InsufficientTrainingDataError(
                f"{label}: no training targets available, at least {required} required"
            )

        target = [col for col in get_forecast_unit(rows) if col != 'model']
        keys = target + ['quantile_level']

        table = rows.pivot_table(index=keys, columns='model', values='predicted_value')
        table = table.reindex(columns=models).dropna()
        observed = rows.groupby(keys)['observed_value'].first().reindex(table.index)

        n_targets = len(table.index.droplevel('quantile_level').unique()) if len(table) else 0
        if n_targets < required:
            raise InsufficientTrainingDataError(
                f"{label}: {n_targets} training targets available, at least {required} required"
            )

        X = table.to_numpy(dtype=float)
        y = observed.to_numpy(dtype=float)
        tau = table.index.get_level_values('quantile_level').to_numpy(dtype=float)

        weights = solve_quantile_weights(X, y, tau, constrained=self.constrained, solver=self.solver)

        # in-sample pinball loss per quantile level
        fitted = X @ weights
        losses = {}
        for level in np.unique(tau):
            mask = tau == level
            losses[float(level)] = mean_pinball_loss(y[mask], fitted[mask], alpha=float(level))
        self.train_losses_[label] = losses
        self.logger.info(f"{label}: fitted on {n_targets} targets, mean train loss = {np.mean(list(losses.values())):.6f}")

        return weights

    def fit(self, forecasts: QuantileForecast, observations: pd.DataFrame, origin_day: int):
        """
        Fit weights for one origin day.

        Parameters:
        -----------
        forecasts : QuantileForecast
            Forecasts of the models to combine, covering past origin days
        observations : pd.DataFrame
            'day' and 'observed_value'; days after ``origin_day`` are ignored
        origin_day : int
            Day the weights are for

        Returns:
        --------
        self
        """
        check_quantile_grid(forecasts)
        observations = as_observations(observations)
        origin_day = int(origin_day)
        models = forecasts.models
        rows = self._training_rows(forecasts, observations, origin_day)

        self.train_losses_ = {}
        records = []
        if self.by_horizon:
            for horizon in sorted(forecasts.data['horizon'].unique()):
                label = f"origin_day={origin_day}, horizon={horizon}"
                weights = self._fit_group(rows[rows['horizon'] == horizon], models, label)
                records += [
                    {'model': m, 'origin_day': origin_day, 'horizon': int(horizon), 'weight': float(w)}
                    for m, w in zip(models, weights)
                ]
        else:
            weights = self._fit_group(rows, models, f"origin_day={origin_day}")
            records += [
                {'model': m, 'origin_day': origin_day, 'weight': float(w)}
                for m, w in zip(models, weights)
            ]

        self.weights_ = pd.DataFrame(records)
        self.models_ = models
        self.origin_day_ = origin_day
        self.is_fitted = True
        return self

    def predict(self, forecasts: QuantileForecast) -> QuantileForecast:
        """
        Combine the forecasts made on the fitted origin day.

        Parameters:
        -----------
        forecasts : QuantileForecast
            Forecasts of the fitted models; only the fitted origin day is used

        Returns:
        --------
        QuantileForecast
        """
        if not self.is_fitted:
            raise ValueError("Model must be fitted before making predictions")

        current = forecasts.filter(models=self.models_, origin_days=[self.origin_day_])
        if len(current) == 0:
            raise ValueError(f"No forecasts from origin day {self.origin_day_} to combine")

        if not self.by_horizon:
            coefficients = self.weights_.set_index('model')['weight']
            return linear_combine(current, coefficients, self.model_name, sort_levels=not self.constrained)

        combined = []
        for horizon, weights in self.weights_.groupby('horizon'):
            subset = current.filter(horizons=[horizon])
            if len(subset) == 0:
                continue
            coefficients = weights.set_index('model')['weight']
            combined.append(
                linear_combine(subset, coefficients, self.model_name, sort_levels=not self.constrained).data
            )
        return QuantileForecast(pd.concat(combined, ignore_index=True))

    def fit_predict(self, forecasts: QuantileForecast, observations: pd.DataFrame,
                    origin_day: int) -> QuantileForecast:
        """Fit weights for ``origin_day`` and combine that day's forecasts."""
        return self.fit(forecasts, observations, origin_day).predict(forecasts)
