"""
Exceptions raised by the forecast representation, ensembling, weighting and
scoring code.

All errors derive from ``ForecastEnsembleError``, which is itself a
``ValueError`` so that callers catching bad-input errors generically keep
working.
"""


class ForecastEnsembleError(ValueError):
    """Base class for all library errors."""


class InsufficientSamplesError(ForecastEnsembleError):
    """A sample forecast unit has no draws to compute quantiles from."""


class IncompatibleQuantileGridError(ForecastEnsembleError):
    """Quantile levels differ between models, or cannot be paired into intervals."""


class MissingWeightError(ForecastEnsembleError):
    """A model/group in the forecasts has no corresponding weight."""


class InsufficientTrainingDataError(ForecastEnsembleError):
    """Too few past forecast/observation pairs to estimate weights."""


class InvalidOffsetError(ForecastEnsembleError):
    """The offset for a log transform would produce non-finite values."""


class CrossingQuantilesError(ForecastEnsembleError):
    """Predicted values decrease as the quantile level increases."""
