"""
End-to-end batch run: quantile conversion, ensembling, weighting and scoring.
"""

import logging
from pathlib import Path

from ..data.forecasts import QuantileForecast, as_observations
from ..evaluation.calibration import pit_histogram
from ..evaluation.metrics import score
from ..evaluation.summarise import pairwise_comparison, summarise
from ..evaluation.transforms import log_transform
from ..utils.ensemble import append_forecasts, combine_all
from ..utils.quantiles import sample_to_quantile
from .rolling_weights import rolling_inverse_error_ensemble, rolling_qra_ensemble

logger = logging.getLogger(__name__)


def _apply_lower_bound(forecast, lower_bound):
    data = forecast.data
    below = data['predicted_value'] < lower_bound
    if below.any():
        logger.info(f"Raising {int(below.sum())} combined values of '{forecast.models[0]}' to {lower_bound}")
        data['predicted_value'] = data['predicted_value'].clip(lower=lower_bound)
    return QuantileForecast(data)


def run_pipeline(samples, observations, config, output_dir=None, workers=None):
    """
    Build every ensemble from sample forecasts and score models and ensembles.

    Parameters
    ----------
    samples : SampleForecast
        Draws from the individual models.
    observations : pd.DataFrame
        Columns ``day`` and ``observed_value``.
    config : dict
        Configuration as returned by ``load_config``.
    output_dir : str or Path, optional
        Write every result table as CSV into this directory.
    workers : int, optional
        Worker processes for rolling weight estimation (default: ``runtime.workers``).

    Returns
    -------
    dict
        Result tables keyed by name: ``quantiles``, ``ensembles``,
        ``inverse_weights``, ``qra_weights``, ``scores``, ``summary``,
        ``summary_by_horizon``, ``relative_skill``, ``sample_scores``, ``pit``.
    """
    observations = as_observations(observations)
    workers = config['runtime']['workers'] if workers is None else workers
    weighting = config['weighting']
    qra = config['qra']
    scoring = config['scoring']

    logger.info(f"Converting {len(samples.models)} models to quantiles")
    quantiles = sample_to_quantile(samples, config['quantiles']['levels'])

    logger.info("Building unweighted ensembles")
    exclude_models = config['ensemble'].get('exclude_models') or None
    unweighted = combine_all(quantiles, statistics=config['ensemble']['statistics'],
                             exclude_models=exclude_models)

    logger.info("Scoring individual models for performance weighting")
    model_scores = score(quantiles, observations)

    logger.info("Building inverse-error weighted ensemble")
    inverse_weights, inverse_ensemble = rolling_inverse_error_ensemble(
        quantiles,
        model_scores,
        metric=weighting['metric'],
        lag=weighting['lag'],
        window=weighting['window'],
        by_horizon=weighting['by_horizon'],
        fallback=weighting['fallback'],
        workers=workers,
    )

    logger.info("Building quantile regression averaging ensemble")
    qra_weights, qra_ensemble = rolling_qra_ensemble(
        quantiles,
        observations,
        window=qra['window'],
        constrained=qra['constrained'],
        by_horizon=qra['by_horizon'],
        min_training=qra['min_training'],
        workers=workers,
    )
    if qra_ensemble is not None and qra.get('lower_bound') is not None:
        qra_ensemble = _apply_lower_bound(qra_ensemble, qra['lower_bound'])

    ensembles = append_forecasts(unweighted, inverse_ensemble, qra_ensemble)
    all_forecasts = append_forecasts(quantiles, ensembles)

    logger.info("Scoring models and ensembles on natural and log scales")
    transformed, transformed_obs = log_transform(
        all_forecasts, observations, offset=scoring['log_offset'], append=True
    )
    scores = score(transformed, transformed_obs)

    summary = summarise(scores, by=['model', 'scale'])
    summary_by_horizon = summarise(scores, by=['model', 'horizon', 'scale'])
    relative_skill = pairwise_comparison(scores, metric='wis', by=['scale'])

    sample_scores = score(samples, observations)
    pit = pit_histogram(samples, observations, bins=scoring['pit_bins'], seed=scoring['seed'])

    results = {
        'quantiles': quantiles.data,
        'ensembles': ensembles.data,
        'inverse_weights': inverse_weights,
        'qra_weights': qra_weights,
        'scores': scores,
        'summary': summary,
        'summary_by_horizon': summary_by_horizon,
        'relative_skill': relative_skill,
        'sample_scores': sample_scores,
        'pit': pit,
    }

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        for name, table in results.items():
            table.to_csv(output_dir / f"{name}.csv", index=False)
        logger.info(f"Results saved to {output_dir}")

    return results
