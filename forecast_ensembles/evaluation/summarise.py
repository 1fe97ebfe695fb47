import itertools
import logging

import numpy as np
import pandas as pd

from ..data.forecasts import BASE_UNIT

logger = logging.getLogger(__name__)

ID_COLUMNS = BASE_UNIT + ('scale',)


def get_metrics(scores):
    """Numeric score columns that are not forecast identifiers."""
    return [
        col for col in scores.columns
        if col not in ID_COLUMNS and pd.api.types.is_numeric_dtype(scores[col])
    ]


def summarise(scores, by=('model',), statistics=('mean',), metrics=None):
    """
    Aggregate scores over all rows sharing the values of ``by``.

    Parameters
    ----------
    scores : pd.DataFrame
        Output of ``score``.
    by : sequence of str
        Columns to keep; all others are aggregated away.
    statistics : sequence of str
        Pandas aggregation names. With a single statistic the metric columns
        keep their names, otherwise they become ``<metric>_<statistic>``.
    metrics : sequence of str, optional
        Metric columns to aggregate (default: all numeric non-identifier columns).

    Returns
    -------
    pd.DataFrame
    """
    by = list(by)
    unknown = [col for col in by if col not in scores.columns]
    if unknown:
        raise ValueError(f"Cannot summarise by unknown columns: {unknown}")

    if metrics is None:
        metrics = [col for col in get_metrics(scores) if col not in by]
    metrics = list(metrics)
    statistics = list(statistics)

    if not by:
        summary = scores[metrics].agg(statistics)
        if len(statistics) == 1:
            return summary.reset_index(drop=True)
        flat = {f"{m}_{s}": summary.loc[s, m] for m in metrics for s in statistics}
        return pd.DataFrame([flat])

    summary = scores.groupby(by, sort=True)[metrics].agg(statistics)
    if len(statistics) == 1:
        summary.columns = [metric for metric, _ in summary.columns]
    else:
        summary.columns = [f"{metric}_{stat}" for metric, stat in summary.columns]
    return summary.reset_index()


def pairwise_comparison(scores, metric='wis', by=(), baseline=None):
    """
    Relative skill of each model from pairwise mean score ratios.

    For every pair of models the ratio of mean ``metric`` over the forecast
    units both models have scored is computed. A model's relative skill is
    the geometric mean of its ratios against all other models; values below
    one mean better than average. With ``baseline`` the skill is additionally
    divided by the baseline's skill.

    Returns
    -------
    pd.DataFrame
        ``by`` columns, ``model``, ``relative_skill`` and, with a baseline,
        ``scaled_relative_skill``.
    """
    by = list(by)
    if metric not in scores.columns:
        raise ValueError(f"Metric '{metric}' not found in scores")

    target = [col for col in ID_COLUMNS if col in scores.columns and col != 'model' and col not in by]
    groups = scores.groupby(by, sort=True) if by else [((), scores)]

    results = []
    for key, group in groups:
        labels = dict(zip(by, key if isinstance(key, tuple) else (key,)))
        table = group.pivot_table(index=target, columns='model', values=metric)
        models = list(table.columns)
        if len(models) < 2:
            logger.warning(f"Need at least two models for pairwise comparison, got {models} for {labels}")
            continue

        ratios = pd.DataFrame(1.0, index=models, columns=models)
        for model_a, model_b in itertools.permutations(models, 2):
            overlap = table[[model_a, model_b]].dropna()
            if overlap.empty or overlap[model_b].mean() == 0:
                ratios.loc[model_a, model_b] = np.nan
                continue
            ratios.loc[model_a, model_b] = overlap[model_a].mean() / overlap[model_b].mean()

        skill = np.exp(np.log(ratios).mean(axis=1, skipna=True))
        frame = pd.DataFrame({'model': models, 'relative_skill': skill.to_numpy()})
        if baseline is not None:
            if baseline not in models:
                raise ValueError(f"Baseline model '{baseline}' not found for {labels}")
            frame['scaled_relative_skill'] = frame['relative_skill'] / skill[baseline]
        for col in reversed(by):
            frame.insert(0, col, labels[col])
        results.append(frame)

    if not results:
        columns = by + ['model', 'relative_skill'] + (['scaled_relative_skill'] if baseline else [])
        return pd.DataFrame(columns=columns)
    return pd.concat(results, ignore_index=True)
