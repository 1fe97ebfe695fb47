import numpy as np
import pandas as pd
import pytest


def build_quantile_table(models_values, levels, origin_days=(1,), horizons=(1,)):
    """
    Long quantile table; ``models_values`` maps model name to a function
    ``(origin_day, horizon) -> predicted values at levels``.
    """
    rows = []
    for model, values_for in models_values.items():
        for origin_day in origin_days:
            for horizon in horizons:
                values = values_for(origin_day, horizon)
                for level, value in zip(levels, values):
                    rows.append({
                        'model': model,
                        'origin_day': origin_day,
                        'horizon': horizon,
                        'target_day': origin_day + horizon,
                        'quantile_level': level,
                        'predicted_value': float(value),
                    })
    return pd.DataFrame(rows)


def build_sample_table(models_draws, origin_day=71, horizon=14):
    """Long sample table with one forecast unit per model."""
    frames = []
    for model, draws in models_draws.items():
        draws = np.asarray(draws, dtype=float)
        frames.append(pd.DataFrame({
            'model': model,
            'origin_day': origin_day,
            'horizon': horizon,
            'target_day': origin_day + horizon,
            'draw_id': np.arange(1, draws.size + 1),
            'predicted_value': draws,
        }))
    return pd.concat(frames, ignore_index=True)


@pytest.fixture
def levels():
    return [0.05, 0.25, 0.5, 0.75, 0.95]


@pytest.fixture
def three_model_samples():
    """Three models forecasting day 85 from day 71 with 1000 draws each."""
    rng = np.random.default_rng(85)
    return build_sample_table({
        'Random walk': rng.poisson(120, 1000),
        'More mechanistic': rng.poisson(150, 1000),
        'More statistical': rng.negative_binomial(10, 10 / (10 + 100), 1000),
    })


@pytest.fixture
def make_quantiles():
    return build_quantile_table


@pytest.fixture
def make_samples():
    return build_sample_table
