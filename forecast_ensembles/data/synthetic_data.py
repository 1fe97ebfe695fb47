#!/usr/bin/env python
"""
synthetic_data.py - Generate synthetic outbreak observations and model forecasts

This script generates a synthetic daily incidence curve and sample forecasts
from three simple models, for testing and demonstrating the ensembling and
scoring pipeline.

IMPORTANT: This is synthetic data for code testing only. The models are
heuristics, not epidemiological models.

The generated data includes:
- Observations: Poisson counts around a rise-and-decline incidence curve
- "Random walk": last observation carried forward with log-normal noise
- "More mechanistic": exponential growth extrapolated from the recent growth rate
- "More statistical": recent average with mean reversion and overdispersion

Every model only uses observations up to its origin day.

Usage:
    python -m forecast_ensembles.data.synthetic_data --output-dir data/synthetic
    python -m forecast_ensembles.data.synthetic_data --n-days 120 --n-draws 500 --seed 1
"""

import argparse
from pathlib import Path

import numpy as np
import pandas as pd

MODELS = ('Random walk', 'More mechanistic', 'More statistical')


def generate_observations(n_days=100, peak_day=60, peak_incidence=200.0, seed=42):
    """
    Generate daily case counts around a smooth epidemic curve.

    Parameters
    ----------
    n_days : int
        Number of observed days (days 1..n_days)
    peak_day : int
        Day of maximum expected incidence
    peak_incidence : float
        Expected incidence at the peak
    seed : int
        Random seed for reproducibility

    Returns
    -------
    pd.DataFrame
        Columns ``day`` and ``observed_value``
    """
    rng = np.random.default_rng(seed)
    days = np.arange(1, n_days + 1)

    # logistic rise then slower decline
    growth = 1 / (1 + np.exp(-(days - peak_day + 15) / 5))
    decline = np.exp(-np.maximum(days - peak_day, 0) / 25)
    expected = 1 + peak_incidence * growth * decline

    return pd.DataFrame({'day': days, 'observed_value': rng.poisson(expected)})


def _random_walk(history, horizons, n_draws, rng):
    level = history[-1] + 1
    sigma = 0.15 * np.sqrt(horizons)[:, None]
    return level * np.exp(rng.normal(0, 1, (len(horizons), n_draws)) * sigma) - 1


def _mechanistic(history, horizons, n_draws, rng):
    recent = np.log(history[-7:] + 1)
    rate = np.polyfit(np.arange(len(recent)), recent, 1)[0]
    rates = rng.normal(rate, 0.02, n_draws)
    return np.exp(recent[-1] + horizons[:, None] * rates[None, :]) - 1


def _statistical(history, horizons, n_draws, rng):
    recent_mean = history[-7:].mean()
    longer_mean = history[-21:].mean()
    reversion = np.exp(-horizons / 10)[:, None]
    mean = reversion * recent_mean + (1 - reversion) * longer_mean
    # gamma-Poisson mixture for overdispersion
    shape = 10.0
    return rng.gamma(shape, np.maximum(mean, 1e-6) / shape, (len(horizons), n_draws))


MODEL_FUNCTIONS = {
    'Random walk': _random_walk,
    'More mechanistic': _mechanistic,
    'More statistical': _statistical,
}


def generate_forecasts(observations, origin_days, horizons=range(1, 15), n_draws=1000,
                       models=MODELS, seed=42):
    """
    Generate integer sample forecasts from the synthetic models.

    Parameters
    ----------
    observations : pd.DataFrame
        Columns ``day`` and ``observed_value``
    origin_days : iterable of int
        Days forecasts are made on; each needs at least 21 days of history
    horizons : iterable of int
        Days ahead to forecast
    n_draws : int
        Number of draws per forecast unit
    models : iterable of str
        Subset of ``MODELS`` to generate
    seed : int
        Random seed for reproducibility

    Returns
    -------
    pd.DataFrame
        Columns ``model``, ``origin_day``, ``horizon``, ``target_day``,
        ``draw_id`` and ``predicted_value``
    """
    rng = np.random.default_rng(seed)
    horizons = np.asarray(list(horizons), dtype=int)
    series = observations.set_index('day')['observed_value'].sort_index()

    frames = []
    for origin_day in origin_days:
        history = series.loc[:origin_day].to_numpy(dtype=float)
        if len(history) < 21:
            raise ValueError(f"Origin day {origin_day} has only {len(history)} days of history, need 21")

        for model in models:
            if model not in MODEL_FUNCTIONS:
                raise ValueError(f"Unknown model '{model}', expected one of {list(MODEL_FUNCTIONS)}")
            mean = np.maximum(MODEL_FUNCTIONS[model](history, horizons, n_draws, rng), 0)
            draws = rng.poisson(mean)

            frames.append(pd.DataFrame({
                'model': model,
                'origin_day': int(origin_day),
                'horizon': np.repeat(horizons, n_draws),
                'target_day': int(origin_day) + np.repeat(horizons, n_draws),
                'draw_id': np.tile(np.arange(1, n_draws + 1), len(horizons)),
                'predicted_value': draws.ravel(),
            }))

    return pd.concat(frames, ignore_index=True)


def generate_synthetic_data(n_days=100, origin_days=None, horizons=range(1, 15), n_draws=1000,
                            seed=42):
    """
    Generate observations and sample forecasts of all three models.

    ``origin_days`` defaults to weekly origins from day 22 up to ``n_days``.

    Returns
    -------
    tuple
        (samples DataFrame, observations DataFrame)
    """
    observations = generate_observations(n_days=n_days, seed=seed)
    if origin_days is None:
        origin_days = range(22, n_days + 1, 7)
    samples = generate_forecasts(observations, origin_days, horizons=horizons, n_draws=n_draws,
                                 seed=seed + 1)
    return samples, observations


def save_synthetic_data(samples, observations, output_dir):
    """
    Save synthetic forecasts and observations as CSV files.

    Returns
    -------
    tuple
        (samples path, observations path)
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    samples_file = output_dir / 'forecasts.csv'
    observations_file = output_dir / 'observations.csv'
    samples.to_csv(samples_file, index=False)
    observations.to_csv(observations_file, index=False)

    print(f"Synthetic forecasts saved to: {samples_file}")
    print(f"  Models: {sorted(samples['model'].unique())}")
    print(f"  Origin days: {sorted(samples['origin_day'].unique())}")
    print(f"Synthetic observations saved to: {observations_file}")
    print(f"  Days: {observations['day'].min()} to {observations['day'].max()}")
    return samples_file, observations_file


def main():
    """Main function to generate synthetic data from command line."""
    parser = argparse.ArgumentParser(
        description="Generate synthetic outbreak observations and sample forecasts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default: 100 days, weekly origins, 1000 draws
  python -m forecast_ensembles.data.synthetic_data --output-dir data/synthetic

  # Smaller data set for quick tests
  python -m forecast_ensembles.data.synthetic_data --n-draws 200 --output-dir data/small
        """
    )

    parser.add_argument('--n-days', type=int, default=100,
                        help='Number of observed days (default: 100)')
    parser.add_argument('--n-draws', type=int, default=1000,
                        help='Draws per forecast unit (default: 1000)')
    parser.add_argument('--max-horizon', type=int, default=14,
                        help='Largest forecast horizon in days (default: 14)')
    parser.add_argument('--seed', type=int, default=42,
                        help='Random seed for reproducibility (default: 42)')
    parser.add_argument('--output-dir', type=str, default='data/synthetic',
                        help='Output directory (default: data/synthetic)')

    args = parser.parse_args()

    if args.n_days < 22:
        parser.error("--n-days must be at least 22 to leave 21 days of history")

    samples, observations = generate_synthetic_data(
        n_days=args.n_days,
        horizons=range(1, args.max_horizon + 1),
        n_draws=args.n_draws,
        seed=args.seed,
    )
    save_synthetic_data(samples, observations, args.output_dir)
    return 0


if __name__ == "__main__":
    exit(main())
