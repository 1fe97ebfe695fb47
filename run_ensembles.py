#!/usr/bin/env python
"""
run_ensembles.py - Build and score forecast ensembles from sample forecasts

Converts sample forecasts to quantiles, builds the mean/median, filtered,
inverse-error weighted and QRA ensembles, and scores models and ensembles on
the natural and log scales.

Usage:
    python run_ensembles.py --samples data/forecasts.csv --observations data/observations.csv
"""
import argparse
import logging
import multiprocessing as mp
import os
import sys
import traceback
from datetime import datetime

from forecast_ensembles.data.loader import ForecastDataLoader
from forecast_ensembles.training.pipeline import run_pipeline
from forecast_ensembles.utils.config import load_config


def main():
    """Main function to build and score ensembles"""
    parser = argparse.ArgumentParser(
        description="Build and score forecast ensembles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Default configuration
  python run_ensembles.py --samples data/synthetic/forecasts.csv --observations data/synthetic/observations.csv

  # Filtered ensembles without one model, 4 worker processes
  python run_ensembles.py --samples forecasts.parquet --observations onsets.csv --exclude "More mechanistic" --workers 4
        """
    )

    parser.add_argument("--samples", "-s", type=str, required=True,
                        help="Sample forecasts (CSV or Parquet)")
    parser.add_argument("--observations", "-o", type=str, required=True,
                        help="Observations (CSV or Parquet)")
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="Configuration file (default: config/default_config.yml)")
    parser.add_argument("--output-dir", type=str, default=None,
                        help="Output directory (default: runtime.output_dir from config)")
    parser.add_argument("--exclude", type=str, nargs="+", default=None,
                        help="Models to leave out of the filtered ensembles")
    parser.add_argument("--workers", type=int, default=None,
                        help="Number of worker processes (default: runtime.workers from config)")

    args = parser.parse_args()

    config = load_config(args.config)
    if args.exclude:
        config['ensemble']['exclude_models'] = args.exclude
    if args.workers is not None:
        if args.workers < 1:
            parser.error("--workers must be at least 1")
        config['runtime']['workers'] = args.workers
    output_dir = args.output_dir or config['runtime']['output_dir']

    # Set up logging
    log_dir = config['runtime']['logs_dir']
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_file = os.path.join(log_dir, f"ensembles_{timestamp}.log")

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    logger = logging.getLogger("ensembles")
    logger.info(f"Samples: {args.samples}, observations: {args.observations}")
    logger.info(f"Output directory: {output_dir}")

    try:
        loader = ForecastDataLoader(config)
        samples = loader.load_samples(args.samples)
        observations = loader.load_observations(args.observations)

        results = run_pipeline(samples, observations, config, output_dir=output_dir)

        summary = results['summary']
        natural = summary[summary['scale'] == 'natural'].sort_values('wis')
        logger.info(f"Mean WIS on the natural scale:\n{natural[['model', 'wis']].to_string(index=False)}")
        logger.info("Ensemble run complete")
    except Exception as e:
        logger.error(f"Error during ensemble run: {e}")
        logger.error(traceback.format_exc())
        return 1

    return 0


if __name__ == "__main__":
    # Set thread limits for numeric libraries
    os.environ["OMP_NUM_THREADS"] = "1"  # OpenMP
    os.environ["OPENBLAS_NUM_THREADS"] = "1"  # OpenBLAS

    mp.set_start_method('spawn')
    sys.exit(main())
