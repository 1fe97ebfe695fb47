#!/usr/bin/env python
"""
replicate_all.py - One-command run of the full ensembling pipeline on synthetic data

This script automates the complete pipeline:
1. Generate synthetic observations and sample forecasts of three models
2. Convert samples to quantiles and build all ensembles
3. Score models and ensembles on the natural and log scales
4. Summarise scores, relative skill and PIT histograms

Usage:
    python replicate_all.py                    # Full run
    python replicate_all.py --quick-test       # Fewer draws and days
    python replicate_all.py --skip-data-generation --data-dir data/synthetic
"""

import argparse
import json
import logging
import os
import subprocess
import sys
from datetime import datetime


# Setup logging
def setup_logging(log_dir='outputs/logs'):
    """Configure logging for the replication script"""
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_file = os.path.join(log_dir, f'replication_{timestamp}.log')

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )
    return log_file


def run_command(cmd, description, logger):
    """Execute a command and log results"""
    logger.info(f"{'='*80}")
    logger.info(f"STEP: {description}")
    logger.info(f"Command: {' '.join(cmd)}")
    logger.info(f"{'='*80}")

    try:
        result = subprocess.run(
            cmd,
            check=True,
            capture_output=True,
            text=True
        )
        logger.info(f"{description} completed successfully")
        if result.stdout:
            logger.info(f"Output:\n{result.stdout}")
        return True
    except subprocess.CalledProcessError as e:
        logger.error(f"{description} failed with exit code {e.returncode}")
        if e.stdout:
            logger.error(f"stdout:\n{e.stdout}")
        if e.stderr:
            logger.error(f"stderr:\n{e.stderr}")
        return False


def main():
    parser = argparse.ArgumentParser(
        description='Full ensembling pipeline on synthetic data',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full run
  python replicate_all.py

  # Quick test (200 draws, 70 days)
  python replicate_all.py --quick-test

  # Reuse existing synthetic data
  python replicate_all.py --skip-data-generation

  # Custom configuration and parallel weight estimation
  python replicate_all.py --config config/custom_config.yml --workers 4
        """
    )

    parser.add_argument(
        '--quick-test',
        action='store_true',
        help='Fast test mode with fewer draws and days'
    )

    parser.add_argument(
        '--skip-data-generation',
        action='store_true',
        help='Skip synthetic data generation (use existing data)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=42,
        help='Random seed for synthetic data (default: 42)'
    )

    parser.add_argument(
        '--workers',
        type=int,
        default=1,
        help='Number of worker processes (default: 1)'
    )

    parser.add_argument(
        '--config',
        type=str,
        default='config/default_config.yml',
        help='Path to configuration file (default: config/default_config.yml)'
    )

    parser.add_argument(
        '--data-dir',
        type=str,
        default='data/synthetic',
        help='Directory for synthetic data (default: data/synthetic/)'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default='outputs',
        help='Output directory for results (default: outputs/)'
    )

    args = parser.parse_args()

    os.makedirs(args.output_dir, exist_ok=True)
    log_file = setup_logging(f'{args.output_dir}/logs')
    logger = logging.getLogger(__name__)

    logger.info("="*80)
    logger.info("FORECAST ENSEMBLES - REPLICATION PIPELINE")
    logger.info("="*80)
    logger.info(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info(f"Log file: {log_file}")
    logger.info(f"Output directory: {args.output_dir}")
    logger.info(f"Configuration: {args.config}")
    logger.info(f"Quick test mode: {args.quick_test}")

    n_draws = 200 if args.quick_test else 1000
    n_days = 70 if args.quick_test else 100
    step_results = {}

    # =========================================================================
    # STEP 1: Generate Synthetic Data
    # =========================================================================
    if not args.skip_data_generation:
        logger.info("PHASE 1: SYNTHETIC DATA GENERATION")
        cmd = [
            sys.executable,
            '-m', 'forecast_ensembles.data.synthetic_data',
            '--n-days', str(n_days),
            '--n-draws', str(n_draws),
            '--seed', str(args.seed),
            '--output-dir', args.data_dir
        ]
        step_results['data_generation'] = run_command(cmd, "Synthetic data generation", logger)
    else:
        logger.info("Skipping data generation (using existing data)")
        step_results['data_generation'] = 'skipped'

    # =========================================================================
    # STEP 2: Ensembles and Scoring
    # =========================================================================
    if step_results['data_generation'] is False:
        logger.error("Data generation failed, not running the ensemble pipeline")
        step_results['ensembles'] = False
    else:
        logger.info("PHASE 2: ENSEMBLES AND SCORING")
        cmd = [
            sys.executable,
            'run_ensembles.py',
            '--samples', os.path.join(args.data_dir, 'forecasts.csv'),
            '--observations', os.path.join(args.data_dir, 'observations.csv'),
            '--config', args.config,
            '--output-dir', args.output_dir,
            '--workers', str(args.workers)
        ]
        step_results['ensembles'] = run_command(cmd, "Ensembles and scoring", logger)

    # =========================================================================
    # FINAL SUMMARY
    # =========================================================================
    logger.info("REPLICATION PIPELINE SUMMARY")
    for phase, result in step_results.items():
        status = "SKIPPED" if result == 'skipped' else ("OK" if result else "FAILED")
        logger.info(f"  {phase.upper()}: {status}")

    all_steps_successful = all(result is not False for result in step_results.values())

    summary_file = f'{args.output_dir}/replication_summary.json'
    with open(summary_file, 'w') as f:
        json.dump({
            'timestamp': datetime.now().isoformat(),
            'n_draws': n_draws,
            'n_days': n_days,
            'seed': args.seed,
            'quick_test': args.quick_test,
            'results': step_results,
            'overall_success': all_steps_successful
        }, f, indent=2)
    logger.info(f"Summary saved to: {summary_file}")

    if all_steps_successful:
        logger.info("REPLICATION PIPELINE COMPLETED SUCCESSFULLY")
        logger.info(f"All outputs are available in: {args.output_dir}/")
        logger.info("  - summary.csv, summary_by_horizon.csv, relative_skill.csv")
        logger.info("  - scores.csv, sample_scores.csv, pit.csv")
        logger.info("  - quantiles.csv, ensembles.csv, inverse_weights.csv, qra_weights.csv")
        return 0

    logger.error("REPLICATION PIPELINE COMPLETED WITH ERRORS")
    logger.error(f"Check the log file for details: {log_file}")
    return 1


if __name__ == '__main__':
    sys.exit(main())
