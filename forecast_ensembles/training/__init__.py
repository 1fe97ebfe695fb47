"""
Rolling weight estimation and end-to-end ensemble runs.

Modules
-------
rolling_weights.py
    Inverse-error and QRA ensembles refitted on every origin day, optionally
    in a multiprocessing pool.

pipeline.py
    Quantile conversion, all ensembles, scoring on natural and log scales,
    summaries, pairwise comparison and PIT histograms in one call.

Workflow
--------
>>> from forecast_ensembles.utils.config import load_config
>>> from forecast_ensembles.training.pipeline import run_pipeline
>>> results = run_pipeline(samples, observations, load_config(), output_dir='results/ensembles')
"""
