"""Forecast and observation tables, file I/O and synthetic data."""
