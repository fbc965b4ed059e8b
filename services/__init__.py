"""Batch services of the forum stats pipeline."""
