"""
Steps package for the KDPI decision-curve analysis

This package contains ZenML steps for ingestion, cohort formation, model fitting,
threshold sweep and decision-curve evaluation.
"""

# Import steps for easier access
from steps.ingest_data import ingest_data
from steps.build_cohort import build_cohort
from steps.fit_model import fit_model
from steps.threshold_sweep import threshold_sweep
from steps.dca_eval import dca_eval

__all__ = [
    'ingest_data',
    'build_cohort',
    'fit_model',
    'threshold_sweep',
    'dca_eval'
]
