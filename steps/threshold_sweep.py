"""
Threshold Sweep Step for the KDPI decision-curve analysis

This module contains the ZenML step that builds the accept / reject confusion
matrix for every KDPI threshold.
"""

import pandas as pd
from zenml.steps import step

from src.config import load_analysis_config, threshold_grid
from src.threshold_sweep import sweep


@step
def threshold_sweep(cohort_df: pd.DataFrame) -> pd.DataFrame:
    """
    Sweep the configured KDPI thresholds.

    Args:
        cohort_df: Analysis cohort with kdpi, time and event

    Returns:
        DataFrame with one ThresholdResult row per threshold
    """
    config = load_analysis_config()
    analysis = config['analysis']
    thresholds = threshold_grid(config)

    print(f"\n=== Sweeping {len(thresholds)} KDPI thresholds at {analysis['horizon_days']} days ===\n")
    results_df = sweep(
        cohort_df,
        thresholds,
        float(analysis['horizon_days']),
        n_jobs=int(analysis.get('n_jobs', 1)),
        tolerance=float(analysis.get('checksum_tolerance', 1e-6)),
    )

    n_invalid = int((~results_df['valid']).sum())
    if n_invalid:
        print(f"Warning: {n_invalid} thresholds failed the checksum")
    return results_df
