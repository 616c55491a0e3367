"""
Cohort Step for the KDPI decision-curve analysis

This module contains the ZenML step that filters the registry records and joins
KDRI, outcomes and KDPI into the analysis cohort.
"""

import pandas as pd
from zenml.steps import step
from typing import Tuple

from src.cohort_builder import build_analysis_cohort
from src.config import load_analysis_config, load_registry_mapping
from src.KDRI import KDRICalculator


@step
def build_cohort(raw_df: pd.DataFrame, percentile_table: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Build the analysis cohort.

    Args:
        raw_df: Raw registry records
        percentile_table: Parsed KDRI-to-KDPI table

    Returns:
        Tuple containing:
        - cohort_df: eligible kidneys with kdri_x, kdri, kdri_normalized, time, event, kdpi
        - exclusions_df: records removed at each stage
    """
    print("\n=== Building analysis cohort ===\n")
    config = load_analysis_config()
    mapping = load_registry_mapping()

    calculator = KDRICalculator(config, mapping)
    cohort_df, report = build_analysis_cohort(raw_df, calculator, percentile_table, config, mapping)

    exclusions_df = report.to_frame()
    for row in exclusions_df.itertuples(index=False):
        print(f"{row.stage}: {row.n_records}")

    return cohort_df, exclusions_df
