"""
KDPI Decision-Curve Pipeline

This module defines the ZenML pipeline that evaluates the KDPI acceptance rule
with decision-curve analysis.
"""

from zenml.pipelines import pipeline

from steps.ingest_data import ingest_data
from steps.build_cohort import build_cohort
from steps.fit_model import fit_model
from steps.threshold_sweep import threshold_sweep
from steps.dca_eval import dca_eval


@pipeline(enable_cache=False)
def kdpi_dca_pipeline():
    """
    Pipeline for the KDPI decision-curve analysis.

    This pipeline connects the following steps:
    1. ingest_data: Loads the registry export and the KDRI-to-KDPI percentile table
    2. build_cohort: Filters transplants, computes KDRI, derives outcomes and maps KDPI
    3. fit_model: Fits the Cox model of graft failure on KDRI_X over the whole cohort
    4. threshold_sweep: Builds the accept / reject confusion matrix at every threshold
    5. dca_eval: Computes net benefit, saves the result tables and the plots

    Returns:
        Summary dictionary from the evaluation step
    """
    raw_df, percentile_table = ingest_data()

    cohort_df, exclusions_df = build_cohort(raw_df=raw_df, percentile_table=percentile_table)

    model_params = fit_model(cohort_df=cohort_df)

    threshold_results = threshold_sweep(cohort_df=cohort_df)

    summary = dca_eval(
        cohort_df=cohort_df,
        threshold_results=threshold_results,
        model_params=model_params,
        percentile_table=percentile_table,
        exclusions_df=exclusions_df,
    )

    return summary
