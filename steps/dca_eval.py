"""Decision-curve evaluation step for the KDPI analysis
Combines the threshold sweep with model-predicted survival into net-benefit curves"""

import os
import logging
import pandas as pd
from zenml.steps import step
from typing import Dict, Any, Optional

from src.analysis import model_survival_by_threshold, save_outputs
from src.config import load_analysis_config
from src.dca import net_benefit
from src.survival_model import FittedModel, km_survival_at, model_survival_table

# Set up logging
logger = logging.getLogger(__name__)


@step
def dca_eval(cohort_df: pd.DataFrame,
             threshold_results: pd.DataFrame,
             model_params: Dict[str, Any],
             percentile_table: pd.DataFrame,
             exclusions_df: pd.DataFrame,
             output_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Compute the net-benefit curves and save every result table and plot.

    Args:
        cohort_df: Analysis cohort
        threshold_results: Threshold sweep output
        model_params: Fitted model parameters from the model step
        percentile_table: Parsed KDRI-to-KDPI table
        exclusions_df: Exclusion counts from the cohort step
        output_path: Output directory (default: KDPI_OUTPUT_PATH or the configured path)

    Returns:
        Dictionary summarising the evaluation and the written files
    """
    config = load_analysis_config()
    analysis = config['analysis']
    horizon = float(analysis['horizon_days'])

    if output_path is None:
        output_path = os.getenv('KDPI_OUTPUT_PATH', analysis['output_path'])

    model = FittedModel.from_dict(model_params)
    survival_df = model_survival_table(model, percentile_table, config['calibration']['scaling_factor'], horizon)
    survival_all = km_survival_at(cohort_df['time'], cohort_df['event'], horizon)
    logger.info(f"Overall Kaplan-Meier survival at {horizon:g} days: {survival_all:.4f}")

    nb_df = net_benefit(threshold_results, model_survival_by_threshold(survival_df), survival_all)

    outputs = {
        'threshold_results': threshold_results,
        'net_benefit': nb_df,
        'model_survival': survival_df,
        'exclusions': exclusions_df,
    }
    files = save_outputs(outputs, output_path, horizon)

    summary = {
        'n_kidneys': int(len(cohort_df)),
        'horizon_days': horizon,
        'survival_all': survival_all,
        'coefficient': model.coefficient,
        'n_thresholds': int(len(nb_df)),
        'n_valid_thresholds': int(nb_df['valid'].sum()),
        'output_path': str(output_path),
        'files': files,
    }
    print(f"\nSaved decision-curve results to {output_path}")
    return summary
