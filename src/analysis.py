"""
End-to-end KDPI decision-curve analysis without the ZenML orchestration.

raw registry records -> analysis cohort -> Cox model -> threshold sweep -> net benefit
"""

import os
import logging
import pandas as pd
from pathlib import Path
from typing import Dict, Any, Optional, Union

from src.cohort_builder import build_analysis_cohort
from src.config import threshold_grid
from src.dca import net_benefit, plot_decision_curve, plot_risk_survival_curve
from src.KDRI import KDRICalculator
from src.survival_model import FittedModel, fit_survival_model, km_survival_at, model_survival_table
from src.threshold_sweep import sweep

logger = logging.getLogger(__name__)


def model_survival_by_threshold(survival_df: pd.DataFrame) -> pd.Series:
    """Model-predicted survival keyed by KDPI, as consumed by ``net_benefit``."""
    return pd.Series(survival_df['predicted_survival'].to_numpy(),
                     index=survival_df['kdpi'].to_numpy(dtype=float),
                     name='model_survival')


def compute_decision_curves(cohort_df: pd.DataFrame,
                            model: FittedModel,
                            table: pd.DataFrame,
                            config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Threshold sweep, model survival per percentile and net-benefit curves.

    Returns:
        Dictionary with ``threshold_results``, ``model_survival``,
        ``net_benefit`` and ``survival_all``
    """
    analysis = config['analysis']
    horizon = float(analysis['horizon_days'])

    results_df = sweep(cohort_df, threshold_grid(config), horizon,
                       n_jobs=int(analysis.get('n_jobs', 1)),
                       tolerance=float(analysis.get('checksum_tolerance', 1e-6)))

    survival_df = model_survival_table(model, table, config['calibration']['scaling_factor'], horizon)
    survival_all = km_survival_at(cohort_df['time'], cohort_df['event'], horizon)
    nb_df = net_benefit(results_df, model_survival_by_threshold(survival_df), survival_all)

    return {
        'threshold_results': results_df,
        'model_survival': survival_df,
        'net_benefit': nb_df,
        'survival_all': survival_all,
    }


def run_kdpi_dca(raw_df: pd.DataFrame,
                 table: pd.DataFrame,
                 config: Dict[str, Any],
                 mapping: Optional[Dict[str, str]] = None,
                 output_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Run the full analysis on in-memory registry records.

    Args:
        raw_df: Registry records (one row per transplant)
        table: Parsed percentile table
        config: Analysis configuration
        mapping: Registry column mapping
        output_path: Directory for CSV tables and plots; nothing is written when None

    Returns:
        Dictionary with ``cohort``, ``exclusions``, ``model``, ``threshold_results``,
        ``model_survival``, ``net_benefit`` and ``survival_all``
    """
    calculator = KDRICalculator(config, mapping)
    cohort_df, report = build_analysis_cohort(raw_df, calculator, table, config, mapping)
    model = fit_survival_model(cohort_df)

    outputs = compute_decision_curves(cohort_df, model, table, config)
    outputs.update({
        'cohort': cohort_df,
        'exclusions': report.to_frame(),
        'model': model,
    })

    if output_path is not None:
        outputs['files'] = save_outputs(outputs, output_path, config['analysis']['horizon_days'])
    return outputs


def save_outputs(outputs: Dict[str, Any], output_path: Union[str, Path], horizon: float) -> Dict[str, str]:
    """
    Write the result tables as CSV and the decision / risk-survival plots as PNG.

    Returns:
        Dictionary of written file paths
    """
    output_path = Path(output_path)
    os.makedirs(output_path, exist_ok=True)

    files = {}
    for name in ('threshold_results', 'net_benefit', 'model_survival', 'exclusions'):
        if name in outputs:
            path = output_path / f"{name}.csv"
            outputs[name].to_csv(path, index=False)
            files[name] = str(path)

    nb_df = outputs['net_benefit']
    files['decision_curve'] = str(plot_decision_curve(
        nb_df['threshold'], nb_df['nb_model'], nb_df['nb_accept_all'], nb_df['nb_accept_none'],
        label="Accept by KDPI", out_path=output_path / "decision_curve.png",
    ))
    files['risk_survival_curve'] = str(plot_risk_survival_curve(
        outputs['model_survival'], horizon, output_path / "risk_survival_curve.png",
    ))

    logger.info(f"Saved KDPI decision-curve outputs to {output_path}")
    return files
