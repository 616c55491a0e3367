import logging
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from typing import Tuple, Union, Mapping

from src.errors import NumericDivergenceError

logger = logging.getLogger(__name__)

# Predicted survival at or above 1 - SURVIVAL_EPS makes the odds term undefined
SURVIVAL_EPS = 1e-12

NET_BENEFIT_COLUMNS = [
    'threshold', 'model_survival', 'nb_model', 'nb_accept_none', 'nb_accept_all', 'valid', 'status',
]


def survival_odds(s_model: float) -> float:
    """
    Odds S / (1 - S) of the model-predicted survival.

    Raises:
        NumericDivergenceError: If ``s_model`` is missing or (numerically) 1
    """
    if s_model is None or not np.isfinite(s_model):
        raise NumericDivergenceError(f"Model survival is undefined ({s_model})")
    if s_model >= 1.0 - SURVIVAL_EPS:
        raise NumericDivergenceError(f"Model survival {s_model} leaves the odds term undefined")
    return s_model / (1.0 - s_model)


def net_benefit_at_threshold(accept_survive: float,
                             accept_fail: float,
                             total: float,
                             s_model: float,
                             s_all: float) -> Tuple[float, float]:
    """
    Net benefit of accepting by model and of accepting every kidney.

    Args:
        accept_survive: Expected accepted kidneys surviving to the horizon
        accept_fail: Expected accepted kidneys failing before the horizon
        total: Cohort size
        s_model: Model-predicted survival at this threshold
        s_all: Kaplan-Meier survival of the whole cohort

    Returns:
        Tuple of (net benefit accept-by-model, net benefit accept-all)

    Raises:
        NumericDivergenceError: If the odds term is undefined
    """
    odds = survival_odds(s_model)
    nb_model = (accept_survive - accept_fail * odds) / total
    nb_all = s_all - (1.0 - s_all) * odds
    return nb_model, nb_all


def net_benefit(sweep_df: pd.DataFrame,
                model_survival: Union[pd.Series, Mapping[float, float]],
                survival_all: float) -> pd.DataFrame:
    """
    Net-benefit curves over the swept thresholds.

    Args:
        sweep_df: Threshold sweep output
        model_survival: Model-predicted survival keyed by KDPI threshold
        survival_all: Kaplan-Meier survival of the whole cohort at the horizon

    Returns:
        DataFrame with ``NET_BENEFIT_COLUMNS``. ``nb_accept_none`` is always 0.
        Rows whose sweep row is invalid or whose odds term is undefined have NaN
        ``nb_model`` / ``nb_accept_all`` and ``valid=False``.
    """
    if not isinstance(model_survival, pd.Series):
        model_survival = pd.Series(dict(model_survival), dtype=float)
    model_survival = model_survival.copy()
    model_survival.index = model_survival.index.astype(float)
    # One value per percentile; duplicated table percentiles keep the first row
    model_survival = model_survival.groupby(level=0, sort=False).first()

    thresholds = sweep_df['threshold'].to_numpy(dtype=float)
    s_model = model_survival.reindex(thresholds).to_numpy(dtype=float)

    rows = []
    for i, row in enumerate(sweep_df.itertuples(index=False)):
        nb_model, nb_all = np.nan, np.nan
        valid, status = bool(row.valid), row.status
        if valid:
            try:
                nb_model, nb_all = net_benefit_at_threshold(
                    row.accept_survive, row.accept_fail, row.total_kidneys, s_model[i], survival_all
                )
            except NumericDivergenceError as e:
                valid, status = False, f"NumericDivergenceError: {e}"
                logger.warning(f"Threshold {row.threshold}: {e}")
        rows.append({
            'threshold': row.threshold,
            'model_survival': s_model[i],
            'nb_model': nb_model,
            'nb_accept_none': 0.0,
            'nb_accept_all': nb_all,
            'valid': valid,
            'status': status,
        })

    nb_df = pd.DataFrame(rows, columns=NET_BENEFIT_COLUMNS)
    logger.info(f"Net benefit computed for {int(nb_df['valid'].sum())} of {len(nb_df)} thresholds")
    return nb_df


def plot_decision_curve(thresholds, nb_model, nb_all, nb_none, label, out_path):
    """
    Create and save a decision curve plot.

    Args:
        thresholds: Array of KDPI thresholds
        nb_model: Array of net benefit values for accepting by KDPI
        nb_all: Array of net benefit values for accepting every kidney
        nb_none: Array of net benefit values for accepting none
        label: Label for the model curve
        out_path: Path to save the plot

    Returns:
        Path to the saved plot
    """
    plt.figure(figsize=(10, 6))
    plt.plot(thresholds, nb_model, '-', linewidth=2, label=label)
    plt.plot(thresholds, nb_all, '--', linewidth=1.5, label="Accept All")
    plt.plot(thresholds, nb_none, '-', linewidth=1.5, label="Accept None")
    plt.xlabel("KDPI Threshold (%)")
    plt.ylabel("Net Benefit")
    plt.title("Decision Curve Analysis")
    plt.legend(loc="best")
    plt.grid(True, linestyle='--', alpha=0.7)
    plt.tight_layout()
    plt.savefig(out_path, dpi=300, bbox_inches='tight')
    plt.close()
    return out_path


def plot_risk_survival_curve(survival_df, horizon, out_path):
    """
    Plot model-predicted survival at the horizon against KDPI.

    Args:
        survival_df: Output of ``model_survival_table`` (kdpi, predicted_survival)
        horizon: Horizon in days, used in the axis label
        out_path: Path to save the plot

    Returns:
        Path to the saved plot
    """
    plt.figure(figsize=(10, 6))
    plt.plot(survival_df['kdpi'], survival_df['predicted_survival'], '-', linewidth=2)
    plt.xlabel("KDPI (%)")
    plt.ylabel(f"Predicted graft survival at {horizon:g} days")
    plt.title("Model-predicted survival by KDPI")
    plt.grid(True, linestyle='--', alpha=0.7)
    plt.tight_layout()
    plt.savefig(out_path, dpi=300, bbox_inches='tight')
    plt.close()
    return out_path
