"""
Survival Model Step for the KDPI decision-curve analysis

This module contains the ZenML step that fits the Cox model of graft failure on
the KDRI linear score.
"""

import pandas as pd
from zenml.steps import step
from typing import Dict, Any

from src.survival_model import fit_survival_model


@step
def fit_model(cohort_df: pd.DataFrame) -> Dict[str, Any]:
    """
    Fit the Cox model once on the full analysis cohort.

    Args:
        cohort_df: Analysis cohort with time, event and kdri_x

    Returns:
        Fitted model parameters (``FittedModel.to_dict``)
    """
    print("\n=== Fitting Cox proportional-hazards model ===\n")
    model = fit_survival_model(cohort_df)
    print(f"Coefficient: {model.coefficient:.4f} (HR per unit KDRI_X: {model.hazard_ratio:.4f})")
    print(f"Observations: {model.n_observations}, events: {model.n_events}")
    return model.to_dict()
