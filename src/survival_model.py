"""
Survival model for the KDPI decision-curve analysis

Fits a single-covariate Cox proportional-hazards model of graft failure on the
KDRI linear score and predicts survival at a fixed horizon:

    S(t | x) = exp(-H0(t) * exp(coefficient * x))

where H0 is the Breslow baseline cumulative hazard at covariate value zero.
The numerics are delegated to lifelines (``CoxPHFitter``,
``KaplanMeierFitter``).
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, Any, Union, Optional
from lifelines import CoxPHFitter, KaplanMeierFitter

from src.errors import DegeneratePartitionError, EmptyCohortError

logger = logging.getLogger(__name__)

ArrayLike = Union[float, np.ndarray, pd.Series, list]


class FittedModel:
    """
    Fitted Cox model: a coefficient on the linear score and a baseline
    cumulative hazard step function.

    The instance is read-only after construction; use ``to_dict`` /
    ``from_dict`` to pass it between pipeline steps.
    """

    def __init__(self,
                 coefficient: float,
                 baseline_times: ArrayLike,
                 baseline_hazard: ArrayLike,
                 n_observations: Optional[int] = None,
                 n_events: Optional[int] = None):
        times = np.asarray(baseline_times, dtype=float)
        hazard = np.asarray(baseline_hazard, dtype=float)

        if times.shape != hazard.shape or times.ndim != 1:
            raise ValueError("baseline_times and baseline_hazard must be 1-D arrays of equal length")
        order = np.argsort(times, kind='stable')
        times, hazard = times[order], hazard[order]
        if np.any(np.diff(hazard) < -1e-12):
            raise ValueError("Baseline cumulative hazard must be non-decreasing")

        self._coefficient = float(coefficient)
        self._times = times
        self._hazard = hazard
        self._times.setflags(write=False)
        self._hazard.setflags(write=False)
        self.n_observations = n_observations
        self.n_events = n_events

    @property
    def coefficient(self) -> float:
        return self._coefficient

    @property
    def hazard_ratio(self) -> float:
        """Hazard ratio per unit of linear score."""
        return float(np.exp(self._coefficient))

    @property
    def baseline_cumulative_hazard(self) -> pd.Series:
        return pd.Series(self._hazard, index=pd.Index(self._times, name='time'),
                         name='baseline_cumulative_hazard')

    def cumulative_hazard_at(self, t: float) -> float:
        """Baseline cumulative hazard at the largest step time <= ``t`` (0 before the first)."""
        idx = np.searchsorted(self._times, t, side='right') - 1
        if idx < 0:
            return 0.0
        return float(self._hazard[idx])

    def predict_survival(self, linear_score: ArrayLike, horizon: float) -> Union[float, np.ndarray]:
        """
        Predicted survival probability at ``horizon`` for one or more linear scores.

        NaN scores give NaN survival.
        """
        h0 = self.cumulative_hazard_at(horizon)
        scores = np.asarray(linear_score, dtype=float)
        with np.errstate(over='ignore'):
            surv = np.exp(-h0 * np.exp(self._coefficient * scores))
        if surv.ndim == 0:
            return float(surv)
        return surv

    def to_dict(self) -> Dict[str, Any]:
        return {
            'coefficient': self._coefficient,
            'baseline_times': self._times.tolist(),
            'baseline_hazard': self._hazard.tolist(),
            'n_observations': self.n_observations,
            'n_events': self.n_events,
        }

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "FittedModel":
        return cls(
            coefficient=params['coefficient'],
            baseline_times=params['baseline_times'],
            baseline_hazard=params['baseline_hazard'],
            n_observations=params.get('n_observations'),
            n_events=params.get('n_events'),
        )

    def __repr__(self) -> str:
        return (f"FittedModel(coefficient={self._coefficient:.4f}, "
                f"hazard_ratio={self.hazard_ratio:.4f}, steps={len(self._times)})")


def fit_survival_model(df: pd.DataFrame,
                       duration_col: str = 'time',
                       event_col: str = 'event',
                       covariate_col: str = 'kdri_x',
                       penalizer: float = 0.0) -> FittedModel:
    """
    Fit the single-covariate Cox model on (time, event, linear score).

    Args:
        df: Cohort with duration, event and covariate columns
        duration_col: Follow-up time column (days)
        event_col: Event indicator column (1=event, 0=censored)
        covariate_col: Linear score column
        penalizer: Ridge penalty passed to lifelines (0 = maximum partial likelihood)

    Returns:
        FittedModel with the baseline hazard re-expressed at covariate value zero

    Raises:
        EmptyCohortError: If no complete rows or no events are available
    """
    data = df[[duration_col, event_col, covariate_col]].dropna()
    if data.empty:
        raise EmptyCohortError("No complete (time, event, score) rows to fit the survival model")
    if data[event_col].sum() == 0:
        logger.error(f"No graft-failure events among {len(data)} records")
        raise EmptyCohortError("No graft-failure events to fit the Cox model")

    n_dropped = len(df) - len(data)
    if n_dropped:
        logger.warning(f"Dropped {n_dropped} incomplete rows before fitting the Cox model")

    cph = CoxPHFitter(penalizer=penalizer)
    cph.fit(data, duration_col=duration_col, event_col=event_col, show_progress=False)
    coefficient = float(cph.params_[covariate_col])

    # lifelines centres covariates; evaluate the cumulative hazard at x = 0
    # to get the baseline for the uncentred linear score.
    reference = pd.DataFrame({covariate_col: [0.0]})
    h0 = cph.predict_cumulative_hazard(reference)

    model = FittedModel(
        coefficient=coefficient,
        baseline_times=h0.index.to_numpy(dtype=float),
        baseline_hazard=h0.iloc[:, 0].to_numpy(dtype=float),
        n_observations=int(len(data)),
        n_events=int(data[event_col].sum()),
    )
    logger.info(f"Fitted Cox model on {len(data)} records ({model.n_events} events): "
                f"coefficient={coefficient:.4f}, HR={model.hazard_ratio:.4f}")
    return model


def predict_survival(model: FittedModel, linear_score: ArrayLike, horizon: float) -> Union[float, np.ndarray]:
    """Predicted survival at ``horizon``; see ``FittedModel.predict_survival``."""
    return model.predict_survival(linear_score, horizon)


def km_survival_at(durations: ArrayLike, events: ArrayLike, horizon: float) -> float:
    """
    Kaplan-Meier survival probability at ``horizon``.

    Raises:
        DegeneratePartitionError: If there are no observations
    """
    durations = np.asarray(durations, dtype=float)
    events = np.asarray(events, dtype=int)
    if durations.size == 0:
        raise DegeneratePartitionError("Cannot estimate survival for an empty group")

    kmf = KaplanMeierFitter()
    kmf.fit(durations, event_observed=events)
    return float(kmf.survival_function_at_times(horizon).iloc[0])


def percentile_table_scores(table: pd.DataFrame, scaling_factor: float) -> pd.DataFrame:
    """
    One synthetic linear score per percentile-table row.

    The midpoint of each normalized KDRI range is de-normalized with the
    scaling factor and log-transformed. Non-positive midpoints give NaN.

    Returns:
        DataFrame with ``kdpi``, ``kdri_normalized``, ``kdri`` and ``kdri_x``
    """
    midpoint = (table['kdri_min'] + table['kdri_max']) / 2.0
    kdri = midpoint * float(scaling_factor)
    with np.errstate(divide='ignore', invalid='ignore'):
        kdri_x = np.where(kdri > 0, np.log(kdri.where(kdri > 0)), np.nan)
    return pd.DataFrame({
        'kdpi': table['kdpi'].to_numpy(dtype=float),
        'kdri_normalized': midpoint.to_numpy(dtype=float),
        'kdri': kdri.to_numpy(dtype=float),
        'kdri_x': kdri_x,
    })


def model_survival_table(model: FittedModel,
                         table: pd.DataFrame,
                         scaling_factor: float,
                         horizon: float) -> pd.DataFrame:
    """
    Model-predicted survival at ``horizon`` for every percentile-table row.

    No individual's covariates are used; the scores come from
    ``percentile_table_scores``.
    """
    scores = percentile_table_scores(table, scaling_factor)
    scores['predicted_survival'] = model.predict_survival(scores['kdri_x'].to_numpy(), horizon)
    return scores
