"""
Threshold sweep / confusion matrix builder for the KDPI decision-curve analysis

For every candidate KDPI threshold the cohort is split into accepted
(``kdpi <= threshold``) and rejected (``kdpi > threshold``) kidneys. Each
group's survival at the horizon is estimated with Kaplan-Meier and turned into
expected counts of survive / fail under the accept and reject policies.

Empty groups follow a zero convention: proportion 0, survival NaN, all counts
for that group 0. The four counts must add up to the cohort size; a row whose
checksum misses by more than the tolerance is marked invalid.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, Any, Iterable
from joblib import Parallel, delayed

from src.errors import DegeneratePartitionError, EmptyCohortError
from src.survival_model import km_survival_at

logger = logging.getLogger(__name__)

RESULT_COLUMNS = [
    'threshold', 'proportion_accepted', 'proportion_rejected', 'total_kidneys',
    'n_accepted', 'n_rejected', 'survival_accept', 'survival_reject',
    'accept_survive', 'accept_fail', 'reject_survive', 'reject_fail',
    'checksum', 'valid', 'status',
]


def _group_counts(durations: np.ndarray, events: np.ndarray, proportion: float,
                  total: int, horizon: float) -> tuple:
    """Survival at horizon and expected (survive, fail) counts for one group."""
    survival = km_survival_at(durations, events, horizon)
    return survival, survival * proportion * total, (1.0 - survival) * proportion * total


def evaluate_threshold(kdpi: np.ndarray,
                       durations: np.ndarray,
                       events: np.ndarray,
                       threshold: float,
                       horizon: float,
                       tolerance: float = 1e-6) -> Dict[str, Any]:
    """
    Confusion-matrix row for a single threshold.

    Args:
        kdpi: KDPI per cohort member
        durations: Follow-up time per cohort member (days)
        events: Event indicator per cohort member
        threshold: Accept kidneys with ``kdpi <= threshold``
        horizon: Survival horizon (days)
        tolerance: Allowed absolute difference between checksum and cohort size

    Returns:
        Dictionary with one value per ``RESULT_COLUMNS`` entry
    """
    total = int(len(kdpi))
    accepted = kdpi <= threshold
    n_accepted = int(accepted.sum())
    n_rejected = total - n_accepted

    p_accept = n_accepted / total
    p_reject = n_rejected / total

    notes = []
    groups = {}
    for name, mask, proportion in (('accept', accepted, p_accept), ('reject', ~accepted, p_reject)):
        try:
            groups[name] = _group_counts(durations[mask], events[mask], proportion, total, horizon)
        except DegeneratePartitionError:
            groups[name] = (np.nan, 0.0, 0.0)
            notes.append(f"{name} group empty")

    survival_accept, accept_survive, accept_fail = groups['accept']
    survival_reject, reject_survive, reject_fail = groups['reject']

    checksum = accept_survive + accept_fail + reject_survive + reject_fail
    valid = bool(np.isfinite(checksum) and abs(checksum - total) <= tolerance)
    if not valid:
        notes.append(f"checksum {checksum} does not match total {total}")
        logger.warning(f"Threshold {threshold}: checksum {checksum} does not match cohort size {total}")

    return {
        'threshold': float(threshold),
        'proportion_accepted': p_accept,
        'proportion_rejected': p_reject,
        'total_kidneys': total,
        'n_accepted': n_accepted,
        'n_rejected': n_rejected,
        'survival_accept': survival_accept,
        'survival_reject': survival_reject,
        'accept_survive': accept_survive,
        'accept_fail': accept_fail,
        'reject_survive': reject_survive,
        'reject_fail': reject_fail,
        'checksum': checksum,
        'valid': valid,
        'status': '; '.join(notes) if notes else 'ok',
    }


def sweep(cohort: pd.DataFrame,
          thresholds: Iterable[float],
          horizon: float,
          n_jobs: int = 1,
          kdpi_col: str = 'kdpi',
          duration_col: str = 'time',
          event_col: str = 'event',
          tolerance: float = 1e-6) -> pd.DataFrame:
    """
    Evaluate every threshold over the same cohort.

    Each threshold reads the shared cohort arrays and produces only its own row,
    so the thresholds can be evaluated in parallel (``n_jobs != 1``) with
    identical results.

    Args:
        cohort: Analysis cohort with KDPI, time and event columns
        thresholds: KDPI thresholds to sweep
        horizon: Survival horizon (days)
        n_jobs: joblib worker count (1 = serial, -1 = all cores)

    Returns:
        DataFrame with one row per threshold (``RESULT_COLUMNS``)

    Raises:
        EmptyCohortError: If the cohort is empty
    """
    if len(cohort) == 0:
        raise EmptyCohortError("Cannot sweep thresholds over an empty cohort")

    kdpi = cohort[kdpi_col].to_numpy(dtype=float)
    durations = cohort[duration_col].to_numpy(dtype=float)
    events = cohort[event_col].to_numpy(dtype=int)
    thresholds = [float(t) for t in thresholds]

    if n_jobs == 1:
        rows = [evaluate_threshold(kdpi, durations, events, t, horizon, tolerance) for t in thresholds]
    else:
        rows = Parallel(n_jobs=n_jobs)(
            delayed(evaluate_threshold)(kdpi, durations, events, t, horizon, tolerance) for t in thresholds
        )

    results_df = pd.DataFrame(rows, columns=RESULT_COLUMNS)

    n_invalid = int((~results_df['valid']).sum())
    logger.info(f"Swept {len(results_df)} thresholds over {len(cohort)} kidneys ({n_invalid} invalid rows)")
    return results_df
