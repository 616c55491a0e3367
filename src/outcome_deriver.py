"""
Outcome Deriver for the KDPI decision-curve analysis

Derives the censored follow-up time (days) and the graft-failure event
indicator for every transplant record.
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, Optional, Iterable, Any

from src.config import DEFAULT_REGISTRY_MAPPING
from src.util import date_column, match_codes

logger = logging.getLogger(__name__)


def follow_up_end(df: pd.DataFrame, mapping: Optional[Dict[str, str]] = None) -> pd.Series:
    """
    End of follow-up for each record.

    The first available of graft-failure date, death date and last follow-up
    date, in that priority order. NaT when all three are missing.
    """
    mapping = mapping or DEFAULT_REGISTRY_MAPPING
    end = date_column(df, mapping.get('graft_failure_date'))
    for field in ('death_date', 'last_followup_date'):
        end = end.where(end.notna(), date_column(df, mapping.get(field)))
    return end


def derive_outcomes(df: pd.DataFrame,
                    mapping: Optional[Dict[str, str]] = None,
                    deceased_codes: Iterable[Any] = ('D',)) -> pd.DataFrame:
    """
    Return a copy of ``df`` with ``time`` and ``event`` columns.

    Args:
        df: Registry records
        mapping: Registry column mapping (defaults to the STAR column names)
        deceased_codes: Last-status codes meaning the recipient died

    Returns:
        DataFrame with:
        - time: days from transplant to the end of follow-up (NaN if no end date)
        - event: 1 if a graft-failure date or a death date is recorded, or the last
          status is deceased; otherwise 0 (censored)
    """
    mapping = mapping or DEFAULT_REGISTRY_MAPPING
    result_df = df.copy()

    tx_date = date_column(df, mapping.get('transplant_date'))
    end = follow_up_end(df, mapping)
    result_df['time'] = (end - tx_date) / pd.Timedelta(days=1)

    failed = date_column(df, mapping.get('graft_failure_date')).notna()
    died = date_column(df, mapping.get('death_date')).notna()
    status_col = mapping.get('last_status')
    if status_col in df.columns:
        deceased = match_codes(df[status_col], deceased_codes)
    else:
        deceased = pd.Series(False, index=df.index)
    result_df['event'] = (failed | died | deceased).astype(int)

    n_missing = int(result_df['time'].isna().sum())
    n_events = int(result_df['event'].sum())
    logger.info(f"Derived outcomes for {len(result_df)} records: {n_events} events, "
                f"{len(result_df) - n_events} censored, {n_missing} without follow-up")
    return result_df


def outcome_for_record(record: Dict[str, Any],
                       mapping: Optional[Dict[str, str]] = None,
                       deceased_codes: Iterable[Any] = ('D',)) -> tuple:
    """
    Derive ``(time, event)`` for a single record.

    Returns:
        Tuple of follow-up time in days (NaN when undefined) and event indicator
    """
    row = derive_outcomes(pd.DataFrame([record]), mapping, deceased_codes)
    time = row['time'].iloc[0]
    return (float(time) if pd.notna(time) else np.nan, int(row['event'].iloc[0]))
