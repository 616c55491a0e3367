"""
Cohort formation for the KDPI decision-curve analysis

1. Cohort filter: transplant date inside the study window and recipient age at
   or above the minimum.
2. Analysis cohort: KDRI, outcomes and KDPI joined per record; records without a
   risk score, a follow-up time or a KDPI are excluded and counted.
"""

import logging
import pandas as pd
from collections import OrderedDict
from typing import Dict, Any, Optional, Tuple

from src.config import DEFAULT_REGISTRY_MAPPING
from src.errors import EmptyCohortError
from src.KDRI import KDRICalculator
from src.kdpi_mapper import add_kdpi
from src.outcome_deriver import derive_outcomes
from src.util import date_column, numeric_column

logger = logging.getLogger(__name__)


class ExclusionReport:
    """
    Ordered counts of records removed at each stage of cohort formation.

    Each record is counted once, under the first reason that excludes it.
    """

    def __init__(self, n_input: int = 0):
        self.n_input = int(n_input)
        self.counts: "OrderedDict[str, int]" = OrderedDict()

    def record(self, reason: str, n_excluded: int) -> None:
        self.counts[reason] = self.counts.get(reason, 0) + int(n_excluded)
        if n_excluded:
            logger.info(f"Excluded {n_excluded} records: {reason}")

    @property
    def total_excluded(self) -> int:
        return int(sum(self.counts.values()))

    @property
    def n_remaining(self) -> int:
        return self.n_input - self.total_excluded

    def to_frame(self) -> pd.DataFrame:
        """One row per exclusion reason plus input and remaining totals."""
        rows = [{'stage': 'input', 'n_records': self.n_input}]
        rows += [{'stage': reason, 'n_records': n} for reason, n in self.counts.items()]
        rows.append({'stage': 'remaining', 'n_records': self.n_remaining})
        return pd.DataFrame(rows, columns=['stage', 'n_records'])

    def __repr__(self) -> str:
        return f"ExclusionReport(input={self.n_input}, excluded={dict(self.counts)}, remaining={self.n_remaining})"


def filter_cohort(df: pd.DataFrame,
                  start_date: Any,
                  end_date: Any,
                  min_age: float = 18,
                  mapping: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """
    Select records with ``start_date <= transplant_date <= end_date`` and
    ``recipient_age >= min_age``.

    Records with an unparseable transplant date or a missing recipient age are
    dropped.

    Args:
        df: Raw registry records
        start_date: First transplant date in the window (inclusive)
        end_date: Last transplant date in the window (inclusive)
        min_age: Minimum recipient age at transplant
        mapping: Registry column mapping (defaults to the STAR column names)

    Returns:
        Filtered copy of ``df``
    """
    mapping = mapping or DEFAULT_REGISTRY_MAPPING
    tx_date = date_column(df, mapping['transplant_date'])
    age = numeric_column(df, mapping['recipient_age'])

    start = pd.Timestamp(start_date)
    end = pd.Timestamp(end_date)
    if end < start:
        raise ValueError(f"Cohort window end {end.date()} is before start {start.date()}")

    mask = (tx_date >= start) & (tx_date <= end) & (age >= min_age)
    filtered_df = df.loc[mask.to_numpy()].copy()
    logger.info(f"Cohort filter kept {len(filtered_df)} of {len(df)} records "
                f"({start.date()} to {end.date()}, recipient age >= {min_age})")
    return filtered_df


def build_analysis_cohort(df: pd.DataFrame,
                          calculator: KDRICalculator,
                          table: pd.DataFrame,
                          config: Dict[str, Any],
                          mapping: Optional[Dict[str, str]] = None,
                          apply_filter: bool = True) -> Tuple[pd.DataFrame, ExclusionReport]:
    """
    Build the analysis cohort: filtered records with KDRI, outcomes and KDPI.

    Args:
        df: Raw registry records
        calculator: Configured KDRI calculator
        table: Parsed percentile table
        config: Analysis configuration
        mapping: Registry column mapping
        apply_filter: Apply the date-window / age filter first

    Returns:
        Tuple containing:
        - cohort DataFrame with ``kdri_x``, ``kdri``, ``kdri_normalized``,
          ``time``, ``event`` and ``kdpi``
        - ExclusionReport

    Raises:
        EmptyCohortError: If no record survives the filter or the exclusions
    """
    mapping = mapping or calculator.mapping
    report = ExclusionReport(len(df))

    if apply_filter:
        cohort_cfg = config['cohort']
        filtered_df = filter_cohort(df, cohort_cfg['start_date'], cohort_cfg['end_date'],
                                    cohort_cfg['min_recipient_age'], mapping)
        report.record('outside window or under minimum age', len(df) - len(filtered_df))
    else:
        filtered_df = df.copy()

    if filtered_df.empty:
        logger.error("No records remain after the cohort filter")
        raise EmptyCohortError("No records remain after the cohort filter")

    scored_df = calculator.add_kdri(filtered_df)
    deceased_codes = config['categories'].get('deceased_status', ['D'])
    scored_df = derive_outcomes(scored_df, mapping, deceased_codes)
    scored_df = add_kdpi(scored_df, table)

    keep = pd.Series(True, index=scored_df.index)
    missing_creat = calculator.missing_creatinine(scored_df)
    exclusions = [
        ('missing donor creatinine', missing_creat),
        ('missing other KDRI covariates', scored_df['kdri_x'].isna() & ~missing_creat),
        ('missing follow-up', scored_df['time'].isna()),
        ('negative follow-up', scored_df['time'] < 0),
        ('KDRI outside percentile table', scored_df['kdpi'].isna()),
    ]
    for reason, mask in exclusions:
        newly_excluded = keep & mask
        report.record(reason, int(newly_excluded.sum()))
        keep &= ~mask

    cohort_df = scored_df.loc[keep.to_numpy()].copy()
    cohort_df['event'] = cohort_df['event'].astype(int)

    if cohort_df.empty:
        logger.error(f"No records remain after exclusions: {report}")
        raise EmptyCohortError("No records remain after exclusions")

    logger.info(f"Analysis cohort: {len(cohort_df)} kidneys, {int(cohort_df['event'].sum())} events; "
                f"{report.total_excluded} records excluded")
    return cohort_df, report
