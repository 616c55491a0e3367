"""
KDPI Mapper for the KDPI decision-curve analysis

This module loads the static KDRI-to-KDPI mapping table and maps normalized
KDRI values to percentile scores.

The table has three columns, in order: lower KDRI bound, upper KDRI bound and
the percentile as a string with a percent sign (``"85%"``). Ranges are closed
on both ends. Ranges should not overlap; when they do, the first matching row
in table order wins. A value matching no range has no KDPI (NaN).
"""

import os
import logging
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Union, Optional

from src.errors import PercentileTableError, UnmappableRiskError

logger = logging.getLogger(__name__)

TABLE_COLUMNS = ['kdri_min', 'kdri_max', 'kdpi']


def _parse_percent(values: pd.Series) -> pd.Series:
    """Strip the percent sign and convert to float."""
    cleaned = values.astype(str).str.strip().str.rstrip('%').str.strip()
    return pd.to_numeric(cleaned, errors='coerce')


def parse_percentile_table(raw_df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize a raw percentile table to ``kdri_min``, ``kdri_max``, ``kdpi`` floats.

    The first three columns are used regardless of their header names.

    Raises:
        PercentileTableError: If the table is empty, has fewer than three columns,
                              or contains non-numeric bounds or percentiles
    """
    if raw_df is None or raw_df.empty:
        raise PercentileTableError("Percentile table is empty")
    if raw_df.shape[1] < 3:
        raise PercentileTableError(f"Percentile table needs 3 columns, found {raw_df.shape[1]}")

    table = raw_df.iloc[:, :3].copy()
    table.columns = TABLE_COLUMNS
    table['kdri_min'] = pd.to_numeric(table['kdri_min'], errors='coerce')
    table['kdri_max'] = pd.to_numeric(table['kdri_max'], errors='coerce')
    table['kdpi'] = _parse_percent(table['kdpi'])

    bad_rows = table[TABLE_COLUMNS].isna().any(axis=1)
    if bad_rows.any():
        first_bad = int(np.flatnonzero(bad_rows.to_numpy())[0])
        raise PercentileTableError(
            f"Percentile table has {int(bad_rows.sum())} malformed rows (first at row {first_bad})"
        )

    inverted = table['kdri_min'] > table['kdri_max']
    if inverted.any():
        raise PercentileTableError(f"Percentile table has {int(inverted.sum())} rows with min > max")

    out_of_range = (table['kdpi'] < 0) | (table['kdpi'] > 100)
    if out_of_range.any():
        raise PercentileTableError(f"Percentile table has {int(out_of_range.sum())} percentiles outside 0-100")

    table = table.reset_index(drop=True).astype(float)

    n_overlaps = count_overlaps(table)
    if n_overlaps:
        logger.warning(f"Percentile table has {n_overlaps} overlapping ranges; first match in table order is used")

    return table


def load_percentile_table(path: Optional[Union[str, Path]] = None) -> pd.DataFrame:
    """
    Load the KDRI-to-KDPI mapping table from a CSV file.

    Args:
        path: Path to the CSV file. Defaults to the ``KDPI_TABLE_PATH`` environment variable

    Returns:
        DataFrame with columns ``kdri_min``, ``kdri_max``, ``kdpi``

    Raises:
        PercentileTableError: If the file is missing or the table is malformed
    """
    if path is None:
        path = os.getenv('KDPI_TABLE_PATH')
    if path is None:
        raise PercentileTableError("No percentile table path given and KDPI_TABLE_PATH is not set")

    path = Path(path)
    if not path.exists():
        logger.error(f"Percentile table not found: {path}")
        raise PercentileTableError(f"Percentile table not found: {path}")

    raw_df = pd.read_csv(path)
    table = parse_percentile_table(raw_df)
    logger.info(f"Loaded percentile table from {path} with {len(table)} ranges")
    return table


def count_overlaps(table: pd.DataFrame) -> int:
    """Number of adjacent range pairs that overlap once sorted by lower bound."""
    ordered = table.sort_values(['kdri_min', 'kdri_max'])
    lower = ordered['kdri_min'].to_numpy()[1:]
    upper = ordered['kdri_max'].to_numpy()[:-1]
    return int(np.sum(lower < upper))


def lookup_percentile(value: float, table: pd.DataFrame, strict: bool = False) -> float:
    """
    KDPI of the first range containing ``value``.

    Args:
        value: Normalized KDRI
        table: Parsed percentile table
        strict: Raise ``UnmappableRiskError`` instead of returning NaN

    Returns:
        Percentile (0-100), or NaN when no range contains the value
    """
    if value is not None and not pd.isna(value):
        contains = (table['kdri_min'] <= value) & (value <= table['kdri_max'])
        if contains.any():
            return float(table.loc[contains.idxmax(), 'kdpi'])

    if strict:
        raise UnmappableRiskError(f"KDRI {value} is outside every percentile-table range")
    return np.nan


def map_kdpi(values: Union[pd.Series, np.ndarray], table: pd.DataFrame) -> Union[pd.Series, np.ndarray]:
    """
    Vectorised percentile lookup.

    Rows are applied in reverse table order so that the first matching range
    overwrites any later one.

    Args:
        values: Normalized KDRI values
        table: Parsed percentile table

    Returns:
        KDPI values in the same container type as ``values`` (NaN where unmapped)
    """
    arr = np.asarray(values, dtype=float)
    result = np.full(arr.shape, np.nan)

    mins = table['kdri_min'].to_numpy()
    maxs = table['kdri_max'].to_numpy()
    pcts = table['kdpi'].to_numpy()
    for lo, hi, pct in zip(mins[::-1], maxs[::-1], pcts[::-1]):
        result[(arr >= lo) & (arr <= hi)] = pct

    if isinstance(values, pd.Series):
        return pd.Series(result, index=values.index, name='kdpi')
    return result


def add_kdpi(df: pd.DataFrame, table: pd.DataFrame, value_col: str = 'kdri_normalized') -> pd.DataFrame:
    """Return a copy of ``df`` with a ``kdpi`` column mapped from ``value_col``."""
    df_copy = df.copy()
    df_copy['kdpi'] = map_kdpi(df_copy[value_col], table)
    n_unmapped = int((df_copy['kdpi'].isna() & df_copy[value_col].notna()).sum())
    if n_unmapped:
        logger.warning(f"{n_unmapped} records have a KDRI outside every percentile-table range")
    return df_copy
