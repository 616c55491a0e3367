"""Utility module of the KDPI decision-curve analysis
contain functions commonly used in different steps of the pipeline"""

import logging
import yaml
import numpy as np
import pandas as pd
from pathlib import Path
from typing import Dict, Any, Optional, Iterable

# Set up logging
logger = logging.getLogger(__name__)


def load_yaml_file(file_path: str, default: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Load a YAML file and return its contents.

    Args:
        file_path: Path to the YAML file (can be string or Path object)
        default: Default value to return if the file does not exist or is empty (default: empty dict)

    Returns:
        Dictionary containing the YAML file contents, or the default value

    Raises:
        yaml.YAMLError: If the file exists but is not valid YAML
    """
    if default is None:
        default = {}

    path = Path(file_path)

    if not path.exists():
        logger.warning(f"YAML file not found: {path}")
        return default

    with open(path, 'r', encoding='utf-8') as file:
        data = yaml.safe_load(file)

    # Empty file
    if data is None:
        logger.warning(f"YAML file is empty: {path}")
        return default

    return data


def date_column(df: pd.DataFrame, col: Optional[str]) -> pd.Series:
    """
    Return a column parsed to datetime, or an all-NaT series if the column is absent.

    Unparseable values become NaT.
    """
    if col is None or col not in df.columns:
        return pd.Series(pd.NaT, index=df.index, dtype='datetime64[ns]')
    return pd.to_datetime(df[col], errors='coerce')


def numeric_column(df: pd.DataFrame, col: Optional[str]) -> pd.Series:
    """Return a column coerced to float, or an all-NaN series if the column is absent."""
    if col is None or col not in df.columns:
        return pd.Series(np.nan, index=df.index, dtype=float)
    return pd.to_numeric(df[col], errors='coerce').astype(float)


def match_codes(values: pd.Series, codes: Iterable[Any]) -> pd.Series:
    """
    Boolean mask of values belonging to a set of registry codes.

    Registry exports mix numeric and string codes (``16`` vs ``'16'``, ``'p'`` vs
    ``'P'``), so values are compared both as-is and as upper-cased strings.
    Missing values never match.
    """
    codes = list(codes)
    if not codes:
        return pd.Series(False, index=values.index)

    direct = values.isin(codes)
    str_codes = {str(c).strip().upper() for c in codes}
    as_str = values.astype(str).str.strip().str.upper()
    # 16.0 read from a float column should match code 16
    as_str = as_str.str.replace(r'\.0$', '', regex=True)
    mask = direct | as_str.isin(str_codes)
    return mask & values.notna()
