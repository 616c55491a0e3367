"""
KDRI.py
========
Object-oriented implementation of the Kidney Donor Risk Index (KDRI) used to
derive the Kidney Donor Profile Index (KDPI).

The linear score (``kdri_x``) is a sum of continuous terms in donor age,
height, weight and terminal creatinine plus table-driven categorical terms
(race, hypertension, diabetes, cause of death, hepatitis C antibody and
donation after circulatory death). From it:

    kdri            = exp(kdri_x)
    kdri_normalized = kdri / scaling_factor

The scaling factor and the two "unknown" multipliers are calibration
constants published with each KDRI-to-KDPI mapping table; they are read from
the analysis configuration, never from this module.

Missing values
--------------
- Missing creatinine (or age / height / weight) -> the whole risk score is NaN.
- Missing hypertension status -> the unknown multiplier is applied.
- Diabetes history outside the positive codes -> the unknown multiplier is
  applied, whether the code is the explicit unknown code or anything else,
  unless the code is listed in ``categories.diabetes_negative``.
- Other missing categorical values contribute 0.

Public API
----------
KDRICalculator(config, mapping).add_kdri(df) -> df_with_risk
calculate_kdri_x(...) -> float
"""

from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from typing import Dict, Any, Optional, Mapping

from src.config import DEFAULT_REGISTRY_MAPPING, validate_calibration, validate_mapping
from src.errors import MissingInputError
from src.util import match_codes, numeric_column

__all__ = ["KDRICalculator", "calculate_kdri_x", "KDRI_COEFFICIENTS"]

logger = logging.getLogger(__name__)

# ---- Published KDRI coefficients ----
KDRI_COEFFICIENTS: Dict[str, float] = {
    "age": 0.0128,               # per year above 40
    "age_under_18": -0.0194,     # per year below 18
    "age_over_50": 0.0107,       # per year above 50
    "height": -0.0464,           # per 10 cm above 170
    "weight_under_80": -0.0199,  # per 5 kg below 80
    "black": 0.1790,
    "hypertension": 0.1260,
    "diabetes": 0.1300,
    "cerebrovascular": 0.0881,
    "creatinine": 0.2200,        # per mg/dL above 1
    "creatinine_over_1_5": -0.2090,
    "hcv": 0.2400,
    "non_heart_beating": 0.1330,
}

# Indicator terms: term -> (category code list in config, registry field)
_INDICATOR_TERMS: Dict[str, tuple] = {
    "black": ("race_black", "donor_race"),
    "cerebrovascular": ("cause_of_death_cerebrovascular", "donor_cause_of_death"),
    "hcv": ("hcv_positive", "donor_hcv"),
    "non_heart_beating": ("non_heart_beating", "donor_non_heart_beating"),
}

_CONTINUOUS_FIELDS = {
    "age": "donor_age",
    "height_cm": "donor_height_cm",
    "weight_kg": "donor_weight_kg",
    "creatinine": "donor_creatinine",
}


def _status_term(status: np.ndarray, coef: float, unknown_constant: float) -> np.ndarray:
    """Coefficient for status 1, coefficient x unknown multiplier for NaN, 0 otherwise."""
    return np.where(status == 1, coef, np.where(np.isnan(status), coef * unknown_constant, 0.0))


def _linear_score(age: np.ndarray,
                  height_cm: np.ndarray,
                  weight_kg: np.ndarray,
                  creatinine: np.ndarray,
                  indicators: Dict[str, np.ndarray],
                  hypertension: np.ndarray,
                  diabetes: np.ndarray,
                  htn_unknown_constant: float,
                  diab_unknown_constant: float) -> np.ndarray:
    """
    Vectorised KDRI linear score.

    ``hypertension`` and ``diabetes`` are status arrays: 1 = present, 0 = absent,
    NaN = unknown. Rows with any missing continuous covariate return NaN.
    """
    c = KDRI_COEFFICIENTS
    with np.errstate(invalid="ignore"):
        lp = (c["age"] * (age - 40.0)
              + np.where(age < 18.0, c["age_under_18"] * (age - 18.0), 0.0)
              + np.where(age > 50.0, c["age_over_50"] * (age - 50.0), 0.0)
              + c["height"] * ((height_cm - 170.0) / 10.0)
              + np.where(weight_kg < 80.0, c["weight_under_80"] * ((weight_kg - 80.0) / 5.0), 0.0)
              + c["creatinine"] * (creatinine - 1.0)
              + np.where(creatinine > 1.5, c["creatinine_over_1_5"] * (creatinine - 1.5), 0.0))

    for term, indicator in indicators.items():
        lp = lp + c[term] * indicator

    lp = lp + _status_term(hypertension, c["hypertension"], htn_unknown_constant)
    lp = lp + _status_term(diabetes, c["diabetes"], diab_unknown_constant)

    continuous = np.column_stack([age, height_cm, weight_kg, creatinine])
    lp = np.asarray(lp, dtype=float)
    lp[np.any(np.isnan(continuous), axis=1)] = np.nan
    return lp


def calculate_kdri_x(age: float, height_cm: float, weight_kg: float, creatinine: float,
                     black: bool = False,
                     hypertension: Optional[bool] = False,
                     diabetes: Optional[bool] = None,
                     cerebrovascular_death: bool = False,
                     hcv_positive: bool = False,
                     non_heart_beating: bool = False,
                     *,
                     htn_unknown_constant: float,
                     diab_unknown_constant: float) -> float:
    """
    Calculate the KDRI linear score for a single donor.

    Parameters
    ----------
    age, height_cm, weight_kg, creatinine : float
        Donor age (years), height (cm), weight (kg) and terminal creatinine (mg/dL)
    black : bool
        Donor race recorded as Black
    hypertension : bool or None
        True / False, or None when the history is unknown
    diabetes : bool or None
        True for a positive history, False for an explicit negative history,
        None when unknown
    cerebrovascular_death, hcv_positive, non_heart_beating : bool
        Cause of death cerebrovascular, anti-HCV positive, DCD donor
    htn_unknown_constant, diab_unknown_constant : float
        Multipliers applied to the hypertension / diabetes coefficient when unknown

    Returns
    -------
    float
        KDRI linear score, NaN when a continuous covariate is missing
    """
    def _arr(value):
        return np.array([np.nan if value is None or pd.isna(value) else float(value)])

    def _status(value):
        return np.array([np.nan if value is None else (1.0 if value else 0.0)])

    indicators = {
        "black": _arr(bool(black)),
        "cerebrovascular": _arr(bool(cerebrovascular_death)),
        "hcv": _arr(bool(hcv_positive)),
        "non_heart_beating": _arr(bool(non_heart_beating)),
    }
    lp = _linear_score(_arr(age), _arr(height_cm), _arr(weight_kg), _arr(creatinine),
                       indicators, _status(hypertension), _status(diabetes),
                       htn_unknown_constant, diab_unknown_constant)
    return float(lp[0])


class KDRICalculator:
    """
    Adds the KDRI risk score columns (``kdri_x``, ``kdri``, ``kdri_normalized``)
    to a registry DataFrame.
    """

    def __init__(self, config: Dict[str, Any], mapping: Optional[Dict[str, str]] = None):
        """
        Initialize the KDRICalculator.

        Parameters
        ----------
        config : dict
            Analysis configuration with ``calibration`` and ``categories`` sections
        mapping : dict, optional
            Registry column mapping; defaults to the STAR column names
        """
        calibration = config.get('calibration', {})
        validate_calibration(calibration)

        self.mapping = dict(mapping) if mapping is not None else dict(DEFAULT_REGISTRY_MAPPING)
        validate_mapping(self.mapping)

        self.categories = config.get('categories', {})
        self.scaling_factor = float(calibration['scaling_factor'])
        self.htn_unknown_constant = float(calibration['htn_unknown_constant'])
        self.diab_unknown_constant = float(calibration['diab_unknown_constant'])

    # --------------------------------------------------------------------- #
    #                                PUBLIC                                 #
    # --------------------------------------------------------------------- #
    def add_kdri(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Return a copy of ``df`` with ``kdri_x``, ``kdri`` and ``kdri_normalized``.

        Rows lacking a continuous covariate receive NaN in all three columns.
        """
        df_copy = df.copy()
        std_df = self._standardise_columns(df)

        indicators = {term: std_df[term].to_numpy(dtype=float) for term in _INDICATOR_TERMS}
        lp = _linear_score(
            std_df['age'].to_numpy(dtype=float),
            std_df['height_cm'].to_numpy(dtype=float),
            std_df['weight_kg'].to_numpy(dtype=float),
            std_df['creatinine'].to_numpy(dtype=float),
            indicators,
            std_df['hypertension'].to_numpy(dtype=float),
            std_df['diabetes'].to_numpy(dtype=float),
            self.htn_unknown_constant,
            self.diab_unknown_constant,
        )

        df_copy['kdri_x'] = lp
        df_copy['kdri'] = np.exp(lp)
        df_copy['kdri_normalized'] = df_copy['kdri'] / self.scaling_factor

        n_missing = int(np.isnan(lp).sum())
        if n_missing:
            logger.warning(f"KDRI undefined for {n_missing} of {len(df_copy)} records (missing covariates)")
        return df_copy

    def score_record(self, record: Mapping[str, Any], strict: bool = False) -> Dict[str, float]:
        """
        Score a single registry record.

        Parameters
        ----------
        record : mapping
            Registry fields keyed by registry column name
        strict : bool
            Raise ``MissingInputError`` instead of returning NaN when creatinine is missing

        Returns
        -------
        dict
            ``kdri_x``, ``kdri`` and ``kdri_normalized``
        """
        creat_col = self.mapping['donor_creatinine']
        if strict and pd.isna(pd.to_numeric(record.get(creat_col), errors='coerce')):
            raise MissingInputError(f"Donor creatinine ('{creat_col}') is missing")

        row = self.add_kdri(pd.DataFrame([dict(record)]))
        return {k: float(row[k].iloc[0]) for k in ('kdri_x', 'kdri', 'kdri_normalized')}

    def missing_creatinine(self, df: pd.DataFrame) -> pd.Series:
        """Boolean mask of records without a usable creatinine value."""
        return numeric_column(df, self.mapping['donor_creatinine']).isna()

    # --------------------------------------------------------------------- #
    #                               PRIVATE                                 #
    # --------------------------------------------------------------------- #
    def _codes(self, key: str) -> list:
        return list(self.categories.get(key) or [])

    def _standardise_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Map registry columns to the standard covariates used by the formula.

        Status columns use 1 = present, 0 = absent, NaN = unknown.
        """
        std_df = pd.DataFrame(index=df.index)

        for std_name, field in _CONTINUOUS_FIELDS.items():
            std_df[std_name] = numeric_column(df, self.mapping[field])

        for term, (code_key, field) in _INDICATOR_TERMS.items():
            col = self.mapping[field]
            if col in df.columns:
                std_df[term] = match_codes(df[col], self._codes(code_key)).astype(float)
            else:
                std_df[term] = 0.0

        std_df['hypertension'] = self._hypertension_status(df)
        std_df['diabetes'] = self._diabetes_status(df)
        return std_df

    def _hypertension_status(self, df: pd.DataFrame) -> pd.Series:
        col = self.mapping['donor_hypertension']
        if col not in df.columns:
            return pd.Series(np.nan, index=df.index)
        values = df[col]
        status = pd.Series(0.0, index=df.index)
        unknown = values.isna() | match_codes(values, self._codes('hypertension_unknown'))
        status[unknown] = np.nan
        status[match_codes(values, self._codes('hypertension_positive'))] = 1.0
        return status

    def _diabetes_status(self, df: pd.DataFrame) -> pd.Series:
        col = self.mapping['donor_diabetes']
        if col not in df.columns:
            return pd.Series(np.nan, index=df.index)
        values = df[col]
        # Unknown code and unlisted codes share the unknown multiplier
        status = pd.Series(np.nan, index=df.index)
        status[match_codes(values, self._codes('diabetes_negative'))] = 0.0
        status[match_codes(values, self._codes('diabetes_positive'))] = 1.0
        return status
