"""
Configuration loading for the KDPI decision-curve analysis.

Two YAML files drive a run:

- the analysis configuration (``src/default_kdpi_config.yml``): calibration
  constants, category codes, cohort window, horizon and threshold grid;
- the registry column mapping (``src/default_registry_mapping.yml``): logical
  field names mapped to the column names of the registry export.

File locations can be overridden with the ``KDPI_CONFIG_PATH`` and
``KDPI_MAPPING_PATH`` environment variables (a ``.env`` file is honoured).
"""

import copy
import os
import logging
import numpy as np
from pathlib import Path
from typing import Dict, Any, Optional, Union
from dotenv import load_dotenv

from src.util import load_yaml_file
from src.errors import ConfigurationError

# Set up logging
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "default_kdpi_config.yml"
DEFAULT_MAPPING_PATH = Path(__file__).resolve().parent / "default_registry_mapping.yml"

REQUIRED_MAPPING_KEYS = [
    'transplant_date', 'recipient_age',
    'donor_age', 'donor_height_cm', 'donor_weight_kg', 'donor_race',
    'donor_hypertension', 'donor_diabetes', 'donor_cause_of_death',
    'donor_creatinine', 'donor_hcv', 'donor_non_heart_beating',
    'graft_failure_date', 'death_date', 'last_followup_date', 'last_status',
]

CALIBRATION_KEYS = ['scaling_factor', 'htn_unknown_constant', 'diab_unknown_constant']

DEFAULT_REGISTRY_MAPPING: Dict[str, str] = {
    'transplant_date': 'REC_TX_DT',
    'recipient_age': 'REC_AGE_AT_TX',
    'donor_age': 'DON_AGE',
    'donor_height_cm': 'DON_HGT_CM',
    'donor_weight_kg': 'DON_WGT_KG',
    'donor_race': 'DON_RACE',
    'donor_hypertension': 'DON_HTN',
    'donor_diabetes': 'DON_HIST_DIAB',
    'donor_cause_of_death': 'DON_CAD_DON_COD',
    'donor_creatinine': 'DON_CREAT',
    'donor_hcv': 'DON_ANTI_HCV',
    'donor_non_heart_beating': 'DON_NON_HR_BEAT',
    'graft_failure_date': 'REC_FAIL_DT',
    'death_date': 'TFL_DEATH_DT',
    'last_followup_date': 'TFL_LAFUDATE',
    'last_status': 'TFL_LASTATUS',
}

# Calibration constants are deliberately absent: they must come from the
# configuration that accompanies the percentile table.
DEFAULT_CONFIG: Dict[str, Any] = {
    'calibration': {},
    'categories': {
        'race_black': [16],
        'hypertension_positive': [1, 'Y'],
        'hypertension_unknown': [998, 'U'],
        'diabetes_positive': [2, 3, 4, 5],
        'diabetes_negative': [],
        'cause_of_death_cerebrovascular': [2],
        'hcv_positive': ['P'],
        'non_heart_beating': ['Y'],
        'deceased_status': ['D'],
    },
    'cohort': {
        'start_date': '2010-01-01',
        'end_date': '2016-12-31',
        'min_recipient_age': 18,
    },
    'analysis': {
        'horizon_days': 1825,
        'threshold_min': 1,
        'threshold_max': 99,
        'threshold_step': 1,
        'checksum_tolerance': 1e-6,
        'n_jobs': 1,
        'output_path': 'results/kdpi_dca',
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_calibration(calibration: Dict[str, Any]) -> None:
    """
    Check that every calibration constant is present and strictly positive.

    Raises:
        ConfigurationError: If a constant is missing, non-numeric or not positive
    """
    missing = [k for k in CALIBRATION_KEYS if calibration.get(k) is None]
    if missing:
        raise ConfigurationError(f"Missing calibration constants: {sorted(missing)}")

    for key in CALIBRATION_KEYS:
        try:
            value = float(calibration[key])
        except (TypeError, ValueError):
            raise ConfigurationError(f"Calibration constant '{key}' is not numeric: {calibration[key]!r}")
        if not np.isfinite(value) or value <= 0:
            raise ConfigurationError(f"Calibration constant '{key}' must be positive, got {value}")


def build_config(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge ``overrides`` over the built-in defaults and validate the result.

    Args:
        overrides: Partial configuration dictionary (same layout as the YAML file)

    Returns:
        Complete configuration dictionary
    """
    config = _merge(DEFAULT_CONFIG, overrides or {})
    validate_calibration(config['calibration'])
    return config


def load_analysis_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load the analysis configuration YAML and merge it over the defaults.

    Args:
        path: Path to the YAML file. Defaults to ``KDPI_CONFIG_PATH`` or
              ``src/default_kdpi_config.yml``

    Returns:
        Complete, validated configuration dictionary
    """
    if path is None:
        path = os.getenv('KDPI_CONFIG_PATH', str(DEFAULT_CONFIG_PATH))

    overrides = load_yaml_file(path)
    if not overrides:
        raise ConfigurationError(f"Analysis configuration not found or empty: {path}")

    config = build_config(overrides)
    logger.info(f"Loaded analysis configuration from {path}")
    return config


def validate_mapping(mapping: Dict[str, str]) -> None:
    """
    Validate that the registry mapping names every required logical field.

    Raises:
        ConfigurationError: If the mapping is missing required keys
    """
    missing = set(REQUIRED_MAPPING_KEYS).difference(mapping.keys())
    if missing:
        raise ConfigurationError(f"Missing required keys in registry mapping: {sorted(missing)}")


def load_registry_mapping(path: Optional[Union[str, Path]] = None) -> Dict[str, str]:
    """
    Load the registry column mapping.

    The mapping may sit under a top-level ``registry`` key or be the whole file.

    Args:
        path: Path to the YAML file. Defaults to ``KDPI_MAPPING_PATH`` or
              ``src/default_registry_mapping.yml``. A missing file falls back to
              the built-in STAR column names.

    Returns:
        Dictionary mapping logical field names to registry column names
    """
    if path is None:
        path = os.getenv('KDPI_MAPPING_PATH', str(DEFAULT_MAPPING_PATH))

    yaml_content = load_yaml_file(path)
    if not yaml_content:
        logger.warning("Using built-in registry column mapping")
        return dict(DEFAULT_REGISTRY_MAPPING)

    mapping = yaml_content.get('registry', yaml_content)
    mapping = {**DEFAULT_REGISTRY_MAPPING, **mapping}
    validate_mapping(mapping)
    return mapping


def threshold_grid(config: Dict[str, Any]) -> np.ndarray:
    """Percentile thresholds to sweep, inclusive of ``threshold_max``."""
    analysis = config['analysis']
    start = analysis['threshold_min']
    stop = analysis['threshold_max']
    step = analysis['threshold_step']
    if step <= 0 or stop < start:
        raise ConfigurationError(f"Invalid threshold range: {start}..{stop} step {step}")
    return np.arange(start, stop + step / 2.0, step, dtype=float)
