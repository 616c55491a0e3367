"""Shared fixtures: a synthetic STAR-style registry and a matching percentile table."""

import numpy as np
import pandas as pd
import pytest

from src.config import DEFAULT_REGISTRY_MAPPING, build_config
from src.KDRI import KDRICalculator
from src.kdpi_mapper import parse_percentile_table

CALIBRATION = {
    'scaling_factor': 1.28991,
    'htn_unknown_constant': 0.4031,
    'diab_unknown_constant': 0.1474,
}


@pytest.fixture
def config():
    return build_config({'calibration': CALIBRATION})


@pytest.fixture
def mapping():
    return dict(DEFAULT_REGISTRY_MAPPING)


@pytest.fixture
def calculator(config, mapping):
    return KDRICalculator(config, mapping)


def make_registry(n=1000, seed=42, beta=1.5):
    """
    Synthetic registry export. Graft failure hazard rises with the KDRI score so
    the fitted Cox coefficient is positive.
    """
    rng = np.random.default_rng(seed)

    tx_offset = rng.integers(0, (pd.Timestamp('2018-12-31') - pd.Timestamp('2008-01-01')).days, n)
    tx_date = pd.Timestamp('2008-01-01') + pd.to_timedelta(tx_offset, unit='D')

    creat = np.round(rng.lognormal(mean=0.0, sigma=0.35, size=n), 2)
    creat[rng.random(n) < 0.05] = np.nan

    df = pd.DataFrame({
        'REC_TX_DT': tx_date,
        'REC_AGE_AT_TX': rng.integers(10, 80, n),
        'DON_AGE': rng.integers(5, 75, n),
        'DON_HGT_CM': np.round(rng.normal(170, 10, n), 1),
        'DON_WGT_KG': np.round(rng.normal(80, 15, n), 1),
        'DON_RACE': rng.choice([8, 16, 2000], n, p=[0.7, 0.2, 0.1]),
        'DON_HTN': rng.choice(np.array([0, 1, 998, np.nan], dtype=object), n, p=[0.6, 0.25, 0.1, 0.05]),
        'DON_HIST_DIAB': rng.choice([1, 2, 3, 998], n, p=[0.8, 0.08, 0.07, 0.05]),
        'DON_CAD_DON_COD': rng.choice([1, 2, 3, 4], n),
        'DON_CREAT': creat,
        'DON_ANTI_HCV': rng.choice(['N', 'P'], n, p=[0.95, 0.05]),
        'DON_NON_HR_BEAT': rng.choice(['N', 'Y'], n, p=[0.8, 0.2]),
    })

    # Follow-up driven by the true KDRI score
    score = KDRICalculator(build_config({'calibration': CALIBRATION})).add_kdri(df)['kdri_x'].fillna(0.0)
    rate = 0.00015 * np.exp(beta * (score.to_numpy() - score.mean()))
    failure_days = rng.exponential(1.0 / rate)
    censor_days = rng.uniform(30, 3650, n)
    failed = failure_days <= censor_days
    died = ~failed & (rng.random(n) < 0.05)

    end_days = np.where(failed, failure_days, censor_days)
    end_date = tx_date + pd.to_timedelta(np.round(end_days), unit='D')

    df['REC_FAIL_DT'] = pd.Series(end_date).where(failed)
    df['TFL_DEATH_DT'] = pd.Series(end_date).where(died)
    df['TFL_LAFUDATE'] = pd.Series(end_date)
    df['TFL_LASTATUS'] = np.where(died, 'D', 'A')
    return df


def make_percentile_table(values, n_ranges=100):
    """Percentile table whose ranges are the empirical quantiles of ``values``."""
    edges = np.quantile(np.asarray(values, dtype=float), np.linspace(0.0, 1.0, n_ranges + 1))
    edges[0] -= 1e-6
    edges[-1] += 1e-6
    raw = pd.DataFrame({
        'KDRI_MIN': edges[:-1],
        'KDRI_MAX': edges[1:],
        'KDPI': [f"{i}%" for i in range(n_ranges)],
    })
    return parse_percentile_table(raw)


@pytest.fixture
def registry():
    return make_registry()


@pytest.fixture
def percentile_table(registry, calculator):
    scored = calculator.add_kdri(registry)
    return make_percentile_table(scored['kdri_normalized'].dropna())
