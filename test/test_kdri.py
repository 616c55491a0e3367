import numpy as np
import pandas as pd
import pytest

from src.config import build_config
from src.errors import ConfigurationError, MissingInputError
from src.KDRI import KDRICalculator, calculate_kdri_x

from conftest import CALIBRATION

UNKNOWN = dict(htn_unknown_constant=CALIBRATION['htn_unknown_constant'],
               diab_unknown_constant=CALIBRATION['diab_unknown_constant'])


def donor(**overrides):
    record = {
        'DON_AGE': 55, 'DON_HGT_CM': 165, 'DON_WGT_KG': 70, 'DON_RACE': 16,
        'DON_HTN': 1, 'DON_HIST_DIAB': 998, 'DON_CAD_DON_COD': 2, 'DON_CREAT': 1.8,
        'DON_ANTI_HCV': 'N', 'DON_NON_HR_BEAT': 'Y',
    }
    record.update(overrides)
    return record


def test_reference_donor_scores_zero():
    assert calculate_kdri_x(40, 170, 80, 1.0, diabetes=False, **UNKNOWN) == pytest.approx(0.0, abs=1e-12)


def test_age_crossing_fifty():
    at_49 = calculate_kdri_x(49, 170, 80, 1.0, **UNKNOWN)
    at_51 = calculate_kdri_x(51, 170, 80, 1.0, **UNKNOWN)
    assert at_51 - at_49 == pytest.approx(0.0128 * 2 + 0.0107 * 1, abs=1e-12)


def test_worked_example(calculator):
    # age 0.192 + 0.0535, height 0.0232, weight 0.0398, black 0.179, htn 0.126,
    # diabetes unknown 0.13 * 0.1474, cva 0.0881, creatinine 0.176 - 0.0627, dcd 0.133
    expected = 0.967062
    scalar = calculate_kdri_x(55, 165, 70, 1.8, black=True, hypertension=True, diabetes=None,
                              cerebrovascular_death=True, hcv_positive=False, non_heart_beating=True,
                              **UNKNOWN)
    record = calculator.score_record(donor())
    assert scalar == pytest.approx(expected, abs=1e-9)
    assert record['kdri_x'] == pytest.approx(expected, abs=1e-9)


def test_kdri_is_exp_of_linear_score(calculator, registry):
    scored = calculator.add_kdri(registry)
    defined = scored['kdri_x'].notna()
    np.testing.assert_array_equal(scored.loc[defined, 'kdri'], np.exp(scored.loc[defined, 'kdri_x']))
    np.testing.assert_allclose(scored.loc[defined, 'kdri_normalized'],
                               scored.loc[defined, 'kdri'] / CALIBRATION['scaling_factor'])


def test_add_kdri_is_deterministic_and_does_not_mutate(calculator, registry):
    before = registry.copy()
    first = calculator.add_kdri(registry)
    second = calculator.add_kdri(registry)
    pd.testing.assert_frame_equal(first, second)
    pd.testing.assert_frame_equal(registry, before)


def test_missing_creatinine_gives_undefined_score(calculator):
    df = pd.DataFrame([donor(DON_CREAT=np.nan), donor(DON_CREAT=np.nan, DON_AGE=20, DON_RACE=8)])
    scored = calculator.add_kdri(df)
    assert scored[['kdri_x', 'kdri', 'kdri_normalized']].isna().all().all()
    assert calculator.missing_creatinine(df).all()


def test_strict_scoring_raises_on_missing_creatinine(calculator):
    with pytest.raises(MissingInputError):
        calculator.score_record(donor(DON_CREAT=None), strict=True)


def test_hypertension_missing_uses_unknown_multiplier(calculator):
    known_no = calculator.score_record(donor(DON_HTN=0))['kdri_x']
    missing = calculator.score_record(donor(DON_HTN=np.nan))['kdri_x']
    unknown_code = calculator.score_record(donor(DON_HTN=998))['kdri_x']
    assert missing - known_no == pytest.approx(0.1260 * CALIBRATION['htn_unknown_constant'])
    assert unknown_code == pytest.approx(missing)


def test_diabetes_non_positive_codes_share_unknown_multiplier(calculator):
    positive = calculator.score_record(donor(DON_HIST_DIAB=2))['kdri_x']
    no_history = calculator.score_record(donor(DON_HIST_DIAB=1))['kdri_x']
    unknown_code = calculator.score_record(donor(DON_HIST_DIAB=998))['kdri_x']
    assert no_history == pytest.approx(unknown_code)
    assert positive - unknown_code == pytest.approx(0.1300 * (1 - CALIBRATION['diab_unknown_constant']))


def test_diabetes_negative_codes_can_be_configured():
    config = build_config({'calibration': CALIBRATION, 'categories': {'diabetes_negative': [1]}})
    calc = KDRICalculator(config)
    no_history = calc.score_record(donor(DON_HIST_DIAB=1))['kdri_x']
    unknown_code = calc.score_record(donor(DON_HIST_DIAB=998))['kdri_x']
    assert unknown_code - no_history == pytest.approx(0.1300 * CALIBRATION['diab_unknown_constant'])


def test_codes_match_across_types(calculator):
    as_int = calculator.score_record(donor(DON_RACE=16, DON_ANTI_HCV='P'))['kdri_x']
    as_str = calculator.score_record(donor(DON_RACE='16', DON_ANTI_HCV='p'))['kdri_x']
    as_float = calculator.score_record(donor(DON_RACE=16.0, DON_ANTI_HCV='P'))['kdri_x']
    assert as_int == pytest.approx(as_str)
    assert as_int == pytest.approx(as_float)


def test_missing_calibration_is_rejected():
    with pytest.raises(ConfigurationError):
        KDRICalculator({'calibration': {'scaling_factor': 1.2}})
