import numpy as np
import pandas as pd

from src.outcome_deriver import derive_outcomes, follow_up_end, outcome_for_record


def record(**fields):
    base = {'REC_TX_DT': '2012-01-01', 'REC_FAIL_DT': None, 'TFL_DEATH_DT': None,
            'TFL_LAFUDATE': None, 'TFL_LASTATUS': 'A'}
    base.update(fields)
    return base


def test_failure_date_takes_priority():
    time, event = outcome_for_record(record(REC_FAIL_DT='2012-01-11', TFL_DEATH_DT='2012-02-01',
                                            TFL_LAFUDATE='2013-01-01'))
    assert time == 10.0
    assert event == 1


def test_death_without_failure_is_an_event():
    time, event = outcome_for_record(record(TFL_DEATH_DT='2012-01-31', TFL_LAFUDATE='2012-01-31'))
    assert time == 30.0
    assert event == 1


def test_last_contact_is_censored():
    time, event = outcome_for_record(record(TFL_LAFUDATE='2013-01-01'))
    assert time == 366.0
    assert event == 0


def test_deceased_status_is_an_event():
    _, event = outcome_for_record(record(TFL_LAFUDATE='2013-01-01', TFL_LASTATUS='D'))
    assert event == 1


def test_no_end_date_gives_undefined_time():
    time, event = outcome_for_record(record())
    assert np.isnan(time)
    assert event == 0


def test_derive_outcomes_adds_columns_without_mutating():
    df = pd.DataFrame([record(REC_FAIL_DT='2012-01-11'), record(TFL_LAFUDATE='2012-03-01')])
    before = df.copy()
    result = derive_outcomes(df)
    assert list(result['time']) == [10.0, 60.0]
    assert list(result['event']) == [1, 0]
    pd.testing.assert_frame_equal(df, before)


def test_follow_up_end_with_missing_columns():
    df = pd.DataFrame({'REC_TX_DT': ['2012-01-01'], 'TFL_LAFUDATE': ['2012-06-01']})
    end = follow_up_end(df)
    assert end.iloc[0] == pd.Timestamp('2012-06-01')
