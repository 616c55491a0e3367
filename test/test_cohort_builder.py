import numpy as np
import pandas as pd
import pytest

from src.cohort_builder import ExclusionReport, build_analysis_cohort, filter_cohort
from src.errors import EmptyCohortError


def test_filter_window_and_age_are_inclusive():
    df = pd.DataFrame({
        'REC_TX_DT': ['2009-12-31', '2010-01-01', '2016-12-31', '2017-01-01', '2012-06-01', '2012-06-01'],
        'REC_AGE_AT_TX': [40, 40, 40, 40, 17, 18],
    })
    kept = filter_cohort(df, '2010-01-01', '2016-12-31', min_age=18)
    assert list(kept.index) == [1, 2, 5]


def test_filter_drops_unparseable_dates_and_missing_age():
    df = pd.DataFrame({'REC_TX_DT': ['not a date', '2012-01-01'], 'REC_AGE_AT_TX': [40, np.nan]})
    assert filter_cohort(df, '2010-01-01', '2016-12-31').empty


def test_filter_rejects_inverted_window():
    df = pd.DataFrame({'REC_TX_DT': ['2012-01-01'], 'REC_AGE_AT_TX': [40]})
    with pytest.raises(ValueError):
        filter_cohort(df, '2016-12-31', '2010-01-01')


def test_exclusion_report():
    report = ExclusionReport(10)
    report.record('missing donor creatinine', 3)
    report.record('missing follow-up', 0)
    frame = report.to_frame()
    assert frame['stage'].tolist() == ['input', 'missing donor creatinine', 'missing follow-up', 'remaining']
    assert frame['n_records'].tolist() == [10, 3, 0, 7]


def test_analysis_cohort(registry, calculator, percentile_table, config):
    cohort, report = build_analysis_cohort(registry, calculator, percentile_table, config)

    assert report.n_input == len(registry)
    assert report.n_remaining == len(cohort)
    assert report.counts['outside window or under minimum age'] > 0
    assert report.counts['missing donor creatinine'] > 0

    assert cohort[['kdri_x', 'kdri', 'kdri_normalized', 'time', 'kdpi']].notna().all().all()
    assert (cohort['time'] >= 0).all()
    assert set(cohort['event'].unique()) <= {0, 1}

    tx = pd.to_datetime(cohort['REC_TX_DT'])
    assert tx.min() >= pd.Timestamp('2010-01-01')
    assert tx.max() <= pd.Timestamp('2016-12-31')
    assert (cohort['REC_AGE_AT_TX'] >= 18).all()


def test_records_outside_table_are_excluded(registry, calculator, percentile_table, config):
    narrow = percentile_table.iloc[10:90].reset_index(drop=True)
    cohort, report = build_analysis_cohort(registry, calculator, narrow, config)
    assert report.counts['KDRI outside percentile table'] > 0
    assert cohort['kdpi'].between(10, 89).all()


def test_empty_cohort_is_fatal(registry, calculator, percentile_table, config):
    config['cohort']['start_date'] = '2030-01-01'
    config['cohort']['end_date'] = '2031-01-01'
    with pytest.raises(EmptyCohortError):
        build_analysis_cohort(registry, calculator, percentile_table, config)
