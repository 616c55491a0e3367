import numpy as np
import pandas as pd
import pytest

from src.dca import net_benefit, net_benefit_at_threshold, plot_decision_curve, survival_odds
from src.errors import NumericDivergenceError
from src.threshold_sweep import sweep


@pytest.fixture
def sweep_df():
    cohort = pd.DataFrame({
        'kdpi': [10.0, 30.0, 60.0, 90.0],
        'time': [100.0, 5000.0, 200.0, 5000.0],
        'event': [1, 0, 1, 0],
    })
    return sweep(cohort, [20, 50, 80], horizon=1000)


def test_survival_odds():
    assert survival_odds(0.75) == pytest.approx(3.0)
    with pytest.raises(NumericDivergenceError):
        survival_odds(1.0)
    with pytest.raises(NumericDivergenceError):
        survival_odds(np.nan)


def test_net_benefit_formula():
    nb_model, nb_all = net_benefit_at_threshold(60.0, 10.0, 100, s_model=0.8, s_all=0.7)
    assert nb_model == pytest.approx((60.0 - 10.0 * 4.0) / 100)
    assert nb_all == pytest.approx(0.7 - 0.3 * 4.0)


def test_net_benefit_table(sweep_df):
    model_survival = pd.Series({20.0: 0.9, 50.0: 0.8, 80.0: 0.6})
    nb = net_benefit(sweep_df, model_survival, survival_all=0.5)

    assert (nb['nb_accept_none'] == 0.0).all()
    assert nb['valid'].all()
    row = nb.set_index('threshold').loc[50.0]
    # accept_survive = accept_fail = 1, N = 4, odds = 4
    assert row['nb_model'] == pytest.approx((1.0 - 1.0 * 4.0) / 4)
    assert row['nb_accept_all'] == pytest.approx(0.5 - 0.5 * 4.0)


def test_certain_survival_marks_threshold_invalid(sweep_df):
    model_survival = {20.0: 0.9, 50.0: 1.0, 80.0: 0.6}
    nb = net_benefit(sweep_df, model_survival, survival_all=0.5).set_index('threshold')

    assert not nb.loc[50.0, 'valid']
    assert nb.loc[50.0, 'status'].startswith('NumericDivergenceError')
    assert np.isnan(nb.loc[50.0, 'nb_model'])
    assert np.isnan(nb.loc[50.0, 'nb_accept_all'])
    assert nb.loc[20.0, 'valid']
    assert nb.loc[50.0, 'nb_accept_none'] == 0.0


def test_threshold_without_model_survival_is_invalid(sweep_df):
    nb = net_benefit(sweep_df, {20.0: 0.9}, survival_all=0.5).set_index('threshold')
    assert nb.loc[20.0, 'valid']
    assert not nb.loc[80.0, 'valid']


def test_plot_decision_curve(tmp_path):
    thresholds = np.arange(1, 100)
    out = plot_decision_curve(thresholds, np.linspace(0.5, -0.5, 99), np.full(99, 0.1), np.zeros(99),
                              label="Accept by KDPI", out_path=tmp_path / "dca.png")
    assert out.exists()
