import numpy as np
import pandas as pd
from pathlib import Path

from src.analysis import run_kdpi_dca
from src.dca import NET_BENEFIT_COLUMNS
from src.threshold_sweep import RESULT_COLUMNS


def test_full_run(registry, percentile_table, config):
    outputs = run_kdpi_dca(registry, percentile_table, config)

    results = outputs['threshold_results']
    nb = outputs['net_benefit']
    assert list(results.columns) == RESULT_COLUMNS
    assert list(nb.columns) == NET_BENEFIT_COLUMNS
    assert results['threshold'].tolist() == list(np.arange(1.0, 100.0))
    assert (nb['nb_accept_none'] == 0.0).all()
    assert nb['valid'].all()
    assert 0 < outputs['survival_all'] < 1
    assert outputs['model'].coefficient > 0


def test_rerun_is_identical(registry, percentile_table, config):
    first = run_kdpi_dca(registry, percentile_table, config)
    second = run_kdpi_dca(registry, percentile_table, config)
    pd.testing.assert_frame_equal(first['threshold_results'], second['threshold_results'])
    pd.testing.assert_frame_equal(first['net_benefit'], second['net_benefit'])
    pd.testing.assert_frame_equal(first['model_survival'], second['model_survival'])


def test_outputs_are_written(registry, percentile_table, config, tmp_path):
    outputs = run_kdpi_dca(registry, percentile_table, config, output_path=tmp_path / 'out')
    for name in ('threshold_results', 'net_benefit', 'model_survival', 'exclusions',
                 'decision_curve', 'risk_survival_curve'):
        assert Path(outputs['files'][name]).exists()

    written = pd.read_csv(outputs['files']['net_benefit'])
    assert len(written) == len(outputs['net_benefit'])
