import numpy as np
import pandas as pd
import pytest

from comorbidity_network_lib.multiple_testing import (
    benjamini_hochberg_correction,
    bonferroni_correction,
    correct_pvalue_column,
)


def test_bonferroni_multiplies_and_caps():
    raw = np.array([0.0001, 0.004, 0.3, 0.02])
    adjusted = bonferroni_correction(raw)
    assert np.allclose(adjusted, np.minimum(1, raw * len(raw)))


def test_bh_step_up_values():
    adjusted = benjamini_hochberg_correction([0.01, 0.04, 0.03, 0.005])
    assert np.allclose(adjusted, [0.02, 0.04, 0.04, 0.02])


def test_bh_monotone_in_sorted_order():
    rng = np.random.default_rng(3)
    raw = rng.uniform(size=200) ** 3
    adjusted = benjamini_hochberg_correction(raw)
    order = np.argsort(raw)
    assert np.all(np.diff(adjusted[order]) >= -1e-15)
    assert np.all(adjusted >= raw - 1e-15)
    assert np.all(adjusted <= 1)


def test_bh_flags_only_tiny_subset():
    raw = np.concatenate([np.full(5, 1e-12), np.full(95, 0.99)])
    adjusted = benjamini_hochberg_correction(raw)
    for threshold in (0.001, 0.01, 0.05, 0.1):
        assert np.flatnonzero(adjusted < threshold).tolist() == [0, 1, 2, 3, 4]


@pytest.mark.parametrize("correction", [bonferroni_correction, benjamini_hochberg_correction])
def test_empty_and_single_inputs_are_unchanged(correction):
    assert correction([]).size == 0
    assert correction([0.2]).tolist() == [0.2]


def test_column_correction_skips_undefined_pvalues():
    df = pd.DataFrame({'p_value': [0.01, np.nan, 0.02, np.inf]})
    res = correct_pvalue_column(df, 'p_value', 'p_adj', method='bonferroni')

    # only the two finite values form the family
    assert res['p_adj'].iloc[0] == pytest.approx(0.02)
    assert res['p_adj'].iloc[2] == pytest.approx(0.04)
    assert np.isnan(res['p_adj'].iloc[1])
    assert np.isnan(res['p_adj'].iloc[3])
    assert 'p_adj' not in df.columns


def test_column_correction_rejects_unknown_method():
    with pytest.raises(ValueError):
        correct_pvalue_column(pd.DataFrame({'p_value': [0.1]}), method='holm')
