"""
Multiple-Testing Correction

Bonferroni (family-wise) correction for comorbidity pair tests and
Benjamini-Hochberg (FDR) correction for per-covariate regression coefficients.
Both keep the input length and order.
"""

import numpy as np
import pandas as pd
from statsmodels.stats.multitest import multipletests


def bonferroni_correction(pvalues) -> np.ndarray:
    """
    Apply Bonferroni correction: min(1, p * n).

    Args:
        pvalues: List or array of p-values (no NaN)

    Returns:
        adjusted_pvalues: Array of adjusted p-values, same order
    """
    pvalues = np.asarray(pvalues, dtype=float)
    if pvalues.size <= 1:
        return pvalues.copy()
    _, adjusted, _, _ = multipletests(pvalues, method='bonferroni')
    return adjusted


def benjamini_hochberg_correction(pvalues) -> np.ndarray:
    """
    Apply Benjamini-Hochberg step-up correction to p-values.

    Adjusted values are monotone in the sorted raw p-values and capped at 1.

    Args:
        pvalues: List or array of p-values (no NaN)

    Returns:
        adjusted_pvalues: Array of adjusted p-values, same order
    """
    pvalues = np.asarray(pvalues, dtype=float)
    if pvalues.size <= 1:
        return pvalues.copy()
    _, adjusted, _, _ = multipletests(pvalues, method='fdr_bh', is_sorted=False, returnsorted=False)
    return adjusted


CORRECTIONS = {
    'bonferroni': bonferroni_correction,
    'fdr_bh': benjamini_hochberg_correction,
}


def correct_pvalue_column(
    df: pd.DataFrame,
    p_col: str = 'p_value',
    out_col: str = None,
    method: str = 'bonferroni'
) -> pd.DataFrame:
    """
    Add a corrected p-value column, ignoring rows whose p-value is not finite.

    Non-finite rows are left out of the family (so they cannot change its size
    or ordering) and receive NaN in the corrected column.

    Args:
        df: Results table
        p_col: Column with raw p-values
        out_col: Output column (default '<p_col>_<method>')
        method: 'bonferroni' or 'fdr_bh'

    Returns:
        Copy of df with the corrected column
    """
    if method not in CORRECTIONS:
        raise ValueError(f"Unknown correction method: {method}")
    if out_col is None:
        out_col = f"{p_col}_{method}"

    res = df.copy()
    p_series = pd.to_numeric(res[p_col], errors='coerce') if len(res) else pd.Series(dtype=float)
    pvals = p_series.to_numpy(dtype=float)
    keep = np.isfinite(pvals)

    adjusted = np.full(len(res), np.nan)
    if keep.any():
        adjusted[keep] = CORRECTIONS[method](pvals[keep])
    res[out_col] = adjusted
    return res
