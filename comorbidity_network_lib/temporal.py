"""
Temporal Directionality Analysis

For promoted comorbidity edges, tests in each direction whether one disease is
diagnosed before the other more often than the subjects' risk probabilities
predict. Every subject with both diagnoses contributes with a window weight
that discounts orderings separated by long gaps.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from .cohort import CohortData
from .exceptions import CohortInputError
from .multiple_testing import correct_pvalue_column
from .pair_tester import one_sided_z_test

logger = logging.getLogger(__name__)

DIRECTED_COLUMNS = [
    'source', 'target', 'window_size', 'n_subjects', 'expected', 'observed', 'variance',
    'z_score', 'p_value', 'p_value_bonferroni', 'significant',
]
SKIPPED_COLUMNS = ['disease1', 'disease2', 'window_size', 'reason']


def window_weight(months_between, window_size: int) -> np.ndarray:
    """
    Weight of an ordering given the gap (in months) between two diagnoses.

    1 for gaps within the window, otherwise (w/d) * (2 - w/d), which decreases
    towards 0 as the gap d grows.
    """
    gap = np.abs(np.asarray(months_between, dtype=float))
    ratio = np.divide(float(window_size), gap, out=np.ones_like(gap), where=gap > 0)
    return np.where(gap <= window_size, 1.0, ratio * (2.0 - ratio))


@dataclass
class TemporalResults:
    """
    Attributes:
        directed_pairs: two rows per analysed pair (one per direction)
        skipped: pairs with no subject having both diagnoses dated; absent from directed_pairs
    """
    directed_pairs: pd.DataFrame
    skipped: pd.DataFrame

    @property
    def significant(self) -> pd.DataFrame:
        return self.directed_pairs[self.directed_pairs['significant']].reset_index(drop=True)


def directional_statistics(occ_a, occ_b, year_a, month_a, year_b, month_b,
                           prob_a, prob_b, window_size: int) -> Optional[dict]:
    """
    Weighted expected/observed "first diagnosis" counts for both directions.

    Returns:
        None when no subject has both diseases with valid dates, else a dict
        with n_subjects and expected/variance/observed for A->B and B->A.
    """
    valid = (
        (np.asarray(occ_a) == 1) & (np.asarray(occ_b) == 1)
        & np.isfinite(year_a) & np.isfinite(month_a)
        & np.isfinite(year_b) & np.isfinite(month_b)
    )
    if not valid.any():
        return None

    time_a = year_a[valid] * 12 + month_a[valid]
    time_b = year_b[valid] * 12 + month_b[valid]
    weight = window_weight(time_b - time_a, window_size)
    a_first = time_a <= time_b  # same month counts as A first

    p_a, p_b = prob_a[valid], prob_b[valid]
    total = p_a + p_b
    q_a = np.divide(p_a, total, out=np.full_like(total, 0.5), where=total > 0)
    q_b = 1.0 - q_a

    wq_a, wq_b = q_a * weight, q_b * weight
    return {
        'n_subjects': int(valid.sum()),
        'expected_ab': wq_a.sum(),
        'variance_ab': (wq_a * (1.0 - wq_a)).sum(),
        'observed_ab': (a_first * weight).sum(),
        'expected_ba': wq_b.sum(),
        'variance_ba': (wq_b * (1.0 - wq_b)).sum(),
        'observed_ba': (~a_first * weight).sum(),
    }


def _analyze_pair(disease_a: str, disease_b: str, arrays: dict, window_size: int):
    stats = directional_statistics(window_size=window_size, **arrays)
    if stats is None:
        return None
    rows = []
    for source, target, key in ((disease_a, disease_b, 'ab'), (disease_b, disease_a, 'ba')):
        rows.append({
            'source': source,
            'target': target,
            'window_size': window_size,
            'n_subjects': stats['n_subjects'],
            'expected': stats[f'expected_{key}'],
            'observed': stats[f'observed_{key}'],
            'variance': max(stats[f'variance_{key}'], 0.0),
        })
    return rows


class TemporalDirectionalityAnalyzer:
    """Directional tests over promoted edges for one window size."""

    def __init__(self,
                 window_size: int = 12,
                 alpha: float = 0.01,
                 n_jobs: int = 1,
                 verbose: bool = False):
        """
        Initialize the analyzer.

        Args:
            window_size: Months within which an ordering keeps full weight
            alpha: Bonferroni-adjusted threshold over all directional tests
            n_jobs: joblib workers
            verbose: Show a progress bar
        """
        if window_size <= 0:
            raise ValueError(f"window_size ({window_size}) must be positive")
        self.window_size = int(window_size)
        self.alpha = alpha
        self.n_jobs = n_jobs
        self.verbose = verbose

    def analyze(self,
                pairs: pd.DataFrame,
                cohort: CohortData,
                probabilities: pd.DataFrame) -> TemporalResults:
        """
        Run the directional tests.

        Args:
            pairs: Promoted edges with 'disease1' and 'disease2' columns
            cohort: Cohort with diagnosis dates
            probabilities: subjects x diseases risk probabilities

        Returns:
            TemporalResults
        """
        if not cohort.has_dates:
            raise CohortInputError("Cohort has no diagnosis year/month columns")

        pair_list = list(zip(pairs['disease1'], pairs['disease2'])) if len(pairs) else []
        index = probabilities.index
        occ = cohort.occurrences.loc[index]
        years = cohort.diagnosis_years.loc[index]
        months = cohort.diagnosis_months.loc[index]

        def arrays_for(a, b):
            return {
                'occ_a': occ[a].to_numpy(), 'occ_b': occ[b].to_numpy(),
                'year_a': years[a].to_numpy(dtype=float), 'month_a': months[a].to_numpy(dtype=float),
                'year_b': years[b].to_numpy(dtype=float), 'month_b': months[b].to_numpy(dtype=float),
                'prob_a': probabilities[a].to_numpy(dtype=float),
                'prob_b': probabilities[b].to_numpy(dtype=float),
            }

        outputs = Parallel(n_jobs=self.n_jobs)(
            delayed(_analyze_pair)(a, b, arrays_for(a, b), self.window_size)
            for a, b in tqdm(pair_list, desc=f'Temporal (w={self.window_size})', disable=not self.verbose)
        )

        rows: List[dict] = []
        skipped = []
        for (a, b), out in zip(pair_list, outputs):
            if out is None:
                logger.warning(f"No subjects with dated diagnoses of both {a} and {b}; pair skipped")
                skipped.append({'disease1': a, 'disease2': b, 'window_size': self.window_size,
                                'reason': 'no subjects with valid diagnosis dates for both diseases'})
            else:
                rows.extend(out)

        directed = pd.DataFrame(rows, columns=DIRECTED_COLUMNS)
        directed['z_score'], directed['p_value'] = one_sided_z_test(
            directed['observed'], directed['expected'], directed['variance']
        )
        directed = correct_pvalue_column(directed, 'p_value', 'p_value_bonferroni', method='bonferroni')
        directed['significant'] = (directed['p_value_bonferroni'] < self.alpha).astype(bool)

        logger.info(
            f"Window {self.window_size}: {len(pair_list) - len(skipped)} pairs analysed, "
            f"{len(skipped)} skipped, {int(directed['significant'].sum())} significant directions"
        )
        return TemporalResults(
            directed_pairs=directed.reindex(columns=DIRECTED_COLUMNS),
            skipped=pd.DataFrame(skipped, columns=SKIPPED_COLUMNS),
        )
