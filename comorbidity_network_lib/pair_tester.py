"""
Pairwise Comorbidity Tester (Poisson Binomial Approach to Comorbidity)

For every unordered disease pair, compares the observed number of subjects with
both diseases against the Poisson-binomial expectation built from the
subjects' individual risk probabilities, and runs a one-sided z-test.
"""

import logging
from dataclasses import dataclass
from itertools import combinations
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.stats import norm
from tqdm import tqdm

from .multiple_testing import correct_pvalue_column

logger = logging.getLogger(__name__)

PAIR_COLUMNS = [
    'disease1', 'disease2', 'observed', 'expected', 'variance', 'z_score', 'p_value',
    'p_value_bonferroni', 'positive_deviation', 'zero_variance', 'low_expected',
    'variance_exceeds_observed', 'significant',
]


@dataclass
class PairTestResults:
    """
    Attributes:
        all_pairs: one row per tested pair (significant or not)
        significant_pairs: promoted edges, sorted by adjusted p-value
        excluded: pairs left out of the correction family (disease1, disease2, reason)
    """
    all_pairs: pd.DataFrame
    significant_pairs: pd.DataFrame
    excluded: pd.DataFrame


def enumerate_pairs(n_diseases: int) -> List[Tuple[int, int]]:
    """All unordered index pairs (i < j), in disease-list order."""
    return list(combinations(range(n_diseases), 2))


def one_sided_z_test(observed, expected, variance) -> Tuple[np.ndarray, np.ndarray]:
    """
    Upper-tail z-test. Entries with zero variance get NaN z and p.

    Returns:
        (z_scores, p_values)
    """
    observed = np.asarray(observed, dtype=float)
    expected = np.asarray(expected, dtype=float)
    variance = np.asarray(variance, dtype=float)

    z = np.full(observed.shape, np.nan)
    valid = variance > 0
    z[valid] = (observed[valid] - expected[valid]) / np.sqrt(variance[valid])
    p = np.full(observed.shape, np.nan)
    p[valid] = norm.sf(z[valid])
    return z, p


def pair_statistics(occurrences: np.ndarray, probabilities: np.ndarray,
                    idx_i: np.ndarray, idx_j: np.ndarray) -> dict:
    """
    Observed, expected and Poisson-binomial variance for a batch of pairs.

    Args:
        occurrences: subjects x diseases 0/1 matrix
        probabilities: subjects x diseases risk probabilities
        idx_i, idx_j: column indices of the pairs in the batch

    Returns:
        dict of arrays: observed, expected, variance
    """
    both = occurrences[:, idx_i].astype(bool) & occurrences[:, idx_j].astype(bool)
    joint = probabilities[:, idx_i] * probabilities[:, idx_j]
    variance = (joint * (1.0 - joint)).sum(axis=0)
    return {
        'observed': both.sum(axis=0).astype(np.int64),
        'expected': joint.sum(axis=0),
        'variance': np.maximum(variance, 0.0),
    }


def _test_batch(occurrences: np.ndarray, probabilities: np.ndarray,
                idx_i: np.ndarray, idx_j: np.ndarray) -> dict:
    stats = pair_statistics(occurrences, probabilities, idx_i, idx_j)
    stats['z_score'], stats['p_value'] = one_sided_z_test(
        stats['observed'], stats['expected'], stats['variance']
    )
    stats['idx_i'] = idx_i
    stats['idx_j'] = idx_j
    return stats


class PairwiseComorbidityTester:
    """
    Tester for all C(k, 2) disease pairs.

    Pairs are reduced in batches; each batch is an independent joblib task that
    only reads the shared occurrence and probability matrices.
    """

    def __init__(self,
                 alpha: float = 0.001,
                 min_expected: float = 5.0,
                 batch_size: int = 256,
                 n_jobs: int = 1,
                 verbose: bool = False):
        """
        Initialize the tester.

        Args:
            alpha: Bonferroni-adjusted significance threshold for promotion
            min_expected: Expected count under which a pair is flagged low_expected
            batch_size: Pairs per parallel task
            n_jobs: joblib workers
            verbose: Show a progress bar
        """
        self.alpha = alpha
        self.min_expected = min_expected
        self.batch_size = batch_size
        self.n_jobs = n_jobs
        self.verbose = verbose

    def test(self,
             occurrences: pd.DataFrame,
             probabilities: pd.DataFrame,
             diseases: Sequence[str] = None) -> PairTestResults:
        """
        Test every pair of diseases.

        Args:
            occurrences: subjects x diseases 0/1
            probabilities: subjects x diseases rescaled risk probabilities
            diseases: Diseases to pair (None = probability columns)

        Returns:
            PairTestResults
        """
        diseases = list(probabilities.columns) if diseases is None else list(diseases)
        missing = [d for d in diseases if d not in occurrences.columns or d not in probabilities.columns]
        if missing:
            raise ValueError(f"Diseases missing from occurrence or probability matrix: {missing}")

        occ = occurrences.loc[probabilities.index, diseases].to_numpy(dtype=np.int8)
        prob = probabilities[diseases].to_numpy(dtype=float)

        pairs = np.array(enumerate_pairs(len(diseases)), dtype=int).reshape(-1, 2)
        batches = [pairs[s:s + self.batch_size] for s in range(0, len(pairs), self.batch_size)]
        logger.info(f"Testing {len(pairs)} pairs among {len(diseases)} diseases in {len(batches)} batches")

        outputs = Parallel(n_jobs=self.n_jobs)(
            delayed(_test_batch)(occ, prob, batch[:, 0], batch[:, 1])
            for batch in tqdm(batches, desc='Testing pairs', disable=not self.verbose)
        )

        all_pairs = self._assemble(outputs, diseases)
        all_pairs = self.apply_correction(all_pairs)

        excluded = all_pairs.loc[all_pairs['zero_variance'], ['disease1', 'disease2']].copy()
        excluded['reason'] = 'zero variance'
        if len(excluded):
            logger.warning(f"{len(excluded)} pairs have zero variance and were excluded from correction")

        significant = all_pairs[all_pairs['significant']].sort_values(
            'p_value_bonferroni', kind='mergesort'
        ).reset_index(drop=True)
        logger.info(f"{len(significant)} significant positive pairs (Bonferroni p < {self.alpha})")

        return PairTestResults(all_pairs=all_pairs, significant_pairs=significant,
                               excluded=excluded.reset_index(drop=True))

    def _assemble(self, outputs: List[dict], diseases: List[str]) -> pd.DataFrame:
        """Concatenate batch outputs into the all-pairs table."""
        def cat(key, dtype=float):
            if not outputs:
                return np.array([], dtype=dtype)
            return np.concatenate([o[key] for o in outputs]).astype(dtype)

        names = np.asarray(diseases, dtype=object)
        res = pd.DataFrame({
            'disease1': names[cat('idx_i', int)],
            'disease2': names[cat('idx_j', int)],
            'observed': cat('observed', np.int64),
            'expected': cat('expected'),
            'variance': cat('variance'),
            'z_score': cat('z_score'),
            'p_value': cat('p_value'),
        })
        res['positive_deviation'] = res['observed'] > res['expected']
        res['zero_variance'] = ~(res['variance'] > 0)
        res['low_expected'] = res['expected'] < self.min_expected
        res['variance_exceeds_observed'] = (res['observed'] > 0) & (res['variance'] > res['observed'])
        return res

    def apply_correction(self, all_pairs: pd.DataFrame) -> pd.DataFrame:
        """
        Bonferroni-correct the pair family and flag promoted edges.

        Zero-variance pairs carry NaN p-values, so they stay out of the family.
        """
        res = correct_pvalue_column(all_pairs, 'p_value', 'p_value_bonferroni', method='bonferroni')
        res['significant'] = (
            (res['p_value_bonferroni'] < self.alpha)
            & res['positive_deviation'].astype(bool)
            & ~res['zero_variance'].astype(bool)
        )
        return res.reindex(columns=PAIR_COLUMNS)
