"""
Risk Model Estimator

Fits one logistic (binomial GLM, logit link) model per disease against the
shared covariate matrix and turns each fit into per-subject probabilities
rescaled to the observed disease count. Coefficients and probabilities come
from the same fit.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from joblib import Parallel, delayed
from scipy.special import expit
from sklearn.preprocessing import StandardScaler
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning,
    PerfectSeparationError,
    PerfectSeparationWarning,
)
from tqdm import tqdm

from .cohort import CohortData
from .exceptions import ModelFitError, ZeroProbabilityMassError
from .multiple_testing import correct_pvalue_column

logger = logging.getLogger(__name__)


@dataclass
class DiseaseModelFit:
    """Outputs of a single disease model."""
    disease: str
    params: pd.Series
    std_err: pd.Series
    z_values: pd.Series
    p_values: pd.Series
    conf_int: pd.DataFrame
    probabilities: np.ndarray
    scale_factor: float
    n_positive: int


@dataclass
class RiskModelResults:
    """
    Results of fitting all disease models.

    Attributes:
        probabilities: subjects x fitted diseases, rescaled probabilities
        coefficients: one row per (disease, covariate term) with raw and BH p-values
        params: fitted diseases x terms (intercept included)
        scale_factors: observed count / raw probability sum, per disease
        failures: diseases whose model failed (disease, reason)
        covariate_audit: case counts per (disease, binary covariate) level
    """
    probabilities: pd.DataFrame
    coefficients: pd.DataFrame
    params: pd.DataFrame
    scale_factors: pd.Series
    failures: pd.DataFrame = field(default_factory=lambda: pd.DataFrame(columns=['disease', 'reason']))
    covariate_audit: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def fitted_diseases(self) -> List[str]:
        return list(self.probabilities.columns)


# =============================================================================
# Single-disease primitives
# =============================================================================

def rescale_probabilities(raw: np.ndarray, observed_count: float, disease: str) -> tuple:
    """
    Scale raw probabilities so they sum to the observed positive count.

    Returns:
        (scaled probabilities, scale factor)

    Raises:
        ZeroProbabilityMassError: if the raw probabilities sum to zero
    """
    total = float(np.sum(raw))
    if not np.isfinite(total) or total <= 0:
        raise ZeroProbabilityMassError(disease)
    factor = observed_count / total
    return raw * factor, factor


def fit_disease_model(disease: str, y: np.ndarray, design: pd.DataFrame,
                      max_iter: int = 100) -> DiseaseModelFit:
    """
    Fit disease ~ covariates and derive rescaled per-subject probabilities.

    Args:
        disease: Disease code (used in error messages)
        y: 0/1 outcome per subject
        design: Design matrix including the 'const' column
        max_iter: Maximum IRLS iterations

    Raises:
        ModelFitError: the model cannot be fitted for this disease
        ZeroProbabilityMassError: fitted probabilities sum to zero
    """
    y = np.asarray(y, dtype=float)
    if np.unique(y).size < 2:
        raise ModelFitError(disease, "outcome has no variation")

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always')
        try:
            result = sm.GLM(y, design, family=sm.families.Binomial()).fit(maxiter=max_iter)
        except (PerfectSeparationError, np.linalg.LinAlgError, ValueError) as err:
            raise ModelFitError(disease, str(err)) from err

    for w in caught:
        if issubclass(w.category, (ConvergenceWarning, PerfectSeparationWarning)):
            raise ModelFitError(disease, f"{w.category.__name__}: {w.message}")
    if not getattr(result, 'converged', True):
        raise ModelFitError(disease, f"did not converge in {max_iter} iterations")
    if not np.all(np.isfinite(result.params)):
        raise ModelFitError(disease, "non-finite coefficient estimates")

    linear = design.to_numpy(dtype=float) @ result.params.to_numpy(dtype=float)
    raw = expit(linear)
    n_positive = int(y.sum())
    scaled, factor = rescale_probabilities(raw, n_positive, disease)

    return DiseaseModelFit(
        disease=disease,
        params=result.params,
        std_err=result.bse,
        z_values=result.tvalues,
        p_values=result.pvalues,
        conf_int=result.conf_int(),
        probabilities=scaled,
        scale_factor=factor,
        n_positive=n_positive,
    )


def _fit_one(disease: str, y: np.ndarray, design: pd.DataFrame, max_iter: int):
    """Worker: isolates per-disease failures, lets fatal input errors propagate."""
    try:
        return fit_disease_model(disease, y, design, max_iter=max_iter)
    except ModelFitError as err:
        return err


# =============================================================================
# Covariate helpers
# =============================================================================

def _binary_columns(cov: pd.DataFrame) -> List[str]:
    return [c for c in cov.columns if set(np.unique(cov[c].values)).issubset({0.0, 1.0})]


def standardize_covariates(cov: pd.DataFrame) -> pd.DataFrame:
    """z-score continuous covariates; indicator columns are left as 0/1."""
    cov_scaled = cov.copy()
    binary = set(_binary_columns(cov))
    columns = [c for c in cov.columns if c not in binary and cov[c].std() > 0]
    if not columns:
        return cov_scaled
    scaler = StandardScaler()
    cov_scaled[columns] = scaler.fit_transform(cov[columns])
    return cov_scaled


def covariate_audit(cov: pd.DataFrame, occurrences: pd.DataFrame) -> pd.DataFrame:
    """
    Count cases in each level of every binary covariate, per disease.

    A level with zero cases (and at least one subject) flags quasi-separation risk.
    """
    rows = []
    for col in _binary_columns(cov):
        indicator = cov[col].to_numpy() == 1.0
        n_level1, n_level0 = int(indicator.sum()), int((~indicator).sum())
        cases1 = occurrences.to_numpy()[indicator].sum(axis=0)
        cases0 = occurrences.to_numpy()[~indicator].sum(axis=0)
        for disease, c1, c0 in zip(occurrences.columns, cases1, cases0):
            rows.append({
                'disease': disease,
                'covariate': col,
                'cases_level1': int(c1),
                'cases_level0': int(c0),
                'imbalanced': (n_level1 > 0 and c1 == 0) or (n_level0 > 0 and c0 == 0),
            })
    return pd.DataFrame(rows, columns=['disease', 'covariate', 'cases_level1', 'cases_level0', 'imbalanced'])


# =============================================================================
# Estimator
# =============================================================================

class RiskModelEstimator:
    """
    Fit-once owner of the per-disease risk models.

    Every disease uses the same formula, disease ~ all covariates, with no
    interactions or selection. Fits are independent and run in parallel.
    """

    def __init__(self,
                 covariates: Sequence[str] = None,
                 standardize: bool = False,
                 max_iter: int = 100,
                 alpha: float = 0.05,
                 n_jobs: int = 1,
                 verbose: bool = False):
        """
        Initialize the estimator.

        Args:
            covariates: Covariate columns (None = all columns of the cohort's covariates)
            standardize: z-score continuous covariates before fitting
            max_iter: Maximum IRLS iterations per model
            alpha: BH threshold for the coefficient 'significant' flag
            n_jobs: joblib workers
            verbose: Show a progress bar
        """
        self.covariates = None if covariates is None else list(covariates)
        self.standardize = standardize
        self.max_iter = max_iter
        self.alpha = alpha
        self.n_jobs = n_jobs
        self.verbose = verbose

    def design_matrix(self, cohort: CohortData) -> pd.DataFrame:
        """Covariates (optionally standardized) with a leading intercept column."""
        cov = cohort.covariates if self.covariates is None else cohort.covariates[self.covariates]
        if self.standardize:
            cov = standardize_covariates(cov)
        design = cov.astype(float).copy()
        design.insert(0, 'const', 1.0)
        return design

    def fit(self, cohort: CohortData, diseases: Sequence[str] = None) -> RiskModelResults:
        """
        Fit every disease model.

        Args:
            cohort: Validated cohort
            diseases: Subset of diseases (None = all cohort diseases)

        Returns:
            RiskModelResults; diseases whose fit failed are listed in failures
            and absent from probabilities/coefficients.
        """
        diseases = cohort.diseases if diseases is None else list(diseases)
        design = self.design_matrix(cohort)
        occ = cohort.occurrences

        outcomes = Parallel(n_jobs=self.n_jobs)(
            delayed(_fit_one)(d, occ[d].to_numpy(), design, self.max_iter)
            for d in tqdm(diseases, desc='Fitting risk models', disable=not self.verbose)
        )

        fits: Dict[str, DiseaseModelFit] = {}
        failures = []
        for disease, outcome in zip(diseases, outcomes):
            if isinstance(outcome, ModelFitError):
                logger.warning(str(outcome))
                failures.append({'disease': disease, 'reason': outcome.reason})
            else:
                fits[disease] = outcome

        fitted = [d for d in diseases if d in fits]
        probabilities = pd.DataFrame(
            {d: fits[d].probabilities for d in fitted}, index=occ.index, columns=fitted
        )
        over_one = probabilities.columns[(probabilities > 1).any()].tolist()
        if over_one:
            logger.warning(f"Rescaled probabilities exceed 1 for: {over_one}")

        params = pd.DataFrame({d: fits[d].params for d in fitted}).T.reindex(columns=design.columns)
        scale_factors = pd.Series({d: fits[d].scale_factor for d in fitted}, dtype=float)
        logger.info(f"Fitted {len(fitted)}/{len(diseases)} disease models")

        return RiskModelResults(
            probabilities=probabilities,
            coefficients=self._coefficient_table(fits, fitted),
            params=params,
            scale_factors=scale_factors,
            failures=pd.DataFrame(failures, columns=['disease', 'reason']),
            covariate_audit=covariate_audit(design.drop(columns='const'), occ[diseases]),
        )

    def _coefficient_table(self, fits: Dict[str, DiseaseModelFit], fitted: List[str]) -> pd.DataFrame:
        """One row per (disease, covariate term), BH-corrected across the whole table."""
        rows = []
        for disease in fitted:
            fit = fits[disease]
            for term in fit.params.index:
                if term == 'const':
                    continue
                rows.append({
                    'disease': disease,
                    'term': term,
                    'coef': fit.params[term],
                    'std_err': fit.std_err[term],
                    'z_value': fit.z_values[term],
                    'p_value': fit.p_values[term],
                    'ci_lower': fit.conf_int.loc[term, 0],
                    'ci_upper': fit.conf_int.loc[term, 1],
                    'odds_ratio': np.exp(fit.params[term]),
                })
        columns = ['disease', 'term', 'coef', 'std_err', 'z_value', 'p_value',
                   'ci_lower', 'ci_upper', 'odds_ratio']
        res = pd.DataFrame(rows, columns=columns)
        res = correct_pvalue_column(res, 'p_value', 'p_value_bh', method='fdr_bh')
        res['significant'] = (res['p_value_bh'] < self.alpha).fillna(False).astype(bool)
        return res
