"""
Cohort Data Loading and Validation.

Builds the explicit, validated inputs shared by every pipeline stage:
covariate matrix, binary occurrence matrix, optional diagnosis dates and the
disease list. The disease list is resolved once here and threaded through
all downstream stages.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import ComorbidityConfig
from .exceptions import CohortInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CohortData:
    """
    Read-only inputs for one analysis run.

    Attributes:
        covariates: subjects x covariates, float, no missing values
        occurrences: subjects x diseases, 0/1 int8
        diagnosis_years: subjects x diseases, float with NaN for missing (optional)
        diagnosis_months: subjects x diseases, float with NaN for missing (optional)
    """
    covariates: pd.DataFrame
    occurrences: pd.DataFrame
    diagnosis_years: Optional[pd.DataFrame] = None
    diagnosis_months: Optional[pd.DataFrame] = None

    @property
    def diseases(self) -> List[str]:
        return list(self.occurrences.columns)

    @property
    def subject_ids(self) -> pd.Index:
        return self.occurrences.index

    @property
    def n_subjects(self) -> int:
        return len(self.occurrences)

    @property
    def has_dates(self) -> bool:
        return self.diagnosis_years is not None and self.diagnosis_months is not None

    def prevalence(self) -> pd.Series:
        """Number of positive subjects per disease."""
        return self.occurrences.sum(axis=0).astype(int)


# =============================================================================
# Column resolution
# =============================================================================

def normalize_column_name(name: str) -> str:
    """Normalize a header to snake_case (e.g. 'Code.from.DAP.data' -> 'code_from_dap_data')."""
    name = re.sub(r'[^0-9a-zA-Z]+', '_', str(name).strip())
    return name.strip('_').lower()


def resolve_disease_columns(
    columns: Iterable[str],
    prefixes: Sequence[str],
    exclude_suffixes: Sequence[str] = ()
) -> List[str]:
    """
    Resolve the explicit disease list from column name prefixes.

    Diagnosis date columns (ending with one of exclude_suffixes) are skipped.
    Column order of the input is preserved.
    """
    resolved = []
    for col in columns:
        col = str(col)
        if not any(col.startswith(prefix) for prefix in prefixes):
            continue
        if any(col.endswith(suffix) for suffix in exclude_suffixes if suffix):
            continue
        resolved.append(col)
    return resolved


# =============================================================================
# Validation
# =============================================================================

def validate_covariates(df: pd.DataFrame, covariates: Sequence[str]) -> pd.DataFrame:
    """
    Check covariates are present, numeric and complete.

    Returns:
        Covariate DataFrame as float64

    Raises:
        CohortInputError naming the offending column(s)
    """
    missing = [col for col in covariates if col not in df.columns]
    if missing:
        raise CohortInputError(f"Covariate columns not found: {missing}")

    cov = df[list(covariates)]
    unencoded = [
        col for col in covariates
        if not (pd.api.types.is_numeric_dtype(cov[col]) or pd.api.types.is_bool_dtype(cov[col]))
    ]
    if unencoded:
        raise CohortInputError(
            f"Covariates must be numeric or indicator-encoded; unencoded categorical columns: {unencoded}"
        )

    cov = cov.astype(float)
    with_nan = cov.columns[cov.isna().any()].tolist()
    if with_nan:
        raise CohortInputError(f"Covariates contain missing values: {with_nan}")
    not_finite = cov.columns[~np.isfinite(cov.values).all(axis=0)].tolist()
    if not_finite:
        raise CohortInputError(f"Covariates contain infinite values: {not_finite}")
    return cov


def validate_disease_flags(df: pd.DataFrame, diseases: Sequence[str]) -> pd.DataFrame:
    """
    Check disease flags are present, complete and binary.

    Returns:
        Occurrence DataFrame as int8
    """
    missing = [col for col in diseases if col not in df.columns]
    if missing:
        raise CohortInputError(f"Disease columns not found: {missing}")

    flags = df[list(diseases)]
    with_nan = flags.columns[flags.isna().any()].tolist()
    if with_nan:
        raise CohortInputError(f"Disease flags must be zero-imputed; missing values in: {with_nan}")

    non_binary = [
        col for col in diseases
        if not pd.to_numeric(flags[col], errors='coerce').astype(float).isin([0.0, 1.0]).all()
    ]
    if non_binary:
        raise CohortInputError(f"Disease flags must be 0/1; non-binary columns: {non_binary}")

    return flags.apply(pd.to_numeric).astype(float).astype(np.int8)


def _date_frame(df: pd.DataFrame, diseases: Sequence[str], suffix: str,
                valid_range: tuple = None) -> pd.DataFrame:
    """Collect <disease><suffix> columns; absent or out-of-range values become NaN."""
    frame = pd.DataFrame(np.nan, index=df.index, columns=list(diseases), dtype=float)
    for disease in diseases:
        col = f"{disease}{suffix}"
        if col not in df.columns:
            continue
        values = pd.to_numeric(df[col], errors='coerce').astype(float)
        if valid_range is not None:
            values = values.where(values.between(*valid_range))
        frame[disease] = values.values
    return frame


# =============================================================================
# Building / loading
# =============================================================================

def build_cohort(
    df: pd.DataFrame,
    covariates: Sequence[str],
    diseases: Sequence[str] = None,
    disease_prefixes: Sequence[str] = ('condition_', 'hs_cancer_types_'),
    id_column: str = None,
    min_disease_count: int = 0,
    year_suffix: str = '_year',
    month_suffix: str = '_month'
) -> CohortData:
    """
    Build a validated CohortData from a cleaned subject-level table.

    Args:
        df: One row per subject
        covariates: Covariate column names (may be empty for intercept-only models)
        diseases: Explicit disease columns. If None, resolved from disease_prefixes.
        disease_prefixes: Prefixes used when diseases is None
        id_column: Subject id column to use as index (None = keep df index)
        min_disease_count: Drop diseases with fewer positive subjects
        year_suffix / month_suffix: Diagnosis date column suffixes

    Returns:
        CohortData

    Raises:
        CohortInputError: on any missing/malformed input
    """
    if df is None or len(df) == 0:
        raise CohortInputError("Cohort table is empty")

    if id_column is not None:
        if id_column not in df.columns:
            raise CohortInputError(f"Subject id column '{id_column}' not found")
        if df[id_column].duplicated().any():
            raise CohortInputError(f"Subject id column '{id_column}' contains duplicates")
        df = df.set_index(id_column)

    if diseases is None:
        diseases = resolve_disease_columns(
            df.columns, disease_prefixes, exclude_suffixes=(year_suffix, month_suffix)
        )
    diseases = list(dict.fromkeys(diseases))
    overlap = set(diseases) & set(covariates)
    if overlap:
        raise CohortInputError(f"Columns used both as covariate and disease: {sorted(overlap)}")
    if not diseases:
        raise CohortInputError("No disease columns selected")

    cov = validate_covariates(df, covariates)
    occurrences = validate_disease_flags(df, diseases)

    counts = occurrences.sum(axis=0)
    dropped = counts.index[counts < min_disease_count].tolist()
    if dropped:
        logger.info(f"Dropping {len(dropped)} diseases below inclusion floor ({min_disease_count}): {dropped}")
        occurrences = occurrences.drop(columns=dropped)
    if occurrences.shape[1] == 0:
        raise CohortInputError(f"No disease reaches the inclusion floor of {min_disease_count} subjects")

    kept = list(occurrences.columns)
    has_dates = any(
        f"{d}{year_suffix}" in df.columns and f"{d}{month_suffix}" in df.columns for d in kept
    )
    years = months = None
    if has_dates:
        years = _date_frame(df, kept, year_suffix)
        months = _date_frame(df, kept, month_suffix, valid_range=(1, 12))

    logger.info(f"Cohort: {len(occurrences)} subjects, {len(kept)} diseases, {len(cov.columns)} covariates")
    return CohortData(
        covariates=cov,
        occurrences=occurrences,
        diagnosis_years=years,
        diagnosis_months=months,
    )


def load_cohort(
    path: str,
    config: ComorbidityConfig = None,
    id_column: str = None,
    diseases: Sequence[str] = None
) -> CohortData:
    """Load a cleaned cohort CSV and validate it against the configuration."""
    if config is None:
        config = ComorbidityConfig()
    if not os.path.isfile(path):
        raise CohortInputError(f"Cohort file not found: {path}")
    try:
        df = pd.read_csv(path)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as err:
        raise CohortInputError(f"Cohort file could not be parsed: {path} ({err})") from err

    return build_cohort(
        df,
        covariates=config.covariates,
        diseases=diseases,
        disease_prefixes=config.disease_prefixes,
        id_column=id_column,
        min_disease_count=config.min_disease_count,
        year_suffix=config.year_suffix,
        month_suffix=config.month_suffix,
    )


FREQUENCY_COLUMNS = ['code_from_dap_data', 'numerical_codes', 'disease_name', 'disease_category', 'frequency']


def load_disease_frequencies(path_or_df) -> pd.DataFrame:
    """
    Load the disease frequency/crosswalk table.

    Headers are normalized to snake_case; missing optional columns are added empty.
    The code column ('code_from_dap_data') is required.
    """
    if isinstance(path_or_df, pd.DataFrame):
        df = path_or_df.copy()
    else:
        if not os.path.isfile(path_or_df):
            raise CohortInputError(f"Disease frequency file not found: {path_or_df}")
        df = pd.read_csv(path_or_df)

    df.columns = [normalize_column_name(c) for c in df.columns]
    if 'code_from_dap_data' not in df.columns:
        raise CohortInputError(
            f"Disease frequency table needs a 'Code from DAP data' column; got {list(df.columns)}"
        )
    for col in FREQUENCY_COLUMNS:
        if col not in df.columns:
            df[col] = np.nan
    df['code_from_dap_data'] = df['code_from_dap_data'].astype(str)
    return df
