"""
Configuration for Comorbidity Network Analysis.

Provides a dataclass with all configurable parameters for the analysis pipeline.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


# Sex x sterilization is encoded as indicators with neutered males as reference
DEFAULT_COVARIATES = (
    'age_years',
    'weight_lbs',
    'purebred',
    'sex_male_intact',
    'sex_female_spayed',
    'sex_female_intact',
)


@dataclass
class ComorbidityConfig:
    """
    Configuration for comorbidity network analysis.

    Attributes:
        # Dataset
        analysis_type: Dataset/stratum identifier, used in output file names
        covariates: Covariate columns used in every per-disease model
        disease_prefixes: Column prefixes identifying disease flags (resolved once at load)
        min_disease_count: Minimum positive subjects for a disease to be included
        year_suffix: Suffix of diagnosis-year columns (<disease><suffix>)
        month_suffix: Suffix of diagnosis-month columns (<disease><suffix>)

        # Risk model
        standardize_covariates: z-score continuous covariates before fitting
        max_iter: Maximum IRLS iterations per disease model
        alpha_coefficients: BH threshold for flagging covariate coefficients

        # Pair testing
        alpha_pairs: Bonferroni-adjusted threshold for undirected edges
        min_expected: Expected co-occurrence below which a pair is flagged for audit
        pair_batch_size: Number of pairs reduced per parallel task

        # Temporal extension
        run_temporal: Run the directional analysis on promoted edges
        window_sizes: Window sizes in months (one directed table per size)
        alpha_directed: Bonferroni-adjusted threshold for directed edges

        # Execution
        n_jobs: joblib workers (-1 = all cores)
        random_seed: Seed applied at pipeline start
        save_results: Write tables to save_dir when one is given
    """
    # Dataset
    analysis_type: str = 'unstrat'
    covariates: Tuple[str, ...] = DEFAULT_COVARIATES
    disease_prefixes: Tuple[str, ...] = ('condition_', 'hs_cancer_types_')
    min_disease_count: int = 60
    year_suffix: str = '_year'
    month_suffix: str = '_month'

    # Risk model
    standardize_covariates: bool = False
    max_iter: int = 100
    alpha_coefficients: float = 0.05

    # Pair testing
    alpha_pairs: float = 0.001
    min_expected: float = 5.0
    pair_batch_size: int = 256

    # Temporal extension
    run_temporal: bool = True
    window_sizes: Tuple[int, ...] = (12,)
    alpha_directed: float = 0.01

    # Execution
    n_jobs: int = 1
    random_seed: Optional[int] = 42
    save_results: bool = True

    def __post_init__(self):
        """Validate configuration values."""
        self.covariates = tuple(self.covariates)
        self.disease_prefixes = tuple(self.disease_prefixes)
        if isinstance(self.window_sizes, int):
            self.window_sizes = (self.window_sizes,)
        self.window_sizes = tuple(self.window_sizes)

        for name in ('alpha_pairs', 'alpha_directed', 'alpha_coefficients'):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ValueError(f"{name} ({value}) must be in (0, 1]")
        if not self.window_sizes:
            raise ValueError("window_sizes must contain at least one window")
        for window in self.window_sizes:
            if int(window) != window or window <= 0:
                raise ValueError(f"window size ({window}) must be a positive integer number of months")
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be non-zero (use -1 for all cores)")
        if self.pair_batch_size <= 0:
            raise ValueError(f"pair_batch_size ({self.pair_batch_size}) must be positive")
        if self.min_disease_count < 0:
            raise ValueError(f"min_disease_count ({self.min_disease_count}) must be non-negative")
        if self.max_iter <= 0:
            raise ValueError(f"max_iter ({self.max_iter}) must be positive")
        if len(set(self.covariates)) != len(self.covariates):
            raise ValueError(f"covariates contain duplicates: {list(self.covariates)}")
