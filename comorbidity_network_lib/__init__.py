"""
Comorbidity Network Analysis Library

Covariate-adjusted comorbidity network inference for cohort survey data using
the Poisson Binomial Approach to Comorbidity (PBC), with a temporal extension
that infers which of two comorbid conditions tends to be diagnosed first.

Quick Start:
    from comorbidity_network_lib import ComorbidityConfig, load_cohort, run_comorbidity_analysis

    config = ComorbidityConfig(
        analysis_type='unstrat',     # used in output file names
        alpha_pairs=0.001,           # Bonferroni threshold for undirected edges
        alpha_directed=0.01,         # Bonferroni threshold for directed edges
        window_sizes=(6, 12, 24)     # temporal windows in months
    )
    cohort = load_cohort('cleaned_cohort.csv', config, id_column='dog_id')
    results = run_comorbidity_analysis(
        cohort,
        config,
        frequencies='disease_frequencies.csv',
        save_dir='/path/to/output'
    )

Main Entry Points:
- run_comorbidity_analysis: Full pipeline
- ComorbidityConfig: Configuration dataclass for all analysis parameters
- load_cohort / build_cohort: Validated cohort inputs

Core Components:
- RiskModelEstimator: Per-disease logistic models and rescaled risk probabilities
- PairwiseComorbidityTester: Poisson-binomial pair tests with Bonferroni correction
- TemporalDirectionalityAnalyzer: Directional tests with window-weighted orderings
- assemble_network: Node and edge tables for graph tools
"""

# Main entry points (most users only need these)
from .analyze import ComorbidityResults, run_comorbidity_analysis, save_results
from .cohort import CohortData, build_cohort, load_cohort, load_disease_frequencies
from .config import ComorbidityConfig

# Core analysis components
from .exceptions import CohortInputError, ComorbidityError, ModelFitError, ZeroProbabilityMassError
from .multiple_testing import benjamini_hochberg_correction, bonferroni_correction
from .network import assemble_network, build_disease_annotations
from .pair_tester import PairwiseComorbidityTester
from .risk_model import RiskModelEstimator
from .temporal import TemporalDirectionalityAnalyzer, window_weight

__all__ = [
    # Main entry points
    'run_comorbidity_analysis',
    'ComorbidityConfig',
    'ComorbidityResults',
    'save_results',
    'CohortData',
    'build_cohort',
    'load_cohort',
    'load_disease_frequencies',

    # Core components
    'RiskModelEstimator',
    'PairwiseComorbidityTester',
    'TemporalDirectionalityAnalyzer',
    'window_weight',
    'bonferroni_correction',
    'benjamini_hochberg_correction',
    'assemble_network',
    'build_disease_annotations',

    # Errors
    'ComorbidityError',
    'CohortInputError',
    'ModelFitError',
    'ZeroProbabilityMassError',
]
