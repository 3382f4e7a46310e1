"""
Comorbidity Network Analysis - Main Entry Point.

Runs the staged pipeline: risk models -> pairwise comorbidity tests ->
temporal directionality -> network tables. Each stage is a function of
explicit inputs; per-unit failures are excluded and reported, fatal input
errors stop the run.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Union

import numpy as np
import pandas as pd

from .cohort import CohortData, load_disease_frequencies
from .config import ComorbidityConfig
from .network import assemble_network, build_disease_annotations
from .pair_tester import PAIR_COLUMNS, PairwiseComorbidityTester
from .risk_model import RiskModelEstimator
from .temporal import DIRECTED_COLUMNS, SKIPPED_COLUMNS, TemporalDirectionalityAnalyzer, TemporalResults

logger = logging.getLogger(__name__)

EXCLUDED_COLUMNS = ['stage', 'unit', 'reason']


def _empty(columns) -> pd.DataFrame:
    return pd.DataFrame(columns=columns)


@dataclass
class ComorbidityResults:
    """All output tables of one run."""
    coefficients: pd.DataFrame
    probabilities: pd.DataFrame
    covariate_audit: pd.DataFrame
    all_pairs: pd.DataFrame
    significant_pairs: pd.DataFrame
    directed_pairs: pd.DataFrame = field(default_factory=lambda: _empty(DIRECTED_COLUMNS))
    temporal_skipped: pd.DataFrame = field(default_factory=lambda: _empty(SKIPPED_COLUMNS))
    annotations: pd.DataFrame = field(default_factory=pd.DataFrame)
    nodes: pd.DataFrame = field(default_factory=pd.DataFrame)
    edges: pd.DataFrame = field(default_factory=pd.DataFrame)
    directed_edges: pd.DataFrame = field(default_factory=pd.DataFrame)
    excluded_units: pd.DataFrame = field(default_factory=lambda: _empty(EXCLUDED_COLUMNS))

    def summary(self) -> Dict[str, int]:
        directed_sig = int(self.directed_pairs['significant'].sum()) if len(self.directed_pairs) else 0
        return {
            'n_subjects': len(self.probabilities),
            'n_diseases_fitted': self.probabilities.shape[1],
            'n_pairs_tested': len(self.all_pairs),
            'n_significant_pairs': len(self.significant_pairs),
            'n_directed_tests': len(self.directed_pairs),
            'n_significant_directions': directed_sig,
            'n_excluded_units': len(self.excluded_units),
        }


def set_seed(seed) -> None:
    """Seed numpy's global generator (no-op for None)."""
    if seed is not None:
        np.random.seed(seed)


def temporal_exclusions(temporal: TemporalResults, window: int) -> List[dict]:
    """Skipped pairs and zero-variance directions of one window, as excluded-unit rows."""
    stage = f'temporal_w{window}'
    rows = [
        {'stage': stage, 'unit': f"{row['disease1']}|{row['disease2']}", 'reason': row['reason']}
        for _, row in temporal.skipped.iterrows()
    ]
    undefined = temporal.directed_pairs[temporal.directed_pairs['p_value'].isna()]
    rows.extend(
        {'stage': stage, 'unit': f"{row['source']}->{row['target']}", 'reason': 'zero variance'}
        for _, row in undefined.iterrows()
    )
    return rows


def run_comorbidity_analysis(
    cohort: CohortData,
    config: ComorbidityConfig = None,
    frequencies: Union[str, pd.DataFrame] = None,
    save_dir: str = None,
    verbose: bool = False
) -> ComorbidityResults:
    """
    Main entry point for the comorbidity network analysis.

    Args:
        cohort: Validated cohort (see cohort.build_cohort / cohort.load_cohort)
        config: Analysis configuration (uses defaults if None)
        frequencies: Disease crosswalk CSV path or DataFrame (optional)
        save_dir: Directory to save result tables (None = don't save)
        verbose: Show progress bars

    Returns:
        ComorbidityResults

    Example:
        >>> from comorbidity_network_lib import ComorbidityConfig, load_cohort, run_comorbidity_analysis
        >>> config = ComorbidityConfig(analysis_type='unstrat', window_sizes=(6, 12, 24))
        >>> cohort = load_cohort('cleaned_cohort.csv', config, id_column='dog_id')
        >>> results = run_comorbidity_analysis(cohort, config, frequencies='disease_frequencies.csv',
        ...                                    save_dir='results/networks')
    """
    if config is None:
        config = ComorbidityConfig()
    set_seed(config.random_seed)
    excluded = []

    logger.info("=" * 60)
    logger.info(f"Comorbidity Network Analysis ({config.analysis_type})")
    logger.info("=" * 60)

    # Step 1: per-disease risk models
    logger.info("[Step 1] Fitting per-disease risk models...")
    estimator = RiskModelEstimator(
        covariates=None,  # the cohort already holds exactly the configured covariates
        standardize=config.standardize_covariates,
        max_iter=config.max_iter,
        alpha=config.alpha_coefficients,
        n_jobs=config.n_jobs,
        verbose=verbose,
    )
    risk = estimator.fit(cohort)
    for _, row in risk.failures.iterrows():
        excluded.append({'stage': 'risk_model', 'unit': row['disease'], 'reason': row['reason']})

    # Step 2: pairwise comorbidity tests
    logger.info("[Step 2] Testing disease pairs...")
    tester = PairwiseComorbidityTester(
        alpha=config.alpha_pairs,
        min_expected=config.min_expected,
        batch_size=config.pair_batch_size,
        n_jobs=config.n_jobs,
        verbose=verbose,
    )
    if risk.probabilities.shape[1] < 2:
        logger.warning("Fewer than two diseases were fitted; no pairs to test")
    pair_results = tester.test(cohort.occurrences, risk.probabilities)
    for _, row in pair_results.excluded.iterrows():
        excluded.append({'stage': 'pair_test', 'unit': f"{row['disease1']}|{row['disease2']}",
                         'reason': row['reason']})

    # Step 3: temporal directionality on promoted edges
    directed_tables, skipped_tables = [], []
    if config.run_temporal and not cohort.has_dates:
        logger.warning("[Step 3] Skipped: cohort has no diagnosis date columns")
    elif config.run_temporal:
        logger.info("[Step 3] Temporal directionality on promoted edges...")
        for window in config.window_sizes:
            analyzer = TemporalDirectionalityAnalyzer(
                window_size=window, alpha=config.alpha_directed, n_jobs=config.n_jobs, verbose=verbose
            )
            temporal = analyzer.analyze(pair_results.significant_pairs, cohort, risk.probabilities)
            directed_tables.append(temporal.directed_pairs)
            skipped_tables.append(temporal.skipped)
            excluded.extend(temporal_exclusions(temporal, window))

    directed = pd.concat(directed_tables, ignore_index=True) if directed_tables else _empty(DIRECTED_COLUMNS)
    skipped = pd.concat(skipped_tables, ignore_index=True) if skipped_tables else _empty(SKIPPED_COLUMNS)

    # Step 4: network tables
    logger.info("[Step 4] Assembling network tables...")
    if frequencies is not None:
        frequencies = load_disease_frequencies(frequencies)
    annotations = build_disease_annotations(cohort.diseases, frequencies, prevalence=cohort.prevalence())
    network = assemble_network(pair_results.significant_pairs, annotations, directed)

    results = ComorbidityResults(
        coefficients=risk.coefficients,
        probabilities=risk.probabilities,
        covariate_audit=risk.covariate_audit,
        all_pairs=pair_results.all_pairs,
        significant_pairs=pair_results.significant_pairs,
        directed_pairs=directed,
        temporal_skipped=skipped,
        annotations=annotations,
        nodes=network.nodes,
        edges=network.edges,
        directed_edges=network.directed_edges,
        excluded_units=pd.DataFrame(excluded, columns=EXCLUDED_COLUMNS),
    )

    for key, value in results.summary().items():
        logger.info(f"  {key}: {value}")
    if len(results.excluded_units):
        counts = results.excluded_units['stage'].value_counts().to_dict()
        logger.warning(f"Excluded units by stage: {counts}")

    if save_dir and config.save_results:
        save_results(results, save_dir, config.analysis_type)

    return results


def save_results(results: ComorbidityResults, save_dir: str, analysis_type: str = 'unstrat') -> Dict[str, str]:
    """
    Save result tables as CSV.

    Files are named <table>_<analysis_type>.csv; directed tables are split per
    window size as directed_pairs_<analysis_type>_w<window>.csv.

    Returns:
        Mapping table name -> written path
    """
    os.makedirs(save_dir, exist_ok=True)
    written = {}

    def write(name, df, index=False, suffix=''):
        path = os.path.join(save_dir, f"{name}_{analysis_type}{suffix}.csv")
        df.to_csv(path, index=index)
        written[name + suffix] = path

    write('coefficients', results.coefficients)
    write('probabilities', results.probabilities, index=True)
    write('covariate_audit', results.covariate_audit)
    write('all_pairs', results.all_pairs.reindex(columns=PAIR_COLUMNS))
    write('significant_pairs', results.significant_pairs.reindex(columns=PAIR_COLUMNS))
    write('excluded_units', results.excluded_units)

    if len(results.edges) or len(results.nodes):
        write('nodes', results.nodes)
        write('edges', results.edges)

    if len(results.directed_pairs):
        for window, group in results.directed_pairs.groupby('window_size'):
            write('directed_pairs', group, suffix=f"_w{int(window)}")
        write('directed_edges', results.directed_edges)
    if len(results.temporal_skipped):
        write('temporal_skipped', results.temporal_skipped)

    logger.info(f"Saved {len(written)} tables to {save_dir}")
    return written
