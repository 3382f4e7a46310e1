"""
Command-line interface for the comorbidity network pipeline.
"""

import logging
import sys

import click

from .analyze import run_comorbidity_analysis
from .cohort import load_cohort
from .config import ComorbidityConfig
from .exceptions import CohortInputError


@click.group()
def main():
    """Comorbidity network inference (Poisson Binomial Approach to Comorbidity)."""
    pass


@main.command(name="run")
@click.option("-d", "--data", "data_path", required=True, type=click.Path(exists=True, dir_okay=False),
              help="cleaned cohort CSV (one row per subject)")
@click.option("-f", "--frequencies", "frequencies_path", default=None, type=click.Path(exists=True, dir_okay=False),
              help="disease frequency/crosswalk CSV")
@click.option("-o", "--output", "output_dir", required=True, type=click.Path(file_okay=False),
              help="directory for result tables")
@click.option("-a", "--analysis-type", default="unstrat", show_default=True,
              help="dataset/stratum identifier used in output file names")
@click.option("--id-column", default=None, help="subject id column")
@click.option("-c", "--covariate", "covariates", multiple=True,
              help="covariate column (repeatable; default: built-in covariate set)")
@click.option("-w", "--window", "windows", multiple=True, type=int,
              help="temporal window in months (repeatable; default: 12)")
@click.option("--alpha-pairs", default=0.001, show_default=True, type=float)
@click.option("--alpha-directed", default=0.01, show_default=True, type=float)
@click.option("--min-count", default=60, show_default=True, type=int,
              help="minimum positive subjects per disease")
@click.option("--standardize/--no-standardize", default=False, show_default=True,
              help="z-score continuous covariates before fitting")
@click.option("--temporal/--no-temporal", default=True, show_default=True)
@click.option("-j", "--n-jobs", default=1, show_default=True, type=int)
@click.option("--seed", default=42, show_default=True, type=int)
@click.option("-v", "--verbose", is_flag=True, default=False)
def run(data_path, frequencies_path, output_dir, analysis_type, id_column, covariates, windows,
        alpha_pairs, alpha_directed, min_count, standardize, temporal, n_jobs, seed, verbose):
    """
    Fit risk models, test all disease pairs and write network tables.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    kwargs = {}
    if covariates:
        kwargs['covariates'] = tuple(covariates)
    if windows:
        kwargs['window_sizes'] = tuple(windows)
    try:
        config = ComorbidityConfig(
            analysis_type=analysis_type,
            alpha_pairs=alpha_pairs,
            alpha_directed=alpha_directed,
            min_disease_count=min_count,
            standardize_covariates=standardize,
            run_temporal=temporal,
            n_jobs=n_jobs,
            random_seed=seed,
            **kwargs,
        )
    except ValueError as err:
        raise click.BadParameter(str(err))

    try:
        cohort = load_cohort(data_path, config, id_column=id_column)
        results = run_comorbidity_analysis(
            cohort, config, frequencies=frequencies_path, save_dir=output_dir, verbose=verbose
        )
    except CohortInputError as err:
        click.echo(f"Input error: {err}", err=True)
        sys.exit(2)

    for key, value in results.summary().items():
        click.echo(f"{key}: {value}")
    click.echo(f"Saved tables to {output_dir}")


if __name__ == "__main__":
    main()
