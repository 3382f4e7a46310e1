import os

import pandas as pd
from click.testing import CliRunner

from comorbidity_network_lib import ComorbidityConfig, build_cohort, run_comorbidity_analysis
from comorbidity_network_lib.__main__ import main

COVARIATES = ('age_years', 'weight_lbs', 'purebred', 'sex_female_spayed')


def _frames_equal(first, second):
    for name in ('coefficients', 'probabilities', 'all_pairs', 'significant_pairs',
                 'directed_pairs', 'edges', 'nodes', 'excluded_units'):
        pd.testing.assert_frame_equal(getattr(first, name), getattr(second, name))


def test_pipeline_is_reproducible(covariate_cohort):
    config = ComorbidityConfig(covariates=COVARIATES, min_disease_count=1)
    first = run_comorbidity_analysis(covariate_cohort, config)
    second = run_comorbidity_analysis(covariate_cohort, config)
    _frames_equal(first, second)


def test_parallel_run_matches_serial(covariate_cohort):
    serial = run_comorbidity_analysis(covariate_cohort, ComorbidityConfig(covariates=COVARIATES, n_jobs=1))
    parallel = run_comorbidity_analysis(
        covariate_cohort, ComorbidityConfig(covariates=COVARIATES, n_jobs=2, pair_batch_size=1)
    )
    _frames_equal(serial, parallel)


def test_scenario_pipeline(overlapping_cohort, intercept_config):
    results = run_comorbidity_analysis(overlapping_cohort, intercept_config)
    assert len(results.all_pairs) == 1
    assert len(results.significant_pairs) == 1
    assert results.edges[['source_id', 'target_id']].values.tolist() == [['A', 'B']]
    assert results.directed_pairs.empty
    assert results.summary()['n_significant_pairs'] == 1


def test_temporal_stage_and_missing_dates(temporal_frame):
    cohort = build_cohort(temporal_frame, covariates=(), id_column='dog_id')
    config = ComorbidityConfig(covariates=(), min_disease_count=1, window_sizes=(6, 12))
    results = run_comorbidity_analysis(cohort, config)

    assert len(results.significant_pairs) == 3
    assert set(results.directed_pairs['window_size']) == {6, 12}
    # only A/B has dates: two directions per window size
    assert len(results.directed_pairs) == 4
    assert len(results.temporal_skipped) == 4

    w12 = results.directed_pairs[results.directed_pairs['window_size'] == 12]
    sig = w12[w12['significant']]
    assert sig[['source', 'target']].values.tolist() == [['condition_A', 'condition_B']]

    stages = results.excluded_units['stage'].value_counts().to_dict()
    assert stages == {'temporal_w6': 2, 'temporal_w12': 2}
    assert set(results.directed_edges['source_id']) == {'A'}


def test_failed_model_is_reported_and_run_completes(covariate_frame):
    frame = covariate_frame.assign(condition_never=0)
    cohort = build_cohort(frame, covariates=COVARIATES, id_column='dog_id', min_disease_count=0)
    results = run_comorbidity_analysis(cohort, ComorbidityConfig(covariates=COVARIATES))

    failed = results.excluded_units[results.excluded_units['stage'] == 'risk_model']
    assert failed['unit'].tolist() == ['condition_never']
    assert len(results.all_pairs) == 3
    assert not results.all_pairs[['disease1', 'disease2']].isin(['condition_never']).any().any()


def test_results_are_saved(tmp_path, temporal_frame):
    cohort = build_cohort(temporal_frame, covariates=(), id_column='dog_id')
    config = ComorbidityConfig(covariates=(), min_disease_count=1, analysis_type='test', window_sizes=(6, 12))
    run_comorbidity_analysis(cohort, config, save_dir=str(tmp_path))

    for name in ('coefficients_test.csv', 'probabilities_test.csv', 'all_pairs_test.csv',
                 'significant_pairs_test.csv', 'excluded_units_test.csv', 'nodes_test.csv',
                 'edges_test.csv', 'directed_pairs_test_w6.csv', 'directed_pairs_test_w12.csv',
                 'directed_edges_test.csv', 'temporal_skipped_test.csv'):
        assert os.path.isfile(tmp_path / name), name

    saved = pd.read_csv(tmp_path / 'significant_pairs_test.csv')
    assert saved['p_value_bonferroni'].is_monotonic_increasing


def test_cli_run(tmp_path, covariate_frame):
    data = tmp_path / 'cohort.csv'
    covariate_frame.to_csv(data, index=False)
    out = tmp_path / 'out'

    args = ['run', '--data', str(data), '--output', str(out), '--id-column', 'dog_id',
            '--min-count', '1', '--no-temporal', '--analysis-type', 'cli']
    for cov in COVARIATES:
        args += ['--covariate', cov]
    result = CliRunner().invoke(main, args)

    assert result.exit_code == 0, result.output
    assert 'n_pairs_tested: 3' in result.output
    assert os.path.isfile(out / 'all_pairs_cli.csv')


def test_cli_reports_input_errors(tmp_path, covariate_frame):
    data = tmp_path / 'cohort.csv'
    covariate_frame.to_csv(data, index=False)
    result = CliRunner().invoke(main, ['run', '--data', str(data), '--output', str(tmp_path / 'out'),
                                       '--covariate', 'not_a_column'])
    assert result.exit_code == 2
    assert 'not_a_column' in result.output
