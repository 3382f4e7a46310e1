import numpy as np
import pandas as pd
import pytest

from comorbidity_network_lib import CohortInputError, ComorbidityConfig, build_cohort, load_cohort
from comorbidity_network_lib.cohort import normalize_column_name, resolve_disease_columns


@pytest.fixture
def frame():
    return pd.DataFrame({
        'dog_id': ['a', 'b', 'c', 'd'],
        'age_years': [1.0, 5.0, 9.0, 12.0],
        'purebred': [1, 0, 1, 0],
        'condition_x': [1, 0, 1, 1],
        'condition_x_year': [2019, np.nan, 2020, 2021],
        'condition_x_month': [3, np.nan, 14, 7],
        'hs_cancer_types_y': [0, 0, 1, 0],
        'other_flag': [1, 1, 0, 0],
    })


def test_resolve_disease_columns_skips_date_columns(frame):
    resolved = resolve_disease_columns(frame.columns, ('condition_', 'hs_cancer_types_'), ('_year', '_month'))
    assert resolved == ['condition_x', 'hs_cancer_types_y']


def test_normalize_column_name():
    assert normalize_column_name('Code.from.DAP.data') == 'code_from_dap_data'
    assert normalize_column_name('Disease Category ') == 'disease_category'


def test_build_cohort(frame):
    cohort = build_cohort(frame, covariates=('age_years', 'purebred'), id_column='dog_id')
    assert cohort.diseases == ['condition_x', 'hs_cancer_types_y']
    assert cohort.subject_ids.tolist() == ['a', 'b', 'c', 'd']
    assert cohort.occurrences.dtypes.eq(np.int8).all()
    assert cohort.prevalence().to_dict() == {'condition_x': 3, 'hs_cancer_types_y': 1}
    assert cohort.has_dates
    # out-of-range months are treated as missing
    assert np.isnan(cohort.diagnosis_months.loc['c', 'condition_x'])
    assert cohort.diagnosis_years.loc['a', 'condition_x'] == 2019
    assert cohort.diagnosis_years['hs_cancer_types_y'].isna().all()


def test_explicit_disease_list_is_used(frame):
    cohort = build_cohort(frame, covariates=('age_years',), diseases=['other_flag'], id_column='dog_id')
    assert cohort.diseases == ['other_flag']
    assert not cohort.has_dates


def test_inclusion_floor_drops_rare_diseases(frame):
    cohort = build_cohort(frame, covariates=('age_years',), id_column='dog_id', min_disease_count=2)
    assert cohort.diseases == ['condition_x']


def test_nothing_above_floor_is_fatal(frame):
    with pytest.raises(CohortInputError):
        build_cohort(frame, covariates=('age_years',), id_column='dog_id', min_disease_count=10)


def test_missing_covariate_is_named(frame):
    with pytest.raises(CohortInputError, match='weight_lbs'):
        build_cohort(frame, covariates=('age_years', 'weight_lbs'), id_column='dog_id')


def test_covariate_with_missing_values(frame):
    frame.loc[1, 'age_years'] = np.nan
    with pytest.raises(CohortInputError, match='age_years'):
        build_cohort(frame, covariates=('age_years',), id_column='dog_id')


def test_unencoded_categorical_covariate(frame):
    frame['sex'] = ['M', 'F', 'F', 'M']
    with pytest.raises(CohortInputError, match='sex'):
        build_cohort(frame, covariates=('sex',), id_column='dog_id')


def test_non_binary_disease_flag(frame):
    frame.loc[0, 'condition_x'] = 2
    with pytest.raises(CohortInputError, match='condition_x'):
        build_cohort(frame, covariates=('age_years',), id_column='dog_id')


def test_missing_disease_flag(frame):
    frame['condition_x'] = frame['condition_x'].astype(float)
    frame.loc[0, 'condition_x'] = np.nan
    with pytest.raises(CohortInputError, match='zero-imputed'):
        build_cohort(frame, covariates=('age_years',), id_column='dog_id')


def test_duplicate_ids(frame):
    frame.loc[1, 'dog_id'] = 'a'
    with pytest.raises(CohortInputError, match='duplicates'):
        build_cohort(frame, covariates=('age_years',), id_column='dog_id')


def test_load_cohort_missing_file(tmp_path):
    with pytest.raises(CohortInputError, match='not found'):
        load_cohort(str(tmp_path / 'missing.csv'))


def test_load_cohort_from_csv(tmp_path, frame):
    path = tmp_path / 'cohort.csv'
    frame.to_csv(path, index=False)
    config = ComorbidityConfig(covariates=('age_years', 'purebred'), min_disease_count=1)
    cohort = load_cohort(str(path), config, id_column='dog_id')
    assert cohort.diseases == ['condition_x', 'hs_cancer_types_y']
    assert list(cohort.covariates.columns) == ['age_years', 'purebred']


@pytest.mark.parametrize("kwargs", [
    {'alpha_pairs': 0},
    {'alpha_directed': 1.5},
    {'window_sizes': ()},
    {'window_sizes': (12, -6)},
    {'n_jobs': 0},
    {'pair_batch_size': 0},
    {'min_disease_count': -1},
    {'covariates': ('age_years', 'age_years')},
])
def test_config_validation(kwargs):
    with pytest.raises(ValueError):
        ComorbidityConfig(**kwargs)


def test_config_accepts_single_window():
    assert ComorbidityConfig(window_sizes=24).window_sizes == (24,)
