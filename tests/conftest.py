import numpy as np
import pandas as pd
import pytest

from comorbidity_network_lib import ComorbidityConfig, build_cohort


def _flags(n, positive):
    flags = np.zeros(n, dtype=int)
    flags[list(positive)] = 1
    return flags


@pytest.fixture
def intercept_config() -> ComorbidityConfig:
    """Intercept-only models: every subject gets the disease prevalence."""
    return ComorbidityConfig(covariates=(), min_disease_count=1, run_temporal=False, random_seed=0)


@pytest.fixture
def independent_cohort():
    """
    Scenario A: 100 subjects, A on 1-50, B on 26-75 (overlap of 25), no covariates.
    """
    df = pd.DataFrame({
        'dog_id': np.arange(1, 101),
        'condition_A': _flags(100, range(0, 50)),
        'condition_B': _flags(100, range(25, 75)),
    })
    return build_cohort(df, covariates=(), id_column='dog_id')


@pytest.fixture
def overlapping_cohort():
    """
    Scenario B: A on 50 subjects, B on 50 subjects, 45 of them shared.
    """
    df = pd.DataFrame({
        'dog_id': np.arange(1, 101),
        'condition_A': _flags(100, range(0, 50)),
        'condition_B': _flags(100, range(5, 55)),
    })
    return build_cohort(df, covariates=(), id_column='dog_id')


@pytest.fixture
def covariate_frame() -> pd.DataFrame:
    """Simulated cohort where age and weight drive three diseases."""
    rng = np.random.default_rng(7)
    n = 600
    age = rng.uniform(1, 15, n)
    weight = rng.normal(50, 15, n)
    purebred = rng.binomial(1, 0.5, n)
    spayed = rng.binomial(1, 0.4, n)

    def draw(lin):
        return rng.binomial(1, 1 / (1 + np.exp(-lin)))

    return pd.DataFrame({
        'dog_id': [f"D{i:04d}" for i in range(n)],
        'age_years': age,
        'weight_lbs': weight,
        'purebred': purebred,
        'sex_female_spayed': spayed,
        'condition_dental_calculus': draw(-2.0 + 0.25 * age),
        'condition_otitis': draw(-1.0 + 0.01 * (weight - 50)),
        'condition_atopy': draw(-1.5 + 0.5 * purebred),
    })


@pytest.fixture
def covariate_cohort(covariate_frame):
    return build_cohort(
        covariate_frame,
        covariates=('age_years', 'weight_lbs', 'purebred', 'sex_female_spayed'),
        id_column='dog_id',
    )


@pytest.fixture
def temporal_frame() -> pd.DataFrame:
    """
    Scenario C/D: 200 subjects. A, B and C all affect subjects 0-59. A is always
    diagnosed in January 2020 and B in January 2021 (12 months later). C has no
    diagnosis dates.
    """
    n = 200
    both = range(0, 60)
    df = pd.DataFrame({
        'dog_id': np.arange(n),
        'condition_A': _flags(n, both),
        'condition_B': _flags(n, both),
        'condition_C': _flags(n, both),
    })
    df['condition_A_year'] = np.where(df['condition_A'] == 1, 2020, np.nan)
    df['condition_A_month'] = np.where(df['condition_A'] == 1, 1, np.nan)
    df['condition_B_year'] = np.where(df['condition_B'] == 1, 2021, np.nan)
    df['condition_B_month'] = np.where(df['condition_B'] == 1, 1, np.nan)
    return df
