"""Shared synthetic player tables."""

import numpy as np
import pandas as pd
import pytest

from gate_experiment.data.cleaning import clean_user_records
from gate_experiment.data.schema import RAW_COLUMN_MAP


def _raw_frame(user_id, version, rounds, r1, r7):
    return pd.DataFrame({
        'userid': user_id,
        'version': version,
        'sum_gamerounds': rounds,
        'retention_1': r1,
        'retention_7': r7,
    })


@pytest.fixture
def tiny_raw():
    """Ten players, five per gate, in raw CSV column names."""
    return _raw_frame(
        user_id=list(range(1, 11)),
        version=['gate_30'] * 5 + ['gate_40'] * 5,
        rounds=[5, 10, 20, 40, 80, 3, 15, 25, 50, 60],
        r1=[False, True, True, True, True, False, False, True, True, True],
        r7=[False, True, False, False, True, False, True, False, True, False],
    )


@pytest.fixture
def tiny_records(tiny_raw):
    """The ten players in model column names, cleaned."""
    renamed = tiny_raw.rename(columns=RAW_COLUMN_MAP)
    return clean_user_records(renamed).data


def make_synthetic_raw(n=2000, n_outliers=5, seed=42):
    """Random players whose retention rises with rounds played and dips under gate_40."""
    np.random.seed(seed)
    treatment = np.random.binomial(1, 0.5, n)
    rounds = np.random.geometric(0.03, n) - 1

    logit_1 = -0.8 + 0.04 * rounds - 0.05 * treatment
    logit_7 = -3.0 + 0.035 * rounds - 0.2 * treatment
    r1 = np.random.binomial(1, 1 / (1 + np.exp(-logit_1)))
    r7 = np.random.binomial(1, 1 / (1 + np.exp(-logit_7)))

    # Bot-like players above the outlier threshold
    rounds[:n_outliers] = np.arange(1500, 1500 + n_outliers)

    return _raw_frame(
        user_id=np.arange(100, 100 + n),
        version=np.where(treatment == 1, 'gate_40', 'gate_30'),
        rounds=rounds,
        r1=r1.astype(bool),
        r7=r7.astype(bool),
    )


@pytest.fixture
def synthetic_raw():
    return make_synthetic_raw()


@pytest.fixture
def synthetic_records(synthetic_raw):
    renamed = synthetic_raw.rename(columns=RAW_COLUMN_MAP)
    return clean_user_records(renamed).data


@pytest.fixture
def write_csv(tmp_path):
    """Write a raw frame to a CSV under tmp_path and return the path."""
    def _write(df, name='cookie_cats.csv'):
        path = tmp_path / name
        df.to_csv(path, index=False)
        return path
    return _write
