import numpy as np
import pandas as pd
import pytest

from enrollment_imbalance.config import DataConfig, ExperimentConfig, SplitConfig


@pytest.fixture
def toy_frame():
    """10 records: 7 not enrolled, 3 enrolled."""
    return pd.DataFrame({
        'prospect_id': range(1, 11),
        'gpa': [2.1, 2.5, 2.8, 3.0, 3.1, 3.3, 3.5, 3.6, 3.8, 3.9],
        'program': ['arts', 'business', 'arts', 'nursing', 'business',
                    'arts', 'nursing', 'business', 'nursing', 'arts'],
        'enrollment': [0, 0, 0, 0, 0, 0, 0, 1, 1, 1],
    })


@pytest.fixture
def enrollment_frame():
    """400 prospects with 48 enrolled (12%), identifier columns included."""
    rng = np.random.default_rng(7)
    n = 400

    gpa = rng.normal(3.0, 0.5, n).round(2)
    test_score = rng.normal(1100, 150, n).round()
    distance = rng.exponential(50, n).round(1)
    residency = rng.choice(['in_state', 'out_of_state'], n, p=[0.7, 0.3])

    logit = (-2.5 + 1.5 * (gpa - 3.0) + 0.004 * (test_score - 1100)
             - 0.01 * (distance - 50) + 0.8 * (residency == 'in_state'))
    p = 1 / (1 + np.exp(-logit))
    enrolled = rng.choice(n, size=48, replace=False, p=p / p.sum())
    label = np.zeros(n, dtype=int)
    label[enrolled] = 1

    return pd.DataFrame({
        'prospect_id': np.arange(100000, 100000 + n),
        'enrolling_stage': rng.choice(['inquiry', 'applied', 'admitted'], n),
        'year': rng.choice([2021, 2022, 2023], n),
        'period': rng.choice(['fall', 'spring'], n),
        'location': rng.choice(['north', 'south', 'online'], n),
        'gpa': gpa,
        'test_score': test_score,
        'distance_km': distance,
        'program': rng.choice(['business', 'nursing', 'education', 'arts'], n),
        'residency': residency,
        'high_school': [f"HS_{i:03d}" for i in rng.integers(0, 80, n)],
        'enrollment': label,
    })


@pytest.fixture
def experiment_config(tmp_path):
    return ExperimentConfig(
        data=DataConfig(data_path=str(tmp_path / 'enrollment.csv')),
        split=SplitConfig(test_size=0.3, random_seed=42),
        results_dir=str(tmp_path / 'results'),
    )
