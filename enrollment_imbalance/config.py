"""
Experiment Configuration
Defines data, split, model and strategy settings for the enrollment imbalance analysis.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Union


TARGET_COLUMN = 'enrollment'

# Identifier / reference columns that carry no predictive signal
DROP_COLUMNS = ['enrolling_stage', 'year', 'period', 'prospect_id', 'location']

BASELINE = 'baseline'
UNDERSAMPLING = 'undersampling'
SMOTE_OVERSAMPLING = 'smote'
WEIGHTED = 'weighted'

STRATEGIES = [BASELINE, UNDERSAMPLING, SMOTE_OVERSAMPLING, WEIGHTED]

DEFAULT_DATA_PATH = os.path.join('data', 'enrollment.xlsx')


@dataclass
class DataConfig:
    """Where the spreadsheet lives and how its columns are interpreted."""
    data_path: str
    target_column: str = TARGET_COLUMN
    drop_columns: List[str] = field(default_factory=lambda: list(DROP_COLUMNS))
    sheet_name: Union[int, str] = 0

    # Numeric columns with at most this many distinct values are categorical
    categorical_unique_threshold: int = 10
    # Categoricals above this many levels are target-encoded instead of one-hot
    high_cardinality_threshold: int = 50

    fail_on_unseen_levels: bool = False

    def validate(self):
        assert self.target_column, "Target column must be set"
        assert self.target_column not in self.drop_columns, "Target column cannot be dropped"
        assert self.categorical_unique_threshold >= 2, "Categorical threshold must be >= 2"
        assert self.high_cardinality_threshold > 2, "High-cardinality threshold must be > 2"


@dataclass
class SplitConfig:
    """Train/test partitioning."""
    test_size: float = 0.3
    random_seed: int = 42
    stratify: bool = True

    def validate(self):
        assert 0.0 < self.test_size < 1.0, "Test size must be in (0, 1)"


@dataclass
class ModelConfig:
    """Logistic regression and sampler hyperparameters."""
    # None fits an unpenalized model (plain GLM)
    penalty: Optional[str] = None
    C: float = 1.0
    solver: str = 'lbfgs'
    max_iter: int = 1000

    # Probability above which a record is predicted as enrolled
    threshold: float = 0.5

    smote_k_neighbors: int = 5

    def validate(self):
        assert self.penalty in (None, 'l1', 'l2', 'elasticnet'), f"Unknown penalty: {self.penalty}"
        assert self.C > 0, "C must be positive"
        assert self.max_iter > 0, "max_iter must be positive"
        assert 0.0 < self.threshold < 1.0, "Threshold must be in (0, 1)"
        assert self.smote_k_neighbors >= 1, "SMOTE needs at least one neighbour"


@dataclass
class ExperimentConfig:
    """Complete experiment configuration."""
    data: DataConfig
    split: SplitConfig = field(default_factory=SplitConfig)
    model: ModelConfig = field(default_factory=ModelConfig)

    strategies: List[str] = field(default_factory=lambda: list(STRATEGIES))

    results_dir: str = './results'

    # MLflow tracking is opt-in
    track_with_mlflow: bool = False
    experiment_name: str = 'enrollment_imbalance'

    def validate(self):
        self.data.validate()
        self.split.validate()
        self.model.validate()

        assert self.strategies, "At least one strategy must be configured"
        unknown = [s for s in self.strategies if s not in STRATEGIES]
        assert not unknown, f"Unknown strategies: {unknown}"


def get_enrollment_config(data_path: Optional[str] = None) -> ExperimentConfig:
    """
    Default configuration for the enrollment dataset.

    The spreadsheet path is taken from the argument, then from the
    ENROLLMENT_DATA_PATH environment variable, then from data/enrollment.xlsx.
    """
    if data_path is None:
        data_path = os.getenv('ENROLLMENT_DATA_PATH', DEFAULT_DATA_PATH)

    return ExperimentConfig(
        data=DataConfig(data_path=data_path),
        split=SplitConfig(test_size=0.3, random_seed=42, stratify=True),
        model=ModelConfig(threshold=0.5, smote_k_neighbors=5),
    )


if __name__ == "__main__":
    config = get_enrollment_config()
    config.validate()

    print("=" * 80)
    print("ENROLLMENT IMBALANCE CONFIGURATION")
    print("=" * 80)
    print(f"  Data path:   {config.data.data_path}")
    print(f"  Target:      {config.data.target_column}")
    print(f"  Dropped:     {config.data.drop_columns}")
    print(f"  Test size:   {config.split.test_size}")
    print(f"  Seed:        {config.split.random_seed}")
    print(f"  Threshold:   {config.model.threshold}")
    print(f"  Strategies:  {config.strategies}")
    print("✓ Configuration validated")
