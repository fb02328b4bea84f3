"""
Resampling Strategies
Undersampling, SMOTE oversampling and inverse-frequency class weighting,
each wrapped with logistic regression in an imblearn Pipeline.

imblearn.pipeline.Pipeline is used, NOT sklearn.pipeline.Pipeline: samplers
only run during fit, so the test partition is never resampled.
"""

from typing import Dict

import numpy as np
import pandas as pd
from imblearn.over_sampling import SMOTE
from imblearn.pipeline import Pipeline
from imblearn.under_sampling import RandomUnderSampler
from sklearn.base import clone
from sklearn.linear_model import LogisticRegression

from .config import BASELINE, SMOTE_OVERSAMPLING, UNDERSAMPLING, WEIGHTED, ModelConfig


def _class_counts(y) -> Dict[int, int]:
    values, counts = np.unique(np.asarray(y), return_counts=True)
    return {int(v): int(c) for v, c in zip(values, counts)}


def _require_two_classes(y):
    counts = _class_counts(y)
    if len(counts) != 2:
        raise ValueError(f"Resampling needs both classes, got counts {counts}")
    return counts


def _smote_neighbours(counts: Dict[int, int], k_neighbors: int) -> int:
    """Clamp k so SMOTE can find neighbours within a small minority class."""
    minority = min(counts.values())
    if minority < 2:
        raise ValueError("SMOTE needs at least two minority records")

    if k_neighbors >= minority:
        print(f"⚠ Reducing SMOTE k_neighbors from {k_neighbors} to {minority - 1} "
              f"(minority class has {minority} records)")
        return minority - 1
    return k_neighbors


def inverse_frequency_weights(y: pd.Series) -> pd.Series:
    """
    Weight each record by 1 / (count of its class).

    Every class then carries a total weight of 1.
    """
    y = pd.Series(y)
    counts = y.value_counts()
    return (1.0 / y.map(counts)).astype(float)


def build_classifier(model_config: ModelConfig, random_state: int = 42) -> LogisticRegression:
    return LogisticRegression(
        penalty=model_config.penalty,
        C=model_config.C,
        solver=model_config.solver,
        max_iter=model_config.max_iter,
        random_state=random_state
    )


def build_strategy_pipeline(
    strategy: str,
    transformer,
    model_config: ModelConfig,
    y_train: pd.Series,
    random_state: int = 42
) -> Pipeline:
    """
    Pipeline for one remediation strategy.

    - baseline:      features -> classifier
    - undersampling: features -> sampler -> classifier
                     (majority rows dropped without replacement)
    - smote:         features -> sampler -> classifier
                     (SMOTE distances need normalised features)
    - weighted:      features -> classifier, fitted with sample weights

    The features step always sees the whole training partition, so every
    encoder knows the levels check_unseen_levels() compared against.
    """
    features = clone(transformer)
    classifier = build_classifier(model_config, random_state)

    if strategy in (BASELINE, WEIGHTED):
        steps = [
            ('features', features),
            ('classifier', classifier)
        ]
    elif strategy == UNDERSAMPLING:
        _require_two_classes(y_train)
        steps = [
            ('features', features),
            ('sampler', RandomUnderSampler(sampling_strategy='auto', replacement=False,
                                           random_state=random_state)),
            ('classifier', classifier)
        ]
    elif strategy == SMOTE_OVERSAMPLING:
        k = _smote_neighbours(_require_two_classes(y_train), model_config.smote_k_neighbors)
        steps = [
            ('features', features),
            ('sampler', SMOTE(k_neighbors=k, random_state=random_state)),
            ('classifier', classifier)
        ]
    else:
        raise ValueError(f"Unknown strategy: {strategy}")

    return Pipeline(steps)


def fit_params_for(strategy: str, y_train: pd.Series) -> Dict:
    """Extra fit() keyword arguments a strategy needs."""
    if strategy == WEIGHTED:
        return {'classifier__sample_weight': inverse_frequency_weights(y_train).values}
    return {}


def resampled_class_counts(pipeline: Pipeline, y_train: pd.Series) -> Dict[int, int]:
    """
    Class counts the classifier was actually fitted on.

    Derived from the fitted sampler, without re-running it.
    """
    counts = _class_counts(y_train)
    if 'sampler' not in pipeline.named_steps:
        return counts

    sampler = pipeline.named_steps['sampler']
    if isinstance(sampler, RandomUnderSampler):
        return _class_counts(np.asarray(y_train)[sampler.sample_indices_])

    # SMOTE: sampling_strategy_ maps class -> number of synthetic records
    for label, n_new in sampler.sampling_strategy_.items():
        counts[int(label)] += int(n_new)
    return counts


def resampling_summary(before: Dict[int, int], after: Dict[int, int]):
    """Print class counts before and after resampling."""
    print("\nResampling Effect (Training Set Only):")
    print(f"  Original training set:")
    for label in sorted(before):
        print(f"    Class {label}: {before[label]}")
    print(f"    Ratio: {before.get(1, 0) / max(before.get(0, 0), 1):.4f}")

    print(f"  After resampling:")
    for label in sorted(after):
        print(f"    Class {label}: {after[label]}")
    print(f"    Ratio: {after.get(1, 0) / max(after.get(0, 0), 1):.4f}")
