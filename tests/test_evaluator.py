import numpy as np
import pandas as pd
import pytest

from enrollment_imbalance.evaluator import ClassificationEvaluator, ConfusionCounts, confusion_counts


Y_TRUE = np.array([1, 1, 1, 0, 0, 0, 0, 0, 0, 0])
Y_PRED = np.array([1, 1, 0, 1, 0, 0, 0, 0, 0, 0])


def test_confusion_counts():
    counts = confusion_counts(Y_TRUE, Y_PRED)

    assert counts == ConfusionCounts(tp=2, fp=1, tn=6, fn=1)
    assert counts.total == len(Y_TRUE)


def test_confusion_counts_with_one_predicted_class():
    counts = confusion_counts(Y_TRUE, np.zeros_like(Y_TRUE))
    assert counts == ConfusionCounts(tp=0, fp=0, tn=7, fn=3)


def test_metric_values():
    metrics = ClassificationEvaluator().compute_metrics(Y_TRUE, Y_PRED)

    assert metrics['accuracy'] == pytest.approx(0.8)
    assert metrics['sensitivity'] == pytest.approx(2 / 3)
    assert metrics['specificity'] == pytest.approx(6 / 7)
    assert metrics['balanced_accuracy'] == pytest.approx((2 / 3 + 6 / 7) / 2)
    assert metrics['precision'] == pytest.approx(2 / 3)
    assert metrics['npv'] == pytest.approx(6 / 7)
    assert metrics['f1'] == pytest.approx(2 / 3)
    assert metrics['kappa'] == pytest.approx((0.8 - 0.58) / 0.42)
    assert metrics['prevalence'] == pytest.approx(0.3)
    assert metrics['detection_rate'] == pytest.approx(0.2)
    assert metrics['detection_prevalence'] == pytest.approx(0.3)
    assert metrics['no_information_rate'] == pytest.approx(0.7)
    assert (metrics['tp'], metrics['fp'], metrics['tn'], metrics['fn']) == (2, 1, 6, 1)


def test_accuracy_interval_and_tests():
    metrics = ClassificationEvaluator().compute_metrics(Y_TRUE, Y_PRED)

    assert metrics['accuracy_ci_lower'] < metrics['accuracy'] < metrics['accuracy_ci_upper']
    assert 0.0 <= metrics['accuracy_ci_lower'] and metrics['accuracy_ci_upper'] <= 1.0
    assert 0.0 < metrics['accuracy_p_value'] <= 1.0
    # fp == fn, so the continuity-corrected statistic is 0.5
    assert metrics['mcnemar_p_value'] == pytest.approx(0.4795, abs=1e-4)


def test_zero_denominators_report_zero():
    metrics = ClassificationEvaluator().compute_metrics(Y_TRUE, np.zeros_like(Y_TRUE))

    assert metrics['precision'] == 0.0
    assert metrics['sensitivity'] == 0.0
    assert metrics['f1'] == 0.0
    assert metrics['specificity'] == 1.0
    assert metrics['kappa'] == pytest.approx(0.0)


def test_roc_auc_only_with_probabilities():
    evaluator = ClassificationEvaluator()
    proba = np.array([0.9, 0.8, 0.3, 0.6, 0.1, 0.2, 0.1, 0.3, 0.2, 0.1])

    assert 'roc_auc' not in evaluator.compute_metrics(Y_TRUE, Y_PRED)
    assert evaluator.compute_metrics(Y_TRUE, Y_PRED, proba)['roc_auc'] == pytest.approx(19.5 / 21)


def test_threshold_is_strict():
    evaluator = ClassificationEvaluator(threshold=0.5)
    assert evaluator.predict_labels([0.5, 0.51, 0.2, 0.99]).tolist() == [0, 1, 0, 1]


def test_print_confusion_matrix(capsys):
    ClassificationEvaluator().print_confusion_matrix(ConfusionCounts(tp=2, fp=1, tn=6, fn=1), title='Toy')
    out = capsys.readouterr().out

    assert 'Toy' in out
    assert 'n = 10' in out


def test_print_metrics(capsys):
    evaluator = ClassificationEvaluator()
    evaluator.print_metrics(evaluator.compute_metrics(Y_TRUE, Y_PRED))
    out = capsys.readouterr().out

    assert 'BALANCED_ACCURACY' in out
    assert 'ACCURACY 95% CI' in out


def test_plots_are_written(tmp_path):
    evaluator = ClassificationEvaluator(output_dir=tmp_path)

    evaluator.plot_confusion_matrix(Y_TRUE, Y_PRED, save_path=tmp_path / 'cm.png')
    counts = evaluator.plot_class_distribution(pd.Series(Y_TRUE), save_path=tmp_path / 'dist.png')

    results_df = pd.DataFrame([
        {'strategy': 'baseline', 'balanced_accuracy': 0.6, 'sensitivity': 0.3, 'specificity': 0.9, 'f1': 0.4},
        {'strategy': 'smote', 'balanced_accuracy': 0.7, 'sensitivity': 0.6, 'specificity': 0.8, 'f1': 0.5},
    ])
    evaluator.plot_strategy_comparison(results_df, save_path=tmp_path / 'nested' / 'compare.png')

    assert counts.tolist() == [7, 3]
    for name in ['cm.png', 'dist.png', 'nested/compare.png']:
        assert (tmp_path / name).stat().st_size > 0


def test_plots_default_to_output_dir(tmp_path):
    evaluator = ClassificationEvaluator(output_dir=tmp_path / 'figures')

    cm_path = evaluator.plot_confusion_matrix(Y_TRUE, Y_PRED)
    evaluator.plot_class_distribution(pd.Series(Y_TRUE))

    assert cm_path == tmp_path / 'figures' / 'confusion_matrix.png'
    assert cm_path.stat().st_size > 0
    assert (tmp_path / 'figures' / 'class_distribution.png').exists()
