"""
Evaluation and Visualization
Confusion matrices, imbalance-aware metrics and plots shared by every strategy.
"""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from scipy.stats import beta, binomtest, chi2
from sklearn.metrics import cohen_kappa_score, confusion_matrix, roc_auc_score


# Set style
sns.set_style("whitegrid")
plt.rcParams['figure.figsize'] = (10, 6)
plt.rcParams['font.size'] = 11

CLASS_NAMES = ['Not enrolled', 'Enrolled']

COMPARISON_METRICS = ['balanced_accuracy', 'sensitivity', 'specificity', 'f1']


@dataclass
class ConfusionCounts:
    """Confusion matrix cells for positive class = enrolled."""
    tp: int
    fp: int
    tn: int
    fn: int

    @property
    def total(self) -> int:
        return self.tp + self.fp + self.tn + self.fn


def confusion_counts(y_true, y_pred, positive_label: int = 1) -> ConfusionCounts:
    negative_label = 1 - positive_label
    cm = confusion_matrix(y_true, y_pred, labels=[negative_label, positive_label])
    tn, fp, fn, tp = cm.ravel()
    return ConfusionCounts(tp=int(tp), fp=int(fp), tn=int(tn), fn=int(fn))


def _ratio(num: float, den: float) -> float:
    return float(num / den) if den > 0 else 0.0


class ClassificationEvaluator:
    """
    Scores thresholded predictions against the untouched test labels.

    Every strategy goes through the same instance methods so the numbers are
    comparable. Nothing is cached between calls.
    """

    def __init__(self, output_dir: Union[str, Path] = './results/figures', threshold: float = 0.5):
        self.output_dir = Path(output_dir)
        self.threshold = threshold

    def predict_labels(self, y_proba: np.ndarray) -> np.ndarray:
        """Enrolled when the probability exceeds the threshold."""
        return (np.asarray(y_proba) > self.threshold).astype(int)

    # ========================================================================
    # METRICS
    # ========================================================================

    def compute_metrics(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        y_proba: Optional[np.ndarray] = None
    ) -> Dict:
        """
        Compute the confusion matrix and all derived metrics.

        Ratios with an empty denominator are reported as 0.0.

        Returns:
            Dictionary of metrics (including the raw tp/fp/tn/fn counts)
        """
        y_true = np.asarray(y_true)
        y_pred = np.asarray(y_pred)
        counts = confusion_counts(y_true, y_pred)
        n = counts.total

        sensitivity = _ratio(counts.tp, counts.tp + counts.fn)
        specificity = _ratio(counts.tn, counts.tn + counts.fp)
        precision = _ratio(counts.tp, counts.tp + counts.fp)
        accuracy = _ratio(counts.tp + counts.tn, n)
        prevalence = _ratio(counts.tp + counts.fn, n)

        metrics = {
            'accuracy': accuracy,
            'balanced_accuracy': (sensitivity + specificity) / 2,
            'sensitivity': sensitivity,
            'specificity': specificity,
            'precision': precision,
            'npv': _ratio(counts.tn, counts.tn + counts.fn),
            'f1': _ratio(2 * precision * sensitivity, precision + sensitivity),
            'kappa': self._kappa(y_true, y_pred),
            'prevalence': prevalence,
            'detection_rate': _ratio(counts.tp, n),
            'detection_prevalence': _ratio(counts.tp + counts.fp, n),
            'no_information_rate': max(prevalence, 1 - prevalence),
        }
        metrics.update(self._accuracy_tests(counts, metrics['no_information_rate']))

        if y_proba is not None and len(np.unique(y_true)) == 2:
            metrics['roc_auc'] = float(roc_auc_score(y_true, y_proba))

        metrics.update(asdict(counts))
        return metrics

    @staticmethod
    def _kappa(y_true: np.ndarray, y_pred: np.ndarray) -> float:
        # Undefined when both vectors hold a single identical class
        if len(np.union1d(np.unique(y_true), np.unique(y_pred))) < 2:
            return 0.0
        return float(cohen_kappa_score(y_true, y_pred, labels=[0, 1]))

    @staticmethod
    def _accuracy_tests(counts: ConfusionCounts, nir: float) -> Dict:
        """
        Exact 95% accuracy interval, one-sided test of accuracy > NIR, and
        McNemar's test on the off-diagonal cells.
        """
        n = counts.total
        correct = counts.tp + counts.tn

        lower = beta.ppf(0.025, correct, n - correct + 1) if correct > 0 else 0.0
        upper = beta.ppf(0.975, correct + 1, n - correct) if correct < n else 1.0
        p_value = binomtest(correct, n, nir, alternative='greater').pvalue if n else 1.0

        discordant = counts.fp + counts.fn
        if discordant:
            statistic = (abs(counts.fp - counts.fn) - 1) ** 2 / discordant
            mcnemar = float(chi2.sf(statistic, df=1))
        else:
            mcnemar = 1.0

        return {
            'accuracy_ci_lower': float(lower),
            'accuracy_ci_upper': float(upper),
            'accuracy_p_value': float(p_value),
            'mcnemar_p_value': mcnemar,
        }

    def print_confusion_matrix(self, counts: ConfusionCounts, title: str = 'Confusion Matrix'):
        """Print a 2x2 table with predictions as rows and truth as columns."""
        print(f"\n{title}")
        print("-" * 44)
        print(f"{'':>16}{'Actual 0':>14}{'Actual 1':>14}")
        print(f"{'Predicted 0':>16}{counts.tn:>14}{counts.fn:>14}")
        print(f"{'Predicted 1':>16}{counts.fp:>14}{counts.tp:>14}")
        print("-" * 44)
        print(f"Positive class: 1 ({CLASS_NAMES[1]}), n = {counts.total}")

    def print_metrics(self, metrics: Dict):
        """Pretty print metrics."""
        print("\n" + "=" * 60)
        print("EVALUATION METRICS")
        print("=" * 60)

        for key, value in metrics.items():
            if key in ('tp', 'fp', 'tn', 'fn'):
                continue
            print(f"{key.upper():25s}: {value:.4f}")

        print(f"{'ACCURACY 95% CI':25s}: ({metrics['accuracy_ci_lower']:.4f}, "
              f"{metrics['accuracy_ci_upper']:.4f})")
        print("=" * 60)

    # ========================================================================
    # PLOTS
    # ========================================================================

    def _save(self, fig, save_path: Optional[Union[str, Path]], label: str, default_name: str) -> Path:
        """Write the figure to save_path, or to output_dir/default_name when none is given."""
        save_path = Path(save_path) if save_path else self.output_dir / default_name
        plt.tight_layout()
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"✓ Saved {label}: {save_path}")
        plt.close(fig)
        return save_path

    def plot_confusion_matrix(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        title: str = 'Confusion Matrix',
        save_path: Optional[Union[str, Path]] = None
    ):
        cm = confusion_matrix(y_true, y_pred, labels=[0, 1])

        fig, ax = plt.subplots(figsize=(8, 6))
        sns.heatmap(cm, annot=True, fmt='d', cmap='Blues', ax=ax,
                    xticklabels=CLASS_NAMES, yticklabels=CLASS_NAMES)
        ax.set_xlabel('Predicted')
        ax.set_ylabel('Actual')
        ax.set_title(title)

        return self._save(fig, save_path, 'confusion matrix', 'confusion_matrix.png')

    def plot_class_distribution(
        self,
        y: pd.Series,
        title: str = 'Enrollment Class Distribution',
        save_path: Optional[Union[str, Path]] = None
    ) -> pd.Series:
        """Bar chart of label counts, annotated with shares."""
        counts = pd.Series(y).value_counts().reindex([0, 1], fill_value=0)

        fig, ax = plt.subplots(figsize=(8, 6))
        bars = ax.bar(CLASS_NAMES, counts.values, color=['steelblue', 'darkorange'], alpha=0.8)
        total = counts.sum()
        for bar, count in zip(bars, counts.values):
            ax.annotate(f"{count} ({count / total:.1%})",
                        (bar.get_x() + bar.get_width() / 2, bar.get_height()),
                        ha='center', va='bottom')

        ax.set_ylabel('Count')
        ax.set_title(title)
        ax.grid(axis='y', alpha=0.3)

        self._save(fig, save_path, 'class distribution', 'class_distribution.png')
        return counts

    def plot_strategy_comparison(
        self,
        results_df: pd.DataFrame,
        metrics: Optional[List[str]] = None,
        baseline: Optional[str] = 'baseline',
        save_path: Optional[Union[str, Path]] = None
    ):
        """
        One horizontal bar panel per metric. Bars are green when they beat
        the baseline strategy and red otherwise.
        """
        metrics = metrics or COMPARISON_METRICS
        fig, axes = plt.subplots(2, 2, figsize=(16, 12))

        for ax, metric in zip(axes.flat, metrics):
            data = results_df.sort_values(metric, ascending=True)
            bars = ax.barh(data['strategy'], data[metric])

            has_baseline = baseline is not None and baseline in set(data['strategy'])
            if has_baseline:
                baseline_score = data.loc[data['strategy'] == baseline, metric].values[0]
                colors = ['green' if s > baseline_score else 'red' for s in data[metric]]
                for bar, color in zip(bars, colors):
                    bar.set_color(color)
                    bar.set_alpha(0.7)
                ax.axvline(x=baseline_score, color='blue', linestyle='--',
                           linewidth=2, label='Baseline', alpha=0.7)
                ax.legend()

            title = metric.replace('_', ' ').title()
            ax.set_xlabel(title)
            ax.set_title(f'{title} by Strategy')
            ax.grid(axis='x', alpha=0.3)

        for ax in list(axes.flat)[len(metrics):]:
            ax.set_visible(False)

        return self._save(fig, save_path, 'strategy comparison', 'strategy_comparison.png')
