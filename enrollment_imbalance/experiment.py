"""
Enrollment Imbalance Experiment Runner
Compares imbalance remediation strategies for logistic regression on the
enrollment dataset.

This script shows:
1. Data loading and preparation (column controls, label coding, stratified split)
2. Class distribution chart
3. One branch per strategy (baseline, undersampling, SMOTE, class weighting)
4. Confusion matrix and metric table per branch
5. Strategy comparison table and plot
6. Optional MLflow tracking
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

import mlflow
import numpy as np
import pandas as pd

from .config import ExperimentConfig, get_enrollment_config
from .decorators import timer
from .evaluator import ClassificationEvaluator, ConfusionCounts
from .preprocessing import EnrollmentPreprocessor
from .samplers import (
    build_strategy_pipeline,
    fit_params_for,
    resampled_class_counts,
    resampling_summary,
)


class ImbalanceExperiment:
    """
    Runs every configured strategy on one shared train/test split.

    Each branch clones the unfitted feature transformer, fits its own
    pipeline on the training partition, and is scored on the untouched test
    partition with the shared evaluator.
    """

    def __init__(self, config: ExperimentConfig, results_dir: Optional[str] = None):
        config.validate()
        self.config = config
        self.results_dir = Path(results_dir or config.results_dir)

        self.figures_dir = self.results_dir / 'figures'
        self.metrics_dir = self.results_dir / 'metrics'
        for d in [self.figures_dir, self.metrics_dir]:
            d.mkdir(parents=True, exist_ok=True)

        self.preprocessor = EnrollmentPreprocessor.from_config(config)
        self.evaluator = ClassificationEvaluator(
            output_dir=self.figures_dir,
            threshold=config.model.threshold
        )

        # Storage for results
        self.results = {}
        self.artifacts: List[Path] = []

    def load_and_split(self, df: Optional[pd.DataFrame] = None) -> Dict:
        """
        Load the dataset (unless a frame is given) and split it.

        Returns:
            Dictionary with the train/test partitions
        """
        print("\n" + "=" * 80)
        print(f"EXPERIMENT: {self.config.experiment_name.upper()}")
        print("=" * 80)

        if df is None:
            df = self.preprocessor.load_dataset(self.config.data.data_path)

        data = self.preprocessor.fit_split(df)
        data['transformer'] = self.preprocessor.build_feature_transformer()

        y_all = pd.concat([data['y_train'], data['y_test']])
        distribution_path = self.figures_dir / 'class_distribution.png'
        counts = self.evaluator.plot_class_distribution(y_all, save_path=distribution_path)
        self.artifacts.append(distribution_path)

        self.results['data_info'] = {
            'n_records': data['n_records'],
            'train_size': len(data['X_train']),
            'test_size': len(data['X_test']),
            'class_counts': {str(k): int(v) for k, v in counts.items()},
            'numeric_features': data['numeric_features'],
            'categorical_features': data['categorical_features'],
            'high_cardinality_features': data['high_cardinality_features'],
            'unseen_levels': {
                col: [str(level) for level in levels]
                for col, levels in data['unseen_levels'].items()
            }
        }

        return data

    @timer
    def fit_strategy(self, strategy: str, data: Dict):
        """Build and fit the pipeline for one strategy on the training partition."""
        pipeline = build_strategy_pipeline(
            strategy,
            data['transformer'],
            self.config.model,
            data['y_train'],
            random_state=self.config.split.random_seed
        )
        pipeline.fit(data['X_train'], data['y_train'], **fit_params_for(strategy, data['y_train']))
        return pipeline

    def run_strategy(self, strategy: str, data: Dict) -> Dict:
        """Fit, predict and score one strategy."""
        print("\n" + "=" * 80)
        print(f"STRATEGY: {strategy.upper()}")
        print("=" * 80)

        pipeline = self.fit_strategy(strategy, data)

        before = data['y_train'].value_counts().to_dict()
        after = resampled_class_counts(pipeline, data['y_train'])
        resampling_summary(before, after)

        # Test set is NEVER resampled
        y_proba = pipeline.predict_proba(data['X_test'])[:, 1]
        y_pred = self.evaluator.predict_labels(y_proba)

        metrics = self.evaluator.compute_metrics(data['y_test'], y_pred, y_proba)
        counts = ConfusionCounts(tp=metrics['tp'], fp=metrics['fp'],
                                 tn=metrics['tn'], fn=metrics['fn'])
        self.evaluator.print_confusion_matrix(counts, title=f'Confusion Matrix - {strategy}')
        self.evaluator.print_metrics(metrics)

        cm_path = self.evaluator.plot_confusion_matrix(
            data['y_test'], y_pred,
            title=f'Confusion Matrix\n{strategy}',
            save_path=self.figures_dir / f'{strategy}_confusion_matrix.png'
        )
        self.artifacts.append(cm_path)

        self.results[strategy] = {
            'train_class_counts': {str(k): int(v) for k, v in after.items()},
            'metrics': metrics
        }
        return metrics

    def compare_strategies(self) -> pd.DataFrame:
        """Collect per-strategy metrics into one table, best balanced accuracy first."""
        rows = [
            {'strategy': name, **self.results[name]['metrics']}
            for name in self.config.strategies
            if name in self.results
        ]
        results_df = pd.DataFrame(rows).sort_values('balanced_accuracy', ascending=False)

        print("\n" + "=" * 80)
        print("RESULTS SUMMARY (sorted by balanced accuracy)")
        print("=" * 80)
        columns = ['strategy', 'accuracy', 'balanced_accuracy', 'sensitivity',
                   'specificity', 'precision', 'npv', 'kappa', 'f1']
        print(results_df[columns].to_string(index=False))

        csv_path = self.metrics_dir / 'strategy_comparison.csv'
        results_df.to_csv(csv_path, index=False)
        self.artifacts.append(csv_path)

        # Lands in the evaluator's output_dir (figures_dir)
        self.artifacts.append(self.evaluator.plot_strategy_comparison(results_df))

        return results_df

    def save_results(self) -> Path:
        """Save all results to JSON."""
        output_file = self.metrics_dir / 'results.json'

        serializable_results = {}
        for key, value in self.results.items():
            serializable_results[key] = {
                k: (v.tolist() if isinstance(v, np.ndarray) else v)
                for k, v in value.items()
            }

        with open(output_file, 'w') as f:
            json.dump(serializable_results, f, indent=2)

        print(f"\n✓ Results saved to: {output_file}")
        return output_file

    def _run(self, df: Optional[pd.DataFrame]) -> pd.DataFrame:
        data = self.load_and_split(df)

        for strategy in self.config.strategies:
            self.run_strategy(strategy, data)

        results_df = self.compare_strategies()
        self.save_results()
        return results_df

    def run(self, df: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """
        Run every configured strategy and return the comparison table.

        With track_with_mlflow set, parameters, per-strategy metrics and the
        plots are logged to a single MLflow run.
        """
        if not self.config.track_with_mlflow:
            return self._run(df)

        mlflow.set_experiment(self.config.experiment_name)
        with mlflow.start_run(run_name='strategy_comparison'):
            results_df = self._run(df)
            self._log_to_mlflow(results_df)
            print(f"MLflow run ID: {mlflow.active_run().info.run_id}")

        return results_df

    def _log_to_mlflow(self, results_df: pd.DataFrame):
        data_info = self.results['data_info']

        mlflow.log_param('test_size', self.config.split.test_size)
        mlflow.log_param('random_seed', self.config.split.random_seed)
        mlflow.log_param('train_samples', data_info['train_size'])
        mlflow.log_param('test_samples', data_info['test_size'])
        mlflow.log_param('classifier', 'LogisticRegression')
        mlflow.log_param('penalty', str(self.config.model.penalty))
        mlflow.log_param('threshold', self.config.model.threshold)
        mlflow.log_param('smote_k_neighbors', self.config.model.smote_k_neighbors)
        mlflow.log_param('strategies', ','.join(self.config.strategies))

        metric_columns = [c for c in results_df.columns if c != 'strategy']
        for _, row in results_df.iterrows():
            for metric in metric_columns:
                mlflow.log_metric(f"{row['strategy']}_{metric}", float(row[metric]))

        best = results_df.iloc[0]
        mlflow.log_param('best_strategy', best['strategy'])
        mlflow.log_metric('best_balanced_accuracy', float(best['balanced_accuracy']))

        for path in self.artifacts:
            mlflow.log_artifact(str(path))


def main():
    """
    Main entry point.

    The data path comes from ENROLLMENT_DATA_PATH (default data/enrollment.xlsx).
    """
    config = get_enrollment_config()
    experiment = ImbalanceExperiment(config)
    results_df = experiment.run()

    best = results_df.iloc[0]
    print("\n" + "=" * 80)
    print("EXPERIMENT COMPLETED")
    print("=" * 80)
    print(f"\nBest strategy by balanced accuracy: {best['strategy']}")
    print(f"  Balanced accuracy: {best['balanced_accuracy']:.4f}")
    print(f"  Sensitivity:       {best['sensitivity']:.4f}")
    print(f"  Specificity:       {best['specificity']:.4f}")
    print(f"\nAll artifacts saved to: {experiment.results_dir}/")


if __name__ == "__main__":
    main()
