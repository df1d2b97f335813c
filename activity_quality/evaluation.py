"""
Model Evaluation Module
=======================

Scores classifiers on the held-out partition and compares them.

Features:
    - Accuracy, out-of-sample error and Cohen's kappa
    - Exact binomial confidence interval for accuracy
    - Per-class precision, recall and F1
    - Confusion matrix and model comparison plots
    - Evaluation report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from sklearn.metrics import (
    accuracy_score, cohen_kappa_score, confusion_matrix, precision_recall_fscore_support
)

from .model import ActivityClassifier

logger = logging.getLogger(__name__)


def out_of_sample_error(accuracy: float) -> float:
    """Expected error rate on unseen data: one minus the held-out accuracy."""
    return 1.0 - accuracy


def accuracy_confidence_interval(
    n_correct: int,
    n_total: int,
    confidence_level: float = 0.95
) -> Tuple[float, float]:
    """
    Exact (Clopper-Pearson) confidence interval for the accuracy.

    Args:
        n_correct: Number of correctly classified samples
        n_total: Number of samples evaluated
        confidence_level: Coverage of the interval

    Returns:
        Tuple of (lower, upper)
    """
    if n_total <= 0:
        raise ValueError("Cannot compute an accuracy interval over zero samples")

    ci = stats.binomtest(int(n_correct), int(n_total)).proportion_ci(
        confidence_level=confidence_level, method='exact'
    )
    return float(ci.low), float(ci.high)


def calculate_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    labels: Optional[List[str]] = None
) -> Dict[str, Any]:
    """
    Calculate classification metrics.

    Args:
        y_true: Ground truth labels
        y_pred: Predicted labels
        labels: Class labels in display order (default: sorted union)

    Returns:
        Dictionary containing overall metrics, per-class metrics and
        the confusion matrix
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)

    if len(y_true) != len(y_pred):
        raise ValueError(
            f"y_true and y_pred differ in length: {len(y_true)} vs {len(y_pred)}"
        )

    if labels is None:
        labels = sorted(set(y_true.tolist()) | set(y_pred.tolist()))

    n_total = len(y_true)
    n_correct = int((y_true == y_pred).sum())
    accuracy = accuracy_score(y_true, y_pred)
    ci_low, ci_high = accuracy_confidence_interval(n_correct, n_total)

    precision, recall, f1, support = precision_recall_fscore_support(
        y_true, y_pred, labels=labels, zero_division=0
    )

    metrics = {
        'overall': {
            'accuracy': float(accuracy),
            'out_of_sample_error': float(out_of_sample_error(accuracy)),
            'kappa': float(cohen_kappa_score(y_true, y_pred, labels=labels)),
            'accuracy_ci_lower': ci_low,
            'accuracy_ci_upper': ci_high,
            'n_correct': n_correct,
            'n_samples': int(n_total)
        },
        'per_class': {},
        'labels': [str(label) for label in labels],
        'confusion_matrix': confusion_matrix(y_true, y_pred, labels=labels).tolist()
    }

    for i, label in enumerate(labels):
        metrics['per_class'][str(label)] = {
            'precision': float(precision[i]),
            'recall': float(recall[i]),
            'f1': float(f1[i]),
            'support': int(support[i])
        }

    return metrics


def plot_confusion_matrix(
    metrics: Dict[str, Any],
    title: str = 'Confusion Matrix',
    figsize: Tuple[int, int] = (7, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create a confusion matrix heatmap normalized by true class.

    Args:
        metrics: Metrics dictionary from calculate_metrics
        title: Plot title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    labels = metrics['labels']
    cm = np.array(metrics['confusion_matrix'], dtype=float)
    row_sums = cm.sum(axis=1, keepdims=True)
    cm_norm = np.divide(cm, row_sums, out=np.zeros_like(cm), where=row_sums > 0)

    fig, ax = plt.subplots(figsize=figsize)

    sns.heatmap(
        cm_norm,
        annot=cm.astype(int),
        fmt='d',
        cmap='Blues',
        vmin=0,
        vmax=1,
        xticklabels=labels,
        yticklabels=labels,
        cbar_kws={"label": "Share of true class"},
        ax=ax
    )

    ax.set_xlabel('Predicted')
    ax.set_ylabel('Actual')
    accuracy = metrics['overall']['accuracy']
    ax.set_title(f'{title}\nAccuracy={accuracy:.4f}', fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrix saved to {save_path}")

    return fig


def plot_model_comparison(
    comparison: pd.DataFrame,
    figsize: Tuple[int, int] = (10, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of held-out accuracy (with confidence interval) and
    out-of-sample error for each model.

    Args:
        comparison: DataFrame from compare_models
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, axes = plt.subplots(1, 2, figsize=figsize)

    x = np.arange(len(comparison))
    names = comparison['label'].tolist()
    accuracy = comparison['accuracy'].values
    yerr = np.vstack([
        accuracy - comparison['accuracy_ci_lower'].values,
        comparison['accuracy_ci_upper'].values - accuracy
    ])

    axes[0].bar(x, accuracy, 0.6, color='steelblue', alpha=0.8, yerr=yerr, capsize=4)
    axes[0].set_xticks(x)
    axes[0].set_xticklabels(names, rotation=30, ha='right')
    axes[0].set_ylabel('Accuracy')
    axes[0].set_ylim([max(0.0, accuracy.min() - 0.1), 1.0])
    axes[0].set_title('Held-out Accuracy (95% CI)', fontweight='bold')

    axes[1].bar(x, comparison['out_of_sample_error'].values, 0.6, color='coral', alpha=0.8)
    axes[1].set_xticks(x)
    axes[1].set_xticklabels(names, rotation=30, ha='right')
    axes[1].set_ylabel('Error rate')
    axes[1].set_title('Out-of-sample Error', fontweight='bold')

    plt.suptitle('Model Comparison', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Model comparison plot saved to {save_path}")

    return fig


def evaluate_model(
    model: ActivityClassifier,
    X_test: pd.DataFrame,
    y_test: pd.Series,
    figures_dir: Optional[str] = "reports/figures/",
    metrics_dir: Optional[str] = "reports/metrics/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Score a fitted model on the held-out partition.

    Args:
        model: Trained model
        X_test: Held-out predictors
        y_test: Held-out labels
        figures_dir: Directory for the confusion matrix figure (None to skip)
        metrics_dir: Directory for the metrics JSON file (None to skip)
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics, predictions and file paths
    """
    logger.info("=" * 60)
    logger.info(f"EVALUATING {model.label.upper()}")
    logger.info("=" * 60)

    y_pred = model.predict(X_test)
    labels = list(model.classes_) if model.classes_ is not None else None
    metrics = calculate_metrics(np.asarray(y_test), y_pred, labels=labels)
    if 'cv_accuracy_mean' in model.training_info:
        metrics['overall']['cv_accuracy'] = model.training_info['cv_accuracy_mean']

    result = {
        'algorithm': model.algorithm,
        'label': model.label,
        'metrics': metrics,
        'y_pred': y_pred,
        'figures': [],
        'metrics_file': None
    }

    if metrics_dir is not None:
        metrics_dir = Path(metrics_dir)
        metrics_dir.mkdir(parents=True, exist_ok=True)

        metrics_file = metrics_dir / f"evaluation_{model.algorithm}.json"
        with open(metrics_file, 'w') as f:
            json.dump(metrics, f, indent=2)
        logger.info(f"Metrics saved to {metrics_file}")
        result['metrics_file'] = str(metrics_file)

    if figures_dir is not None:
        figures_dir = Path(figures_dir)
        figures_dir.mkdir(parents=True, exist_ok=True)

        figure_name = f"confusion_matrix_{model.algorithm}.png"
        plot_confusion_matrix(
            metrics,
            title=f'{model.label} - Confusion Matrix',
            save_path=str(figures_dir / figure_name)
        )
        result['figures'].append(figure_name)

        if show_plots:
            plt.show()
        else:
            plt.close('all')

    logger.info(f"  Accuracy: {metrics['overall']['accuracy']:.6f}")
    logger.info(f"  Out-of-sample error: {metrics['overall']['out_of_sample_error']:.6f}")
    logger.info(f"  Kappa: {metrics['overall']['kappa']:.6f}")

    return result


def compare_models(results: Dict[str, Dict[str, Any]]) -> pd.DataFrame:
    """
    Tabulate evaluation results, best accuracy first.

    Args:
        results: Mapping of algorithm name to evaluate_model result

    Returns:
        DataFrame indexed by algorithm name
    """
    rows = []
    for name, result in results.items():
        overall = result['metrics']['overall']
        rows.append({
            'algorithm': name,
            'label': result.get('label', name),
            'accuracy': overall['accuracy'],
            'accuracy_ci_lower': overall['accuracy_ci_lower'],
            'accuracy_ci_upper': overall['accuracy_ci_upper'],
            'out_of_sample_error': overall['out_of_sample_error'],
            'kappa': overall['kappa'],
            'cv_accuracy': overall.get('cv_accuracy', np.nan)
        })

    comparison = pd.DataFrame(rows, columns=[
        'algorithm', 'label', 'accuracy', 'accuracy_ci_lower', 'accuracy_ci_upper',
        'out_of_sample_error', 'kappa', 'cv_accuracy'
    ])
    return comparison.sort_values('accuracy', ascending=False, kind='stable').set_index('algorithm')


def select_best_model(comparison: pd.DataFrame) -> str:
    """Name of the model with the highest held-out accuracy."""
    if comparison.empty:
        raise ValueError("No models to choose from")
    return str(comparison['accuracy'].idxmax())


def print_evaluation_report(label: str, metrics: Dict[str, Any]) -> None:
    """
    Print a formatted evaluation report to console.

    Args:
        label: Model display name
        metrics: Metrics dictionary from calculate_metrics
    """
    overall = metrics['overall']

    print("\n" + "=" * 70)
    print(f"MODEL EVALUATION REPORT - {label.upper()}")
    print("=" * 70)

    print("\nConfusion Matrix (rows: actual, columns: predicted):")
    cm = pd.DataFrame(
        metrics['confusion_matrix'], index=metrics['labels'], columns=metrics['labels']
    )
    print(cm.to_string())

    print("\nPer-Class Metrics:")
    print("-" * 70)
    print(f"{'Class':<10} {'Precision':<12} {'Recall':<12} {'F1':<12} {'Support':<10}")
    print("-" * 70)
    for cls, cls_metrics in metrics['per_class'].items():
        print(f"{cls:<10} {cls_metrics['precision']:<12.4f} {cls_metrics['recall']:<12.4f} "
              f"{cls_metrics['f1']:<12.4f} {cls_metrics['support']:<10d}")

    print("-" * 70)
    print("\nOverall Metrics:")
    print(f"  • Accuracy: {overall['accuracy']:.6f}")
    print(f"  • 95% CI: ({overall['accuracy_ci_lower']:.4f}, {overall['accuracy_ci_upper']:.4f})")
    print(f"  • Out-of-sample error: {overall['out_of_sample_error']:.6f}")
    print(f"  • Kappa: {overall['kappa']:.6f}")
    if 'cv_accuracy' in overall:
        print(f"  • Resampled accuracy: {overall['cv_accuracy']:.6f}")
    print(f"  • Samples evaluated: {overall['n_samples']}")
    print("=" * 70 + "\n")


def print_model_comparison(comparison: pd.DataFrame) -> None:
    """
    Print the model comparison table.

    Args:
        comparison: DataFrame from compare_models
    """
    print("\n" + "=" * 70)
    print("MODEL COMPARISON")
    print("=" * 70)
    print(f"{'Model':<20} {'Accuracy':<12} {'OOS Error':<12} {'Kappa':<12} {'CV Acc.':<12}")
    print("-" * 70)
    for _, row in comparison.iterrows():
        cv_acc = 'N/A' if pd.isna(row['cv_accuracy']) else f"{row['cv_accuracy']:.4f}"
        print(f"{row['label']:<20} {row['accuracy']:<12.4f} {row['out_of_sample_error']:<12.4f} "
              f"{row['kappa']:<12.4f} {cv_acc:<12}")
    print("-" * 70)
    best = select_best_model(comparison)
    print(f"\nBest model: {comparison.loc[best, 'label']} "
          f"(expected out-of-sample error {comparison.loc[best, 'out_of_sample_error']:.2%})")
    print("=" * 70 + "\n")
