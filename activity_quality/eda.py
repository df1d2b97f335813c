"""
Exploratory Data Analysis (EDA) Module
======================================

Visual and statistical overview of the filtered predictors and the label.

Functions:
    - plot_class_distribution: Counts per exercise quality class
    - plot_class_by_subject: Class counts per participant
    - plot_correlation_matrix: Correlation heatmap of the predictors
    - find_correlated_pairs: Strongly correlated predictor pairs
    - rank_predictors_by_class: Kruskal-Wallis separation of classes per predictor
    - plot_predictors_by_class: Box plots of the most separating predictors
    - plot_feature_importances: Importance ranking of a fitted model
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def plot_class_distribution(
    y: pd.Series,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of the number of samples per class.

    Args:
        y: Label Series
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Matplotlib Figure object
    """
    counts = y.value_counts().sort_index()

    fig, ax = plt.subplots(figsize=figsize)
    sns.barplot(x=counts.index.astype(str), y=counts.values, ax=ax, alpha=0.85)

    for idx, value in enumerate(counts.values):
        ax.text(idx, value, f'{value}\n({value / counts.sum():.1%})',
                ha='center', va='bottom', fontsize=9)

    ax.set_xlabel('Class')
    ax.set_ylabel('Samples')
    ax.set_title('Exercise Quality Class Distribution', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Class distribution plot saved to {save_path}")

    return fig


def plot_class_by_subject(
    subjects: pd.Series,
    y: pd.Series,
    figsize: Tuple[int, int] = (10, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Grouped bar chart of class counts per participant.

    Args:
        subjects: Participant name per sample
        y: Label Series aligned with subjects
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    table = pd.crosstab(subjects, y)

    fig, ax = plt.subplots(figsize=figsize)
    table.plot(kind='bar', ax=ax, width=0.8, alpha=0.85)
    ax.set_xlabel('Participant')
    ax.set_ylabel('Samples')
    ax.set_title('Class Counts per Participant', fontsize=14, fontweight='bold')
    ax.legend(title='Class')
    plt.xticks(rotation=0)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Class by subject plot saved to {save_path}")

    return fig


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (14, 12),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    # Too many predictors to annotate every cell
    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.1,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.tick_params(labelsize=6)
    ax.set_title(f'Predictor Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def find_correlated_pairs(corr_matrix: pd.DataFrame, threshold: float = 0.8) -> pd.DataFrame:
    """
    List predictor pairs whose absolute correlation reaches the threshold.

    Args:
        corr_matrix: Correlation matrix DataFrame
        threshold: Absolute correlation cut-off

    Returns:
        DataFrame with columns 'col1', 'col2', 'correlation', strongest first
    """
    pairs = []
    columns = corr_matrix.columns
    for i in range(len(columns)):
        for j in range(i + 1, len(columns)):
            corr_val = corr_matrix.iloc[i, j]
            if pd.notna(corr_val) and abs(corr_val) >= threshold:
                pairs.append({
                    'col1': columns[i],
                    'col2': columns[j],
                    'correlation': float(corr_val)
                })

    result = pd.DataFrame(pairs, columns=['col1', 'col2', 'correlation'])
    if result.empty:
        return result
    order = result['correlation'].abs().sort_values(ascending=False).index
    return result.loc[order].reset_index(drop=True)


def rank_predictors_by_class(X: pd.DataFrame, y: pd.Series) -> pd.DataFrame:
    """
    Rank predictors by how strongly their distributions differ between classes.

    Uses the Kruskal-Wallis H test on each numeric predictor.

    Args:
        X: Predictor DataFrame
        y: Label Series aligned with X

    Returns:
        DataFrame indexed by predictor with 'statistic' and 'p_value',
        largest statistic first
    """
    records = []
    labels = y.values
    classes = pd.unique(labels)

    for col in X.select_dtypes(include=[np.number]).columns:
        values = X[col].values.astype(float)
        groups = [values[labels == cls] for cls in classes]
        groups = [g[~np.isnan(g)] for g in groups]
        groups = [g for g in groups if len(g) > 0]
        if len(groups) < 2 or np.unique(np.concatenate(groups)).size < 2:
            continue
        statistic, p_value = stats.kruskal(*groups)
        records.append({'predictor': col, 'statistic': float(statistic), 'p_value': float(p_value)})

    ranking = pd.DataFrame(records, columns=['predictor', 'statistic', 'p_value'])
    return ranking.sort_values('statistic', ascending=False).set_index('predictor')


def plot_predictors_by_class(
    X: pd.DataFrame,
    y: pd.Series,
    columns: List[str],
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Box plots of the given predictors split by class.

    Args:
        X: Predictor DataFrame
        y: Label Series aligned with X
        columns: Predictors to plot
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    n_cols = len(columns)
    n_rows = max(1, (n_cols + 1) // 2)

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize)
    axes = np.atleast_1d(axes).flatten()

    order = sorted(y.unique())
    for idx, col in enumerate(columns):
        ax = axes[idx]
        sns.boxplot(x=y.values, y=X[col].values, order=order, ax=ax)
        ax.set_xlabel('Class')
        ax.set_ylabel(col)
        ax.set_title(f'{col}', fontsize=10, fontweight='bold')

    # Hide unused subplots
    for idx in range(n_cols, len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Most Class-Separating Predictors', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Predictor box plots saved to {save_path}")

    return fig


def plot_feature_importances(
    importances: pd.Series,
    title: str = 'Feature Importances',
    top_n: int = 20,
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Horizontal bar chart of the top feature importances.

    Args:
        importances: Series indexed by feature name
        title: Plot title
        top_n: Number of features to show
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    top = importances.sort_values(ascending=False).head(top_n)[::-1]

    fig, ax = plt.subplots(figsize=figsize)
    ax.barh(top.index, top.values, color='steelblue', alpha=0.8)
    ax.set_xlabel('Importance')
    ax.set_title(title, fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Feature importance plot saved to {save_path}")

    return fig


def generate_eda_report(
    X: pd.DataFrame,
    y: pd.Series,
    subjects: Optional[pd.Series] = None,
    output_dir: str = "reports/figures/",
    correlation_threshold: float = 0.8,
    n_top_predictors: int = 6,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        X: Filtered predictor DataFrame
        y: Label Series aligned with X
        subjects: Participant name per sample (optional)
        output_dir: Directory to save figures
        correlation_threshold: Cut-off for listing correlated pairs
        n_top_predictors: Number of predictors shown in the class box plots
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": X.shape,
        "class_counts": {str(k): int(v) for k, v in y.value_counts().sort_index().items()},
        "figures": [],
        "correlation_matrix": None,
        "correlated_pairs": [],
        "top_predictors": []
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    logger.info("Plotting class distribution...")
    plot_class_distribution(y, save_path=str(output_dir / "01_class_distribution.png"))
    report["figures"].append("01_class_distribution.png")

    if subjects is not None:
        logger.info("Plotting class counts per participant...")
        plot_class_by_subject(
            subjects, y, save_path=str(output_dir / "02_class_by_subject.png")
        )
        report["figures"].append("02_class_by_subject.png")

    logger.info("Computing correlation matrix...")
    _, corr_matrix = plot_correlation_matrix(
        X, save_path=str(output_dir / "03_correlation_matrix.png")
    )
    report["figures"].append("03_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix
    report["correlated_pairs"] = find_correlated_pairs(
        corr_matrix, correlation_threshold
    ).to_dict('records')

    logger.info("Ranking predictors by class separation...")
    ranking = rank_predictors_by_class(X, y)
    top = ranking.head(n_top_predictors).index.tolist()
    report["top_predictors"] = top
    if top:
        plot_predictors_by_class(
            X, y, top, save_path=str(output_dir / "04_predictors_by_class.png")
        )
        report["figures"].append("04_predictors_by_class.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(pairs: List[Dict[str, Any]], threshold: float = 0.8) -> None:
    """
    Print the strongly correlated predictor pairs.

    Args:
        pairs: Records from find_correlated_pairs
        threshold: Correlation threshold used
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    if pairs:
        print(f"\n{len(pairs)} predictor pairs with |r| >= {threshold}:")
        for item in pairs:
            direction = "positive" if item["correlation"] > 0 else "negative"
            print(f"  • {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f} ({direction})")

        print("\nInterpretation:")
        print("  - Correlated sensors carry overlapping information")
        print("  - Tree ensembles tolerate this; no predictors are removed for it")
    else:
        print(f"\nNo strong correlations found (|r| >= {threshold})")

    print("=" * 50 + "\n")
