"""
Data Preprocessing Module
=========================

Removes uninformative columns and partitions the labeled data.

Functions:
    - missing_ratio: Share of missing values per column
    - near_zero_variance: Frequency-ratio / percent-unique diagnostics
    - ColumnFilter: Learns the predictor set on the labeled table and
      applies the same selection to any other table
    - split_train_test: Stratified train/test partition
    - preprocess_pipeline: Filter, split and align the submission table
"""

import logging
from typing import Dict, Any, Tuple, Optional, List

import pandas as pd
import numpy as np
from sklearn.model_selection import train_test_split
import joblib

logger = logging.getLogger(__name__)


def missing_ratio(df: pd.DataFrame) -> pd.Series:
    """
    Compute the fraction of missing values in each column.

    Args:
        df: DataFrame to inspect

    Returns:
        Series indexed by column name with values in [0, 1]
    """
    if len(df) == 0:
        return pd.Series(0.0, index=df.columns)
    return df.isnull().mean()


def near_zero_variance(
    df: pd.DataFrame,
    freq_cut: float = 95 / 5,
    unique_cut: float = 10.0
) -> pd.DataFrame:
    """
    Diagnose predictors whose value distribution is too concentrated to be useful.

    For each column the ratio of the most common value count to the second
    most common count is computed along with the percentage of distinct
    values over the number of rows. Missing values are ignored when counting.

    Args:
        df: DataFrame of predictors
        freq_cut: Frequency ratio above which a column is suspicious
        unique_cut: Percent-unique at or below which a column is suspicious

    Returns:
        DataFrame indexed by column name with columns
        'freq_ratio', 'percent_unique', 'zero_var', 'nzv'
    """
    n_rows = len(df)
    records = []

    for col in df.columns:
        counts = df[col].value_counts(dropna=True)
        n_unique = len(counts)

        freq_ratio = float(counts.iloc[0] / counts.iloc[1]) if n_unique > 1 else 0.0
        percent_unique = 100.0 * n_unique / n_rows if n_rows else 0.0
        zero_var = n_unique <= 1
        nzv = zero_var or (freq_ratio > freq_cut and percent_unique <= unique_cut)

        records.append({
            'column': col,
            'freq_ratio': freq_ratio,
            'percent_unique': percent_unique,
            'zero_var': zero_var,
            'nzv': nzv
        })

    return pd.DataFrame(
        records, columns=['column', 'freq_ratio', 'percent_unique', 'zero_var', 'nzv']
    ).set_index('column')


class ColumnFilter:
    """
    Column selection learned on the labeled table.

    Drops, in order, a fixed number of leading metadata columns, the columns
    whose missing ratio exceeds a threshold, and near-zero-variance columns.
    The surviving predictor names are then selected from every table passed
    to transform(), so training and submission data share one schema.
    """

    def __init__(
        self,
        n_leading_columns: int = 7,
        missing_threshold: float = 0.95,
        freq_cut: float = 95 / 5,
        unique_cut: float = 10.0,
        label_column: str = "classe",
        id_column: Optional[str] = "problem_id"
    ):
        """
        Initialize the filter.

        Args:
            n_leading_columns: Number of leading metadata columns to drop
            missing_threshold: Drop columns whose missing ratio is above this value
            freq_cut: Frequency ratio cut-off for near-zero variance
            unique_cut: Percent-unique cut-off for near-zero variance
            label_column: Label column, never treated as a predictor
            id_column: Row identifier of the submission table, never a predictor
        """
        if not 0.0 <= missing_threshold <= 1.0:
            raise ValueError(f"missing_threshold must be within [0, 1], got {missing_threshold}")
        if n_leading_columns < 0:
            raise ValueError(f"n_leading_columns must be non-negative, got {n_leading_columns}")

        self.n_leading_columns = n_leading_columns
        self.missing_threshold = missing_threshold
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut
        self.label_column = label_column
        self.id_column = id_column

        self.feature_columns: Optional[List[str]] = None
        self.dropped_columns: Dict[str, List[str]] = {}
        self.nzv_report: Optional[pd.DataFrame] = None
        self._is_fitted = False

    def _predictor_columns(self, df: pd.DataFrame) -> List[str]:
        excluded = {self.label_column, self.id_column}
        return [col for col in df.columns if col not in excluded]

    def fit(self, df: pd.DataFrame) -> 'ColumnFilter':
        """
        Learn which columns to keep from the labeled table.

        Args:
            df: Labeled DataFrame

        Returns:
            Self for method chaining
        """
        columns = self._predictor_columns(df)

        if self.n_leading_columns > len(columns):
            raise ValueError(
                f"Cannot drop {self.n_leading_columns} leading columns from a table "
                f"with {len(columns)} predictor columns"
            )

        leading = columns[:self.n_leading_columns]
        remaining = columns[self.n_leading_columns:]
        logger.info(f"Dropping {len(leading)} leading columns: {leading}")

        ratios = missing_ratio(df[remaining])
        mostly_missing = ratios[ratios > self.missing_threshold].index.tolist()
        remaining = [col for col in remaining if col not in set(mostly_missing)]
        logger.info(
            f"Dropping {len(mostly_missing)} columns with missing ratio > {self.missing_threshold}"
        )

        self.nzv_report = near_zero_variance(df[remaining], self.freq_cut, self.unique_cut)
        low_variance = self.nzv_report.index[self.nzv_report['nzv']].tolist()
        remaining = [col for col in remaining if col not in set(low_variance)]
        logger.info(f"Dropping {len(low_variance)} near-zero-variance columns: {low_variance}")

        if not remaining:
            raise ValueError("No predictor columns left after filtering")

        non_numeric = df[remaining].select_dtypes(exclude=[np.number]).columns.tolist()
        if non_numeric:
            logger.warning(f"Non-numeric predictors kept: {non_numeric}")

        self.dropped_columns = {
            'leading': leading,
            'missing': mostly_missing,
            'near_zero_variance': low_variance
        }
        self.feature_columns = remaining
        self._is_fitted = True

        logger.info(f"Kept {len(remaining)} of {len(columns)} predictor columns")
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Select the learned predictor columns.

        Args:
            df: Labeled or submission DataFrame

        Returns:
            New DataFrame containing exactly the learned predictors
        """
        if not self._is_fitted:
            raise ValueError("ColumnFilter must be fitted before transform. Call fit() first.")

        missing = [col for col in self.feature_columns if col not in df.columns]
        if missing:
            raise ValueError(f"Table is missing {len(missing)} predictor columns: {missing}")

        return df[self.feature_columns].copy()

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """Fit on df and return its filtered copy."""
        return self.fit(df).transform(df)

    @property
    def n_dropped(self) -> int:
        return sum(len(cols) for cols in self.dropped_columns.values())

    def save(self, filepath: str) -> None:
        """
        Save the filter state to disk.

        Args:
            filepath: Path to save the filter
        """
        state = {
            'n_leading_columns': self.n_leading_columns,
            'missing_threshold': self.missing_threshold,
            'freq_cut': self.freq_cut,
            'unique_cut': self.unique_cut,
            'label_column': self.label_column,
            'id_column': self.id_column,
            'feature_columns': self.feature_columns,
            'dropped_columns': self.dropped_columns,
            'nzv_report': self.nzv_report,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Column filter saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'ColumnFilter':
        """
        Load a column filter from disk.

        Args:
            filepath: Path to the saved filter

        Returns:
            Loaded ColumnFilter instance
        """
        state = joblib.load(filepath)

        column_filter = cls(
            n_leading_columns=state['n_leading_columns'],
            missing_threshold=state['missing_threshold'],
            freq_cut=state['freq_cut'],
            unique_cut=state['unique_cut'],
            label_column=state['label_column'],
            id_column=state['id_column']
        )
        column_filter.feature_columns = state['feature_columns']
        column_filter.dropped_columns = state['dropped_columns']
        column_filter.nzv_report = state['nzv_report']
        column_filter._is_fitted = state['_is_fitted']

        logger.info(f"Column filter loaded from {filepath}")
        return column_filter


def split_train_test(
    X: pd.DataFrame,
    y: pd.Series,
    train_fraction: float = 0.7,
    random_state: Optional[int] = 12345
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.Series, pd.Series]:
    """
    Split rows into disjoint train and test partitions, stratified by label.

    Args:
        X: Predictor DataFrame
        y: Label Series aligned with X
        train_fraction: Fraction of rows assigned to training
        random_state: Seed; the same seed yields the same row assignment

    Returns:
        Tuple of (X_train, X_test, y_train, y_test)
    """
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be within (0, 1), got {train_fraction}")

    X_train, X_test, y_train, y_test = train_test_split(
        X, y,
        train_size=train_fraction,
        stratify=y,
        random_state=random_state
    )

    logger.info(
        f"Train/Test split: {len(X_train)} train samples, {len(X_test)} test samples"
    )

    return X_train, X_test, y_train, y_test


def preprocess_pipeline(
    labeled: pd.DataFrame,
    submission: Optional[pd.DataFrame] = None,
    n_leading_columns: int = 7,
    missing_threshold: float = 0.95,
    freq_cut: float = 95 / 5,
    unique_cut: float = 10.0,
    train_fraction: float = 0.7,
    random_state: Optional[int] = 12345,
    label_column: str = "classe",
    id_column: str = "problem_id",
    save_filter: Optional[str] = None
) -> Dict[str, Any]:
    """
    Complete preprocessing pipeline for the activity tables.

    Args:
        labeled: Raw labeled DataFrame
        submission: Raw unlabeled submission DataFrame (optional)
        n_leading_columns: Leading metadata columns to drop
        missing_threshold: Missing-ratio cut-off
        freq_cut: Near-zero-variance frequency ratio cut-off
        unique_cut: Near-zero-variance percent-unique cut-off
        train_fraction: Train/test split ratio
        random_state: Split seed
        label_column: Name of the label column
        id_column: Name of the submission row identifier
        save_filter: Path to save the fitted column filter

    Returns:
        Dictionary containing:
            - X_train, X_test, y_train, y_test: Split datasets
            - X_submission, submission_ids: Aligned submission predictors and ids
            - column_filter: Fitted ColumnFilter
            - feature_names: Names of retained predictors
    """
    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING")
    logger.info("=" * 60)

    if label_column not in labeled.columns:
        raise ValueError(f"Label column '{label_column}' not found in labeled table")

    column_filter = ColumnFilter(
        n_leading_columns=n_leading_columns,
        missing_threshold=missing_threshold,
        freq_cut=freq_cut,
        unique_cut=unique_cut,
        label_column=label_column,
        id_column=id_column
    )

    X = column_filter.fit_transform(labeled)
    y = labeled[label_column].copy()

    X_train, X_test, y_train, y_test = split_train_test(
        X, y, train_fraction=train_fraction, random_state=random_state
    )

    X_submission = None
    submission_ids = None
    if submission is not None:
        X_submission = column_filter.transform(submission)
        if id_column in submission.columns:
            submission_ids = submission[id_column].copy()
        else:
            submission_ids = pd.Series(
                np.arange(1, len(submission) + 1), index=submission.index, name=id_column
            )

    if save_filter:
        column_filter.save(save_filter)

    result = {
        'X_train': X_train,
        'X_test': X_test,
        'y_train': y_train,
        'y_test': y_test,
        'X_submission': X_submission,
        'submission_ids': submission_ids,
        'column_filter': column_filter,
        'feature_names': list(column_filter.feature_columns)
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Training samples: {len(X_train)}")
    logger.info(f"  Test samples: {len(X_test)}")
    logger.info(f"  Predictors kept: {X_train.shape[1]}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    column_filter = result['column_filter']

    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Leading columns dropped: {len(column_filter.dropped_columns['leading'])}")
    print(f"Mostly-missing columns dropped: {len(column_filter.dropped_columns['missing'])}"
          f" (threshold {column_filter.missing_threshold})")
    print(f"Near-zero-variance columns dropped: "
          f"{len(column_filter.dropped_columns['near_zero_variance'])}")
    print(f"Predictors kept: {len(result['feature_names'])}")
    print(f"\nTraining samples: {result['X_train'].shape[0]}")
    print(f"Test samples: {result['X_test'].shape[0]}")
    if result['X_submission'] is not None:
        print(f"Submission samples: {result['X_submission'].shape[0]}")

    print("\nTraining class proportions:")
    for cls, share in result['y_train'].value_counts(normalize=True).sort_index().items():
        print(f"  {cls}: {share:.3f}")
    print("=" * 50 + "\n")
