"""
Data Loader Module
==================

Handles dataset download, CSV ingestion, validation, and basic data quality checks.

Functions:
    - load_config: Load YAML configuration file
    - download_file: Fetch a file over HTTP unless a local copy exists
    - fetch_datasets: Download the training and submission CSV files
    - load_data: Load CSV data with missing-value tokens
    - validate_data: Check data quality constraints
    - get_data_summary: Generate basic statistics
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import requests
import yaml

logger = logging.getLogger(__name__)

DEFAULT_NA_VALUES = ["NA", "", "#DIV/0!"]

REQUEST_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
}


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    logger.info(f"Loaded configuration from {config_path}")
    return config or {}


def download_file(url: str, dest: str, timeout: int = 60) -> Path:
    """
    Download a file over HTTP, reusing an existing local copy.

    Args:
        url: Remote location of the file
        dest: Local path to write the file to
        timeout: Request timeout in seconds

    Returns:
        Path to the local file

    Raises:
        requests.RequestException: If the request fails or returns an error status
    """
    dest = Path(dest)

    if dest.exists():
        logger.info(f"File {dest} already exists. Skipping download.")
        return dest

    logger.info(f"Fetching: {url}")
    response = requests.get(url, headers=REQUEST_HEADERS, timeout=timeout)
    response.raise_for_status()

    dest.parent.mkdir(parents=True, exist_ok=True)
    partial = dest.with_name(dest.name + ".part")
    with open(partial, 'wb') as f:
        f.write(response.content)
    partial.replace(dest)

    logger.info(f"Downloaded {len(response.content)} bytes to {dest}")
    return dest


def fetch_datasets(config: Dict[str, Any]) -> Tuple[Path, Path]:
    """
    Download the labeled training table and the unlabeled submission table.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (training_path, submission_path)
    """
    data_config = config.get('data', {})
    raw_path = Path(data_config.get('raw_path', 'data/raw/'))
    timeout = data_config.get('download_timeout', 60)

    training_path = download_file(
        data_config['training_url'],
        raw_path / data_config.get('training_file', 'pml-training.csv'),
        timeout=timeout
    )
    submission_path = download_file(
        data_config['submission_url'],
        raw_path / data_config.get('submission_file', 'pml-testing.csv'),
        timeout=timeout
    )

    return training_path, submission_path


def load_data(
    file_path: str,
    na_values: Optional[List[str]] = None,
    expected_columns: Optional[int] = None
) -> pd.DataFrame:
    """
    Load CSV data, treating the configured tokens as missing values.

    Args:
        file_path: Path to the CSV file
        na_values: Strings to interpret as missing (default: NA, empty, #DIV/0!)
        expected_columns: Expected number of columns (optional validation)

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If the column count doesn't match
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    if na_values is None:
        na_values = DEFAULT_NA_VALUES

    df = pd.read_csv(file_path, na_values=na_values, keep_default_na=True, low_memory=False)
    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if expected_columns is not None and df.shape[1] != expected_columns:
        raise ValueError(
            f"Expected {expected_columns} columns, but found {df.shape[1]}. "
            f"Columns: {list(df.columns)}"
        )

    return df


def validate_data(
    df: pd.DataFrame,
    label_column: Optional[str] = "classe",
    strict: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate data quality constraints for classification.

    Checks:
        - Label column is present and has no missing values
        - At least two label classes
        - Missing values share
        - Duplicate rows

    Args:
        df: DataFrame to validate
        label_column: Name of the label column (None for unlabeled tables)
        strict: If True, raise errors on validation failure

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": [],
        "warnings": []
    }

    # Check 1: Label column
    if label_column is not None:
        if label_column not in df.columns:
            issue = f"Label column '{label_column}' not found"
            report["issues"].append(issue)
            logger.warning(issue)
        else:
            n_missing_labels = int(df[label_column].isnull().sum())
            if n_missing_labels > 0:
                issue = f"Label column '{label_column}' has {n_missing_labels} missing values"
                report["issues"].append(issue)
                logger.warning(issue)

            classes = sorted(df[label_column].dropna().unique().tolist())
            report["classes"] = classes
            report["class_counts"] = df[label_column].value_counts().sort_index().to_dict()
            if len(classes) < 2:
                issue = f"Need at least two label classes, found {classes}"
                report["issues"].append(issue)
                logger.warning(issue)

    # Check 2: Missing values (expected in this dataset, reported only)
    missing_counts = df.isnull().sum()
    total_missing = int(missing_counts.sum())
    if total_missing > 0:
        missing_pct = (total_missing / (df.shape[0] * df.shape[1])) * 100
        warning = f"Missing values: {total_missing} ({missing_pct:.2f}%)"
        report["warnings"].append(warning)
        report["columns_with_missing"] = int((missing_counts > 0).sum())
        logger.info(warning)

    # Check 3: Duplicate rows
    duplicates = int(df.duplicated().sum())
    if duplicates > 0:
        warning = f"Duplicate rows found: {duplicates}"
        report["warnings"].append(warning)
        logger.warning(warning)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(df: pd.DataFrame, label_column: Optional[str] = "classe") -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize
        label_column: Name of the label column

    Returns:
        Dictionary containing summary statistics
    """
    numeric = df.select_dtypes(include=[np.number])

    summary = {
        "shape": df.shape,
        "n_numeric_columns": numeric.shape[1],
        "n_other_columns": df.shape[1] - numeric.shape[1],
        "memory_usage_mb": df.memory_usage(deep=True).sum() / 1024 / 1024,
        "columns_fully_observed": int((df.isnull().sum() == 0).sum()),
        "missing_ratio": float(df.isnull().values.mean()) if df.size else 0.0
    }

    if label_column is not None and label_column in df.columns:
        counts = df[label_column].value_counts().sort_index()
        summary["class_counts"] = {str(k): int(v) for k, v in counts.items()}
        summary["class_proportions"] = {
            str(k): float(v) for k, v in (counts / counts.sum()).items()
        }

    return summary


def print_data_summary(df: pd.DataFrame, label_column: Optional[str] = "classe") -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
        label_column: Name of the label column
    """
    summary = get_data_summary(df, label_column)

    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"Memory Usage: {summary['memory_usage_mb']:.2f} MB")
    print(f"Numeric columns: {summary['n_numeric_columns']}")
    print(f"Other columns: {summary['n_other_columns']}")
    print(f"Fully observed columns: {summary['columns_fully_observed']}")
    print(f"Overall missing ratio: {summary['missing_ratio']:.2%}")

    if "class_counts" in summary:
        print("\nClass Distribution:")
        print("-" * 40)
        for cls, count in summary["class_counts"].items():
            print(f"  {cls}: {count} ({summary['class_proportions'][cls]:.1%})")

    print("=" * 60 + "\n")
