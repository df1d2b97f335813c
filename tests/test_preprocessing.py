"""
Test Suite for Preprocessing Module
=====================================

Tests for the column filter, near-zero-variance diagnostics and the
stratified split.
"""

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from activity_quality.preprocessing import (
    ColumnFilter,
    missing_ratio,
    near_zero_variance,
    split_train_test,
    preprocess_pipeline
)

LEADING = [
    'X', 'user_name', 'raw_timestamp_part_1', 'raw_timestamp_part_2',
    'cvtd_timestamp', 'new_window', 'num_window'
]
CLASSES = ['A', 'B', 'C', 'D', 'E']


def make_activity_frame(n_per_class: int = 40, seed: int = 42, labeled: bool = True) -> pd.DataFrame:
    """Build a small table shaped like the activity-monitor data."""
    rng = np.random.RandomState(seed)
    n = n_per_class * len(CLASSES)
    labels = np.repeat(CLASSES, n_per_class)
    class_idx = np.repeat(np.arange(len(CLASSES)), n_per_class)

    kurtosis = np.full(n, np.nan)
    kurtosis[:4] = rng.randn(4)

    nzv_values = np.zeros(n)
    nzv_values[:5] = 1.0

    df = pd.DataFrame({
        'X': np.arange(1, n + 1),
        'user_name': rng.choice(['carlitos', 'pedro', 'adelmo'], n),
        'raw_timestamp_part_1': rng.randint(1322489605, 1323095002, n),
        'raw_timestamp_part_2': rng.randint(0, 999999, n),
        'cvtd_timestamp': '05/12/2011 11:23',
        'new_window': np.where(np.arange(n) % 50 == 0, 'yes', 'no'),
        'num_window': rng.randint(1, 864, n),
        'roll_belt': class_idx * 10.0 + rng.randn(n),
        'pitch_belt': class_idx * -5.0 + rng.randn(n),
        'yaw_belt': rng.randn(n) * 30,
        'kurtosis_roll_belt': kurtosis,
        'constant_col': 0.0,
        'nzv_col': nzv_values,
    })

    if labeled:
        df['classe'] = labels
    else:
        df['problem_id'] = np.arange(1, n + 1)
    return df


class TestMissingRatio:
    """Tests for missing_ratio."""

    def test_ratios(self):
        df = pd.DataFrame({'a': [1.0, np.nan, np.nan, 4.0], 'b': [1, 2, 3, 4]})
        ratios = missing_ratio(df)

        assert ratios['a'] == pytest.approx(0.5)
        assert ratios['b'] == 0.0

    def test_empty_frame(self):
        ratios = missing_ratio(pd.DataFrame({'a': []}))
        assert ratios['a'] == 0.0


class TestNearZeroVariance:
    """Tests for the near-zero-variance diagnostics."""

    def test_constant_column_is_zero_variance(self):
        report = near_zero_variance(pd.DataFrame({'c': [3.0] * 20}))

        assert bool(report.loc['c', 'zero_var']) is True
        assert bool(report.loc['c', 'nzv']) is True

    def test_all_missing_column_is_zero_variance(self):
        report = near_zero_variance(pd.DataFrame({'c': [np.nan] * 10}))
        assert bool(report.loc['c', 'nzv']) is True

    def test_frequency_ratio_boundary(self):
        # 95 vs 5 gives exactly the default cut of 19, which is not above it
        df = pd.DataFrame({
            'at_cut': [0] * 95 + [1] * 5,
            'above_cut': [0] * 96 + [1] * 4,
        })
        report = near_zero_variance(df)

        assert report.loc['at_cut', 'freq_ratio'] == pytest.approx(19.0)
        assert report.loc['at_cut', 'percent_unique'] == pytest.approx(2.0)
        assert bool(report.loc['at_cut', 'nzv']) is False
        assert bool(report.loc['above_cut', 'nzv']) is True

    def test_many_unique_values_not_flagged(self):
        rng = np.random.RandomState(0)
        values = np.concatenate([np.zeros(80), rng.randn(20)])
        report = near_zero_variance(pd.DataFrame({'c': values}))

        # Dominant value but 21% distinct values
        assert report.loc['c', 'freq_ratio'] == pytest.approx(80.0)
        assert bool(report.loc['c', 'nzv']) is False

    def test_continuous_column(self):
        rng = np.random.RandomState(1)
        report = near_zero_variance(pd.DataFrame({'c': rng.randn(50)}))
        assert bool(report.loc['c', 'nzv']) is False


class TestColumnFilter:
    """Tests for ColumnFilter class."""

    @pytest.fixture
    def labeled(self):
        return make_activity_frame()

    @pytest.fixture
    def submission(self):
        return make_activity_frame(n_per_class=4, seed=7, labeled=False)

    @pytest.fixture
    def column_filter(self):
        return ColumnFilter(n_leading_columns=7, missing_threshold=0.95)

    def test_init(self, column_filter):
        assert column_filter.n_leading_columns == 7
        assert column_filter.missing_threshold == 0.95
        assert column_filter._is_fitted == False

    def test_invalid_threshold(self):
        with pytest.raises(ValueError, match="missing_threshold"):
            ColumnFilter(missing_threshold=1.5)

    def test_fit_drops_expected_columns(self, column_filter, labeled):
        column_filter.fit(labeled)

        assert column_filter._is_fitted == True
        assert column_filter.dropped_columns['leading'] == LEADING
        assert column_filter.dropped_columns['missing'] == ['kurtosis_roll_belt']
        assert set(column_filter.dropped_columns['near_zero_variance']) == {'constant_col', 'nzv_col'}
        assert column_filter.feature_columns == ['roll_belt', 'pitch_belt', 'yaw_belt']
        assert column_filter.n_dropped == 7 + 1 + 2

    def test_label_is_never_a_predictor(self, column_filter, labeled):
        column_filter.fit(labeled)
        assert 'classe' not in column_filter.feature_columns

    def test_transform_before_fit(self, column_filter, labeled):
        with pytest.raises(ValueError, match="must be fitted"):
            column_filter.transform(labeled)

    def test_submission_gets_same_columns(self, column_filter, labeled, submission):
        X = column_filter.fit_transform(labeled)
        X_sub = column_filter.transform(submission)

        assert list(X_sub.columns) == list(X.columns)
        assert len(X_sub) == len(submission)

    def test_transform_does_not_mutate_input(self, column_filter, labeled):
        original_columns = list(labeled.columns)
        X = column_filter.fit_transform(labeled)
        X['roll_belt'] = 0.0

        assert list(labeled.columns) == original_columns
        assert labeled['roll_belt'].abs().sum() > 0

    def test_transform_missing_predictor(self, column_filter, labeled, submission):
        column_filter.fit(labeled)
        with pytest.raises(ValueError, match="missing"):
            column_filter.transform(submission.drop(columns=['pitch_belt']))

    def test_threshold_is_exclusive(self, labeled):
        labeled = labeled.copy()
        half = np.arange(len(labeled), dtype=float)
        half[::2] = np.nan
        labeled['half_missing'] = half

        kept = ColumnFilter(missing_threshold=0.5).fit(labeled)
        dropped = ColumnFilter(missing_threshold=0.4).fit(labeled)

        assert 'half_missing' in kept.feature_columns
        assert 'half_missing' in dropped.dropped_columns['missing']

    def test_too_many_leading_columns(self, labeled):
        with pytest.raises(ValueError, match="leading columns"):
            ColumnFilter(n_leading_columns=100).fit(labeled)

    def test_nothing_left(self, labeled):
        only_junk = labeled[LEADING + ['constant_col', 'classe']]
        with pytest.raises(ValueError, match="No predictor columns"):
            ColumnFilter().fit(only_junk)

    def test_save_load(self, column_filter, labeled, submission, tmp_path):
        column_filter.fit(labeled)
        path = tmp_path / "filter.joblib"

        column_filter.save(str(path))
        loaded = ColumnFilter.load(str(path))

        assert loaded._is_fitted == True
        assert loaded.feature_columns == column_filter.feature_columns
        assert loaded.dropped_columns == column_filter.dropped_columns
        pd.testing.assert_frame_equal(
            loaded.transform(submission), column_filter.transform(submission)
        )


class TestSplitTrainTest:
    """Tests for the stratified split."""

    @pytest.fixture
    def data(self):
        df = make_activity_frame(n_per_class=40)
        X = df[['roll_belt', 'pitch_belt', 'yaw_belt']]
        return X, df['classe']

    def test_partition_is_disjoint_and_complete(self, data):
        X, y = data
        X_train, X_test, y_train, y_test = split_train_test(X, y, 0.7, random_state=1)

        assert set(X_train.index).isdisjoint(X_test.index)
        assert set(X_train.index) | set(X_test.index) == set(X.index)
        assert list(X_train.index) == list(y_train.index)
        assert list(X_test.index) == list(y_test.index)

    def test_stratified(self, data):
        X, y = data
        _, _, y_train, y_test = split_train_test(X, y, 0.7, random_state=1)

        assert len(y_train) == 140
        assert (y_train.value_counts() == 28).all()
        assert (y_test.value_counts() == 12).all()

    def test_same_seed_same_rows(self, data):
        X, y = data
        first = split_train_test(X, y, 0.7, random_state=99)
        second = split_train_test(X, y, 0.7, random_state=99)

        assert list(first[0].index) == list(second[0].index)
        assert list(first[1].index) == list(second[1].index)

    def test_invalid_fraction(self, data):
        X, y = data
        with pytest.raises(ValueError, match="train_fraction"):
            split_train_test(X, y, 1.0)


class TestPreprocessPipeline:
    """Tests for the preprocess_pipeline function."""

    @pytest.fixture
    def labeled(self):
        return make_activity_frame(n_per_class=40)

    @pytest.fixture
    def submission(self):
        return make_activity_frame(n_per_class=4, seed=3, labeled=False)

    def test_pipeline_returns_expected_keys(self, labeled, submission):
        result = preprocess_pipeline(labeled, submission)

        expected_keys = [
            'X_train', 'X_test', 'y_train', 'y_test',
            'X_submission', 'submission_ids', 'column_filter', 'feature_names'
        ]
        for key in expected_keys:
            assert key in result, f"Missing key: {key}"

    def test_schemas_match(self, labeled, submission):
        result = preprocess_pipeline(labeled, submission, train_fraction=0.6)

        assert list(result['X_submission'].columns) == list(result['X_train'].columns)
        assert list(result['X_test'].columns) == result['feature_names']
        assert result['X_train'].shape[0] == 120
        assert result['X_test'].shape[0] == 80
        assert list(result['submission_ids']) == list(range(1, 21))

    def test_without_submission(self, labeled):
        result = preprocess_pipeline(labeled)

        assert result['X_submission'] is None
        assert result['submission_ids'] is None

    def test_missing_label(self, labeled):
        with pytest.raises(ValueError, match="Label column"):
            preprocess_pipeline(labeled.drop(columns=['classe']))

    def test_save_filter(self, labeled, tmp_path):
        path = tmp_path / "filter.joblib"
        preprocess_pipeline(labeled, save_filter=str(path))
        assert path.exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
