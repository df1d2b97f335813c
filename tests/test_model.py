"""
Test Suite for Model Module
============================

Tests for the algorithm registry, resampling configuration and the
ActivityClassifier training wrapper.
"""

import pytest
import numpy as np
import pandas as pd
from sklearn.ensemble import HistGradientBoostingClassifier, RandomForestClassifier
from sklearn.model_selection import StratifiedKFold, RepeatedStratifiedKFold
from sklearn.tree import DecisionTreeClassifier

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from activity_quality.model import (
    ActivityClassifier,
    ResamplingConfig,
    parse_resampling,
    resolve_algorithm,
    train_model,
    train_models
)

CLASSES = ['A', 'B', 'C', 'D', 'E']


def make_training_data(n_per_class: int = 60, seed: int = 42):
    """Well separated predictors for five classes."""
    rng = np.random.RandomState(seed)
    class_idx = np.repeat(np.arange(len(CLASSES)), n_per_class)
    n = len(class_idx)

    X = pd.DataFrame({
        'roll_belt': class_idx * 10.0 + rng.randn(n),
        'pitch_belt': class_idx * -5.0 + rng.randn(n),
        'yaw_belt': rng.randn(n) * 30,
    })
    y = pd.Series(np.array(CLASSES)[class_idx], name='classe')
    return X, y


class TestAlgorithmRegistry:
    """Tests for algorithm name resolution."""

    @pytest.mark.parametrize("name,expected", [
        ('rpart', 'rpart'),
        ('gbm', 'gbm'),
        ('rf', 'rf'),
        ('decision_tree', 'rpart'),
        ('Gradient_Boosting', 'gbm'),
        (' random_forest ', 'rf'),
    ])
    def test_resolve(self, name, expected):
        assert resolve_algorithm(name) == expected

    def test_unknown_algorithm(self):
        with pytest.raises(ValueError, match="Unknown algorithm"):
            resolve_algorithm('svm')

    def test_estimator_types(self):
        assert isinstance(ActivityClassifier('rpart')._create_estimator(), DecisionTreeClassifier)
        assert isinstance(ActivityClassifier('gbm')._create_estimator(), HistGradientBoostingClassifier)
        assert isinstance(ActivityClassifier('rf')._create_estimator(), RandomForestClassifier)

    def test_params_reach_estimator(self):
        model = ActivityClassifier('rf', params={'n_estimators': 17}, random_state=5)
        estimator = model._create_estimator()

        assert estimator.n_estimators == 17
        assert estimator.random_state == 5


class TestResampling:
    """Tests for resampling configuration parsing."""

    def test_default(self):
        config = parse_resampling(None)
        assert (config.method, config.number, config.repeats) == ('cv', 3, 1)

    def test_string_forms(self):
        assert parse_resampling('cv').number == 3
        assert parse_resampling('cv:5').number == 5

        repeated = parse_resampling('repeatedcv:5:3')
        assert (repeated.method, repeated.number, repeated.repeats) == ('repeatedcv', 5, 3)

        assert parse_resampling('none').method == 'none'

    def test_dict_form(self):
        config = parse_resampling({'method': 'repeatedcv', 'number': 4, 'repeats': 2})
        assert (config.method, config.number, config.repeats) == ('repeatedcv', 4, 2)

    def test_malformed(self):
        with pytest.raises(ValueError, match="Malformed"):
            parse_resampling('cv:five')

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown resampling method"):
            parse_resampling('bootstrap')

    def test_too_few_folds(self):
        with pytest.raises(ValueError, match="at least 2 folds"):
            ResamplingConfig(method='cv', number=1)

    def test_splitters(self):
        assert isinstance(ResamplingConfig('cv', 4).splitter(0), StratifiedKFold)
        assert isinstance(ResamplingConfig('repeatedcv', 4, 2).splitter(0), RepeatedStratifiedKFold)
        assert ResamplingConfig('none').splitter(0) is None


class TestActivityClassifier:
    """Tests for ActivityClassifier class."""

    @pytest.fixture
    def data(self):
        return make_training_data()

    @pytest.fixture
    def fitted_forest(self, data):
        X, y = data
        return ActivityClassifier('rf', params={'n_estimators': 30}, resampling='cv:3').fit(X, y)

    def test_init(self):
        model = ActivityClassifier('random_forest')

        assert model.algorithm == 'rf'
        assert model.label == 'Random Forest'
        assert model._is_fitted == False

    @pytest.mark.parametrize("algorithm,params", [
        ('rpart', {}),
        ('gbm', {'max_iter': 30, 'min_samples_leaf': 5}),
        ('rf', {'n_estimators': 30}),
    ])
    def test_fit_predict(self, data, algorithm, params):
        X, y = data
        model = ActivityClassifier(algorithm, params=params, resampling='cv:3').fit(X, y)
        predictions = model.predict(X)

        assert len(predictions) == len(X)
        assert set(predictions) <= set(CLASSES)
        assert (predictions == y.values).mean() > 0.9
        assert len(model.training_info['cv_scores']) == 3
        assert 0.0 <= model.training_info['cv_accuracy_mean'] <= 1.0

    def test_training_info(self, fitted_forest):
        info = fitted_forest.training_info

        assert info['algorithm'] == 'rf'
        assert info['n_samples'] == 300
        assert info['n_features'] == 3
        assert info['classes'] == CLASSES
        assert info['resampling'] == '3-fold CV'

    def test_no_resampling(self, data):
        X, y = data
        model = ActivityClassifier('rpart', resampling='none').fit(X, y)

        assert 'cv_scores' not in model.training_info
        assert model._is_fitted == True

    def test_predict_before_fit(self, data):
        X, _ = data
        with pytest.raises(ValueError, match="must be trained"):
            ActivityClassifier('rf').predict(X)

    def test_predict_missing_feature(self, fitted_forest, data):
        X, _ = data
        with pytest.raises(ValueError, match="missing"):
            fitted_forest.predict(X.drop(columns=['roll_belt']))

    def test_predict_ignores_column_order_and_extras(self, fitted_forest, data):
        X, _ = data
        shuffled = X[['yaw_belt', 'roll_belt', 'pitch_belt']].assign(extra=1.0)

        np.testing.assert_array_equal(fitted_forest.predict(shuffled), fitted_forest.predict(X))

    def test_predict_proba(self, fitted_forest, data):
        X, _ = data
        proba = fitted_forest.predict_proba(X.head(10))

        assert list(proba.columns) == CLASSES
        np.testing.assert_allclose(proba.sum(axis=1).values, 1.0)

    def test_predict_proba_missing_feature(self, fitted_forest, data):
        X, _ = data
        with pytest.raises(ValueError, match="missing"):
            fitted_forest.predict_proba(X.drop(columns=['pitch_belt']))

    @pytest.mark.parametrize("algorithm,params", [
        ('rpart', {}),
        ('gbm', {'max_iter': 30, 'min_samples_leaf': 5}),
        ('rf', {'n_estimators': 30}),
    ])
    def test_fit_with_partly_missing_predictor(self, data, algorithm, params):
        X, y = data
        X = X.copy()
        X.loc[X.index[::3], 'yaw_belt'] = np.nan

        model = ActivityClassifier(algorithm, params=params, resampling='cv:3').fit(X, y)
        predictions = model.predict(X)

        assert len(predictions) == len(X)
        assert (predictions == y.values).mean() > 0.9

    def test_feature_importances(self, fitted_forest):
        importances = fitted_forest.get_feature_importances()

        assert set(importances.index) == {'roll_belt', 'pitch_belt', 'yaw_belt'}
        assert importances.sum() == pytest.approx(1.0)
        assert importances.index[0] in {'roll_belt', 'pitch_belt'}

    def test_feature_importances_unavailable(self, data):
        X, y = data
        model = ActivityClassifier('gbm', params={'max_iter': 10}, resampling='none').fit(X, y)

        with pytest.raises(ValueError, match="feature importances"):
            model.get_feature_importances()

    def test_same_seed_same_model(self, data):
        X, y = data
        first = ActivityClassifier('rf', params={'n_estimators': 20}, random_state=3).fit(X, y)
        second = ActivityClassifier('rf', params={'n_estimators': 20}, random_state=3).fit(X, y)

        assert first.training_info['cv_scores'] == second.training_info['cv_scores']

    def test_save_untrained(self, tmp_path):
        with pytest.raises(ValueError, match="untrained"):
            ActivityClassifier('rf').save(str(tmp_path / "model.joblib"))

    def test_save_load(self, fitted_forest, data, tmp_path):
        X, _ = data
        path = tmp_path / "models" / "rf.joblib"

        fitted_forest.save(str(path))
        loaded = ActivityClassifier.load(str(path))

        assert loaded.algorithm == 'rf'
        assert loaded.resampling.number == 3
        assert loaded.training_info == fitted_forest.training_info
        np.testing.assert_array_equal(loaded.predict(X), fitted_forest.predict(X))


class TestTrainModels:
    """Tests for the config-driven training functions."""

    @pytest.fixture
    def config(self):
        return {
            'model': {
                'random_state': 1,
                'algorithms': ['rpart', 'gbm', 'rf'],
                'resampling': 'cv:3',
                'params': {
                    'gbm': {'max_iter': 20, 'min_samples_leaf': 5},
                    'rf': {'n_estimators': 20}
                }
            }
        }

    def test_train_model_uses_config(self, config):
        X, y = make_training_data()
        model = train_model(X, y, 'random_forest', config)

        assert model.algorithm == 'rf'
        assert model.params == {'n_estimators': 20}
        assert model.random_state == 1

    def test_train_models_order_and_saving(self, config, tmp_path):
        X, y = make_training_data()
        models = train_models(X, y, config, model_dir=str(tmp_path))

        assert list(models) == ['rpart', 'gbm', 'rf']
        for name in models:
            assert (tmp_path / f"{name}.joblib").exists()

    def test_duplicate_algorithms_skipped(self, config):
        config['model']['algorithms'] = ['rf', 'random_forest']
        X, y = make_training_data()

        models = train_models(X, y, config)
        assert list(models) == ['rf']


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
