"""
Model Training Module
=====================

Generic training wrapper around scikit-learn classifiers.

Features:
    - Algorithms selected by textual name (rpart, gbm, rf)
    - Resampled accuracy estimate (k-fold / repeated k-fold) before the final fit
    - Hyperparameter configuration via config file
    - Model persistence (save/load)
    - Training progress logging
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional, Union, Callable, List
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.base import ClassifierMixin
from sklearn.ensemble import HistGradientBoostingClassifier, RandomForestClassifier
from sklearn.model_selection import (
    StratifiedKFold, RepeatedStratifiedKFold, cross_val_score
)
from sklearn.tree import DecisionTreeClassifier

logger = logging.getLogger(__name__)


ALGORITHMS: Dict[str, Callable[..., ClassifierMixin]] = {
    'rpart': DecisionTreeClassifier,
    'gbm': HistGradientBoostingClassifier,
    'rf': RandomForestClassifier,
}

ALGORITHM_ALIASES = {
    'decision_tree': 'rpart',
    'gradient_boosting': 'gbm',
    'random_forest': 'rf',
}

ALGORITHM_LABELS = {
    'rpart': 'Decision Tree',
    'gbm': 'Gradient Boosting',
    'rf': 'Random Forest',
}

RESAMPLING_METHODS = ('cv', 'repeatedcv', 'none')


def resolve_algorithm(name: str) -> str:
    """Map an algorithm name or alias to its canonical short name."""
    key = name.strip().lower()
    key = ALGORITHM_ALIASES.get(key, key)
    if key not in ALGORITHMS:
        known = sorted(set(ALGORITHMS) | set(ALGORITHM_ALIASES))
        raise ValueError(f"Unknown algorithm: {name}. Choose from: {', '.join(known)}")
    return key


@dataclass
class ResamplingConfig:
    """Resampling scheme used to estimate accuracy during training."""
    method: str = 'cv'
    number: int = 3
    repeats: int = 1

    def __post_init__(self):
        if self.method not in RESAMPLING_METHODS:
            raise ValueError(
                f"Unknown resampling method: {self.method}. "
                f"Choose from: {', '.join(RESAMPLING_METHODS)}"
            )
        if self.method != 'none' and self.number < 2:
            raise ValueError(f"Resampling needs at least 2 folds, got {self.number}")
        if self.repeats < 1:
            raise ValueError(f"repeats must be at least 1, got {self.repeats}")

    def splitter(self, random_state: Optional[int] = None):
        """Build the scikit-learn cross-validation splitter, or None for no resampling."""
        if self.method == 'none':
            return None
        if self.method == 'repeatedcv':
            return RepeatedStratifiedKFold(
                n_splits=self.number, n_repeats=self.repeats, random_state=random_state
            )
        return StratifiedKFold(n_splits=self.number, shuffle=True, random_state=random_state)

    def describe(self) -> str:
        if self.method == 'none':
            return 'none'
        if self.method == 'repeatedcv':
            return f"{self.number}-fold CV repeated {self.repeats} times"
        return f"{self.number}-fold CV"


def parse_resampling(spec: Union[str, Dict[str, Any], ResamplingConfig, None]) -> ResamplingConfig:
    """
    Build a ResamplingConfig from a config value.

    Accepts strings such as "cv", "cv:5", "repeatedcv:5:3" or "none",
    or a dict with 'method', 'number' and 'repeats' keys.
    """
    if spec is None:
        return ResamplingConfig()
    if isinstance(spec, ResamplingConfig):
        return spec
    if isinstance(spec, dict):
        return ResamplingConfig(
            method=spec.get('method', 'cv'),
            number=int(spec.get('number', 3)),
            repeats=int(spec.get('repeats', 1))
        )

    parts = [p.strip() for p in str(spec).split(':')]
    method = parts[0].lower()
    try:
        number = int(parts[1]) if len(parts) > 1 else 3
        repeats = int(parts[2]) if len(parts) > 2 else 1
    except ValueError:
        raise ValueError(f"Malformed resampling specification: {spec!r}")
    return ResamplingConfig(method=method, number=number, repeats=repeats)


class ActivityClassifier:
    """
    Exercise quality classifier built from a textual algorithm name.

    Estimates accuracy by resampling the training data, then fits the
    estimator on the whole training set.
    """

    def __init__(
        self,
        algorithm: str = 'rf',
        params: Optional[Dict[str, Any]] = None,
        resampling: Union[str, Dict[str, Any], ResamplingConfig, None] = 'cv:3',
        random_state: Optional[int] = 12345
    ):
        """
        Initialize the classifier.

        Args:
            algorithm: Algorithm name (rpart, gbm, rf or an alias)
            params: Keyword arguments for the underlying estimator
            resampling: Resampling specification
            random_state: Random seed for reproducibility
        """
        self.algorithm = resolve_algorithm(algorithm)
        self.params = dict(params or {})
        self.resampling = parse_resampling(resampling)
        self.random_state = random_state

        self.model: Optional[ClassifierMixin] = None
        self.feature_names_: Optional[List[str]] = None
        self.classes_: Optional[np.ndarray] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    @property
    def label(self) -> str:
        return ALGORITHM_LABELS[self.algorithm]

    def _create_estimator(self) -> ClassifierMixin:
        params = dict(self.params)
        params.setdefault('random_state', self.random_state)
        return ALGORITHMS[self.algorithm](**params)

    def fit(self, X: pd.DataFrame, y: pd.Series) -> 'ActivityClassifier':
        """
        Train the model on the provided data.

        Args:
            X: Predictor DataFrame of shape (n_samples, n_features)
            y: Class labels of shape (n_samples,)

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()

        logger.info("=" * 60)
        logger.info(f"TRAINING {self.label.upper()} ({self.algorithm})")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}, y={len(y)}")
        logger.info(f"Resampling: {self.resampling.describe()}")
        for key, value in self.params.items():
            logger.info(f"  - {key}: {value}")

        self.feature_names_ = list(X.columns)

        cv_scores = None
        splitter = self.resampling.splitter(self.random_state)
        if splitter is not None:
            cv_scores = cross_val_score(
                self._create_estimator(), X, y, cv=splitter, scoring='accuracy'
            )
            logger.info(
                f"Resampled accuracy: {cv_scores.mean():.4f} (± {cv_scores.std():.4f})"
            )

        self.model = self._create_estimator()
        self.model.fit(X, y)
        self.classes_ = self.model.classes_

        end_time = datetime.now()
        training_duration = (end_time - start_time).total_seconds()

        self.training_info = {
            'algorithm': self.algorithm,
            'training_duration_seconds': training_duration,
            'n_samples': int(X.shape[0]),
            'n_features': int(X.shape[1]),
            'classes': [str(c) for c in self.classes_],
            'trained_at': end_time.isoformat(),
            'resampling': self.resampling.describe(),
            'hyperparameters': dict(self.params)
        }
        if cv_scores is not None:
            self.training_info['cv_scores'] = [float(s) for s in cv_scores]
            self.training_info['cv_accuracy_mean'] = float(cv_scores.mean())
            self.training_info['cv_accuracy_std'] = float(cv_scores.std())

        self._is_fitted = True

        logger.info(f"{self.label} training complete in {training_duration:.2f} seconds")
        return self

    def _check_features(self, X: pd.DataFrame) -> None:
        missing = [col for col in self.feature_names_ if col not in X.columns]
        if missing:
            raise ValueError(f"Expected features missing from input: {missing}")

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """
        Predict class labels.

        Args:
            X: Predictor DataFrame containing the fitted feature columns

        Returns:
            Array of predicted labels
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

        self._check_features(X)
        return self.model.predict(X[self.feature_names_])

    def predict_proba(self, X: pd.DataFrame) -> pd.DataFrame:
        """Class probabilities as a DataFrame with one column per class."""
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

        self._check_features(X)
        proba = self.model.predict_proba(X[self.feature_names_])
        return pd.DataFrame(proba, columns=self.classes_, index=X.index)

    def get_feature_importances(self) -> pd.Series:
        """
        Get feature importances sorted in descending order.

        Returns:
            Series indexed by feature name
        """
        if not self._is_fitted:
            raise ValueError("Model must be trained first.")

        if not hasattr(self.model, 'feature_importances_'):
            raise ValueError(f"{self.label} does not expose feature importances")

        return pd.Series(
            self.model.feature_importances_, index=self.feature_names_
        ).sort_values(ascending=False)

    def save(self, filepath: str) -> None:
        """
        Save the trained model to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {
            'algorithm': self.algorithm,
            'params': self.params,
            'resampling': {
                'method': self.resampling.method,
                'number': self.resampling.number,
                'repeats': self.resampling.repeats
            },
            'random_state': self.random_state,
            'model': self.model,
            'feature_names_': self.feature_names_,
            'classes_': self.classes_,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'ActivityClassifier':
        """
        Load a trained model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded ActivityClassifier instance
        """
        state = joblib.load(filepath)

        model = cls(
            algorithm=state['algorithm'],
            params=state['params'],
            resampling=state['resampling'],
            random_state=state['random_state']
        )
        model.model = state['model']
        model.feature_names_ = state['feature_names_']
        model.classes_ = state['classes_']
        model.training_info = state['training_info']
        model._is_fitted = state['_is_fitted']

        logger.info(f"Model loaded from {filepath}")
        return model


def train_model(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    algorithm: str,
    config: Dict[str, Any],
    save_path: Optional[str] = None
) -> ActivityClassifier:
    """
    Train one algorithm using configuration parameters.

    Args:
        X_train: Training predictors
        y_train: Training labels
        algorithm: Algorithm name
        config: Configuration dictionary
        save_path: Path to save the trained model (optional)

    Returns:
        Trained ActivityClassifier
    """
    model_config = config.get('model', {})
    name = resolve_algorithm(algorithm)

    model = ActivityClassifier(
        algorithm=name,
        params=model_config.get('params', {}).get(name, {}),
        resampling=model_config.get('resampling', 'cv:3'),
        random_state=model_config.get('random_state', 12345)
    )

    model.fit(X_train, y_train)

    if save_path:
        model.save(save_path)

    return model


def train_models(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    config: Dict[str, Any],
    model_dir: Optional[str] = None
) -> Dict[str, ActivityClassifier]:
    """
    Train every algorithm listed in the configuration, in order.

    Args:
        X_train: Training predictors
        y_train: Training labels
        config: Configuration dictionary
        model_dir: Directory to save each model to (optional)

    Returns:
        Dictionary mapping canonical algorithm name to trained model
    """
    algorithms = config.get('model', {}).get('algorithms', list(ALGORITHMS))

    models = {}
    for algorithm in algorithms:
        name = resolve_algorithm(algorithm)
        if name in models:
            logger.warning(f"Algorithm '{algorithm}' listed twice, skipping duplicate")
            continue
        save_path = str(Path(model_dir) / f"{name}.joblib") if model_dir else None
        models[name] = train_model(X_train, y_train, name, config, save_path=save_path)

    return models


def print_model_summary(model: ActivityClassifier) -> None:
    """
    Print a summary of the trained model.

    Args:
        model: Trained model instance
    """
    print("\n" + "=" * 50)
    print(f"MODEL SUMMARY - {model.label.upper()}")
    print("=" * 50)
    print(f"Algorithm: {model.algorithm} ({type(model.model).__name__})")
    print(f"Number of input features: {len(model.feature_names_ or [])}")
    print(f"Classes: {list(model.classes_) if model.classes_ is not None else 'N/A'}")
    print(f"Resampling: {model.resampling.describe()}")

    if model.params:
        print(f"\nHyperparameters:")
        for key, value in model.params.items():
            print(f"  - {key}: {value}")

    if model.training_info:
        print(f"\nTraining Info:")
        print(f"  - Duration: {model.training_info.get('training_duration_seconds', 0.0):.2f}s")
        print(f"  - Samples: {model.training_info.get('n_samples', 'N/A')}")
        if 'cv_accuracy_mean' in model.training_info:
            print(f"  - Resampled accuracy: {model.training_info['cv_accuracy_mean']:.4f} "
                  f"(± {model.training_info['cv_accuracy_std']:.4f})")

    print("=" * 50 + "\n")
