"""Module with a random forest classifier of generator identities."""

from pathlib import Path
from typing import Literal, override

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.ensemble import RandomForestClassifier

from biber_eval.configuration import config
from biber_eval.data_models import ImportanceTable, Range
from biber_eval.ml.classifier import Classifier, ClassifierModel


class RandomForestClassifierAdapter(Classifier):
    """A random forest trained on Biber features of arbitrary label cardinality."""

    def __init__(
        self,
        n_estimators: int = config.n_estimators,
        max_features: float | Literal["sqrt", "log2"] = config.max_features,
        min_samples_leaf: int = config.min_samples_leaf,
        random_state: int | None = config.seed,
        n_jobs: int | None = config.n_jobs,
        persistence_path: Path = config.classifier_parameters_path,
    ) -> None:
        """
        Configure the forest. Every call of `fit` grows a new one.

        Args:
            n_estimators (int, optional): A number of trees. Defaults to the value
                from configuration.
            max_features (float | Literal["sqrt", "log2"], optional): Features
                considered at every split, either a rule or a fraction of all
                features. Defaults to the value from configuration.
            min_samples_leaf (int, optional): Minimal number of rows in a leaf.
                Defaults to the value from configuration.
            random_state (int | None, optional): Seed of the forest. Defaults to
                the value from configuration.
            n_jobs (int | None, optional): A number of parallel workers growing
                trees. Defaults to the value from configuration.
            persistence_path (Path, optional): JSON file with tuned attributes.
                Defaults to the value from configuration.
        """
        self._n_estimators = n_estimators
        self._max_features = max_features
        self._min_samples_leaf = min_samples_leaf
        self._random_state = random_state
        self._n_jobs = n_jobs
        self._persistence_path = persistence_path

    @override
    def fit(self, features: pd.DataFrame, labels: pd.Series) -> ClassifierModel:
        if features.empty:
            raise ValueError("Cannot train a classifier without training rows.")
        if len(features) != len(labels):
            raise ValueError(
                f"Got {len(features)} feature rows but {len(labels)} labels."
            )
        targets = np.asarray(labels.astype(str))
        observed = np.unique(targets)
        if len(observed) < 2:
            raise ValueError(
                f"Training rows have to cover at least two classes, got {observed}."
            )

        estimator = RandomForestClassifier(
            n_estimators=self._n_estimators,
            max_features=self._max_features,
            min_samples_leaf=self._min_samples_leaf,
            random_state=self._random_state,
            n_jobs=self._n_jobs,
        )
        estimator.fit(features, targets)
        logger.debug(
            f"Trained a forest of {self._n_estimators} trees on {len(features)} rows, "
            f"{features.shape[1]} features and {len(observed)} classes"
        )
        return ClassifierModel(
            estimator=estimator,
            classes=tuple(str(c) for c in estimator.classes_),
            features=tuple(str(c) for c in features.columns),
        )

    @override
    def predict_proba(
        self, model: ClassifierModel, features: pd.DataFrame
    ) -> pd.DataFrame:
        selected = model.select_features(features)
        probabilities = model.estimator.predict_proba(selected)
        return pd.DataFrame(
            probabilities, index=features.index, columns=list(model.classes)
        )

    @override
    def feature_importances(self, model: ClassifierModel) -> ImportanceTable:
        scores = model.estimator.feature_importances_
        return ImportanceTable(
            scores={
                name: float(score)
                for name, score in zip(model.features, scores, strict=True)
            }
        )

    @override
    def get_tunable_attributes(self) -> dict[str, Range]:
        return {
            "_n_estimators": Range(min=100, max=1000, type=int),
            # As a fraction of all features.
            "_max_features": Range(min=0.05, max=1.0, type=float),
            "_min_samples_leaf": Range(min=1, max=10, type=int),
        }
