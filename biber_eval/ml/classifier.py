"""Module with an interface for a probabilistic multi-class classifier."""

from abc import ABC, abstractmethod
from typing import Any

import pandas as pd
from pydantic import BaseModel, ConfigDict

from biber_eval.data_models import FilePersistent, ImportanceTable, MissingColumnsError


class ClassifierModel(BaseModel):
    """Trained estimator bound to its class order and feature names."""

    estimator: Any
    classes: tuple[str, ...]
    features: tuple[str, ...]

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def select_features(self, features: pd.DataFrame) -> pd.DataFrame:
        """
        Order columns of a feature matrix the way the model was trained.

        Raises:
            MissingColumnsError: Raised if any training feature is absent.
        """
        missing = [name for name in self.features if name not in features.columns]
        if missing:
            raise MissingColumnsError(missing, features.columns)
        return features[list(self.features)]


class Classifier(FilePersistent, ABC):
    """An interface for a classifier yielding class-membership probabilities."""

    @abstractmethod
    def fit(self, features: pd.DataFrame, labels: pd.Series) -> ClassifierModel:
        """
        Train a fresh model.

        Args:
            features (pd.DataFrame): Feature matrix, one column per feature.
            labels (pd.Series): A label of every row.

        Returns:
            ClassifierModel: The trained model. It is never shared with other
                fits.
        """

    @abstractmethod
    def predict_proba(
        self, model: ClassifierModel, features: pd.DataFrame
    ) -> pd.DataFrame:
        """
        Get class-membership probabilities.

        Args:
            model (ClassifierModel): A model returned by `fit`.
            features (pd.DataFrame): Feature matrix with the training features.

        Returns:
            pd.DataFrame: One row per input row and one column per class, in
                the order of `model.classes`. Every row sums up to 1.
        """

    @abstractmethod
    def feature_importances(self, model: ClassifierModel) -> ImportanceTable:
        """
        Get impurity-based importance of every training feature.

        Args:
            model (ClassifierModel): A model returned by `fit`.

        Returns:
            ImportanceTable: Non-negative scores, higher means more discriminative.
        """

    def get_name(self) -> str:
        """
        Get name of the classifier.

        Returns:
            str: Name of the classifier.
        """
        return type(self).__name__
