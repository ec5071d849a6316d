"""Module for hard decisions, scoring and evaluation of classifiers."""

import math
from collections.abc import Iterable, Sequence

import numpy as np
import pandas as pd
from loguru import logger
from sklearn import metrics

from biber_eval.data_models import (
    ConfusionMatrix,
    Evaluation,
    LabelVocabulary,
    PredictionRecord,
    ProbabilityContractError,
    Split,
)
from biber_eval.ml.classifier import Classifier


def _as_strings(values: Iterable[object]) -> np.ndarray:
    return np.asarray([str(value) for value in values], dtype=object)


def check_probabilities(probabilities: pd.DataFrame, atol: float = 1e-6) -> None:
    """
    Verify that every row is a probability vector.

    Rows are never renormalised, a violation means a broken classifier.

    Args:
        probabilities (pd.DataFrame): One row per prediction, one column per class.
        atol (float, optional): Absolute tolerance of the row sums. Defaults to 1e-6.

    Raises:
        ProbabilityContractError: Raised if any value is undefined or negative, or
            any row does not sum up to 1.
    """
    values = probabilities.to_numpy(dtype=float)
    if np.isnan(values).any():
        raise ProbabilityContractError("Probability vectors contain undefined values.")
    if (values < -atol).any():
        raise ProbabilityContractError("Probability vectors contain negative values.")
    sums = values.sum(axis=1)
    invalid = ~np.isclose(sums, 1.0, rtol=0.0, atol=atol)
    if invalid.any():
        first = int(np.flatnonzero(invalid)[0])
        raise ProbabilityContractError(
            f"{int(invalid.sum())} probability vectors do not sum up to 1, e.g. row "
            f"{probabilities.index[first]!r} sums up to {sums[first]}."
        )


def derive_hard_labels(
    probabilities: pd.DataFrame, vocabulary: LabelVocabulary
) -> pd.Categorical:
    """
    Pick the most probable label of every row.

    Ties are broken in favour of the first maximal column, that is the class
    that comes first in the model's internal class order (scikit-learn sorts
    class names). The winning label is then re-expressed in the order of the
    original vocabulary, not in the column order of the model.

    Args:
        probabilities (pd.DataFrame): One row per prediction, one column per class.
        vocabulary (LabelVocabulary): The original label vocabulary.

    Raises:
        ProbabilityContractError: Raised if rows are not probability vectors.
        ValueError: Raised if a column is not a member of the vocabulary.

    Returns:
        pd.Categorical: Hard labels over the original vocabulary.
    """
    check_probabilities(probabilities)
    columns = _as_strings(probabilities.columns)
    outside = [column for column in columns if column not in vocabulary]
    if outside:
        raise ValueError(
            f"Classes {outside} are not members of the vocabulary "
            f"{vocabulary.labels}."
        )
    if probabilities.empty:
        return vocabulary.encode([])
    winners = probabilities.to_numpy(dtype=float).argmax(axis=1)
    return vocabulary.encode(columns[winners])


def accuracy(true_labels: Iterable[object], predicted: Iterable[object]) -> float:
    """
    Get the fraction of rows with a correct prediction.

    Returns:
        float: Accuracy, NaN if there are no rows.
    """
    truth = _as_strings(true_labels)
    guesses = _as_strings(predicted)
    if len(truth) != len(guesses):
        raise ValueError(
            f"Got {len(truth)} true labels but {len(guesses)} predictions."
        )
    if len(truth) == 0:
        return math.nan
    return float(metrics.accuracy_score(truth, guesses))


def confusion_matrix(
    true_labels: Iterable[object],
    predicted: Iterable[object],
    vocabulary: LabelVocabulary,
) -> ConfusionMatrix:
    """
    Count every (true label, predicted label) pair.

    Args:
        true_labels (Iterable[object]): True labels.
        predicted (Iterable[object]): Hard labels.
        vocabulary (LabelVocabulary): Labels spanning both axes.

    Returns:
        ConfusionMatrix: The full grid, zero where a pair was not observed.
    """
    truth = vocabulary.encode(true_labels)
    guesses = vocabulary.encode(predicted)
    if len(truth) != len(guesses):
        raise ValueError(
            f"Got {len(truth)} true labels but {len(guesses)} predictions."
        )
    # scikit-learn refuses a grid without any true label.
    if len(truth) == 0:
        counts = np.zeros((len(vocabulary), len(vocabulary)), dtype=int)
    else:
        counts = metrics.confusion_matrix(
            _as_strings(truth), _as_strings(guesses), labels=list(vocabulary.labels)
        )
    return ConfusionMatrix(vocabulary=vocabulary, counts=counts.tolist())


def false_human_rate(
    true_labels: Iterable[object], predicted: Iterable[object], human_label: str
) -> float:
    """
    Get the fraction of LLM-written rows predicted as human.

    Returns:
        float: The rate, NaN if there are no LLM-written rows.
    """
    truth = _as_strings(true_labels)
    guesses = _as_strings(predicted)
    machine = truth != human_label
    if not machine.any():
        return math.nan
    return float((guesses[machine] == human_label).mean())


def false_llm_rate(
    true_labels: Iterable[object], predicted: Iterable[object], human_label: str
) -> float:
    """
    Get the fraction of human-written rows predicted as any LLM.

    Returns:
        float: The rate, NaN if there are no human-written rows.
    """
    truth = _as_strings(true_labels)
    guesses = _as_strings(predicted)
    human = truth == human_label
    if not human.any():
        return math.nan
    return float((guesses[human] != human_label).mean())


def accuracy_by_group(
    true_labels: Iterable[object],
    predicted: Iterable[object],
    groups: Iterable[object],
    all_groups: Iterable[str] | None = None,
) -> dict[str, float]:
    """
    Get accuracy within every group, e.g. genre.

    Args:
        true_labels (Iterable[object]): True labels.
        predicted (Iterable[object]): Hard labels.
        groups (Iterable[object]): A group of every row.
        all_groups (Iterable[str] | None, optional): Groups to report, also
            those without rows. Defaults to the observed groups.

    Returns:
        dict[str, float]: Accuracy per group, NaN for groups without rows.
    """
    truth = _as_strings(true_labels)
    guesses = _as_strings(predicted)
    membership = _as_strings(groups)
    names = sorted(set(membership)) if all_groups is None else list(all_groups)
    return {
        name: accuracy(truth[membership == name], guesses[membership == name])
        for name in names
    }


def prediction_records(
    true_labels: Iterable[object],
    probabilities: pd.DataFrame,
    hard_labels: Iterable[object],
) -> list[PredictionRecord]:
    """Zip true labels, probability vectors and hard labels into records."""
    columns = [str(column) for column in probabilities.columns]
    return [
        PredictionRecord(
            true_label=str(truth),
            probabilities=dict(zip(columns, map(float, row), strict=True)),
            hard_label=str(guess),
        )
        for truth, row, guess in zip(
            true_labels,
            probabilities.to_numpy(dtype=float),
            hard_labels,
            strict=True,
        )
    ]


class Evaluator:
    """Runner of independent fit, predict and score cycles."""

    def __init__(
        self,
        classifier: Classifier,
        vocabulary: LabelVocabulary,
        human_label: str,
    ) -> None:
        """
        Bind a classifier to a label vocabulary.

        Args:
            classifier (Classifier): A classifier trained anew in every cycle.
            vocabulary (LabelVocabulary): Labels of the problem, of any size.
            human_label (str): The label of human-written rows.

        Raises:
            ValueError: Raised if the human label is not in the vocabulary.
        """
        vocabulary.index(human_label)
        self._classifier = classifier
        self._vocabulary = vocabulary
        self._human_label = human_label

    @property
    def vocabulary(self) -> LabelVocabulary:
        """Labels of the problem."""
        return self._vocabulary

    @property
    def classifier(self) -> Classifier:
        """The classifier trained in every cycle."""
        return self._classifier

    def evaluate(
        self,
        split: Split,
        features: Sequence[str] | None = None,
        *,
        with_importance: bool = True,
        with_predictions: bool = True,
    ) -> Evaluation:
        """
        Train on the train side and score on the test side.

        The trained model lives only within this call.

        Args:
            split (Split): The partition.
            features (Sequence[str] | None, optional): Features to use. Defaults
                to all features of the split.
            with_importance (bool, optional): Whether to compute feature
                importances. Defaults to True.
            with_predictions (bool, optional): Whether to keep a record of every
                test row. Defaults to True.

        Returns:
            Evaluation: Scores of the cycle.
        """
        x_train = split.features("train", features)
        y_train = self._vocabulary.encode(split.labels("train"))
        model = self._classifier.fit(x_train, pd.Series(y_train, index=x_train.index))

        x_test = split.features("test", features)
        y_test = self._vocabulary.encode(split.labels("test"))
        if x_test.empty:
            logger.warning("The test set is empty. Scores are undefined.")
            probabilities = pd.DataFrame(columns=list(model.classes), dtype=float)
        else:
            probabilities = self._classifier.predict_proba(model, x_test)
        hard_labels = derive_hard_labels(probabilities, self._vocabulary)

        all_genres = sorted(
            set(split.train[split.group_column]) | set(split.test[split.group_column])
        )
        evaluation = Evaluation(
            accuracy=accuracy(y_test, hard_labels),
            false_human_rate=false_human_rate(y_test, hard_labels, self._human_label),
            false_llm_rate=false_llm_rate(y_test, hard_labels, self._human_label),
            train_size=len(x_train),
            test_size=len(x_test),
            features=[str(column) for column in x_train.columns],
            accuracy_by_genre=accuracy_by_group(
                y_test, hard_labels, split.test[split.group_column], all_genres
            ),
            confusion=confusion_matrix(y_test, hard_labels, self._vocabulary),
            importance=(
                self._classifier.feature_importances(model) if with_importance else None
            ),
            predictions=(
                prediction_records(y_test, probabilities, hard_labels)
                if with_predictions
                else []
            ),
        )
        logger.debug(
            f"Accuracy {evaluation.accuracy:.4f} on {evaluation.test_size} rows "
            f"with {len(evaluation.features)} features"
        )
        return evaluation
