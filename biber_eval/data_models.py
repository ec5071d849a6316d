"""Module with project-wide data models."""

import json
import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Annotated, Any, Literal, Self

import pandas as pd
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

Number = float | int
SideName = Literal["train", "test"]

# Columns identifying a row. They must never be used as predictive features.
KEY_COLUMNS: tuple[str, ...] = ("text_id", "doc_id", "genre")
LABEL_COLUMN = "source"


class MissingColumnsError(ValueError):
    """Raised when a table lacks columns required by the feature contract."""

    def __init__(self, missing: Iterable[str], available: Iterable[str]) -> None:
        """
        Build an error message naming the missing columns.

        Args:
            missing (Iterable[str]): Names of the required but absent columns.
            available (Iterable[str]): Names of the columns actually present.
        """
        self.missing = list(missing)
        super().__init__(
            f"Required columns {self.missing} are missing. "
            f"Available columns: {list(available)}"
        )


class ProbabilityContractError(ValueError):
    """Raised when a classifier returns rows that are not probability vectors."""


def _unit_interval_or_nan(value: float) -> float:
    if math.isnan(value):
        return value
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"Expected a value in the range [0, 1] or NaN, got {value}.")
    return value


Rate = Annotated[float, AfterValidator(_unit_interval_or_nan)]


class Range(BaseModel):
    """Inclusive continuous range of numeric values."""

    min: Number
    max: Number
    type: type[Number]


class FilePersistent(ABC):
    """An interface for object that support persistence in a disk file."""

    _persistence_path: Path

    @abstractmethod
    def get_tunable_attributes(self) -> dict[str, Range]:
        """
        Get a mapping of tunable attributes with their ranges.

        Returns:
            dict[str, Range]: Mapping of tunable attributes with their ranges of valid
                values.
        """

    def set_tunable_attributes(self, attributes: Mapping[str, Number]) -> None:
        """
        Set tunable attributes to specific values.

        Parameter `attributes` matches the output of the optimise() function.

        Args:
            attributes (Mapping[str, Number]): Mapping of attribute names to their
                values that should be set.

        Raises:
            ValueError: Raised if there is an attempt to set a parameter that does not
                exist in the object.
        """
        for attribute, value in attributes.items():
            if not hasattr(self, attribute):
                raise ValueError(
                    f"There is no such parameter `{attribute}` for "
                    f"{type(self).__qualname__}."
                )
            setattr(self, attribute, value)

    def save(self) -> None:
        """Save current values of tunable attributes to a file."""
        key_value_pairs = {
            attribute: getattr(self, attribute)
            for attribute in self.get_tunable_attributes()
        }
        self._persistence_path.parent.mkdir(parents=True, exist_ok=True)
        self._persistence_path.write_text(json.dumps(key_value_pairs))

    def load(self) -> None:
        """Load tunable attributes from a file to memory."""
        if not self._persistence_path.exists():
            raise FileNotFoundError(
                f"There is no such parameter file {self._persistence_path} for "
                f"{type(self).__qualname__} to load it."
            )

        parameters: dict[str, Any] = json.loads(self._persistence_path.read_text())
        self.set_tunable_attributes(parameters)


class LabelVocabulary(BaseModel):
    """Closed, ordered and finite set of labels."""

    labels: tuple[str, ...]

    model_config = ConfigDict(frozen=True)

    @field_validator("labels")
    @classmethod
    def validate_labels(cls, labels: tuple[str, ...]) -> tuple[str, ...]:
        """Validate that the vocabulary is non-empty and has no duplicates."""
        if not labels:
            raise ValueError("A label vocabulary cannot be empty.")
        if len(set(labels)) != len(labels):
            raise ValueError(f"A label vocabulary has duplicated labels: {labels}.")
        return labels

    def __len__(self) -> int:
        """Get the number of labels in the vocabulary."""
        return len(self.labels)

    def __contains__(self, label: object) -> bool:
        """Check whether a label belongs to the vocabulary."""
        return label in self.labels

    def index(self, label: str) -> int:
        """
        Get a position of the label in the vocabulary.

        Raises:
            ValueError: Raised if the label is not a member of the vocabulary.
        """
        try:
            return self.labels.index(label)
        except ValueError:
            raise ValueError(
                f"Label `{label}` is not a member of the vocabulary {self.labels}."
            ) from None

    def encode(self, values: Iterable[Any]) -> pd.Categorical:
        """
        Express values as an ordered categorical over this vocabulary.

        Args:
            values (Iterable[Any]): Labels to be encoded.

        Raises:
            ValueError: Raised if any value is missing or not a member of the
                vocabulary.

        Returns:
            pd.Categorical: Ordered categorical with all vocabulary labels as
                categories, also the unobserved ones.
        """
        series = pd.Series(list(values), dtype=object)
        if series.isna().any():
            raise ValueError(
                f"{int(series.isna().sum())} labels are missing, every row needs one."
            )
        unknown = sorted({str(v) for v in series.unique()} - set(self.labels))
        if unknown:
            raise ValueError(
                f"Labels {unknown} are not members of the vocabulary {self.labels}."
            )
        return pd.Categorical(series, categories=list(self.labels), ordered=True)

    def relabel(
        self, values: Iterable[Any], mapping: Callable[[str], str]
    ) -> pd.Categorical:
        """
        Map values with a pure function and encode them over this vocabulary.

        Args:
            values (Iterable[Any]): Labels of another vocabulary.
            mapping (Callable[[str], str]): Conversion of a single label.

        Returns:
            pd.Categorical: Converted labels.
        """
        return self.encode(mapping(str(value)) for value in values)

    def restrict(self, labels: Iterable[str]) -> "LabelVocabulary":
        """Keep only the given labels, preserving the vocabulary order."""
        wanted = set(labels)
        for label in wanted:
            self.index(label)
        return LabelVocabulary(
            labels=tuple(label for label in self.labels if label in wanted)
        )

    def without(self, *labels: str) -> "LabelVocabulary":
        """Drop the given labels, preserving the vocabulary order."""
        return LabelVocabulary(
            labels=tuple(label for label in self.labels if label not in labels)
        )


class Document(BaseModel):
    """A single text of a single source with its precomputed Biber features."""

    text_id: str
    doc_id: str
    source: str
    genre: str
    features: dict[str, float]

    model_config = ConfigDict(frozen=True)


class ImportanceTable(BaseModel):
    """Impurity-based importance of features of a single trained classifier."""

    scores: dict[str, float]

    model_config = ConfigDict(frozen=True)

    @field_validator("scores")
    @classmethod
    def validate_scores(cls, scores: dict[str, float]) -> dict[str, float]:
        """Validate that all scores are non-negative."""
        negative = {name: s for name, s in scores.items() if not s >= 0.0}
        if negative:
            raise ValueError(f"Importance scores must be non-negative: {negative}.")
        return scores

    def ranked(self) -> list[tuple[str, float]]:
        """
        Sort features by descending importance.

        The sort is stable, features with equal scores keep their original order.

        Returns:
            list[tuple[str, float]]: Pairs of a feature name and its score.
        """
        return sorted(self.scores.items(), key=lambda item: -item[1])

    def top(self, k: int) -> list[str]:
        """Get names of the `k` most important features."""
        return [name for name, _ in self.ranked()[:k]]

    def to_frame(self) -> pd.DataFrame:
        """Convert the table into a frame sorted by descending importance."""
        return pd.DataFrame(self.ranked(), columns=["feature", "importance"])


class ConfusionMatrix(BaseModel):
    """Counts of (true label, predicted label) pairs over a whole vocabulary."""

    vocabulary: LabelVocabulary
    counts: list[list[int]]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_shape(self) -> Self:
        """Validate that the grid covers the full vocabulary cross-product."""
        size = len(self.vocabulary)
        if len(self.counts) != size or any(len(row) != size for row in self.counts):
            raise ValueError(
                f"A confusion matrix over {size} labels has to be {size}x{size}."
            )
        return self

    def count(self, true_label: str, predicted_label: str) -> int:
        """Get the number of rows of `true_label` predicted as `predicted_label`."""
        return self.counts[self.vocabulary.index(true_label)][
            self.vocabulary.index(predicted_label)
        ]

    def to_frame(self) -> pd.DataFrame:
        """Get the grid with true labels as rows and predictions as columns."""
        labels = list(self.vocabulary.labels)
        return pd.DataFrame(
            self.counts,
            index=pd.Index(labels, name="true"),
            columns=pd.Index(labels, name="predicted"),
        )

    def normalized(self) -> pd.DataFrame:
        """
        Get the distribution of predictions conditioned on the true label.

        Returns:
            pd.DataFrame: Row-wise fractions. Rows of labels absent from the test
                set are NaN.
        """
        frame = self.to_frame().astype(float)
        return frame.div(frame.sum(axis=1), axis=0)

    def to_long(self, normalize: bool = False) -> pd.DataFrame:
        """Get one row per (true, predicted) pair, unobserved pairs included."""
        frame = self.normalized() if normalize else self.to_frame()
        value_column = "fraction" if normalize else "count"
        labels = self.vocabulary.labels
        return pd.DataFrame(
            [
                {"true": t, "predicted": p, value_column: frame.at[t, p]}
                for t in labels
                for p in labels
            ]
        )


class PredictionRecord(BaseModel):
    """Prediction for a single test row."""

    true_label: str
    probabilities: dict[str, float]
    hard_label: str


class Evaluation(BaseModel):
    """Evaluation sheet of a single fit/predict/score cycle."""

    accuracy: Rate
    false_human_rate: Rate
    false_llm_rate: Rate
    train_size: int = Field(..., ge=0)
    test_size: int = Field(..., ge=0)
    features: list[str]
    accuracy_by_genre: dict[str, Rate] = {}
    confusion: ConfusionMatrix
    importance: ImportanceTable | None = None
    predictions: list[PredictionRecord] = []

    def __str__(self) -> str:
        """
        Convert the evaluation into a textual form.

        Returns:
            str: Pretty textual form of an evaluation.
        """
        return (
            f"  Accuracy:         {self.accuracy:.4f}\n"
            f"  False human rate: {self.false_human_rate:.4f}\n"
            f"  False LLM rate:   {self.false_llm_rate:.4f}\n"
            f"  Test rows:        {self.test_size}"
        )


class SweepPoint(BaseModel):
    """Accuracy of a model trained on the `size` most important features."""

    size: int = Field(..., ge=1)
    accuracy: Rate


class PairwiseResult(BaseModel):
    """Outcome of a binary classifier of one source against the human baseline."""

    source: str
    accuracy: Rate
    train_size: int
    test_size: int
    importance: ImportanceTable


class PairwiseOmission(BaseModel):
    """A source skipped by the pairwise sweep."""

    source: str
    reason: str


class Split(BaseModel):
    """Train and test rows partitioned at the document level."""

    train: pd.DataFrame
    test: pd.DataFrame
    train_ids: frozenset[str]
    test_ids: frozenset[str]
    feature_names: tuple[str, ...]
    test_fraction: float
    seed: int
    label_column: str = LABEL_COLUMN
    id_column: str = "doc_id"
    group_column: str = "genre"

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @model_validator(mode="after")
    def validate_partition(self) -> Self:
        """Validate that no document is on both sides of the split."""
        shared = self.train_ids & self.test_ids
        if shared:
            raise ValueError(
                f"Documents {sorted(shared)[:10]} are both in the train and test set."
            )
        return self

    def side(self, name: SideName) -> pd.DataFrame:
        """Get rows of the train or test side."""
        return self.train if name == "train" else self.test

    def features(
        self, name: SideName, subset: Iterable[str] | None = None
    ) -> pd.DataFrame:
        """
        Get the feature matrix of one side.

        Grouping keys and the label are never part of it.

        Args:
            name (SideName): Either "train" or "test".
            subset (Iterable[str] | None, optional): Features to be selected in
                the given order. Defaults to all features.

        Returns:
            pd.DataFrame: The feature matrix.
        """
        columns = list(subset) if subset is not None else list(self.feature_names)
        forbidden = [c for c in columns if c in (*KEY_COLUMNS, self.label_column)]
        if forbidden:
            raise ValueError(f"Columns {forbidden} cannot be used as features.")
        return self.side(name)[columns]

    def labels(self, name: SideName) -> pd.Series:
        """Get the labels of one side."""
        return self.side(name)[self.label_column]

    def restrict(self, labels: Iterable[str]) -> "Split":
        """Keep only rows whose label is one of `labels`, on both sides."""
        wanted = list(labels)
        return self.model_copy(
            update={
                "train": self.train[self.train[self.label_column].isin(wanted)],
                "test": self.test[self.test[self.label_column].isin(wanted)],
            }
        )

    def relabel(
        self, mapping: Callable[[str], str], vocabulary: LabelVocabulary
    ) -> "Split":
        """
        Replace labels on both sides with labels of another vocabulary.

        Args:
            mapping (Callable[[str], str]): Pure conversion of a single label.
            vocabulary (LabelVocabulary): Vocabulary of the converted labels.

        Returns:
            Split: A new split with the same rows and converted labels.
        """
        train = self.train.copy()
        test = self.test.copy()
        train[self.label_column] = vocabulary.relabel(
            train[self.label_column], mapping
        )
        test[self.label_column] = vocabulary.relabel(test[self.label_column], mapping)
        return self.model_copy(update={"train": train, "test": test})
