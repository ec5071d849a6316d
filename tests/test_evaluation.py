import math

import numpy as np
import pandas as pd
import pytest

from biber_eval.configuration import Configuration
from biber_eval.data_models import LabelVocabulary, ProbabilityContractError, Split
from biber_eval.labels import BUCKET_VOCABULARY, HUMAN_BUCKET, bucket_mapping
from biber_eval.ml.classifier import Classifier
from biber_eval.training.dataset import PreparedDataset
from biber_eval.training.evaluation import (
    Evaluator,
    accuracy,
    accuracy_by_group,
    check_probabilities,
    confusion_matrix,
    derive_hard_labels,
    false_human_rate,
    false_llm_rate,
)

BINARY = LabelVocabulary(labels=("human", "llm"))


def test_confusion_of_a_small_binary_problem() -> None:
    truth = ["human", "llm", "llm", "human"]
    predicted = ["human", "llm", "human", "human"]

    confusion = confusion_matrix(truth, predicted, BINARY)

    assert confusion.count("human", "human") == 2
    assert confusion.count("human", "llm") == 0
    assert confusion.count("llm", "human") == 1
    assert confusion.count("llm", "llm") == 1
    assert accuracy(truth, predicted) == 0.75


def test_false_human_rate() -> None:
    truth = ["human", "llm", "llm"]
    predicted = ["human", "human", "llm"]

    assert false_human_rate(truth, predicted, "human") == 0.5
    assert false_llm_rate(truth, predicted, "human") == 0.0


def test_false_llm_rate() -> None:
    truth = ["human", "human", "human", "llm"]
    predicted = ["llm", "human", "human", "llm"]

    assert false_llm_rate(truth, predicted, "human") == pytest.approx(1 / 3)


def test_rates_without_the_relevant_rows_are_undefined() -> None:
    assert math.isnan(false_human_rate(["human"], ["human"], "human"))
    assert math.isnan(false_llm_rate(["llm"], ["human"], "human"))
    assert math.isnan(accuracy([], []))


def test_confusion_grid_is_complete() -> None:
    vocabulary = LabelVocabulary(labels=("a", "b", "c", "d"))

    confusion = confusion_matrix(["a", "a"], ["a", "c"], vocabulary)

    assert confusion.to_frame().shape == (4, 4)
    assert len(confusion.to_long()) == 16
    assert int(confusion.to_frame().to_numpy().sum()) == 2
    assert confusion.count("d", "d") == 0


def test_normalized_view_is_conditional_on_true_label() -> None:
    confusion = confusion_matrix(
        ["human", "llm", "llm", "human"], ["human", "llm", "human", "human"], BINARY
    )

    normalized = confusion.normalized()

    assert normalized.loc["human", "human"] == 1.0
    assert normalized.loc["llm", "human"] == 0.5
    np.testing.assert_allclose(normalized.sum(axis=1), [1.0, 1.0])


def test_normalized_rows_of_absent_labels_are_undefined() -> None:
    vocabulary = LabelVocabulary(labels=("a", "b", "c"))

    normalized = confusion_matrix(["a", "b"], ["a", "a"], vocabulary).normalized()

    assert normalized.loc["c"].isna().all()
    assert normalized.loc["b", "a"] == 1.0


def test_ties_go_to_the_first_model_column() -> None:
    vocabulary = LabelVocabulary(labels=("llm", "human"))
    probabilities = pd.DataFrame(
        [[0.5, 0.5], [0.2, 0.8]], columns=["human", "llm"]
    )

    hard_labels = derive_hard_labels(probabilities, vocabulary)

    assert list(hard_labels) == ["human", "llm"]
    # Hard labels are expressed in the original vocabulary order.
    assert list(hard_labels.categories) == ["llm", "human"]


def test_hard_labels_always_belong_to_the_vocabulary() -> None:
    vocabulary = LabelVocabulary(labels=("a", "b", "c"))
    rng = np.random.default_rng(0)
    values = rng.dirichlet(np.ones(2), size=50)
    probabilities = pd.DataFrame(values, columns=["a", "c"])

    hard_labels = derive_hard_labels(probabilities, vocabulary)

    assert set(hard_labels) <= {"a", "c"}
    assert list(hard_labels.categories) == ["a", "b", "c"]


def test_columns_outside_the_vocabulary_are_rejected() -> None:
    probabilities = pd.DataFrame([[1.0, 0.0]], columns=["human", "robot"])

    with pytest.raises(ValueError, match="robot"):
        derive_hard_labels(probabilities, BINARY)


@pytest.mark.parametrize(
    "rows",
    [[[0.6, 0.6]], [[np.nan, 1.0]], [[1.5, -0.5]]],
    ids=["sum", "nan", "negative"],
)
def test_broken_probability_vectors_are_reported(rows: list[list[float]]) -> None:
    with pytest.raises(ProbabilityContractError):
        check_probabilities(pd.DataFrame(rows, columns=["human", "llm"]))


def test_empty_probabilities_give_no_labels() -> None:
    probabilities = pd.DataFrame(columns=["human", "llm"], dtype=float)

    assert len(derive_hard_labels(probabilities, BINARY)) == 0


def test_accuracy_by_group_reports_empty_groups() -> None:
    scores = accuracy_by_group(
        ["a", "b", "a"], ["a", "a", "a"], ["x", "x", "y"], all_groups=["x", "y", "z"]
    )

    assert scores["x"] == 0.5
    assert scores["y"] == 1.0
    assert math.isnan(scores["z"])


def test_majority_classifier_accuracy_is_majority_frequency(
    majority_classifier: Classifier,
    dataset: PreparedDataset,
    split: Split,
    configuration: Configuration,
) -> None:
    # Make "GPT-4o" the training majority by dropping rows of other sources.
    kept_documents = sorted(split.train_ids)[:15]
    thinned = split.train[
        (split.train["source"] == "GPT-4o")
        | split.train["doc_id"].isin(kept_documents)
    ]
    lopsided = split.model_copy(update={"train": thinned})

    evaluation = Evaluator(
        majority_classifier, dataset.vocabulary, configuration.human_label
    ).evaluate(lopsided)

    frequency = (lopsided.test["source"] == "GPT-4o").mean()
    assert evaluation.accuracy == pytest.approx(frequency)
    assert evaluation.false_llm_rate == 1.0
    assert evaluation.false_human_rate == 0.0


@pytest.mark.parametrize("size", [8, 3, 2])
def test_engine_is_agnostic_of_vocabulary_size(
    size: int,
    forest: Classifier,
    dataset: PreparedDataset,
    split: Split,
    configuration: Configuration,
) -> None:
    if size == 8:
        vocabulary, human = dataset.vocabulary, configuration.human_label
        problem = split
    elif size == 3:
        vocabulary, human = BUCKET_VOCABULARY, HUMAN_BUCKET
        problem = split.relabel(bucket_mapping(configuration), vocabulary)
    else:
        human = configuration.human_label
        vocabulary = dataset.vocabulary.restrict(("GPT-4o", human))
        problem = split.restrict(vocabulary.labels)

    evaluation = Evaluator(forest, vocabulary, human).evaluate(problem)

    assert len(evaluation.confusion.to_long()) == size**2
    assert 0.0 <= evaluation.accuracy <= 1.0
    assert sum(map(sum, evaluation.confusion.counts)) == len(problem.test)
    assert len(evaluation.predictions) == len(problem.test)
    assert all(r.hard_label in vocabulary for r in evaluation.predictions)
    assert evaluation.importance is not None
    assert set(evaluation.importance.scores) == set(dataset.feature_names)


def test_separable_sources_are_recognised(
    forest: Classifier,
    dataset: PreparedDataset,
    split: Split,
    configuration: Configuration,
) -> None:
    evaluation = Evaluator(
        forest, dataset.vocabulary, configuration.human_label
    ).evaluate(split)

    assert evaluation.accuracy > 0.8
    assert evaluation.importance is not None
    assert evaluation.importance.top(1) == ["f_01_past_tense"]
    assert set(evaluation.accuracy_by_genre) == {"acad", "fic", "news"}


def test_human_label_has_to_be_in_the_vocabulary(forest: Classifier) -> None:
    with pytest.raises(ValueError, match="not a member"):
        Evaluator(forest, BINARY, "Chunk 2")


def test_empty_confusion_is_a_zero_grid() -> None:
    confusion = confusion_matrix([], [], BINARY)

    assert confusion.counts == [[0, 0], [0, 0]]


def test_missing_labels_are_rejected() -> None:
    vocabulary = LabelVocabulary(labels=("a", "b", "c"))

    with pytest.raises(ValueError, match="missing"):
        confusion_matrix(["a", None], ["a", "a"], vocabulary)
    with pytest.raises(ValueError, match="missing"):
        vocabulary.encode(["a", np.nan])
