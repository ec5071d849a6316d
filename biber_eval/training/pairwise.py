"""Module with binary classifiers of every LLM against the human baseline."""

from collections.abc import Iterable, Iterator, Mapping

import pandas as pd
from loguru import logger
from pydantic import BaseModel

from biber_eval.data_models import (
    ImportanceTable,
    LabelVocabulary,
    PairwiseOmission,
    PairwiseResult,
    Split,
)
from biber_eval.ml.classifier import Classifier
from biber_eval.training.evaluation import Evaluator


def pairwise_sources(
    vocabulary: LabelVocabulary,
    human_label: str,
    excluded_labels: Iterable[str] = (),
) -> list[str]:
    """
    Get sources compared against the human baseline, in vocabulary order.

    Args:
        vocabulary (LabelVocabulary): All source labels.
        human_label (str): The human baseline.
        excluded_labels (Iterable[str], optional): Labels not compared at all.
            Defaults to ().

    Returns:
        list[str]: Labels of the compared sources.
    """
    return list(vocabulary.without(human_label, *excluded_labels).labels)


def merge_importances(tables: Mapping[str, ImportanceTable]) -> pd.DataFrame:
    """
    Merge importance tables of several fits into a wide table.

    Args:
        tables (Mapping[str, ImportanceTable]): Importance keyed by the compared
            source.

    Returns:
        pd.DataFrame: One row per feature and one column per source.
    """
    frame = pd.DataFrame(
        {source: pd.Series(table.scores) for source, table in tables.items()}
    )
    frame.index.name = "feature"
    frame.columns.name = "source"
    return frame


class PairwiseSweep(BaseModel):
    """Results of all pairwise comparisons."""

    results: list[PairwiseResult] = []
    omissions: list[PairwiseOmission] = []

    def accuracy_frame(self) -> pd.DataFrame:
        """Get accuracy of every compared source."""
        return pd.DataFrame(
            [
                {
                    "source": result.source,
                    "accuracy": result.accuracy,
                    "train_size": result.train_size,
                    "test_size": result.test_size,
                }
                for result in self.results
            ],
            columns=["source", "accuracy", "train_size", "test_size"],
        )

    def importance_frame(self) -> pd.DataFrame:
        """Get feature importances of every compared source as a wide table."""
        return merge_importances(
            {result.source: result.importance for result in self.results}
        )


def iter_pairwise_sweep(
    classifier: Classifier,
    split: Split,
    vocabulary: LabelVocabulary,
    human_label: str,
    *,
    excluded_labels: Iterable[str] = (),
    min_rows: int = 20,
) -> Iterator[PairwiseResult | PairwiseOmission]:
    """
    Train a binary classifier of every source against the human baseline.

    Args:
        classifier (Classifier): A classifier trained anew for every source.
        split (Split): The partition of all sources.
        vocabulary (LabelVocabulary): All source labels.
        human_label (str): The human baseline.
        excluded_labels (Iterable[str], optional): Labels not compared at all.
            Defaults to ().
        min_rows (int, optional): Minimal number of training rows of each of
            both classes. Sources with fewer rows, or a pair lacking test rows of
            either class, are skipped. Defaults to 20.

    Yields:
        PairwiseResult | PairwiseOmission: Outcome of a source, as soon as its
            cycle completes.
    """
    for source in pairwise_sources(vocabulary, human_label, excluded_labels):
        pair = split.restrict((source, human_label))
        train_labels = pair.labels("train").astype(str)
        test_labels = pair.labels("test").astype(str)
        smallest_class = min(
            int((train_labels == source).sum()),
            int((train_labels == human_label).sum()),
        )
        test_counts = (
            int((test_labels == source).sum()),
            int((test_labels == human_label).sum()),
        )
        if smallest_class < min_rows or min(test_counts) == 0:
            reason = (
                f"{smallest_class} training rows of the smaller class "
                f"(minimum {min_rows}), {test_counts[0]} test rows of the source "
                f"and {test_counts[1]} test rows of the human baseline"
            )
            logger.warning(f"Skipping `{source}` vs `{human_label}`: {reason}")
            yield PairwiseOmission(source=source, reason=reason)
            continue

        evaluator = Evaluator(
            classifier, vocabulary.restrict((source, human_label)), human_label
        )
        evaluation = evaluator.evaluate(pair, with_predictions=False)
        if evaluation.importance is None:
            raise RuntimeError(f"Missing feature importances for `{source}`.")
        logger.info(
            f"`{source}` vs `{human_label}`: accuracy {evaluation.accuracy:.4f}"
        )
        yield PairwiseResult(
            source=source,
            accuracy=evaluation.accuracy,
            train_size=evaluation.train_size,
            test_size=evaluation.test_size,
            importance=evaluation.importance,
        )


def pairwise_sweep(
    classifier: Classifier,
    split: Split,
    vocabulary: LabelVocabulary,
    human_label: str,
    *,
    excluded_labels: Iterable[str] = (),
    min_rows: int = 20,
) -> PairwiseSweep:
    """Collect all outcomes of `iter_pairwise_sweep`."""
    sweep = PairwiseSweep()
    for outcome in iter_pairwise_sweep(
        classifier,
        split,
        vocabulary,
        human_label,
        excluded_labels=excluded_labels,
        min_rows=min_rows,
    ):
        if isinstance(outcome, PairwiseOmission):
            sweep.omissions.append(outcome)
        else:
            sweep.results.append(outcome)
    return sweep
