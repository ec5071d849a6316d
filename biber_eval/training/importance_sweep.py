"""Module with nested models of the most important features."""

from collections.abc import Iterator, Sequence

from loguru import logger

from biber_eval.data_models import ImportanceTable, Split, SweepPoint
from biber_eval.training.evaluation import Evaluator


def rank_features(importance: ImportanceTable) -> list[str]:
    """
    Order features by descending importance.

    Features with equal importance keep their original order.

    Args:
        importance (ImportanceTable): Importance of a trained model.

    Returns:
        list[str]: Feature names, the most important first.
    """
    return [name for name, _ in importance.ranked()]


def iter_importance_sweep(
    evaluator: Evaluator,
    split: Split,
    ranking: Sequence[str],
    max_features: int = 20,
) -> Iterator[SweepPoint]:
    """
    Evaluate models trained on the top 1, 2, ..., K features of a ranking.

    Every size trains a fresh classifier. Accuracy is not guaranteed to grow
    with the size.

    Args:
        evaluator (Evaluator): Runner of fit/predict/score cycles.
        split (Split): The partition.
        ranking (Sequence[str]): Features ordered by descending importance.
        max_features (int, optional): The largest subset size K. Defaults to 20.

    Yields:
        SweepPoint: Accuracy of a subset, as soon as its cycle completes.
    """
    if max_features < 1:
        raise ValueError(f"The sweep needs at least one feature, got {max_features}.")
    largest = min(max_features, len(ranking))
    for size in range(1, largest + 1):
        evaluation = evaluator.evaluate(
            split,
            features=ranking[:size],
            with_importance=False,
            with_predictions=False,
        )
        logger.info(f"Top {size:2d} features: accuracy {evaluation.accuracy:.4f}")
        yield SweepPoint(size=size, accuracy=evaluation.accuracy)


def importance_sweep(
    evaluator: Evaluator,
    split: Split,
    ranking: Sequence[str],
    max_features: int = 20,
) -> list[SweepPoint]:
    """Collect all points of `iter_importance_sweep`."""
    return list(iter_importance_sweep(evaluator, split, ranking, max_features))
