"""Module for tuning hyperparameters of classifiers."""

import copy

import optuna
from loguru import logger

from biber_eval.data_models import LabelVocabulary, Number, Split
from biber_eval.ml.classifier import Classifier
from biber_eval.training.evaluation import Evaluator
from biber_eval.training.splitter import stratified_document_split


def optimise(
    classifier: Classifier,
    split: Split,
    vocabulary: LabelVocabulary,
    human_label: str,
    *,
    trials: int = 25,
    seed: int = 42,
    validation_fraction: float = 0.2,
) -> dict[str, Number]:
    """
    Optimise hyperparameters of a classifier for accuracy.

    Trials are scored on a validation split carved out of the training side,
    so the test side stays unseen.

    Args:
        classifier (Classifier): The classifier to be tuned. It is not modified.
        split (Split): The partition whose training side is used.
        vocabulary (LabelVocabulary): Labels of the problem.
        human_label (str): The label of human-written rows.
        trials (int, optional): A number of tuning trials. Defaults to 25.
        seed (int, optional): Seed of the validation split and the sampler.
            Defaults to 42.
        validation_fraction (float, optional): Fraction of training documents
            used for validation. Defaults to 0.2.

    Returns:
        dict[str, Number]: Mapping of attributes of the classifier to its optimal
            values.
    """
    # Skip non-tunable classifiers.
    if not classifier.get_tunable_attributes():
        return {}

    inner_split = stratified_document_split(
        split.train,
        feature_names=split.feature_names,
        test_fraction=validation_fraction,
        seed=seed,
        group_column=split.group_column,
        id_column=split.id_column,
        label_column=split.label_column,
    )

    def objective(trial: optuna.Trial) -> float:
        local_classifier = copy.deepcopy(classifier)
        for (
            attribute_name,
            attribute_range,
        ) in local_classifier.get_tunable_attributes().items():
            if attribute_range.type is float:
                setattr(
                    local_classifier,
                    attribute_name,
                    trial.suggest_float(
                        attribute_name,
                        low=attribute_range.min,  # pyright: ignore[reportArgumentType]
                        high=attribute_range.max,  # pyright: ignore[reportArgumentType]
                    ),
                )
            elif attribute_range.type is int:
                setattr(
                    local_classifier,
                    attribute_name,
                    trial.suggest_int(
                        attribute_name,
                        low=attribute_range.min,  # pyright: ignore[reportArgumentType]
                        high=attribute_range.max,  # pyright: ignore[reportArgumentType]
                    ),
                )

        evaluator = Evaluator(local_classifier, vocabulary, human_label)
        evaluation = evaluator.evaluate(
            inner_split, with_importance=False, with_predictions=False
        )
        return evaluation.accuracy

    study = optuna.create_study(
        direction="maximize", sampler=optuna.samplers.TPESampler(seed=seed)
    )
    study.optimize(objective, n_trials=trials)
    logger.info(f"Best validation accuracy: {study.best_value:.4f}")

    return study.best_params  # E.g. {'_n_estimators': 612, '_max_features': 0.31}
