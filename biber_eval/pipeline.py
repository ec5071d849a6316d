"""Module orchestrating the whole generator attribution study."""

import pandas as pd
from loguru import logger
from pydantic import BaseModel, ConfigDict

from biber_eval.configuration import Configuration, config
from biber_eval.data_models import Evaluation, PairwiseOmission, Split, SweepPoint
from biber_eval.labels import BUCKET_VOCABULARY, HUMAN_BUCKET, bucket_mapping
from biber_eval.ml.classifier import Classifier
from biber_eval.ml.random_forest import RandomForestClassifierAdapter
from biber_eval.reporting import ResultWriter
from biber_eval.training.dataset import DatasetPreparer, PreparedDataset
from biber_eval.training.evaluation import Evaluator
from biber_eval.training.importance_sweep import iter_importance_sweep, rank_features
from biber_eval.training.pairwise import PairwiseSweep, iter_pairwise_sweep
from biber_eval.training.splitter import (
    stratification_report,
    stratified_document_split,
)


def build_classifier(configuration: Configuration = config) -> Classifier:
    """
    Create the default classifier, with tuned attributes if they were saved.

    Args:
        configuration (Configuration, optional): Forest settings and the path of
            tuned attributes. Defaults to the global configuration.

    Returns:
        Classifier: A random forest adapter.
    """
    classifier = RandomForestClassifierAdapter(
        n_estimators=configuration.n_estimators,
        max_features=configuration.max_features,
        min_samples_leaf=configuration.min_samples_leaf,
        random_state=configuration.seed,
        n_jobs=configuration.n_jobs,
        persistence_path=configuration.classifier_parameters_path,
    )
    if configuration.classifier_parameters_path.exists():
        logger.info(
            f"Loading tuned parameters from {configuration.classifier_parameters_path}"
        )
        classifier.load()
    return classifier


class StudyResults(BaseModel):
    """All structured records produced by the study."""

    dataset_size: int
    stratification: pd.DataFrame
    full: Evaluation
    sweep: list[SweepPoint]
    pairwise: PairwiseSweep
    buckets: Evaluation

    model_config = ConfigDict(arbitrary_types_allowed=True)


class Study:
    """Generator attribution study on precomputed Biber features."""

    def __init__(
        self,
        configuration: Configuration = config,
        classifier: Classifier | None = None,
        writer: ResultWriter | None = None,
    ) -> None:
        """
        Configure the study.

        Args:
            configuration (Configuration, optional): Settings of the study.
                Defaults to the global configuration.
            classifier (Classifier | None, optional): Classifier trained in every
                cycle. Defaults to a random forest built from the configuration.
            writer (ResultWriter | None, optional): Sink of the artifacts.
                Defaults to a writer of the configured output directory.
        """
        self._config = configuration
        self._classifier = classifier or build_classifier(configuration)
        self._writer = writer
        self._preparer = DatasetPreparer(configuration)

    def prepare(self, frame: pd.DataFrame) -> PreparedDataset:
        """Decode and clean a raw feature table."""
        return self._preparer.prepare(frame)

    def split(self, dataset: PreparedDataset) -> Split:
        """Split a prepared dataset into train and test documents."""
        return stratified_document_split(
            dataset.frame,
            feature_names=dataset.feature_names,
            test_fraction=self._config.test_fraction,
            seed=self._config.seed,
            excluded_labels=self._config.excluded_labels,
        )

    def run(self, frame: pd.DataFrame) -> StudyResults:
        """
        Run every stage of the study and write artifacts as stages complete.

        Stages are the full multi-class model, the importance sweep, the pairwise
        sweep and the three-bucket model.

        Args:
            frame (pd.DataFrame): The raw feature table.

        Returns:
            StudyResults: Records of all stages.
        """
        writer = self._writer or ResultWriter(self._config.output_directory)
        dataset = self.prepare(frame)
        split = self.split(dataset)

        report = stratification_report(split)
        writer.write_stratification(report)
        drifting = report[report["deviation"] > self._config.stratification_tolerance]
        for group in drifting["group"]:
            logger.warning(f"Genre `{group}` deviates from the target test fraction")

        logger.info(f"Training the full model on {len(dataset.vocabulary)} labels")
        evaluator = Evaluator(
            self._classifier, dataset.vocabulary, self._config.human_label
        )
        full = evaluator.evaluate(split)
        logger.info(f"\nFull model:\n{full}")
        if full.importance is None:
            raise RuntimeError("The full model has no feature importances.")
        writer.write_evaluation(full, "evaluation")
        writer.write_predictions(full, "evaluation")
        writer.write_importance(full.importance)
        writer.write_confusion(full.confusion, "confusion")

        logger.info("Sweeping over the most important features")
        sweep: list[SweepPoint] = []
        for point in iter_importance_sweep(
            evaluator,
            split,
            rank_features(full.importance),
            self._config.sweep_max_features,
        ):
            writer.append_sweep_point(point)
            sweep.append(point)

        logger.info("Comparing every LLM with the human baseline")
        pairwise = PairwiseSweep()
        for outcome in iter_pairwise_sweep(
            self._classifier,
            split,
            dataset.vocabulary,
            self._config.human_label,
            excluded_labels=self._config.excluded_labels,
            min_rows=self._config.pairwise_min_rows,
        ):
            writer.append_pairwise(outcome)
            if isinstance(outcome, PairwiseOmission):
                pairwise.omissions.append(outcome)
            else:
                pairwise.results.append(outcome)

        logger.info("Training the model of human, base and instruct buckets")
        bucket_split = split.relabel(bucket_mapping(self._config), BUCKET_VOCABULARY)
        buckets = Evaluator(
            self._classifier, BUCKET_VOCABULARY, HUMAN_BUCKET
        ).evaluate(bucket_split)
        logger.info(f"\nThree-bucket model:\n{buckets}")
        writer.write_evaluation(buckets, "bucket_evaluation")
        writer.write_confusion(buckets.confusion, "bucket_confusion")

        writer.log_summary()
        return StudyResults(
            dataset_size=dataset.get_size(),
            stratification=report,
            full=full,
            sweep=sweep,
            pairwise=pairwise,
            buckets=buckets,
        )
