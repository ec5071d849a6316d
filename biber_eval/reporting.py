"""Module exporting results of the study as CSV and JSON files."""

from pathlib import Path
from typing import Final

import pandas as pd
from loguru import logger

from biber_eval.configuration import config
from biber_eval.data_models import (
    ConfusionMatrix,
    Evaluation,
    ImportanceTable,
    PairwiseOmission,
    PairwiseResult,
    SweepPoint,
)
from biber_eval.training.pairwise import merge_importances


class ResultWriter:
    """Writer of the study artifacts, one file per kind of record."""

    importance_file: Final = "importance.csv"
    sweep_file: Final = "sweep.csv"
    pairwise_accuracy_file: Final = "pairwise_accuracy.csv"
    pairwise_omissions_file: Final = "pairwise_omissions.csv"
    pairwise_importance_file: Final = "pairwise_importance.csv"
    stratification_file: Final = "stratification.csv"

    def __init__(self, output_directory: Path = config.output_directory) -> None:
        """
        Create the output directory and remove artifacts of a previous run.

        Args:
            output_directory (Path, optional): Directory for all artifacts.
                Defaults to the value from configuration.
        """
        output_directory.mkdir(parents=True, exist_ok=True)
        self._directory = output_directory
        # Rows are appended as cycles complete, so stale rows must not stay.
        for name in (
            self.sweep_file,
            self.pairwise_accuracy_file,
            self.pairwise_omissions_file,
        ):
            (self._directory / name).unlink(missing_ok=True)
        self._pairwise_importance: dict[str, ImportanceTable] = {}

    @property
    def directory(self) -> Path:
        """Directory with all artifacts."""
        return self._directory

    def _append(self, name: str, row: dict[str, object]) -> None:
        path = self._directory / name
        pd.DataFrame([row]).to_csv(
            path, mode="a", header=not path.exists(), index=False
        )

    def write_importance(self, importance: ImportanceTable) -> Path:
        """Write features ranked by descending importance."""
        path = self._directory / self.importance_file
        frame = importance.to_frame()
        frame.insert(0, "rank", range(1, len(frame) + 1))
        frame.to_csv(path, index=False)
        return path

    def write_confusion(self, confusion: ConfusionMatrix, prefix: str) -> list[Path]:
        """
        Write a confusion matrix as a grid, a normalized grid and a long table.

        Args:
            confusion (ConfusionMatrix): The matrix.
            prefix (str): Prefix of file names, e.g. "confusion".

        Returns:
            list[Path]: Paths to the written files.
        """
        paths = [
            self._directory / f"{prefix}.csv",
            self._directory / f"{prefix}_normalized.csv",
            self._directory / f"{prefix}_long.csv",
        ]
        confusion.to_frame().to_csv(paths[0])
        confusion.normalized().to_csv(paths[1])
        confusion.to_long().to_csv(paths[2], index=False)
        return paths

    def write_evaluation(self, evaluation: Evaluation, name: str) -> Path:
        """Write an evaluation sheet without per-row predictions as JSON."""
        path = self._directory / f"{name}.json"
        path.write_text(
            evaluation.model_dump_json(indent=2, exclude={"predictions"}) + "\n"
        )
        return path

    def write_predictions(self, evaluation: Evaluation, name: str) -> Path:
        """Write a record of every test row as CSV."""
        path = self._directory / f"{name}_predictions.csv"
        pd.DataFrame(
            [
                {
                    "true_label": record.true_label,
                    "hard_label": record.hard_label,
                    **{
                        f"p_{label}": value
                        for label, value in record.probabilities.items()
                    },
                }
                for record in evaluation.predictions
            ]
        ).to_csv(path, index=False)
        return path

    def append_sweep_point(self, point: SweepPoint) -> None:
        """Append a single point of the importance sweep."""
        self._append(self.sweep_file, point.model_dump())

    def append_pairwise(self, outcome: PairwiseResult | PairwiseOmission) -> None:
        """Append an outcome of a pairwise comparison."""
        if isinstance(outcome, PairwiseOmission):
            self._append(self.pairwise_omissions_file, outcome.model_dump())
            return
        self._append(
            self.pairwise_accuracy_file,
            outcome.model_dump(exclude={"importance"}),
        )
        self._pairwise_importance[outcome.source] = outcome.importance
        merge_importances(self._pairwise_importance).to_csv(
            self._directory / self.pairwise_importance_file
        )

    def write_stratification(self, report: pd.DataFrame) -> Path:
        """Write per-genre test fractions of the split."""
        path = self._directory / self.stratification_file
        report.to_csv(path, index=False)
        return path

    def log_summary(self) -> None:
        """Log the written artifacts."""
        files = sorted(path.name for path in self._directory.iterdir())
        logger.info(f"Artifacts in {self._directory}: {', '.join(files)}")
