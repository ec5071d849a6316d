"""Shared fixtures with synthetic Biber feature tables."""

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import override

import numpy as np
import pandas as pd
import pytest

from biber_eval.configuration import BIBER_FEATURES, Configuration
from biber_eval.data_models import ImportanceTable, Range, Split
from biber_eval.ml.classifier import Classifier, ClassifierModel
from biber_eval.ml.random_forest import RandomForestClassifierAdapter
from biber_eval.training.dataset import DatasetPreparer, PreparedDataset
from biber_eval.training.splitter import stratified_document_split

SOURCE_TAGS = list(Configuration().source_labels)
GENRES = ("acad", "fic", "news")


def _make_raw_frame(
    documents_per_genre: int = 15,
    genres: Sequence[str] = GENRES,
    tags: Sequence[str] = SOURCE_TAGS,
    seed: int = 0,
) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    rows = []
    for genre in genres:
        for number in range(documents_per_genre):
            for index, tag in enumerate(tags):
                row = {
                    "doc_id": f"{genre}_{number:04d}@{tag}",
                    **{name: rng.normal(0.0, 1.0) for name in BIBER_FEATURES},
                }
                # Separates every source from the others.
                row["f_01_past_tense"] = index + rng.normal(0.0, 0.2)
                row["f_02_perfect_aspect"] = (index % 2) * 2 + rng.normal(0.0, 0.2)
                row["f_43_type_token"] = rng.uniform(0.4, 0.6)
                row["f_44_mean_word_length"] = rng.uniform(4.0, 5.0)
                rows.append(row)
    return pd.DataFrame(rows)


class MajorityClassifier(Classifier):
    """Classifier always predicting the most frequent training label."""

    def __init__(self, persistence_path: Path = Path("majority.json")) -> None:
        self._persistence_path = persistence_path

    @override
    def fit(self, features: pd.DataFrame, labels: pd.Series) -> ClassifierModel:
        counts = labels.astype(str).value_counts()
        return ClassifierModel(
            estimator=str(counts.idxmax()),
            classes=tuple(sorted(counts.index)),
            features=tuple(features.columns),
        )

    @override
    def predict_proba(
        self, model: ClassifierModel, features: pd.DataFrame
    ) -> pd.DataFrame:
        selected = model.select_features(features)
        values = np.zeros((len(selected), len(model.classes)))
        values[:, model.classes.index(model.estimator)] = 1.0
        return pd.DataFrame(values, index=features.index, columns=list(model.classes))

    @override
    def feature_importances(self, model: ClassifierModel) -> ImportanceTable:
        return ImportanceTable(scores={name: 0.0 for name in model.features})

    @override
    def get_tunable_attributes(self) -> dict[str, Range]:
        return {}


@pytest.fixture
def make_raw_frame() -> Callable[..., pd.DataFrame]:
    return _make_raw_frame


@pytest.fixture
def raw_frame() -> pd.DataFrame:
    return _make_raw_frame()


@pytest.fixture
def configuration(tmp_path: Path) -> Configuration:
    return Configuration(
        n_estimators=25,
        max_features=0.5,
        n_jobs=1,
        sweep_max_features=3,
        pairwise_min_rows=5,
        tuning_trials=2,
        output_directory=tmp_path / "results",
        classifier_parameters_path=tmp_path / "random_forest.json",
    )


@pytest.fixture
def forest(configuration: Configuration) -> RandomForestClassifierAdapter:
    return RandomForestClassifierAdapter(
        n_estimators=configuration.n_estimators,
        max_features=configuration.max_features,
        random_state=0,
        n_jobs=1,
        persistence_path=configuration.classifier_parameters_path,
    )


@pytest.fixture
def majority_classifier() -> MajorityClassifier:
    return MajorityClassifier()


@pytest.fixture
def dataset(configuration: Configuration, raw_frame: pd.DataFrame) -> PreparedDataset:
    return DatasetPreparer(configuration).prepare(raw_frame)


@pytest.fixture
def split(configuration: Configuration, dataset: PreparedDataset) -> Split:
    return stratified_document_split(
        dataset.frame,
        feature_names=dataset.feature_names,
        test_fraction=configuration.test_fraction,
        seed=configuration.seed,
        excluded_labels=configuration.excluded_labels,
    )
