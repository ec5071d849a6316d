"""Module with preparation of the Biber feature dataset."""

from collections.abc import Iterator
from pathlib import Path

import pandas as pd
from loguru import logger
from pydantic import BaseModel, ConfigDict

from biber_eval.configuration import Configuration, config
from biber_eval.data_models import (
    LABEL_COLUMN,
    Document,
    LabelVocabulary,
    MissingColumnsError,
)
from biber_eval.labels import source_vocabulary


class PreparedDataset(BaseModel):
    """Decoded dataset with one row per (document, source) pair."""

    frame: pd.DataFrame
    feature_names: tuple[str, ...]
    vocabulary: LabelVocabulary

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def get_size(self) -> int:
        """
        Get a number of rows in the dataset.

        Returns:
            int:
        """
        return len(self.frame)

    def documents(self) -> Iterator[Document]:
        """
        Iterate over rows as typed records.

        Yields:
            Document: A record of a single row.
        """
        for values in self.frame.to_dict(orient="records"):
            yield Document(
                text_id=values["text_id"],
                doc_id=values["doc_id"],
                source=str(values[LABEL_COLUMN]),
                genre=values["genre"],
                features={name: float(values[name]) for name in self.feature_names},
            )


class DatasetPreparer:
    """Tool for reading the feature table and decoding it into labelled rows."""

    def __init__(self, configuration: Configuration = config) -> None:
        """
        Set the conventions of the feature table.

        Args:
            configuration (Configuration, optional): Column names, delimiters and
                label mapping. Defaults to the global configuration.
        """
        self._config = configuration
        self._vocabulary = source_vocabulary(configuration)

    def load(self, source: str | Path | None = None) -> pd.DataFrame:
        """
        Read a raw feature table from a local file or the Hugging Face Hub.

        Args:
            source (str | Path | None, optional): Path to a `.parquet`, `.csv`,
                `.json` or `.jsonl` file, or an identifier of a Hub dataset.
                Defaults to the value from the configuration.

        Raises:
            ValueError: Raised if a local file has an unsupported format.

        Returns:
            pd.DataFrame: The raw table.
        """
        source = source if source is not None else self._config.dataset_source
        path = Path(source)
        if path.exists():
            logger.info(f"Reading the feature table from {path}")
            match path.suffix.lower():
                case ".parquet":
                    return pd.read_parquet(path)
                case ".csv":
                    return pd.read_csv(path)
                case ".json":
                    return pd.read_json(path)
                case ".jsonl":
                    return pd.read_json(path, lines=True)
                case _:
                    raise ValueError(f"Unsupported dataset file format: {path.suffix}")

        from datasets import load_dataset

        logger.info(
            f"Downloading the feature table `{source}` "
            f"(split `{self._config.dataset_split}`) from the Hugging Face Hub"
        )
        dataset = load_dataset(str(source), split=self._config.dataset_split)
        return dataset.to_pandas()

    def prepare(self, frame: pd.DataFrame) -> PreparedDataset:
        """
        Decode labels and grouping keys and clean the feature table.

        Args:
            frame (pd.DataFrame): Raw table with a compound id column and
                prefixed feature columns.

        Raises:
            MissingColumnsError: Raised if the id column or any expected feature
                column is absent.
            ValueError: Raised if an id lacks the delimiter or carries an unknown
                source tag.

        Returns:
            PreparedDataset: Rows with `text_id`, `doc_id`, `genre`, `source` and
                the feature columns.
        """
        self._validate_columns(frame)

        text_ids = frame[self._config.id_column].astype(str)
        doc_ids, tags = self._decode_ids(text_ids)
        labels = self._decode_labels(tags)
        genres = doc_ids.str.split(self._config.genre_delimiter, n=1).str[0]

        feature_names = [
            column
            for column in frame.columns
            if str(column).startswith(self._config.feature_prefix)
            and column != self._config.excluded_feature
        ]

        prepared = pd.DataFrame(
            {
                "text_id": text_ids.to_numpy(),
                "doc_id": doc_ids.to_numpy(),
                "genre": genres.to_numpy(),
                LABEL_COLUMN: labels,
            }
        )
        sentinels = frame[list(self._config.sentinel_features)].reset_index(drop=True)
        features = frame[feature_names].reset_index(drop=True).astype(float)
        prepared = pd.concat([prepared, features], axis=1)

        defined = sentinels.notna().all(axis=1).to_numpy()
        dropped = int((~defined).sum())
        if dropped:
            logger.info(
                f"Dropping {dropped} rows with undefined "
                f"{list(self._config.sentinel_features)}"
            )
        prepared = prepared[defined].reset_index(drop=True)

        logger.debug(
            f"Prepared {len(prepared)} rows of {prepared['doc_id'].nunique()} "
            f"documents with {len(feature_names)} features"
        )
        return PreparedDataset(
            frame=prepared,
            feature_names=tuple(feature_names),
            vocabulary=self._vocabulary,
        )

    def _validate_columns(self, frame: pd.DataFrame) -> None:
        expected = [self._config.id_column, *self._config.expected_features]
        missing = [column for column in expected if column not in frame.columns]
        if not any(
            str(column).startswith(self._config.feature_prefix)
            and column != self._config.excluded_feature
            for column in frame.columns
        ):
            missing.append(f"{self._config.feature_prefix}*")
        if missing:
            raise MissingColumnsError(missing, frame.columns)

    def _decode_ids(self, text_ids: pd.Series) -> tuple[pd.Series, pd.Series]:
        delimiter = self._config.id_delimiter
        malformed = text_ids[~text_ids.str.contains(delimiter, regex=False)]
        if not malformed.empty:
            raise ValueError(
                f"{len(malformed)} ids lack the delimiter `{delimiter}`, "
                f"e.g. {malformed.head(3).tolist()}"
            )
        parts = text_ids.str.partition(delimiter)
        return parts[0], parts[2]

    def _decode_labels(self, tags: pd.Series) -> pd.Categorical:
        unknown = sorted(set(tags) - set(self._config.source_labels))
        if unknown:
            raise ValueError(
                f"Unknown source tags {unknown}. "
                f"Known tags: {list(self._config.source_labels)}"
            )
        return self._vocabulary.encode(tags.map(self._config.source_labels))
