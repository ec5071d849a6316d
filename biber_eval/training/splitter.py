"""Module with the document-level stratified train/test split."""

import math
from collections.abc import Iterable, Sequence

import pandas as pd
from loguru import logger
from sklearn.model_selection import train_test_split

from biber_eval.data_models import LABEL_COLUMN, Split


def stratified_document_split(
    frame: pd.DataFrame,
    *,
    feature_names: Sequence[str],
    test_fraction: float,
    seed: int,
    group_column: str = "genre",
    id_column: str = "doc_id",
    label_column: str = LABEL_COLUMN,
    excluded_labels: Iterable[str] = (),
) -> Split:
    """
    Split rows into train and test sets at the document granularity.

    Unique documents are split by scikit-learn stratified on their group, so
    that every group contributes about `test_fraction` of its documents to the
    test set. All rows of a document land on the side of that document. Groups
    with a single document stay in the train set.

    Args:
        frame (pd.DataFrame): Rows with document ids, groups and labels.
        feature_names (Sequence[str]): Columns used as predictive features.
        test_fraction (float): Target fraction of documents in the test set.
        seed (int): Seed of the random assignment.
        group_column (str, optional): Stratification key. Defaults to "genre".
        id_column (str, optional): Document identifier. Defaults to "doc_id".
        label_column (str, optional): Label of a row. Defaults to "source".
        excluded_labels (Iterable[str], optional): Labels removed from both sides
            after the split. Defaults to ().

    Raises:
        ValueError: Raised if the fraction is outside (0, 1), a document
            belongs to more than one group, or the test set would be smaller
            than the number of groups.

    Returns:
        Split: The partition.
    """
    if not 0.0 < test_fraction < 1.0:
        raise ValueError(f"Test fraction has to be in (0, 1), got {test_fraction}.")

    documents = (
        frame[[id_column, group_column]]
        .drop_duplicates()
        .astype({id_column: str})
        .sort_values(id_column)
    )
    ambiguous = documents[documents[id_column].duplicated(keep=False)]
    if not ambiguous.empty:
        raise ValueError(
            f"Documents belong to more than one {group_column}: "
            f"{sorted(ambiguous[id_column].unique())[:10]}"
        )

    # A stratum of a single document cannot be stratified, it stays in training.
    sizes = documents[group_column].map(documents[group_column].value_counts())
    stratified = documents[sizes >= 2]
    train_ids = set(documents.loc[sizes < 2, id_column])
    test_ids: set[str] = set()
    if not stratified.empty:
        train_part, test_part = train_test_split(
            stratified[id_column].to_numpy(),
            test_size=test_fraction,
            stratify=stratified[group_column].to_numpy(),
            random_state=seed,
        )
        train_ids.update(train_part.tolist())
        test_ids.update(test_part.tolist())

    for group, stratum in documents.groupby(group_column, sort=True):
        n_test = int(stratum[id_column].isin(test_ids).sum())
        if n_test == 0 or n_test == len(stratum):
            side = "test" if n_test == 0 else "train"
            logger.warning(
                f"{group_column.capitalize()} `{group}` has no documents in the "
                f"{side} set ({len(stratum)} documents in total)"
            )

    ids = frame[id_column].astype(str)
    kept = ~frame[label_column].isin(list(excluded_labels))
    train = frame[ids.isin(train_ids) & kept]
    test = frame[ids.isin(test_ids) & kept]
    logger.info(
        f"Split {len(documents)} documents into {len(train_ids)} train "
        f"({len(train)} rows) and {len(test_ids)} test ({len(test)} rows) documents"
    )
    return Split(
        train=train,
        test=test,
        train_ids=frozenset(train_ids),
        test_ids=frozenset(test_ids),
        feature_names=tuple(feature_names),
        test_fraction=test_fraction,
        seed=seed,
        label_column=label_column,
        id_column=id_column,
        group_column=group_column,
    )


def stratification_report(
    split: Split, groups: Iterable[str] | None = None
) -> pd.DataFrame:
    """
    Compare the test fraction of documents of every group with the target.

    Args:
        split (Split): The partition.
        groups (Iterable[str] | None, optional): Groups to report. Defaults to
            the groups observed in the split.

    Returns:
        pd.DataFrame: Columns `group`, `train_documents`, `test_documents`,
            `test_fraction` and `deviation`. Fractions of empty groups are NaN.
    """
    documents = pd.concat(
        [
            split.train[[split.id_column, split.group_column]].assign(side="train"),
            split.test[[split.id_column, split.group_column]].assign(side="test"),
        ]
    ).drop_duplicates()
    if groups is None:
        groups = sorted(documents[split.group_column].unique())

    rows = []
    for group in groups:
        in_group = documents[documents[split.group_column] == group]
        n_train = int((in_group["side"] == "train").sum())
        n_test = int((in_group["side"] == "test").sum())
        total = n_train + n_test
        fraction = n_test / total if total else math.nan
        rows.append(
            {
                "group": group,
                "train_documents": n_train,
                "test_documents": n_test,
                "test_fraction": fraction,
                "deviation": abs(fraction - split.test_fraction),
            }
        )
    return pd.DataFrame(
        rows,
        columns=[
            "group",
            "train_documents",
            "test_documents",
            "test_fraction",
            "deviation",
        ],
    )
