"""Module with label vocabularies of the study and conversions between them."""

from collections.abc import Callable, Iterable
from functools import partial
from typing import Final

from biber_eval.configuration import Configuration
from biber_eval.data_models import LabelVocabulary

HUMAN_BUCKET: Final = "human"
BASE_BUCKET: Final = "base"
INSTRUCT_BUCKET: Final = "instruct"

BUCKET_VOCABULARY = LabelVocabulary(labels=(HUMAN_BUCKET, BASE_BUCKET, INSTRUCT_BUCKET))


def source_vocabulary(configuration: Configuration) -> LabelVocabulary:
    """
    Build the vocabulary of generator identities.

    Args:
        configuration (Configuration): Configuration with the ordered mapping of
            source tags to display labels.

    Returns:
        LabelVocabulary: Display labels in the configured order.
    """
    return LabelVocabulary(labels=tuple(configuration.source_labels.values()))


def human_labels(configuration: Configuration) -> frozenset[str]:
    """Get all variants of the human baseline, including the excluded ones."""
    return frozenset((configuration.human_label, *configuration.excluded_labels))


def bucket_label(
    label: str,
    *,
    human_labels: Iterable[str],
    instruct_prefixes: Iterable[str] = ("GPT",),
    instruct_suffixes: Iterable[str] = ("Instruct",),
) -> str:
    """
    Collapse a source label into one of the three coarse buckets.

    Rules are evaluated in priority order: a human baseline variant is
    "human", a label with an instruction-tuned prefix or suffix is "instruct",
    anything else is "base".

    Args:
        label (str): Source label.
        human_labels (Iterable[str]): Variants of the human baseline.
        instruct_prefixes (Iterable[str], optional): Prefixes of model families
            that are instruction-tuned. Defaults to ("GPT",).
        instruct_suffixes (Iterable[str], optional): Suffixes marking
            instruction-tuning. Defaults to ("Instruct",).

    Returns:
        str: One of "human", "base", "instruct".
    """
    if label in set(human_labels):
        return HUMAN_BUCKET
    if label.startswith(tuple(instruct_prefixes)) or label.endswith(
        tuple(instruct_suffixes)
    ):
        return INSTRUCT_BUCKET
    return BASE_BUCKET


def bucket_mapping(configuration: Configuration) -> Callable[[str], str]:
    """Get the three-bucket conversion bound to the configured naming conventions."""
    return partial(
        bucket_label,
        human_labels=human_labels(configuration),
        instruct_prefixes=tuple(configuration.instruct_prefixes),
        instruct_suffixes=tuple(configuration.instruct_suffixes),
    )
