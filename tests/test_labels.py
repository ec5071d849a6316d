import pytest
from pydantic import ValidationError

from biber_eval.configuration import Configuration
from biber_eval.data_models import LabelVocabulary
from biber_eval.labels import (
    BUCKET_VOCABULARY,
    bucket_label,
    bucket_mapping,
    source_vocabulary,
)


@pytest.mark.parametrize(
    ("label", "bucket"),
    [
        ("Chunk 1", "human"),
        ("Chunk 2", "human"),
        ("GPT-4o", "instruct"),
        ("GPT-4o Mini", "instruct"),
        ("Llama 3 8B Instruct", "instruct"),
        ("Llama 3 70B Instruct", "instruct"),
        ("Llama 3 8B", "base"),
        ("Llama 3 70B", "base"),
    ],
)
def test_default_buckets(label: str, bucket: str) -> None:
    assert bucket_mapping(Configuration())(label) == bucket


def test_human_rule_takes_priority() -> None:
    assert bucket_label("GPT Instruct", human_labels={"GPT Instruct"}) == "human"


def test_custom_naming_conventions() -> None:
    assert (
        bucket_label(
            "Mistral 7B Chat",
            human_labels=(),
            instruct_prefixes=(),
            instruct_suffixes=("Chat",),
        )
        == "instruct"
    )
    assert bucket_label("GPT-4o", human_labels=(), instruct_prefixes=()) == "base"


def test_source_vocabulary_follows_configured_order() -> None:
    vocabulary = source_vocabulary(Configuration())

    assert len(vocabulary) == 8
    assert vocabulary.labels[:3] == ("Chunk 1", "Chunk 2", "GPT-4o")


def test_encoding_keeps_vocabulary_order_and_unobserved_labels() -> None:
    vocabulary = LabelVocabulary(labels=("human", "base", "instruct"))

    encoded = vocabulary.encode(["instruct", "human"])

    assert list(encoded.categories) == ["human", "base", "instruct"]
    assert encoded.ordered
    assert list(encoded.codes) == [2, 0]


def test_encoding_rejects_unknown_labels() -> None:
    with pytest.raises(ValueError, match="not members"):
        BUCKET_VOCABULARY.encode(["human", "robot"])


def test_vocabulary_rejects_duplicates_and_emptiness() -> None:
    with pytest.raises(ValidationError):
        LabelVocabulary(labels=("a", "a"))
    with pytest.raises(ValidationError):
        LabelVocabulary(labels=())


def test_restrict_and_without_preserve_order() -> None:
    vocabulary = LabelVocabulary(labels=("a", "b", "c", "d"))

    assert vocabulary.restrict(["d", "b"]).labels == ("b", "d")
    assert vocabulary.without("a", "c").labels == ("b", "d")
    with pytest.raises(ValueError, match="not a member"):
        vocabulary.restrict(["e"])


def test_relabel_is_a_pure_mapping() -> None:
    mapping = bucket_mapping(Configuration())
    labels = ["Chunk 2", "Llama 3 8B", "GPT-4o"]

    converted = BUCKET_VOCABULARY.relabel(labels, mapping)

    assert list(converted) == ["human", "base", "instruct"]
    assert labels == ["Chunk 2", "Llama 3 8B", "GPT-4o"]
