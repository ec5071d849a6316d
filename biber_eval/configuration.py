"""The configuration module."""

import tomllib
from pathlib import Path
from typing import Literal, Self

from pydantic import BaseModel, Field, model_validator

# The 67 features of Biber's multidimensional analysis, as tagged by pybiber.
BIBER_FEATURES: tuple[str, ...] = (
    "f_01_past_tense",
    "f_02_perfect_aspect",
    "f_03_present_tense",
    "f_04_place_adverbials",
    "f_05_time_adverbials",
    "f_06_first_person_pronouns",
    "f_07_second_person_pronouns",
    "f_08_third_person_pronouns",
    "f_09_pronoun_it",
    "f_10_demonstrative_pronoun",
    "f_11_indefinite_pronouns",
    "f_12_proverb_do",
    "f_13_wh_question",
    "f_14_nominalizations",
    "f_15_gerunds",
    "f_16_other_nouns",
    "f_17_agentless_passives",
    "f_18_by_passives",
    "f_19_be_main_verb",
    "f_20_existential_there",
    "f_21_that_verb_comp",
    "f_22_that_adj_comp",
    "f_23_wh_clause",
    "f_24_infinitives",
    "f_25_present_participle",
    "f_26_past_participle",
    "f_27_past_participle_whiz",
    "f_28_present_participle_whiz",
    "f_29_that_subj",
    "f_30_that_obj",
    "f_31_wh_subj",
    "f_32_wh_obj",
    "f_33_pied_piping",
    "f_34_sentence_relatives",
    "f_35_because",
    "f_36_though",
    "f_37_if",
    "f_38_other_adv_sub",
    "f_39_prepositions",
    "f_40_adj_attr",
    "f_41_adj_pred",
    "f_42_adverbs",
    "f_43_type_token",
    "f_44_mean_word_length",
    "f_45_conjuncts",
    "f_46_downtoners",
    "f_47_hedges",
    "f_48_amplifiers",
    "f_49_emphatics",
    "f_50_discourse_particles",
    "f_51_demonstratives",
    "f_52_modal_possibility",
    "f_53_modal_necessity",
    "f_54_modal_predictive",
    "f_55_verb_public",
    "f_56_verb_private",
    "f_57_verb_suasive",
    "f_58_verb_seem",
    "f_59_contractions",
    "f_60_that_deletion",
    "f_61_stranded_preposition",
    "f_62_split_infinitive",
    "f_63_split_auxiliary",
    "f_64_phrasal_coordination",
    "f_65_clausal_coordination",
    "f_66_neg_synthetic",
    "f_67_neg_analytic",
)


class Configuration(BaseModel):
    """Configuration of the study."""

    project_name: str = "Biber Generator Attribution"

    dataset_source: str = "browndw/human-ai-parallel-corpus-biber"
    dataset_split: str = "train"
    id_column: str = "doc_id"
    id_delimiter: str = "@"
    genre_delimiter: str = "_"
    feature_prefix: str = "f_"

    # Type-token ratio depends on text length and duplicates other lexical features.
    excluded_feature: str = "f_43_type_token"
    sentinel_features: tuple[str, str] = ("f_43_type_token", "f_44_mean_word_length")
    required_features: list[str] = list(BIBER_FEATURES)

    # Order of the mapping is the order of the label vocabulary.
    source_labels: dict[str, str] = {
        "chunk_1": "Chunk 1",
        "chunk_2": "Chunk 2",
        "gpt-4o-2024-08-06": "GPT-4o",
        "gpt-4o-mini-2024-07-18": "GPT-4o Mini",
        "Meta-Llama-3-8B": "Llama 3 8B",
        "Meta-Llama-3-8B-Instruct": "Llama 3 8B Instruct",
        "Meta-Llama-3-70B": "Llama 3 70B",
        "Meta-Llama-3-70B-Instruct": "Llama 3 70B Instruct",
    }
    human_label: str = "Chunk 2"
    excluded_labels: list[str] = ["Chunk 1"]
    instruct_prefixes: list[str] = ["GPT"]
    instruct_suffixes: list[str] = ["Instruct"]

    test_fraction: float = Field(0.2, gt=0.0, lt=1.0)
    seed: int = 42
    stratification_tolerance: float = Field(0.05, gt=0.0, lt=1.0)

    n_estimators: int = Field(500, ge=1)
    max_features: float | Literal["sqrt", "log2"] = "sqrt"
    min_samples_leaf: int = Field(1, ge=1)
    n_jobs: int | None = -1

    sweep_max_features: int = Field(20, ge=1)
    pairwise_min_rows: int = Field(20, ge=2)

    tuning_trials: int = Field(25, ge=1)
    tuning_validation_fraction: float = Field(0.2, gt=0.0, lt=1.0)

    output_directory: Path = Path("./data/results")
    classifier_parameters_path: Path = Path("./data/random_forest.json")

    @model_validator(mode="after")
    def validate_labels(self) -> Self:
        """Validate that the special labels belong to the label vocabulary."""
        labels = list(self.source_labels.values())
        if len(set(labels)) != len(labels):
            raise ValueError(f"Source labels must be unique, got {labels}.")
        unknown = [
            label
            for label in (self.human_label, *self.excluded_labels)
            if label not in labels
        ]
        if unknown:
            raise ValueError(
                f"Labels {unknown} are not present in the source label mapping "
                f"{labels}."
            )
        if self.human_label in self.excluded_labels:
            raise ValueError(
                f"The human baseline `{self.human_label}` cannot be excluded."
            )
        return self

    @model_validator(mode="after")
    def validate_features(self) -> Self:
        """Validate that configured features follow the feature prefix convention."""
        features = (
            self.excluded_feature,
            *self.sentinel_features,
            *self.required_features,
        )
        malformed = [f for f in features if not f.startswith(self.feature_prefix)]
        if malformed:
            raise ValueError(
                f"Features {malformed} do not start with the feature prefix "
                f"`{self.feature_prefix}`."
            )
        return self

    @property
    def expected_features(self) -> list[str]:
        """Feature columns that have to be present in every dataset."""
        features = (
            *self.sentinel_features,
            self.excluded_feature,
            *self.required_features,
        )
        return list(dict.fromkeys(features))


def load_configuration(
    configuration_file: Path = Path("config.toml"),
) -> Configuration:
    """Load configuration from the configuration file, if there is one."""
    if not configuration_file.exists():
        return Configuration()
    with configuration_file.open("rb") as f:
        settings = tomllib.load(f)
    return Configuration(**settings)


config = load_configuration()
