"""Entry point to the application as a Typer CLI."""

from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from typer import Typer

from biber_eval.configuration import config, load_configuration

app = Typer(no_args_is_help=True)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="TOML file overriding the default configuration."),
]
SourceOption = Annotated[
    str | None,
    typer.Option(
        "--source", help="Local feature table or a Hugging Face Hub dataset id."
    ),
]


@app.command("evaluate")
def run_study(
    source: SourceOption = None,
    output: Annotated[
        Path | None, typer.Option("--output", help="Directory for the artifacts.")
    ] = None,
    seed: Annotated[int | None, typer.Option("--seed")] = None,
    configuration_file: ConfigOption = None,
) -> None:
    """Run the full study: full model, feature sweep, pairwise and bucket models."""
    from biber_eval.pipeline import Study
    from biber_eval.training.dataset import DatasetPreparer

    configuration = (
        load_configuration(configuration_file) if configuration_file else config
    )
    overrides: dict[str, object] = {}
    if output is not None:
        overrides["output_directory"] = output
    if seed is not None:
        overrides["seed"] = seed
    configuration = configuration.model_copy(update=overrides)

    frame = DatasetPreparer(configuration).load(source)
    results = Study(configuration).run(frame)

    logger.info(f"Full model accuracy: {results.full.accuracy:.4f}")
    for result in results.pairwise.results:
        logger.info(f"  {result.source:<24} vs human: {result.accuracy:.4f}")
    for omission in results.pairwise.omissions:
        logger.info(f"  {omission.source:<24} skipped: {omission.reason}")
    logger.info(f"Three-bucket model accuracy: {results.buckets.accuracy:.4f}")


@app.command("tune")
def tune_classifier(
    source: SourceOption = None,
    trials: Annotated[int | None, typer.Option("--trials")] = None,
    configuration_file: ConfigOption = None,
) -> None:
    """Optimise parameters of the random forest and save them."""
    from biber_eval.pipeline import Study, build_classifier
    from biber_eval.training.dataset import DatasetPreparer
    from biber_eval.training.tuning import optimise

    configuration = (
        load_configuration(configuration_file) if configuration_file else config
    )
    classifier = build_classifier(configuration)
    study = Study(configuration, classifier=classifier)
    dataset = study.prepare(DatasetPreparer(configuration).load(source))
    split = study.split(dataset)

    optimal_parameters = optimise(
        classifier,
        split,
        dataset.vocabulary,
        configuration.human_label,
        trials=trials or configuration.tuning_trials,
        seed=configuration.seed,
        validation_fraction=configuration.tuning_validation_fraction,
    )
    logger.info(
        f"Setting optimal parameters for {classifier.get_name()}: "
        f"{optimal_parameters}"
    )
    classifier.set_tunable_attributes(optimal_parameters)
    classifier.save()


if __name__ == "__main__":
    app()
