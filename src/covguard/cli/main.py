"""covguard CLI."""

from pathlib import Path

import click

from covguard.cli.run import run_command
from covguard.cli.validate import validate_command
from covguard.config.loader import load_config
from covguard.config.models import LoggingConfig
from covguard.core.errors import CovguardError
from covguard.core.logging import configure_logging


def verbose_logging(config: LoggingConfig) -> LoggingConfig:
    """Same outputs at DEBUG, dropping per-output levels."""
    return config.model_copy(
        update={
            "level": "DEBUG",
            "outputs": [o.model_copy(update={"level": None}) for o in config.outputs],
        }
    )


@click.group()
@click.version_option(version="0.1.0", prog_name="covguard")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """covguard - instrumenting line coverage with report validation."""
    ctx.ensure_object(dict)
    try:
        config = load_config(Path.cwd())
    except CovguardError as e:
        raise click.ClickException(str(e)) from e

    configure_logging(config=verbose_logging(config.logging) if verbose else config.logging)
    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = config


cli.add_command(run_command, name="run")
cli.add_command(validate_command, name="validate")


if __name__ == "__main__":
    cli()
