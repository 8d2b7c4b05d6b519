"""covguard run command - load a module under coverage."""

import json
from pathlib import Path

import click
from rich.console import Console

from covguard.cli.utils import make_coverage_table, make_issue_table
from covguard.config.models import CovguardConfig
from covguard.core.errors import CovguardError
from covguard.core.logging import get_log_file_path
from covguard.coverage.report import build_text_summary
from covguard.coverage.session import CoverageSession


def _failure(message: str) -> click.ClickException:
    log_file = get_log_file_path()
    if log_file is not None:
        message = f"{message}\nSee {log_file} for details"
    return click.ClickException(message)


@click.command()
@click.argument("module")
@click.option(
    "--root",
    "roots",
    multiple=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Module search root (repeatable, default: current directory)",
)
@click.option(
    "--json-out",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the coverage data as JSON to this file",
)
@click.option("--validate", "run_validation", is_flag=True, help="Validate the report")
@click.pass_obj
def run_command(
    obj: dict, module: str, roots: tuple[Path, ...], json_out: Path | None, run_validation: bool
) -> None:
    """Load MODULE with instrumentation and print its coverage.

    Lines executed while loading are reported as executed; nothing is
    covered unless an assertion validates it.
    """
    console = Console()
    config: CovguardConfig = obj["config"]

    session = CoverageSession(config, roots=[str(r) for r in roots] or None)
    session.start()
    try:
        session.require(module)
    except CovguardError as e:
        raise _failure(str(e)) from e
    except Exception as e:
        raise _failure(f"{module} raised {type(e).__name__}: {e}") from e
    finally:
        session.stop()

    data = session.report()
    console.print(make_coverage_table(data))
    console.print(build_text_summary(data))

    if json_out is not None:
        json_out.parent.mkdir(parents=True, exist_ok=True)
        json_out.write_text(json.dumps(data, indent=2))
        console.print(f"[green]✓[/green] Coverage data written to {json_out}")

    if run_validation:
        result = session.validate(data)
        validation = result["validation"]
        if validation["is_valid"]:
            console.print("[green]✓[/green] Report is consistent")
        else:
            console.print("[red]✗[/red] Report has validation issues")
            console.print(make_issue_table(validation["issues"]))
