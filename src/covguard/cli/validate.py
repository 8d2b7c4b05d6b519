"""covguard validate command - check a saved coverage report."""

import json
from pathlib import Path

import click
from rich.console import Console

from covguard.cli.utils import make_issue_table
from covguard.config.models import CovguardConfig
from covguard.coverage.validation import validate_report


@click.command()
@click.argument("report", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--strict", is_flag=True, help="Exit with status 1 when the report is invalid")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def validate_command(obj: dict, report: Path, strict: bool, as_json: bool) -> None:
    """Validate a coverage report written by 'covguard run --json-out'.

    REPORT is the path to the JSON coverage data.
    """
    try:
        data = json.loads(report.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Cannot read report '{report}': {e}") from e

    config: CovguardConfig = obj["config"]
    result = validate_report(data, config.validation)
    validation = result["validation"]

    if as_json:
        click.echo(json.dumps(result, indent=2))
    else:
        console = Console()
        stats = result["statistics"]
        cross_check = result["cross_check"]
        if validation["is_valid"]:
            console.print("[green]✓[/green] Report is consistent")
        else:
            console.print(f"[red]✗[/red] {len(validation['issues'])} validation issue(s)")
            console.print(make_issue_table(validation["issues"]))
        console.print(
            f"Line coverage: mean {stats['mean']:.1f}%, median {stats['median']:.1f}%, "
            f"std dev {stats['std_dev']:.1f}"
        )
        for outlier in stats["outliers"]:
            console.print(
                f"[yellow]![/yellow] Outlier: {outlier['file']} ({outlier['coverage']:.1f}%)"
            )
        for anomaly in stats["anomalies"]:
            console.print(f"[yellow]![/yellow] {anomaly['reason']}: {anomaly['file']}")
        console.print(
            f"Static cross-check: {cross_check['files_checked']} file(s) checked, "
            f"{len(cross_check['discrepancies'])} with discrepancies"
        )

    if strict and not validation["is_valid"]:
        raise SystemExit(1)
