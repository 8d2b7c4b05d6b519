"""Shared CLI rendering helpers."""

from collections.abc import Mapping
from typing import Any

from rich.table import Table


def make_coverage_table(data: Mapping[str, Any]) -> Table:
    """Per-file coverage table with a totals row."""
    table = Table(title="Coverage", pad_edge=False)
    table.add_column("File", style="cyan", overflow="fold")
    table.add_column("Lines", justify="right")
    table.add_column("Covered", justify="right")
    table.add_column("Executed", justify="right")
    table.add_column("Line %", justify="right")
    table.add_column("Func %", justify="right")
    table.add_column("Block %", justify="right")

    for path, stats in (data.get("files") or {}).items():
        table.add_row(
            path,
            str(stats.get("total_lines", 0)),
            str(stats.get("covered_lines", 0)),
            str(stats.get("executed_lines", 0)),
            f"{stats.get('line_coverage_percent', 0.0):.1f}",
            f"{stats.get('function_coverage_percent', 0.0):.1f}",
            f"{stats.get('block_coverage_percent', 0.0):.1f}",
        )

    summary = data.get("summary") or {}
    table.add_section()
    table.add_row(
        "[bold]Total[/bold]",
        str(summary.get("total_lines", 0)),
        str(summary.get("covered_lines", 0)),
        str(summary.get("executed_lines", 0)),
        f"{summary.get('line_coverage_percent', 0.0):.1f}",
        f"{summary.get('function_coverage_percent', 0.0):.1f}",
        f"{summary.get('block_coverage_percent', 0.0):.1f}",
    )
    return table


def make_issue_table(issues: list[Mapping[str, Any]]) -> Table:
    table = Table(show_header=True, box=None, padding=(0, 1), pad_edge=False)
    table.add_column("severity", no_wrap=True)
    table.add_column("category", style="cyan", no_wrap=True)
    table.add_column("message")
    for issue in issues:
        color = "red" if issue.get("severity") == "error" else "yellow"
        table.add_row(
            f"[{color}]{issue.get('severity')}[/{color}]",
            str(issue.get("category")),
            str(issue.get("message")),
        )
    return table
