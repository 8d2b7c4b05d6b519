"""CoverageData construction.

Transforms the store's FileRecords into the JSON-compatible structure every
report renderer consumes:

{
    "files": {
        path: {
            "total_lines": int,            # executable lines
            "executed_lines": int,
            "covered_lines": int,          # executed and validated by an assertion
            "line_coverage_percent": float,
            "execution_coverage_percent": float,
            "total_functions": int,
            "covered_functions": int,
            "function_coverage_percent": float,
            "total_blocks": int,
            "covered_blocks": int,
            "block_coverage_percent": float,
            "lines": {"<n>": "covered" | "executed" | "not_covered"}
        }
    },
    "summary": {... totals, percentages, overall_percent ...},
    "original_files": {
        path: {"source": str, "executable_lines": [int], "functions": [...], "lines": [str]}
    }
}

Line coverage always counts covered lines; executed-but-unvalidated lines are
reported separately and never counted as covered.
"""

from collections.abc import Mapping
from typing import Any

from covguard.models import FileRecord, percent

LINE_WEIGHT = 0.4
FUNCTION_WEIGHT = 0.2
BLOCK_WEIGHT = 0.4
LINE_WEIGHT_NO_BLOCKS = 0.8


def overall_percent(
    line_pct: float, function_pct: float, block_pct: float, *, has_blocks: bool
) -> float:
    """Weighted blend: 40/20/40 with block data, 80/20 without."""
    if has_blocks:
        return line_pct * LINE_WEIGHT + function_pct * FUNCTION_WEIGHT + block_pct * BLOCK_WEIGHT
    return line_pct * LINE_WEIGHT_NO_BLOCKS + function_pct * FUNCTION_WEIGHT


def compute_file_stats(record: FileRecord) -> dict[str, Any]:
    """Per-file counts and percentages for one record."""
    return {
        "total_lines": record.total_lines,
        "executed_lines": len(record.executed_lines),
        "covered_lines": len(record.covered_lines),
        "line_coverage_percent": round(record.line_coverage_percent, 2),
        "execution_coverage_percent": round(record.execution_coverage_percent, 2),
        "total_functions": record.total_functions,
        "covered_functions": len(record.called_functions),
        "function_coverage_percent": round(record.function_coverage_percent, 2),
        "total_blocks": record.total_blocks,
        "covered_blocks": len(record.entered_blocks),
        "block_coverage_percent": round(record.block_coverage_percent, 2),
        "lines": {
            str(line): record.line_status(line).value for line in sorted(record.executable_lines)
        },
    }


def compute_summary(files: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
    """Aggregate per-file stats into a summary by plain summation."""
    totals = {
        "total_lines": 0,
        "executed_lines": 0,
        "covered_lines": 0,
        "total_functions": 0,
        "covered_functions": 0,
        "total_blocks": 0,
        "covered_blocks": 0,
    }
    covered_files = 0
    executed_files = 0
    for stats in files.values():
        for key in totals:
            totals[key] += stats.get(key, 0) or 0
        if stats.get("covered_lines"):
            covered_files += 1
        if stats.get("executed_lines"):
            executed_files += 1

    line_pct = percent(totals["covered_lines"], totals["total_lines"])
    function_pct = percent(totals["covered_functions"], totals["total_functions"])
    block_pct = percent(totals["covered_blocks"], totals["total_blocks"])

    return {
        "total_files": len(files),
        "covered_files": covered_files,
        "executed_files": executed_files,
        **totals,
        "line_coverage_percent": round(line_pct, 2),
        "execution_coverage_percent": round(
            percent(totals["executed_lines"], totals["total_lines"]), 2
        ),
        "function_coverage_percent": round(function_pct, 2),
        "block_coverage_percent": round(block_pct, 2),
        "overall_percent": round(
            overall_percent(
                line_pct, function_pct, block_pct, has_blocks=totals["total_blocks"] > 0
            ),
            2,
        ),
    }


def build_coverage_data(
    records: Mapping[str, FileRecord],
    *,
    include_source: bool = True,
) -> dict[str, Any]:
    """Build the CoverageData structure from store records.

    Args:
        records: FileRecords keyed by path (CoverageStore.get_data()).
        include_source: Embed original source for static cross-checking.
    """
    files = {path: compute_file_stats(records[path]) for path in sorted(records)}
    data: dict[str, Any] = {
        "files": files,
        "summary": compute_summary(files),
    }

    if include_source:
        original_files: dict[str, Any] = {}
        for path in sorted(records):
            record = records[path]
            if record.source is None:
                continue
            original_files[path] = {
                "source": record.source,
                "executable_lines": sorted(record.executable_lines),
                "functions": [
                    f.to_dict()
                    for f in sorted(record.functions.values(), key=lambda f: f.start_line)
                ],
                "lines": record.source.splitlines(),
            }
        data["original_files"] = original_files

    return data


def build_text_summary(data: Mapping[str, Any]) -> str:
    """Concise one-line summary for display contexts."""
    summary = data.get("summary") or {}
    total = summary.get("total_lines", 0)
    if not total:
        return "No coverage data"
    return (
        f"Coverage: {summary.get('line_coverage_percent', 0.0):.1f}% "
        f"({summary.get('covered_lines', 0)}/{total} lines covered, "
        f"{summary.get('executed_lines', 0)} executed)"
    )
