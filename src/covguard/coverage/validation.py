"""Coverage report validation, statistics and static cross-checking.

validate_coverage_data() re-derives every aggregate in a CoverageData
structure from its per-file records and reports mismatches. Data that is not
a mapping, or has no summary or files table, is an error and stops
validation. File entries that are not mappings are skipped with a warning.
Every other mismatch is a warning, all checks still run, and the caller gets
the full issue list in one pass. Issues are returned as data, never raised.

analyze_coverage_statistics() looks for outlier files (|z| > 2 on line
coverage) and heuristic anomalies.

cross_check_with_static_analysis() compares the executable lines and
functions recorded with each file against an independent static analysis of
the embedded source.
"""

from __future__ import annotations

import os
import statistics
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

import structlog

from covguard.config.models import ValidationConfig
from covguard.core.errors import ParseError
from covguard.coverage.report import overall_percent
from covguard.coverage.static_analyzer import analyze_source
from covguard.models import percent

log = structlog.get_logger()

OUTLIER_Z_SCORE = 2.0
LARGE_FILE_LINES = 100
LOW_COVERAGE_PERCENT = 20.0
LINE_FUNCTION_GAP_PERCENT = 50.0


class IssueSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    category: str
    message: str
    severity: IssueSeverity = IssueSeverity.WARNING
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "message": self.message,
            "severity": self.severity.value,
            "details": self.details,
        }


@dataclass(slots=True)
class CoverageStatistics:
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    outliers: list[dict[str, Any]] = field(default_factory=list)
    anomalies: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class CrossCheckResult:
    files_checked: int = 0
    discrepancies: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    unanalyzed_files: list[str] = field(default_factory=list)
    analysis_success: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# (summary key, per-file key, issue category, message, config toggle)
_COUNT_CHECKS = (
    ("total_lines", "total_lines", "line_count",
     "Total line count doesn't match sum of file line counts", "validate_line_counts"),
    ("covered_lines", "covered_lines", "covered_lines",
     "Covered line count doesn't match sum of file covered lines", "validate_line_counts"),
    ("total_functions", "total_functions", "function_count",
     "Total function count doesn't match sum of file function counts",
     "validate_function_counts"),
    ("covered_functions", "covered_functions", "covered_functions",
     "Covered function count doesn't match sum of file covered functions",
     "validate_function_counts"),
    ("total_blocks", "total_blocks", "block_count",
     "Total block count doesn't match sum of file block counts", "validate_block_counts"),
    ("covered_blocks", "covered_blocks", "covered_blocks",
     "Covered block count doesn't match sum of file covered blocks", "validate_block_counts"),
)  # fmt: skip

# (covered key, total key, reported percent key, issue category, label)
_PERCENT_CHECKS = (
    ("covered_lines", "total_lines", "line_coverage_percent", "line_percentage", "Line"),
    ("covered_functions", "total_functions", "function_coverage_percent",
     "function_percentage", "Function"),
    ("covered_blocks", "total_blocks", "block_coverage_percent", "block_percentage", "Block"),
)  # fmt: skip


def _num(value: Any) -> float:
    return value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _line_number(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


class CoverageValidator:
    """Runs the consistency checks for one CoverageData structure.

    A fresh issue list is built on every validate() call.
    """

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self.config = config or ValidationConfig()
        self._issues: list[ValidationIssue] = []

    def _add_issue(
        self,
        category: str,
        message: str,
        severity: IssueSeverity = IssueSeverity.WARNING,
        **details: Any,
    ) -> None:
        self._issues.append(ValidationIssue(category, message, severity, details))
        if severity is IssueSeverity.ERROR:
            log.error("validation.issue", category=category, message=message, **details)
        elif self.config.warn_on_validation_failure:
            log.warning("validation.issue", category=category, message=message, **details)

    def validate(self, data: Mapping[str, Any] | None) -> tuple[bool, list[ValidationIssue]]:
        self._issues = []

        if not self.config.validate_reports:
            log.info("validation.disabled")
            return True, []

        if data is None:
            self._add_issue("data_structure", "Coverage data is missing", IssueSeverity.ERROR)
            return False, self._issues
        if not isinstance(data, Mapping):
            self._add_issue(
                "data_structure",
                "Coverage data is not a mapping",
                IssueSeverity.ERROR,
                type=type(data).__name__,
            )
            return False, self._issues
        if not isinstance(data.get("summary"), Mapping):
            self._add_issue(
                "data_structure", "Coverage data is missing summary section", IssueSeverity.ERROR
            )
            return False, self._issues
        if not isinstance(data.get("files"), Mapping):
            self._add_issue(
                "data_structure", "Coverage data is missing files section", IssueSeverity.ERROR
            )
            return False, self._issues

        entries_ok, data = self._drop_bad_entries(data)
        results = {
            "file_entries": entries_ok,
            "counts": self._check_counts(data),
            "percentages": self._check_percentages(data),
            "file_paths": self._check_file_paths(data),
            "cross_module": self._check_cross_module(data),
        }
        is_valid = all(results.values())

        log.info(
            "validation.complete",
            valid=is_valid,
            issues_found=len(self._issues),
            **{f"{name}_valid": ok for name, ok in results.items()},
        )
        return is_valid, self._issues

    def _drop_bad_entries(self, data: Mapping[str, Any]) -> tuple[bool, Mapping[str, Any]]:
        """Warn about file entries that are not mappings and check the rest."""
        files = data["files"]
        bad = [name for name, entry in files.items() if not isinstance(entry, Mapping)]
        for name in bad:
            self._add_issue(
                "file_entry",
                "File entry is not a mapping and was skipped",
                file=name,
                type=type(files[name]).__name__,
            )
        if not bad:
            return True, data
        kept = {name: entry for name, entry in files.items() if name not in bad}
        return False, {**data, "files": kept}

    def _check_counts(self, data: Mapping[str, Any]) -> bool:
        summary = data["summary"]
        files: Mapping[str, Mapping[str, Any]] = data["files"]
        valid = True

        if self.config.validate_line_counts and _num(summary.get("total_files")) != len(files):
            self._add_issue(
                "file_count",
                "Total file count doesn't match actual file count",
                reported=summary.get("total_files"),
                calculated=len(files),
            )
            valid = False

        for summary_key, file_key, category, message, toggle in _COUNT_CHECKS:
            if not getattr(self.config, toggle):
                continue
            # Function/block totals are optional in a summary
            if summary_key not in summary and toggle != "validate_line_counts":
                continue
            calculated = sum(_num(f.get(file_key)) for f in files.values())
            reported = summary.get(summary_key)
            if _num(reported) != calculated:
                self._add_issue(category, message, reported=reported, calculated=calculated)
                valid = False
        return valid

    def _check_percent(
        self,
        scope: Mapping[str, Any],
        covered_key: str,
        total_key: str,
        pct_key: str,
        category: str,
        label: str,
        filename: str | None,
    ) -> bool:
        reported = scope.get(pct_key)
        if reported is None or total_key not in scope:
            return True
        calculated = percent(_num(scope.get(covered_key)), _num(scope.get(total_key)))
        difference = abs(calculated - _num(reported))
        if difference <= self.config.validation_threshold:
            return True
        details: dict[str, Any] = {
            "reported": reported,
            "calculated": calculated,
            "difference": difference,
        }
        if filename is not None:
            details["file"] = filename
        self._add_issue(
            category, f"{label} coverage percentage doesn't match calculation", **details
        )
        return False

    def _check_percentages(self, data: Mapping[str, Any]) -> bool:
        if not self.config.validate_percentages:
            return True
        summary = data["summary"]
        valid = True

        for filename, file_data in data["files"].items():
            for check in _PERCENT_CHECKS:
                valid = self._check_percent(file_data, *check, filename) and valid

        for check in _PERCENT_CHECKS:
            valid = self._check_percent(summary, *check, None) and valid

        if summary.get("overall_percent") is not None:
            has_blocks = _num(summary.get("total_blocks")) > 0

            def component(pct_key: str, covered_key: str, total_key: str) -> float:
                reported = summary.get(pct_key)
                if reported is not None:
                    return _num(reported)
                return percent(_num(summary.get(covered_key)), _num(summary.get(total_key)))

            line_pct = component("line_coverage_percent", "covered_lines", "total_lines")
            function_pct = component(
                "function_coverage_percent", "covered_functions", "total_functions"
            )
            block_pct = component("block_coverage_percent", "covered_blocks", "total_blocks")
            calculated = overall_percent(
                line_pct, function_pct, block_pct, has_blocks=has_blocks
            )
            reported = _num(summary.get("overall_percent"))
            if abs(calculated - reported) > self.config.validation_threshold:
                self._add_issue(
                    "overall_percentage",
                    "Overall coverage percentage doesn't match weighted calculation",
                    reported=reported,
                    calculated=calculated,
                    line_pct=line_pct,
                    function_pct=function_pct,
                    block_pct=block_pct,
                    has_blocks=has_blocks,
                )
                valid = False
        return valid

    def _check_file_paths(self, data: Mapping[str, Any]) -> bool:
        if not self.config.validate_file_paths:
            return True
        valid = True
        for filename in data["files"]:
            # Relative paths may be virtual; only absolute ones are checked
            if os.path.isabs(filename) and not os.path.exists(filename):
                self._add_issue(
                    "file_path",
                    "Coverage report references file that doesn't exist",
                    file=filename,
                )
                valid = False
        return valid

    def _check_cross_module(self, data: Mapping[str, Any]) -> bool:
        original_files = data.get("original_files")
        if not self.config.validate_cross_module or not isinstance(original_files, Mapping):
            return True
        files = data["files"]
        valid = True

        if len(files) != len(original_files):
            self._add_issue(
                "cross_module",
                "File count mismatch between files and original_files",
                files_count=len(files),
                original_files_count=len(original_files),
            )
            valid = False
        for filename in files:
            if filename not in original_files:
                self._add_issue(
                    "cross_module",
                    "Coverage file missing from original_files data",
                    file=filename,
                )
                valid = False
        for filename in original_files:
            if filename not in files:
                self._add_issue(
                    "cross_module",
                    "original_files entry has no coverage record",
                    file=filename,
                )
                valid = False
        return valid


def validate_coverage_data(
    data: Mapping[str, Any] | None, config: ValidationConfig | None = None
) -> tuple[bool, list[ValidationIssue]]:
    """Check the internal consistency of a CoverageData structure."""
    return CoverageValidator(config).validate(data)


def analyze_coverage_statistics(data: Mapping[str, Any] | None) -> CoverageStatistics:
    """Mean/median/std-dev of per-file line coverage, outliers and anomalies."""
    stats = CoverageStatistics()
    files = {
        filename: entry
        for filename, entry in _mapping(_mapping(data).get("files")).items()
        if isinstance(entry, Mapping)
    }

    percentages = {
        filename: float(file_data["line_coverage_percent"])
        for filename, file_data in files.items()
        if isinstance(file_data.get("line_coverage_percent"), (int, float))
    }
    if not percentages:
        return stats

    values = list(percentages.values())
    stats.mean = statistics.fmean(values)
    stats.median = statistics.median(values)
    stats.std_dev = statistics.pstdev(values)

    if stats.std_dev > 0:
        for filename, pct in sorted(percentages.items()):
            z_score = abs(pct - stats.mean) / stats.std_dev
            if z_score > OUTLIER_Z_SCORE:
                stats.outliers.append({"file": filename, "coverage": pct, "z_score": z_score})

    for filename in sorted(files):
        file_data = files[filename]
        line_pct = file_data.get("line_coverage_percent")
        total_lines = file_data.get("total_lines")
        if (
            isinstance(total_lines, int)
            and total_lines > LARGE_FILE_LINES
            and isinstance(line_pct, (int, float))
            and line_pct < LOW_COVERAGE_PERCENT
        ):
            stats.anomalies.append(
                {
                    "file": filename,
                    "reason": "Large file with low coverage",
                    "details": {"lines": total_lines, "coverage": line_pct},
                }
            )

        function_pct = file_data.get("function_coverage_percent")
        if isinstance(line_pct, (int, float)) and isinstance(function_pct, (int, float)):
            gap = abs(line_pct - function_pct)
            if gap > LINE_FUNCTION_GAP_PERCENT:
                stats.anomalies.append(
                    {
                        "file": filename,
                        "reason": "Large discrepancy between line and function coverage",
                        "details": {
                            "line_coverage": line_pct,
                            "function_coverage": function_pct,
                            "difference": gap,
                        },
                    }
                )

    log.info(
        "validation.statistics",
        files_analyzed=len(values),
        mean=stats.mean,
        median=stats.median,
        std_dev=stats.std_dev,
        outliers=len(stats.outliers),
        anomalies=len(stats.anomalies),
    )
    return stats


def _diff_file(original: Mapping[str, Any], source: str, filename: str) -> list[dict[str, Any]]:
    analysis = analyze_source(source, filename)
    raw_lines = original.get("executable_lines")
    recorded_lines = {
        line
        for line in map(_line_number, raw_lines if isinstance(raw_lines, list) else [])
        if line is not None
    }
    discrepancies: list[dict[str, Any]] = []

    for line in sorted(analysis.executable_lines | recorded_lines):
        static_executable = line in analysis.executable_lines
        recorded_executable = line in recorded_lines
        if static_executable != recorded_executable:
            discrepancies.append(
                {
                    "type": "executable_line",
                    "line": line,
                    "static_analysis": static_executable,
                    "coverage_data": recorded_executable,
                }
            )

    raw_functions = original.get("functions")
    recorded_functions = {
        (f.get("name"), f.get("start_line"))
        for f in (raw_functions if isinstance(raw_functions, list) else [])
        if isinstance(f, Mapping)
    }
    for func in analysis.functions:
        if (func.name, func.start_line) not in recorded_functions:
            discrepancies.append(
                {
                    "type": "function",
                    "name": func.name,
                    "start_line": func.start_line,
                    "end_line": func.end_line,
                    "issue": "Function found by static analysis but not in coverage data",
                }
            )
    return discrepancies


def cross_check_with_static_analysis(data: Mapping[str, Any] | None) -> CrossCheckResult:
    """Diff recorded executable lines/functions against static analysis."""
    result = CrossCheckResult(analysis_success=True)
    files = _mapping(data).get("files")
    if not isinstance(files, Mapping):
        log.warning("validation.cross_check_no_data")
        return result

    original_files = _mapping(_mapping(data).get("original_files"))
    for filename in sorted(files):
        original = original_files.get(filename)
        source = original.get("source") if isinstance(original, Mapping) else None
        if source is None:
            result.unanalyzed_files.append(filename)
            continue
        if isinstance(source, list) and all(isinstance(part, str) for part in source):
            source = "\n".join(source)
        if not isinstance(source, str):
            result.unanalyzed_files.append(filename)
            continue

        try:
            discrepancies = _diff_file(original, source, filename)
        except ParseError as e:
            log.warning("validation.static_analysis_failed", file=filename, error=str(e))
            result.analysis_success = False
            continue

        result.files_checked += 1
        if discrepancies:
            result.discrepancies[filename] = discrepancies

    log.info(
        "validation.cross_check_complete",
        files_checked=result.files_checked,
        files_with_discrepancies=len(result.discrepancies),
        unanalyzed_files=len(result.unanalyzed_files),
    )
    return result


def validate_report(
    data: Mapping[str, Any] | None, config: ValidationConfig | None = None
) -> dict[str, Any]:
    """Full validation report: consistency, statistics and static cross-check."""
    is_valid, issues = validate_coverage_data(data, config)
    stats = analyze_coverage_statistics(data)
    cross_check = cross_check_with_static_analysis(data)
    return {
        "validation": {"is_valid": is_valid, "issues": [i.to_dict() for i in issues]},
        "statistics": stats.to_dict(),
        "cross_check": cross_check.to_dict(),
    }
