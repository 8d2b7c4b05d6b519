"""Coverage sessions, reports and report validation."""

from covguard.coverage.report import (
    build_coverage_data,
    build_text_summary,
    compute_file_stats,
    compute_summary,
    overall_percent,
)
from covguard.coverage.session import CoverageSession
from covguard.coverage.static_analyzer import StaticAnalysis, analyze_source
from covguard.coverage.validation import (
    CoverageStatistics,
    CoverageValidator,
    CrossCheckResult,
    IssueSeverity,
    ValidationIssue,
    analyze_coverage_statistics,
    cross_check_with_static_analysis,
    validate_coverage_data,
    validate_report,
)

__all__ = [
    "CoverageSession",
    "CoverageStatistics",
    "CoverageValidator",
    "CrossCheckResult",
    "IssueSeverity",
    "StaticAnalysis",
    "ValidationIssue",
    "analyze_coverage_statistics",
    "analyze_source",
    "build_coverage_data",
    "build_text_summary",
    "compute_file_stats",
    "compute_summary",
    "cross_check_with_static_analysis",
    "overall_percent",
    "validate_coverage_data",
    "validate_report",
]
