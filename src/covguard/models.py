"""Coverage data model shared by the instrumenter, the store and the reports.

File-centric: every record is keyed by the path the module was loaded from.
A line moves through three states: executable (instrumented), executed (the
interpreter ran it) and covered (executed and validated by an assertion).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class LineStatus(str, Enum):
    """Per-line status as shown in reports."""

    NOT_EXECUTABLE = "not_executable"
    NOT_COVERED = "not_covered"
    EXECUTED = "executed"
    COVERED = "covered"


@dataclass(frozen=True, slots=True)
class FunctionInfo:
    """A function definition found in a source file."""

    name: str  # qualified name, e.g. "Parser.parse" or "outer.inner"
    start_line: int
    end_line: int

    @property
    def function_id(self) -> str:
        return f"{self.name}:{self.start_line}"

    def to_dict(self) -> dict[str, int | str]:
        return {"name": self.name, "start_line": self.start_line, "end_line": self.end_line}


def percent(part: int, total: int) -> float:
    """Percentage of part in total; 0.0 when total is zero."""
    if total <= 0:
        return 0.0
    return part * 100.0 / total


@dataclass(slots=True)
class FileRecord:
    """Coverage record for a single instrumented file.

    Invariant: covered_lines <= executed_lines <= executable_lines.
    """

    path: str
    executable_lines: frozenset[int] = frozenset()
    functions: dict[str, FunctionInfo] = field(default_factory=dict)  # function_id -> info
    blocks: frozenset[str] = frozenset()
    executed_lines: set[int] = field(default_factory=set)
    covered_lines: set[int] = field(default_factory=set)
    called_functions: set[str] = field(default_factory=set)
    entered_blocks: set[str] = field(default_factory=set)
    source: str | None = None

    @property
    def total_lines(self) -> int:
        """Number of executable lines."""
        return len(self.executable_lines)

    @property
    def total_functions(self) -> int:
        return len(self.functions)

    @property
    def total_blocks(self) -> int:
        return len(self.blocks)

    @property
    def line_coverage_percent(self) -> float:
        """Covered (not merely executed) lines over executable lines."""
        return percent(len(self.covered_lines), self.total_lines)

    @property
    def execution_coverage_percent(self) -> float:
        return percent(len(self.executed_lines), self.total_lines)

    @property
    def function_coverage_percent(self) -> float:
        return percent(len(self.called_functions), self.total_functions)

    @property
    def block_coverage_percent(self) -> float:
        return percent(len(self.entered_blocks), self.total_blocks)

    def line_status(self, line: int) -> LineStatus:
        if line not in self.executable_lines:
            return LineStatus.NOT_EXECUTABLE
        if line in self.covered_lines:
            return LineStatus.COVERED
        if line in self.executed_lines:
            return LineStatus.EXECUTED
        return LineStatus.NOT_COVERED

    def integrity_issues(self) -> list[RecordIssue]:
        """Find broken invariants in the collected sets without changing them."""
        issues: list[RecordIssue] = []
        for line in sorted(self.executed_lines - self.executable_lines):
            issues.append(RecordIssue(self.path, "executed_not_executable", line))
        for line in sorted(self.covered_lines - self.executable_lines):
            issues.append(RecordIssue(self.path, "covered_not_executable", line))
        for line in sorted((self.covered_lines & self.executable_lines) - self.executed_lines):
            issues.append(RecordIssue(self.path, "covered_not_executed", line))
        for function_id in sorted(self.called_functions.difference(self.functions)):
            issues.append(RecordIssue(self.path, "unknown_function", function_id))
        for block_id in sorted(self.entered_blocks - self.blocks):
            issues.append(RecordIssue(self.path, "unknown_block", block_id))
        return issues

    def repair(self) -> list[RecordIssue]:
        """Restore the invariants in place and return what was fixed.

        Entries outside the static shape are dropped and covered lines are
        added to the executed set.
        """
        issues = self.integrity_issues()
        self.executed_lines.intersection_update(self.executable_lines)
        self.covered_lines.intersection_update(self.executable_lines)
        self.executed_lines.update(self.covered_lines)
        self.called_functions.intersection_update(self.functions)
        self.entered_blocks.intersection_update(self.blocks)
        return issues


@dataclass(frozen=True, slots=True)
class RecordIssue:
    """One broken invariant found in a FileRecord."""

    path: str
    kind: str
    item: int | str

    def to_dict(self) -> dict[str, int | str]:
        return {"path": self.path, "kind": self.kind, "item": self.item}


@dataclass(slots=True)
class AssertionRecord:
    """Lines covered while one assertion scope was open.

    ``file`` and ``line`` locate the assertion itself when the caller knows
    it; ``covered`` maps each file to the lines the assertion validated.
    """

    file: str | None
    line: int | None
    covered: dict[str, set[int]] = field(default_factory=dict)

    def add(self, file: str, line: int) -> None:
        self.covered.setdefault(file, set()).add(line)

    def to_dict(self) -> dict[str, object]:
        return {
            "file": self.file,
            "line": self.line,
            "covered": {path: sorted(lines) for path, lines in sorted(self.covered.items())},
        }
