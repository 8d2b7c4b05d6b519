"""Instrumented-line to original-line mapping.

Only the instrumented program runs, so lookups go one way: from a line of the
regenerated source back to the line the user wrote. Scaffolding (tracking
calls, ``else:``/``finally:`` keywords, docstrings) maps to NO_SOURCE so that
callers can skip it instead of mis-attributing it.
"""

from __future__ import annotations

import ast
import re
from dataclasses import dataclass

from covguard.core.errors import TransformError
from covguard.instrumentation.transformer import (
    TRACK_LINE,
    is_declaration,
    leading_statements,
    tracking_call,
)

NO_SOURCE = 0

_TRACEBACK_RE = re.compile(r'File "(?P<path>[^"]+)", line (?P<line>\d+)')
_COMPACT_RE = re.compile(r"(?P<path>[^\s:\"']+):(?P<line>\d+)(?=:)")


@dataclass(frozen=True, slots=True)
class SourceMap:
    """Immutable line map for one instrumented file."""

    path: str
    lines: tuple[int, ...]  # index i holds the original line of instrumented line i + 1

    def original_line(self, instrumented_line: int) -> int:
        """Original line for an instrumented line, or NO_SOURCE."""
        if 1 <= instrumented_line <= len(self.lines):
            return self.lines[instrumented_line - 1]
        return NO_SOURCE

    @property
    def mapped_lines(self) -> dict[int, int]:
        return {i + 1: orig for i, orig in enumerate(self.lines) if orig != NO_SOURCE}

    def _matches(self, path: str) -> bool:
        return path == self.path or self.path.endswith(path) or path.endswith(self.path)

    def translate_error(self, message: str) -> str:
        """Rewrite line references to this file in an error message or traceback."""

        def _replace(match: re.Match[str]) -> str:
            if not self._matches(match.group("path")):
                return match.group(0)
            original = self.original_line(int(match.group("line")))
            if original == NO_SOURCE:
                return match.group(0)
            start, end = match.span("line")
            offset = match.start(0)
            text = match.group(0)
            return text[: start - offset] + str(original) + text[end - offset :]

        translated = _TRACEBACK_RE.sub(_replace, message)
        return _COMPACT_RE.sub(_replace, translated)


def _child_bodies(stmt: ast.stmt) -> list[tuple[list[ast.stmt], ast.AST]]:
    bodies: list[tuple[list[ast.stmt], ast.AST]] = []
    for name in ("body", "orelse", "finalbody"):
        body = getattr(stmt, name, None)
        if isinstance(body, list) and body:
            bodies.append((body, stmt))
    for handler in getattr(stmt, "handlers", None) or []:
        bodies.append((handler.body, handler))
    for case in getattr(stmt, "cases", None) or []:
        bodies.append((case.body, case))
    return bodies


def _header_span(stmt: ast.stmt, children: list[tuple[list[ast.stmt], ast.AST]]) -> range:
    decorators = getattr(stmt, "decorator_list", None) or []
    start = min([stmt.lineno, *(d.lineno for d in decorators)])
    if children:
        first_child = min(body[0].lineno for body, _ in children)
        end = max(stmt.lineno, first_child - 1)
    else:
        end = stmt.end_lineno or stmt.lineno
    return range(start, end + 1)


def _map_body(
    body: list[ast.stmt], owner: ast.AST, lines: list[int], original_count: int
) -> None:
    lead = leading_statements(body, owner)
    current = NO_SOURCE
    for index, stmt in enumerate(body):
        call = tracking_call(stmt)
        if call is not None:
            method, args = call
            if method == TRACK_LINE and len(args) == 2 and isinstance(args[1], int):
                current = args[1] if 0 < args[1] <= original_count else NO_SOURCE
            continue

        target = NO_SOURCE if index < lead or is_declaration(stmt) else current
        children = _child_bodies(stmt)
        for line in _header_span(stmt, children):
            if 1 <= line <= len(lines):
                lines[line - 1] = target
        for child_body, child_owner in children:
            _map_body(child_body, child_owner, lines, original_count)


def create(path: str, original_source: str, instrumented_source: str) -> SourceMap:
    """Build the line map for an instrumented file.

    Raises:
        TransformError: If the instrumented source cannot be parsed back.
    """
    try:
        tree = ast.parse(instrumented_source, filename=path)
    except SyntaxError as e:
        raise TransformError.failed(path, f"source map: {e.msg}") from e

    lines = [NO_SOURCE] * len(instrumented_source.splitlines())
    _map_body(tree.body, tree, lines, len(original_source.splitlines()))
    return SourceMap(path=path, lines=tuple(lines))
