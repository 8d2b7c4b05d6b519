"""Static analysis of Python source for cross-checking instrumentation.

Derives executable lines and function definitions straight from the AST,
without going through the instrumenter, so that disagreements between the
two point at instrumentation bugs.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field

from covguard.core.errors import ParseError
from covguard.models import FunctionInfo

_DEFINITIONS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


@dataclass(slots=True)
class StaticAnalysis:
    """Result of analysing one file."""

    filename: str
    executable_lines: set[int] = field(default_factory=set)
    functions: list[FunctionInfo] = field(default_factory=list)


def _docstring_nodes(tree: ast.Module) -> set[int]:
    """ids of docstring expression nodes."""
    found: set[int] = set()
    for node in ast.walk(tree):
        if isinstance(node, (ast.Module, *_DEFINITIONS)) and node.body:
            first = node.body[0]
            if (
                isinstance(first, ast.Expr)
                and isinstance(first.value, ast.Constant)
                and isinstance(first.value.value, str)
            ):
                found.add(id(first))
    return found


def _collect_functions(
    body: list[ast.stmt], scope: list[str], out: list[FunctionInfo]
) -> None:
    for node in body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            out.append(
                FunctionInfo(
                    name=".".join([*scope, node.name]),
                    start_line=node.lineno,
                    end_line=node.end_lineno or node.lineno,
                )
            )
            _collect_functions(node.body, [*scope, node.name], out)
        elif isinstance(node, ast.ClassDef):
            _collect_functions(node.body, [*scope, node.name], out)
        else:
            # Definitions nested in if/for/try/with/match bodies keep the enclosing scope
            for child in ast.iter_child_nodes(node):
                if isinstance(child, ast.stmt):
                    _collect_functions([child], scope, out)
                elif isinstance(child, (ast.excepthandler, ast.match_case)):
                    _collect_functions(child.body, scope, out)


def analyze_source(source: str, filename: str) -> StaticAnalysis:
    """Find executable lines and functions in a module's source.

    A line is executable when a statement starts on it, except docstrings,
    ``from __future__`` imports and global/nonlocal declarations.

    Raises:
        ParseError: If the source is not valid Python.
    """
    try:
        tree = ast.parse(source, filename=filename)
    except (SyntaxError, ValueError) as e:
        raise ParseError.from_syntax_error(filename, e) from e

    docstrings = _docstring_nodes(tree)
    result = StaticAnalysis(filename=filename)

    for node in ast.walk(tree):
        if not isinstance(node, ast.stmt) or id(node) in docstrings:
            continue
        if isinstance(node, (ast.Global, ast.Nonlocal)):
            continue
        if isinstance(node, ast.ImportFrom) and node.module == "__future__":
            continue
        result.executable_lines.add(node.lineno)

    _collect_functions(tree.body, [], result.functions)
    return result
