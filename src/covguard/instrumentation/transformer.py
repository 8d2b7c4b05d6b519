"""AST transformer that injects coverage tracking calls.

Every executable statement is preceded by ``__covguard__.line(file_id, line)``.
Function bodies start with ``__covguard__.function(file_id, function_id)`` and
every branch body (function, if/else, loop, loop-else, except, try-else,
finally, match case) starts with ``__covguard__.block(file_id, block_id)``.

The line numbers passed to the tracker are the statement's position in the
original source, so the recorded data never depends on the layout of the
regenerated code.
"""

from __future__ import annotations

import ast
import copy
from dataclasses import dataclass

from covguard.core.errors import TransformError
from covguard.models import FunctionInfo

TRACKER_NAME = "__covguard__"
TRACK_LINE = "line"
TRACK_FUNCTION = "function"
TRACK_BLOCK = "block"

_DOCSTRING_OWNERS = (ast.Module, ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)


@dataclass(frozen=True, slots=True)
class TransformResult:
    """Instrumented tree plus the static facts recorded while rewriting it."""

    tree: ast.Module
    executable_lines: frozenset[int]
    functions: tuple[FunctionInfo, ...]
    blocks: frozenset[str]


def is_docstring(stmt: ast.stmt) -> bool:
    return (
        isinstance(stmt, ast.Expr)
        and isinstance(stmt.value, ast.Constant)
        and isinstance(stmt.value.value, str)
    )


def is_future_import(stmt: ast.stmt) -> bool:
    return isinstance(stmt, ast.ImportFrom) and stmt.module == "__future__"


def is_declaration(stmt: ast.stmt) -> bool:
    """global/nonlocal only affect compilation, they never execute."""
    return isinstance(stmt, (ast.Global, ast.Nonlocal))


def leading_statements(body: list[ast.stmt], owner: ast.AST) -> int:
    """Number of statements that must stay ahead of any injected call."""
    index = 0
    if isinstance(owner, _DOCSTRING_OWNERS) and body and is_docstring(body[0]):
        index = 1
    if isinstance(owner, ast.Module):
        while index < len(body) and is_future_import(body[index]):
            index += 1
    return index


def tracking_call(stmt: ast.stmt) -> tuple[str, list[object]] | None:
    """Return (method, args) when stmt is an injected tracking call."""
    if not isinstance(stmt, ast.Expr) or not isinstance(stmt.value, ast.Call):
        return None
    func = stmt.value.func
    if not (
        isinstance(func, ast.Attribute)
        and isinstance(func.value, ast.Name)
        and func.value.id == TRACKER_NAME
    ):
        return None
    args = [a.value for a in stmt.value.args if isinstance(a, ast.Constant)]
    return func.attr, args


class _Instrumenter(ast.NodeTransformer):
    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        self.executable_lines: set[int] = set()
        self.functions: list[FunctionInfo] = []
        self.blocks: set[str] = set()
        self._scope: list[str] = []

    def _call(self, method: str, value: object, at: ast.AST) -> ast.stmt:
        call = ast.Expr(
            value=ast.Call(
                func=ast.Attribute(
                    value=ast.Name(id=TRACKER_NAME, ctx=ast.Load()),
                    attr=method,
                    ctx=ast.Load(),
                ),
                args=[ast.Constant(value=self.file_id), ast.Constant(value=value)],
                keywords=[],
            )
        )
        return ast.copy_location(call, at)

    def _instrument(
        self,
        body: list[ast.stmt],
        owner: ast.AST,
        at: ast.AST,
        *,
        block: str | None = None,
        function: FunctionInfo | None = None,
    ) -> list[ast.stmt]:
        if not body:
            return body

        lead = leading_statements(body, owner)
        out: list[ast.stmt] = list(body[:lead])

        if function is not None:
            out.append(self._call(TRACK_FUNCTION, function.function_id, at))
        if block is not None:
            self.blocks.add(block)
            out.append(self._call(TRACK_BLOCK, block, at))

        # One line call per source line per block
        seen: set[int] = set()
        for stmt in body[lead:]:
            stmt = self.visit(stmt)
            if not is_declaration(stmt) and stmt.lineno not in seen:
                seen.add(stmt.lineno)
                self.executable_lines.add(stmt.lineno)
                out.append(self._call(TRACK_LINE, stmt.lineno, stmt))
            out.append(stmt)
        return out

    def visit_Module(self, node: ast.Module) -> ast.Module:
        node.body = self._instrument(node.body, node, node.body[0] if node.body else node)
        return node

    def _visit_function(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef
    ) -> ast.FunctionDef | ast.AsyncFunctionDef:
        info = FunctionInfo(
            name=".".join([*self._scope, node.name]),
            start_line=node.lineno,
            end_line=node.end_lineno or node.lineno,
        )
        self.functions.append(info)
        self._scope.append(node.name)
        node.body = self._instrument(
            node.body, node, node, block=f"function:{node.lineno}", function=info
        )
        self._scope.pop()
        return node

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.ClassDef:
        self._scope.append(node.name)
        node.body = self._instrument(node.body, node, node)
        self._scope.pop()
        return node

    def visit_If(self, node: ast.If) -> ast.If:
        node.body = self._instrument(node.body, node, node, block=f"if:{node.lineno}")
        node.orelse = self._instrument(node.orelse, node, node, block=f"else:{node.lineno}")
        return node

    def _visit_loop(self, node: ast.For | ast.AsyncFor | ast.While) -> ast.stmt:
        node.body = self._instrument(node.body, node, node, block=f"loop:{node.lineno}")
        node.orelse = self._instrument(node.orelse, node, node, block=f"loop_else:{node.lineno}")
        return node

    visit_For = _visit_loop
    visit_AsyncFor = _visit_loop
    visit_While = _visit_loop

    def visit_Try(self, node: ast.Try) -> ast.Try:
        node.body = self._instrument(node.body, node, node)
        for handler in node.handlers:
            handler.body = self._instrument(
                handler.body, handler, handler, block=f"except:{handler.lineno}"
            )
        node.orelse = self._instrument(node.orelse, node, node, block=f"try_else:{node.lineno}")
        node.finalbody = self._instrument(
            node.finalbody, node, node, block=f"finally:{node.lineno}"
        )
        return node

    visit_TryStar = visit_Try

    def _visit_with(self, node: ast.With | ast.AsyncWith) -> ast.stmt:
        node.body = self._instrument(node.body, node, node)
        return node

    visit_With = _visit_with
    visit_AsyncWith = _visit_with

    def visit_Match(self, node: ast.Match) -> ast.Match:
        for case in node.cases:
            line = case.pattern.lineno
            case.body = self._instrument(case.body, case, case.pattern, block=f"case:{line}")
        return node


def transform(tree: ast.Module, file_id: str) -> TransformResult:
    """Instrument a module AST.

    The input tree is left untouched; a deep copy is rewritten.

    Args:
        tree: Parsed module.
        file_id: Identifier passed to every tracking call (the file path).

    Raises:
        TransformError: If the tree cannot be instrumented.
    """
    if not isinstance(tree, ast.Module):
        raise TransformError.failed(file_id, f"expected ast.Module, got {type(tree).__name__}")

    instrumenter = _Instrumenter(file_id)
    try:
        working = copy.deepcopy(tree)
        working = instrumenter.visit(working)
        ast.fix_missing_locations(working)
    except (RecursionError, AttributeError, TypeError) as e:
        raise TransformError.failed(file_id, str(e) or type(e).__name__) from e

    return TransformResult(
        tree=working,
        executable_lines=frozenset(instrumenter.executable_lines),
        functions=tuple(instrumenter.functions),
        blocks=frozenset(instrumenter.blocks),
    )


def generate(tree: ast.Module, file_id: str = "<instrumented>") -> str:
    """Regenerate source text from an instrumented tree.

    Raises:
        TransformError: If the tree cannot be unparsed.
    """
    try:
        return ast.unparse(tree) + "\n"
    except (ValueError, TypeError, AttributeError, RecursionError) as e:
        raise TransformError.failed(file_id, f"code generation failed: {e}") from e
