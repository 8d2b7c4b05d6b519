"""Instrumentation pipeline: parse, transform, generate, map, compile."""

from __future__ import annotations

import ast
from dataclasses import dataclass
from types import CodeType

import structlog

from covguard.core.errors import CompileError
from covguard.instrumentation import parser, sourcemap, transformer
from covguard.instrumentation.sourcemap import SourceMap
from covguard.models import FunctionInfo

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class InstrumentedModule:
    """Everything needed to execute an instrumented file and report on it.

    Immutable once built; this is the value stored in the instrumentation cache.
    """

    path: str
    source: str
    instrumented_source: str
    code: CodeType
    source_map: SourceMap
    executable_lines: frozenset[int]
    functions: tuple[FunctionInfo, ...]
    blocks: frozenset[str]


def compile_module(source: str | ast.Module, path: str) -> CodeType:
    """Compile module source, or an already built tree, into a code object.

    Raises:
        CompileError: If the source does not compile.
    """
    try:
        return compile(source, path, "exec", dont_inherit=True)
    except (SyntaxError, ValueError, TypeError) as e:
        line = getattr(e, "lineno", None)
        raise CompileError.failed(path, getattr(e, "msg", None) or str(e), line) from e


def instrument_source(source: str, path: str) -> InstrumentedModule:
    """Instrument one module's source.

    Raises:
        ParseError, TransformError, CompileError: The module cannot be instrumented.
    """
    tree = parser.parse(source, path)
    result = transformer.transform(tree, path)
    instrumented = transformer.generate(result.tree, path)
    line_map = sourcemap.create(path, source, instrumented)
    # The tree keeps original locations, so frames and tracebacks show the user's lines
    code = compile_module(result.tree, path)

    log.debug(
        "instrumentation.complete",
        path=path,
        executable_lines=len(result.executable_lines),
        functions=len(result.functions),
        blocks=len(result.blocks),
        original_size=len(source),
        instrumented_size=len(instrumented),
    )

    return InstrumentedModule(
        path=path,
        source=source,
        instrumented_source=instrumented,
        code=code,
        source_map=line_map,
        executable_lines=result.executable_lines,
        functions=result.functions,
        blocks=result.blocks,
    )
