"""Source-to-source instrumentation of Python modules."""

from covguard.instrumentation.compiler import (
    InstrumentedModule,
    compile_module,
    instrument_source,
)
from covguard.instrumentation.parser import parse
from covguard.instrumentation.sourcemap import NO_SOURCE, SourceMap
from covguard.instrumentation.transformer import (
    TRACKER_NAME,
    TransformResult,
    generate,
    transform,
)

__all__ = [
    "InstrumentedModule",
    "NO_SOURCE",
    "SourceMap",
    "TRACKER_NAME",
    "TransformResult",
    "compile_module",
    "generate",
    "instrument_source",
    "parse",
    "transform",
]
