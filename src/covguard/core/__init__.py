"""Core module exports."""

from covguard.core.errors import (
    CircularDependencyError,
    CompileError,
    ConfigError,
    CovguardError,
    ErrorCode,
    InstrumentationError,
    ParseError,
    SourceReadError,
    TransformError,
)
from covguard.core.logging import (
    clear_run_id,
    configure_logging,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Errors
    "CircularDependencyError",
    "CompileError",
    "ConfigError",
    "CovguardError",
    "ErrorCode",
    "InstrumentationError",
    "ParseError",
    "SourceReadError",
    "TransformError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_run_id",
    "set_run_id",
]
