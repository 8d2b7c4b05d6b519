"""covguard error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Instrumentation / module loading
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Instrumentation (3xxx)
    PARSE_ERROR = 3001
    TRANSFORM_ERROR = 3002
    COMPILE_ERROR = 3003
    SOURCE_READ_ERROR = 3004
    CIRCULAR_DEPENDENCY = 3005


@dataclass(frozen=True)
class CovguardError(Exception):
    """Base error with structured context.

    Not slotted: context managers assign ``__traceback__`` on the way out.
    """

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CovguardError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class InstrumentationError(CovguardError):
    """Base for errors that abort loading a single module."""


class ParseError(InstrumentationError):
    """Source could not be parsed into an AST."""

    @classmethod
    def from_syntax_error(cls, path: str, exc: SyntaxError | ValueError) -> "ParseError":
        line = getattr(exc, "lineno", None)
        reason = getattr(exc, "msg", None) or str(exc)
        where = f"{path}:{line}" if line else path
        return cls(
            code=ErrorCode.PARSE_ERROR,
            message=f"Failed to parse {where}: {reason}",
            details={"path": path, "line": line, "reason": reason},
        )


class TransformError(InstrumentationError):
    """AST could not be instrumented or regenerated."""

    @classmethod
    def failed(cls, path: str, reason: str) -> "TransformError":
        return cls(
            code=ErrorCode.TRANSFORM_ERROR,
            message=f"Failed to instrument {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class CompileError(InstrumentationError):
    """Instrumented source failed to compile."""

    @classmethod
    def failed(cls, path: str, reason: str, line: int | None = None) -> "CompileError":
        return cls(
            code=ErrorCode.COMPILE_ERROR,
            message=f"Failed to compile instrumented {path}: {reason}",
            details={"path": path, "reason": reason, "line": line},
        )


class SourceReadError(InstrumentationError):
    """An existing module file could not be read."""

    @classmethod
    def unreadable(cls, path: str, reason: str) -> "SourceReadError":
        return cls(
            code=ErrorCode.SOURCE_READ_ERROR,
            message=f"Cannot read {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class CircularDependencyError(InstrumentationError):
    """A module was required again while it was still loading."""

    @classmethod
    def detected(cls, name: str, chain: list[str]) -> "CircularDependencyError":
        cycle = " -> ".join([*chain, name])
        return cls(
            code=ErrorCode.CIRCULAR_DEPENDENCY,
            message=f"Circular dependency detected: {name} ({cycle})",
            details={"module": name, "chain": [*chain, name]},
        )
