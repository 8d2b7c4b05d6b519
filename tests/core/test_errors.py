"""Tests for error types and codes."""

from collections.abc import Iterator
from contextlib import contextmanager

import pytest

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


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.CONFIG_INVALID_VALUE, 2000),
            (ErrorCode.PARSE_ERROR, 3000),
            (ErrorCode.CIRCULAR_DEPENDENCY, 3000),
        ],
    )
    def test_given_error_code_when_checked_then_in_correct_range(
        self, code: ErrorCode, expected_range: int
    ) -> None:
        """Error codes fall within their designated numeric range."""
        # Given
        error_code = code

        # When
        value = error_code.value

        # Then
        assert expected_range <= value < expected_range + 1000


class TestCovguardError:
    """Base error behavior tests."""

    def test_given_error_when_to_dict_then_serializes_all_fields(self) -> None:
        """Error serializes to dict with all required fields."""
        # Given
        error = CovguardError(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message="Test message",
            retryable=True,
            details={"key": "value"},
        )

        # When
        result = error.to_dict()

        # Then
        assert result == {
            "code": 2001,
            "error": "CONFIG_PARSE_ERROR",
            "message": "Test message",
            "retryable": True,
            "details": {"key": "value"},
        }

    def test_given_error_when_str_then_human_readable(self) -> None:
        """Error string representation is human readable."""
        # Given
        error = CovguardError(code=ErrorCode.COMPILE_ERROR, message="Something broke")

        # When
        result = str(error)

        # Then
        assert result == "[3003] COMPILE_ERROR: Something broke"

    def test_is_raisable(self) -> None:
        """Errors can be raised and caught as exceptions."""
        with pytest.raises(CovguardError) as exc_info:
            raise TransformError.failed("a.py", "boom")
        assert exc_info.value.code == ErrorCode.TRANSFORM_ERROR

    def test_survives_generator_context_manager(self) -> None:
        """Errors keep their type when they leave a @contextmanager block."""

        @contextmanager
        def scope() -> Iterator[None]:
            yield

        with pytest.raises(CircularDependencyError) as exc_info:
            with scope():
                raise CircularDependencyError.detected("a", ["a"])
        assert exc_info.value.__traceback__ is not None


class TestConfigError:
    """ConfigError factory method tests."""

    def test_parse_error(self) -> None:
        error = ConfigError.parse_error("/path/config.yaml", "invalid syntax")
        assert error.code == ErrorCode.CONFIG_PARSE_ERROR
        assert "/path/config.yaml" in error.message
        assert error.details["reason"] == "invalid syntax"

    def test_invalid_value(self) -> None:
        error = ConfigError.invalid_value("coverage.cache_key", "bogus", "not allowed")
        assert error.code == ErrorCode.CONFIG_INVALID_VALUE
        assert error.details == {
            "field": "coverage.cache_key",
            "value": "bogus",
            "reason": "not allowed",
        }


class TestInstrumentationErrors:
    """Instrumentation error factories."""

    def test_parse_error_from_syntax_error(self) -> None:
        """Syntax error location is carried into details."""
        try:
            compile("def broken(:\n", "mod.py", "exec")
        except SyntaxError as e:
            error = ParseError.from_syntax_error("mod.py", e)
        assert isinstance(error, InstrumentationError)
        assert error.code == ErrorCode.PARSE_ERROR
        assert error.details["path"] == "mod.py"
        assert error.details["line"] == 1

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (TransformError.failed("a.py", "bad tree"), ErrorCode.TRANSFORM_ERROR),
            (CompileError.failed("a.py", "bad code", 3), ErrorCode.COMPILE_ERROR),
            (SourceReadError.unreadable("a.py", "denied"), ErrorCode.SOURCE_READ_ERROR),
        ],
    )
    def test_factories_set_code(self, error: InstrumentationError, code: ErrorCode) -> None:
        assert error.code == code
        assert error.details["path"] == "a.py"
        assert not error.retryable

    def test_circular_dependency_names_chain(self) -> None:
        """The message shows the full loading chain ending in the repeated name."""
        error = CircularDependencyError.detected("a", ["a", "b"])
        assert error.code == ErrorCode.CIRCULAR_DEPENDENCY
        assert error.details == {"module": "a", "chain": ["a", "b", "a"]}
        assert "a -> b -> a" in error.message
