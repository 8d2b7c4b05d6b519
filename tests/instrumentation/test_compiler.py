"""Tests for the parse -> transform -> compile pipeline."""

import pytest

from covguard.core.errors import CompileError, ErrorCode, ParseError
from covguard.instrumentation.compiler import compile_module, instrument_source
from covguard.instrumentation.parser import parse
from covguard.instrumentation.transformer import TRACKER_NAME


class TestParse:
    def test_syntax_error_becomes_parse_error(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse("def broken(:\n    pass\n", "broken.py")
        assert exc_info.value.code == ErrorCode.PARSE_ERROR
        assert exc_info.value.details["line"] == 1

    def test_null_bytes_become_parse_error(self) -> None:
        with pytest.raises(ParseError):
            parse("x = 1\x00\n", "nul.py")


class TestCompileModule:
    def test_compile_error(self) -> None:
        with pytest.raises(CompileError) as exc_info:
            compile_module("x = (\n", "bad.py")
        assert exc_info.value.details["path"] == "bad.py"


class TestInstrumentSource:
    def test_builds_complete_module(self) -> None:
        module = instrument_source("def f():\n    return 1\n", "/abs/f.py")

        assert module.path == "/abs/f.py"
        assert module.executable_lines == {1, 2}
        assert [f.function_id for f in module.functions] == ["f:1"]
        assert module.blocks == {"function:1"}
        assert TRACKER_NAME in module.instrumented_source
        assert module.code.co_filename == "/abs/f.py"
        assert module.source_map.path == "/abs/f.py"

    def test_empty_module(self) -> None:
        module = instrument_source("", "empty.py")
        assert module.executable_lines == frozenset()
        assert module.functions == ()

    def test_parse_error_is_fatal(self) -> None:
        with pytest.raises(ParseError):
            instrument_source("if True\n", "bad.py")
