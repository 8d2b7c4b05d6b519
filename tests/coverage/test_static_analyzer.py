"""Tests for the static analyzer."""

import textwrap

import pytest

from covguard.core.errors import ParseError
from covguard.coverage.static_analyzer import analyze_source
from covguard.instrumentation.compiler import instrument_source

SOURCE = textwrap.dedent(
    '''\
    """Module doc."""
    from __future__ import annotations

    import os

    counter = 0


    class Parser:
        """Parses."""

        def parse(self, text):
            def inner():
                return text

            return inner()


    def bump():
        global counter
        if counter:
            counter += 1
        for _ in range(2):
            try:
                pass
            except ValueError:
                def handler():
                    pass
    '''
)


class TestAnalyzeSource:
    def test_executable_lines(self) -> None:
        result = analyze_source(SOURCE, "mod.py")
        assert result.executable_lines == {
            4, 6, 9, 12, 13, 14, 16, 19, 21, 22, 23, 24, 25, 27, 28,
        }  # fmt: skip

    def test_functions_are_qualified(self) -> None:
        result = analyze_source(SOURCE, "mod.py")
        assert [(f.name, f.start_line, f.end_line) for f in result.functions] == [
            ("Parser.parse", 12, 16),
            ("Parser.parse.inner", 13, 14),
            ("bump", 19, 28),
            ("bump.handler", 27, 28),
        ]

    def test_agrees_with_instrumenter(self) -> None:
        """Both derivations of the executable set must match."""
        result = analyze_source(SOURCE, "mod.py")
        module = instrument_source(SOURCE, "mod.py")
        assert module.executable_lines == result.executable_lines
        assert {f.function_id for f in module.functions} == {
            f.function_id for f in result.functions
        }

    def test_invalid_source(self) -> None:
        with pytest.raises(ParseError):
            analyze_source("def broken(:\n", "bad.py")
