"""Tests for the instrumented-to-original line map."""

import textwrap

import pytest

from covguard.core.errors import TransformError
from covguard.instrumentation import sourcemap
from covguard.instrumentation.parser import parse
from covguard.instrumentation.sourcemap import NO_SOURCE, SourceMap
from covguard.instrumentation.transformer import generate, transform

SOURCE = textwrap.dedent(
    '''\
    """Module doc."""


    def divide(a, b):
        if b:
            return a / b
        else:
            raise ZeroDivisionError("b is zero")
    '''
)


@pytest.fixture
def instrumented() -> str:
    return generate(transform(parse(SOURCE, "calc.py"), "calc.py").tree)


def _line_of(text: str, needle: str) -> int:
    for number, line in enumerate(text.splitlines(), start=1):
        if needle in line:
            return number
    raise AssertionError(f"{needle!r} not found")


class TestCreate:
    def test_statements_map_to_original_lines(self, instrumented: str) -> None:
        line_map = sourcemap.create("calc.py", SOURCE, instrumented)

        assert line_map.original_line(_line_of(instrumented, "def divide")) == 4
        assert line_map.original_line(_line_of(instrumented, "if b:")) == 5
        assert line_map.original_line(_line_of(instrumented, "return a / b")) == 6
        assert line_map.original_line(_line_of(instrumented, "raise ZeroDivisionError")) == 8

    def test_scaffolding_maps_to_no_source(self, instrumented: str) -> None:
        line_map = sourcemap.create("calc.py", SOURCE, instrumented)

        for number, line in enumerate(instrumented.splitlines(), start=1):
            if "__covguard__" in line or line.strip() == "else:" or "Module doc" in line:
                assert line_map.original_line(number) == NO_SOURCE

    def test_out_of_range_is_no_source(self, instrumented: str) -> None:
        line_map = sourcemap.create("calc.py", SOURCE, instrumented)
        assert line_map.original_line(0) == NO_SOURCE
        assert line_map.original_line(10_000) == NO_SOURCE

    def test_mapped_lines_exclude_scaffolding(self, instrumented: str) -> None:
        line_map = sourcemap.create("calc.py", SOURCE, instrumented)
        assert set(line_map.mapped_lines.values()) == {4, 5, 6, 8}

    def test_unparseable_instrumented_source(self) -> None:
        with pytest.raises(TransformError):
            sourcemap.create("calc.py", SOURCE, "def broken(:\n")


class TestTranslateError:
    def test_traceback_reference_rewritten(self, instrumented: str) -> None:
        line_map = sourcemap.create("/src/calc.py", SOURCE, instrumented)
        n = _line_of(instrumented, "return a / b")

        message = f'File "/src/calc.py", line {n}, in divide'

        assert line_map.translate_error(message) == 'File "/src/calc.py", line 6, in divide'

    def test_compact_reference_rewritten(self, instrumented: str) -> None:
        line_map = sourcemap.create("calc.py", SOURCE, instrumented)
        n = _line_of(instrumented, "raise ZeroDivisionError")

        assert line_map.translate_error(f"calc.py:{n}: b is zero") == "calc.py:8: b is zero"

    def test_other_files_untouched(self) -> None:
        line_map = SourceMap(path="calc.py", lines=(0, 3))
        message = 'File "other.py", line 2, in f'
        assert line_map.translate_error(message) == message
