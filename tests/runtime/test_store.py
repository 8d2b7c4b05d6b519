"""Tests for the per-run coverage store."""

import pytest

from covguard.core.errors import CircularDependencyError
from covguard.models import FunctionInfo, LineStatus, RecordIssue
from covguard.runtime.store import CoverageStore, Tracker


def _store_with_file(path: str = "/src/mod.py", lines: range = range(1, 11)) -> CoverageStore:
    store = CoverageStore()
    store.register_file(
        path,
        lines,
        functions=[FunctionInfo("f", 1, 3)],
        blocks=["function:1", "if:2"],
        source="...",
    )
    return store


class TestRegisterFile:
    def test_creates_record(self) -> None:
        store = _store_with_file()
        record = store.get_file("/src/mod.py")
        assert record is not None
        assert record.total_lines == 10
        assert record.total_functions == 1
        assert record.total_blocks == 2
        assert "/src/mod.py" in store
        assert len(store) == 1

    def test_same_shape_keeps_collected_data(self) -> None:
        store = _store_with_file()
        store.mark_executed("/src/mod.py", 1)

        store.register_file("/src/mod.py", range(1, 11))

        assert store.get_file("/src/mod.py").executed_lines == {1}

    def test_changed_shape_starts_fresh(self) -> None:
        store = _store_with_file()
        store.mark_executed("/src/mod.py", 1)

        store.register_file("/src/mod.py", range(1, 5))

        record = store.get_file("/src/mod.py")
        assert record.total_lines == 4
        assert record.executed_lines == set()


class TestHotPath:
    def test_mark_executed_ignores_unknown_file(self) -> None:
        store = _store_with_file()
        store.mark_executed("/src/other.py", 1)
        assert store.get_file("/src/other.py") is None

    def test_mark_executed_ignores_non_executable_line(self) -> None:
        store = _store_with_file()
        store.mark_executed("/src/mod.py", 99)
        assert store.get_file("/src/mod.py").executed_lines == set()

    def test_inactive_store_records_nothing(self) -> None:
        store = _store_with_file()
        store.stop()
        store.mark_executed("/src/mod.py", 1)
        store.mark_function("/src/mod.py", "f:1")
        store.mark_block("/src/mod.py", "if:2")
        assert not store.active
        record = store.get_file("/src/mod.py")
        assert not record.executed_lines
        assert not record.called_functions
        assert not record.entered_blocks

    def test_functions_and_blocks(self) -> None:
        store = _store_with_file()
        store.mark_function("/src/mod.py", "f:1")
        store.mark_function("/src/mod.py", "g:9")
        store.mark_block("/src/mod.py", "if:2")
        record = store.get_file("/src/mod.py")
        assert record.called_functions == {"f:1"}
        assert record.entered_blocks == {"if:2"}
        assert record.function_coverage_percent == 100.0
        assert record.block_coverage_percent == 50.0

    def test_tracker_binds_store_methods(self) -> None:
        store = _store_with_file()
        tracker = Tracker(store)
        tracker.line("/src/mod.py", 2)
        tracker.function("/src/mod.py", "f:1")
        tracker.block("/src/mod.py", "function:1")
        record = store.get_file("/src/mod.py")
        assert record.executed_lines == {2}
        assert record.called_functions == {"f:1"}
        assert record.entered_blocks == {"function:1"}


class TestCoveredLines:
    def test_executed_vs_covered_scenario(self) -> None:
        """10 executable, 6 executed, 3 validated -> 30% line coverage."""
        # Given
        store = _store_with_file()

        # When
        for line in range(1, 7):
            store.mark_executed("/src/mod.py", line)
        for line in range(1, 4):
            store.mark_line_covered("/src/mod.py", line)

        # Then
        record = store.get_file("/src/mod.py")
        assert record.total_lines == 10
        assert record.executed_lines == {1, 2, 3, 4, 5, 6}
        assert record.covered_lines == {1, 2, 3}
        assert record.line_coverage_percent == 30.0
        assert record.execution_coverage_percent == 60.0
        assert record.line_status(1) is LineStatus.COVERED
        assert record.line_status(5) is LineStatus.EXECUTED
        assert record.line_status(8) is LineStatus.NOT_COVERED
        assert record.line_status(42) is LineStatus.NOT_EXECUTABLE

    def test_mark_line_covered_also_marks_executed(self) -> None:
        store = _store_with_file()
        assert store.mark_line_covered("/src/mod.py", 7) is True
        record = store.get_file("/src/mod.py")
        assert record.covered_lines <= record.executed_lines

    def test_mark_line_covered_rejects_unknown(self) -> None:
        store = _store_with_file()
        assert store.mark_line_covered("/src/mod.py", 0) is False
        assert store.mark_line_covered("/nowhere.py", 1) is False

    def test_mark_line_covered_ignored_when_stopped(self) -> None:
        store = _store_with_file()
        store.stop()
        assert store.mark_line_covered("/src/mod.py", 1) is False
        assert store.get_file("/src/mod.py").covered_lines == set()

    def test_assertion_scope_marks_covered(self) -> None:
        store = _store_with_file()
        store.mark_executed("/src/mod.py", 1)
        with store.assertion():
            store.mark_executed("/src/mod.py", 2)
            with store.assertion():
                store.mark_executed("/src/mod.py", 3)
            store.mark_executed("/src/mod.py", 4)
        store.mark_executed("/src/mod.py", 5)

        record = store.get_file("/src/mod.py")
        assert record.covered_lines == {2, 3, 4}
        assert record.executed_lines == {1, 2, 3, 4, 5}

    def test_zero_executable_lines_is_zero_percent(self) -> None:
        store = CoverageStore()
        record = store.register_file("/src/empty.py", [])
        assert record.line_coverage_percent == 0.0


class TestReads:
    def test_get_data_is_a_copy(self) -> None:
        store = _store_with_file()
        data = store.get_data()
        data.clear()
        assert len(store) == 1

    def test_reset(self) -> None:
        store = _store_with_file()
        store.reset()
        assert len(store) == 0


class TestAssertionMappings:
    def test_lines_attributed_to_located_assertion(self) -> None:
        """Each assertion keeps the lines it validated, per file."""
        # Given
        store = _store_with_file()
        store.register_file("/src/other.py", [1, 2])

        # When
        with store.assertion("/tests/test_mod.py", 12):
            store.mark_executed("/src/mod.py", 2)
            store.mark_executed("/src/other.py", 1)
        with store.assertion("/tests/test_mod.py", 20):
            store.mark_line_covered("/src/mod.py", 5)
        with store.assertion():
            store.mark_executed("/src/mod.py", 9)

        # Then
        first, second = store.get_assertion_mappings("/tests/test_mod.py")
        assert (first.file, first.line) == ("/tests/test_mod.py", 12)
        assert first.covered == {"/src/mod.py": {2}, "/src/other.py": {1}}
        assert second.to_dict() == {
            "file": "/tests/test_mod.py",
            "line": 20,
            "covered": {"/src/mod.py": [5]},
        }
        assert store.get_assertion_mappings("/tests/elsewhere.py") == []

    def test_nested_assertions_share_lines(self) -> None:
        store = _store_with_file()
        with store.assertion("t.py", 1) as outer:
            with store.assertion("t.py", 2) as inner:
                store.mark_executed("/src/mod.py", 3)
            store.mark_executed("/src/mod.py", 4)

        assert outer.covered == {"/src/mod.py": {3, 4}}
        assert inner.covered == {"/src/mod.py": {3}}

    def test_reset_drops_mappings(self) -> None:
        store = _store_with_file()
        with store.assertion("t.py", 1):
            store.mark_executed("/src/mod.py", 1)
        store.reset()
        assert store.get_assertion_mappings("t.py") == []

    def test_covguard_error_passes_through_scope(self) -> None:
        """A loader error raised inside an assertion keeps its type."""
        store = _store_with_file()
        with pytest.raises(CircularDependencyError):
            with store.assertion("t.py", 1):
                raise CircularDependencyError.detected("cyc_a", ["cyc_a", "cyc_b"])
        with store.assertion():
            store.mark_executed("/src/mod.py", 6)
        assert store.get_file("/src/mod.py").covered_lines == {6}


class TestIntegrity:
    def _corrupt(self) -> CoverageStore:
        store = _store_with_file(lines=range(1, 6))
        record = store.get_file("/src/mod.py")
        record.executed_lines.update({1, 2, 42})
        record.covered_lines.update({2, 3, 99})
        record.called_functions.update({"f:1", "ghost:7"})
        record.entered_blocks.update({"if:2", "loop:9"})
        return store

    def test_detects_without_changing(self) -> None:
        store = self._corrupt()

        issues = store.check_integrity()

        assert issues == [
            RecordIssue("/src/mod.py", "executed_not_executable", 42),
            RecordIssue("/src/mod.py", "covered_not_executable", 99),
            RecordIssue("/src/mod.py", "covered_not_executed", 3),
            RecordIssue("/src/mod.py", "unknown_function", "ghost:7"),
            RecordIssue("/src/mod.py", "unknown_block", "loop:9"),
        ]
        assert 42 in store.get_file("/src/mod.py").executed_lines

    def test_repair_restores_invariants(self) -> None:
        store = self._corrupt()

        repaired = store.check_integrity(repair=True)

        record = store.get_file("/src/mod.py")
        assert len(repaired) == 5
        assert record.executed_lines == {1, 2, 3}
        assert record.covered_lines == {2, 3}
        assert record.called_functions == {"f:1"}
        assert record.entered_blocks == {"if:2"}
        assert store.check_integrity() == []

    def test_clean_store_has_no_issues(self) -> None:
        store = _store_with_file()
        store.mark_line_covered("/src/mod.py", 1)
        assert store.check_integrity(repair=True) == []
