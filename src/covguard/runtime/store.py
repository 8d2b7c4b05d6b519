"""Per-run coverage data store.

One CoverageStore is constructed per coverage run and handed to every
collaborator that records data. Instrumented modules reach it through the
Tracker bound into their globals under ``__covguard__``.

Executed vs covered: a line is *executed* when the interpreter runs it and
*covered* only when an assertion validates it, either explicitly through
mark_line_covered() or implicitly by running inside an assertion() scope.
Each assertion scope keeps the lines it validated, per file, so coverage can
be attributed back to the assertion that produced it.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager

import structlog

from covguard.models import AssertionRecord, FileRecord, FunctionInfo, RecordIssue

log = structlog.get_logger()


class CoverageStore:
    """Mutable coverage records keyed by file path. Single-threaded."""

    def __init__(self) -> None:
        self._files: dict[str, FileRecord] = {}
        self._active = True
        self._open: list[AssertionRecord] = []
        self._assertions: list[AssertionRecord] = []

    # -- lifecycle ---------------------------------------------------------

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        self._active = True

    def stop(self) -> None:
        self._active = False

    def reset(self) -> None:
        """Drop every record and assertion mapping."""
        self._files = {}
        self._open = []
        self._assertions = []
        log.debug("store.reset")

    def register_file(
        self,
        path: str,
        executable_lines: Iterable[int],
        functions: Iterable[FunctionInfo] = (),
        blocks: Iterable[str] = (),
        source: str | None = None,
    ) -> FileRecord:
        """Register the static shape of an instrumented file.

        Re-registering with the same executable lines keeps collected data;
        a different shape (the file changed) starts a fresh record.
        """
        executable = frozenset(executable_lines)
        existing = self._files.get(path)
        if existing is not None and existing.executable_lines == executable:
            if source is not None:
                existing.source = source
            return existing

        record = FileRecord(
            path=path,
            executable_lines=executable,
            functions={f.function_id: f for f in functions},
            blocks=frozenset(blocks),
            source=source,
        )
        self._files[path] = record
        log.debug("store.file_registered", path=path, executable_lines=len(executable))
        return record

    # -- hot path ----------------------------------------------------------

    def mark_executed(self, file: str, line: int) -> None:
        """Record that a line ran. Unknown files and non-executable lines are ignored."""
        if not self._active:
            return
        record = self._files.get(file)
        if record is None or line not in record.executable_lines:
            return
        record.executed_lines.add(line)
        if self._open:
            record.covered_lines.add(line)
            for assertion in self._open:
                assertion.add(file, line)

    def mark_function(self, file: str, function_id: str) -> None:
        if not self._active:
            return
        record = self._files.get(file)
        if record is not None and function_id in record.functions:
            record.called_functions.add(function_id)

    def mark_block(self, file: str, block_id: str) -> None:
        if not self._active:
            return
        record = self._files.get(file)
        if record is not None and block_id in record.blocks:
            record.entered_blocks.add(block_id)

    # -- assertion layer ---------------------------------------------------

    def mark_line_covered(self, file: str, line: int) -> bool:
        """Mark a line as validated by an assertion.

        The line is recorded as executed too, so covered stays a subset of
        executed. Returns False when the store is stopped, and for unknown
        files or non-executable lines.
        """
        if not self._active:
            return False
        record = self._files.get(file)
        if record is None or line not in record.executable_lines:
            return False
        record.executed_lines.add(line)
        record.covered_lines.add(line)
        for assertion in self._open:
            assertion.add(file, line)
        return True

    @contextmanager
    def assertion(
        self, file: str | None = None, line: int | None = None
    ) -> Iterator[AssertionRecord]:
        """Treat every line executed inside the block as covered.

        ``file``/``line`` locate the assertion for get_assertion_mappings().
        Scopes nest; a line covered inside an inner scope is attributed to
        every open scope.
        """
        record = AssertionRecord(file=file, line=line)
        self._assertions.append(record)
        self._open.append(record)
        try:
            yield record
        finally:
            self._open.pop()
            log.debug(
                "store.assertion_closed",
                file=file,
                line=line,
                covered=sum(len(lines) for lines in record.covered.values()),
            )

    def get_assertion_mappings(self, file: str) -> list[AssertionRecord]:
        """Assertions located in ``file``, in the order they were opened."""
        return [a for a in self._assertions if a.file == file]

    # -- integrity ---------------------------------------------------------

    def check_integrity(self, *, repair: bool = False) -> list[RecordIssue]:
        """Find records whose sets break covered <= executed <= executable.

        With ``repair`` the records are fixed in place. Each issue is logged.
        """
        issues: list[RecordIssue] = []
        for path in sorted(self._files):
            record = self._files[path]
            found = record.repair() if repair else record.integrity_issues()
            for issue in found:
                log.warning(
                    "store.record_repaired" if repair else "store.record_corrupt",
                    path=issue.path,
                    kind=issue.kind,
                    item=issue.item,
                )
            issues.extend(found)
        return issues

    # -- reads -------------------------------------------------------------

    def get_file(self, path: str) -> FileRecord | None:
        return self._files.get(path)

    def get_data(self) -> dict[str, FileRecord]:
        """Records per file (live objects; treat as read-only while reporting)."""
        return dict(self._files)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def __len__(self) -> int:
        return len(self._files)


class Tracker:
    """Object injected into instrumented modules as ``__covguard__``."""

    __slots__ = ("line", "function", "block")

    def __init__(self, store: CoverageStore) -> None:
        self.line = store.mark_executed
        self.function = store.mark_function
        self.block = store.mark_block
