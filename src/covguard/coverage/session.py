"""Coverage session: one store, cache and loader per run."""

from __future__ import annotations

import sys
from contextlib import AbstractContextManager
from types import ModuleType
from typing import Any

import structlog

from covguard.config.models import CovguardConfig
from covguard.core.logging import clear_run_id, set_run_id
from covguard.coverage.report import build_coverage_data
from covguard.coverage.validation import validate_report
from covguard.loader.cache import InstrumentationCache
from covguard.loader.hook import ModuleLoader
from covguard.models import AssertionRecord, FileRecord
from covguard.runtime.store import CoverageStore

log = structlog.get_logger()


class CoverageSession:
    """Wires a CoverageStore, InstrumentationCache and ModuleLoader together.

    Usage::

        session = CoverageSession(config, roots=["src"])
        session.start()
        try:
            mod = session.require("pkg.module")
            with session.assertion():
                assert mod.answer() == 42
        finally:
            session.stop()
        data = session.report()
    """

    def __init__(
        self,
        config: CovguardConfig | None = None,
        roots: list[str] | None = None,
    ) -> None:
        self.config = config or CovguardConfig()
        self.store = CoverageStore()
        self.cache = InstrumentationCache(self.config.coverage.cache_key)
        self.loader = ModuleLoader(
            self.store,
            config=self.config.coverage,
            cache=self.cache,
            roots=roots,
        )
        self._run_id: str | None = None

    @property
    def running(self) -> bool:
        return self._run_id is not None

    def start(self) -> bool:
        """Install the loader hook and begin recording.

        Returns False when instrumentation is disabled in configuration;
        modules then load uninstrumented and nothing is recorded.
        """
        self._run_id = set_run_id()
        installed = self.loader.install()
        self.store.start()
        log.info("session.started", roots=self.loader.roots, instrumented=installed)
        return installed

    def stop(self) -> None:
        self.store.stop()
        self.loader.uninstall()
        log.info("session.stopped", files=len(self.store))
        self._run_id = None
        clear_run_id()

    def require(self, name: str) -> ModuleType:
        return self.loader.require(name)

    def mark_line_covered(self, file: str, line: int) -> bool:
        return self.store.mark_line_covered(file, line)

    def assertion(self) -> AbstractContextManager[AssertionRecord]:
        """Open an assertion scope located at the calling line.

        Lines executed inside it are covered and attributed to the caller's
        file and line in ``store.get_assertion_mappings()``.
        """
        frame = sys._getframe(1)
        return self.store.assertion(frame.f_code.co_filename, frame.f_lineno)

    def mark_caller_covered(self, depth: int = 1) -> bool:
        """Mark the calling line as covered.

        ``depth`` 1 is the direct caller, 2 its caller, and so on. Instrumented
        code is compiled with the original line numbers, so the frame's line is
        the line the user wrote. Never raises; returns False when the frame does
        not belong to an instrumented file.
        """
        try:
            frame = sys._getframe(depth)
        except ValueError:
            return False

        path = frame.f_code.co_filename
        if path not in self.loader.source_maps or frame.f_lineno is None:
            return False
        return self.store.mark_line_covered(path, frame.f_lineno)

    def get_data(self) -> dict[str, FileRecord]:
        return self.store.get_data()

    def report(self, *, include_source: bool = True) -> dict[str, Any]:
        """Build the CoverageData structure for everything recorded so far.

        Records that break covered <= executed <= executable are repaired
        first, each repair logged as a warning.
        """
        self.store.check_integrity(repair=True)
        return build_coverage_data(self.store.get_data(), include_source=include_source)

    def validate(self, data: dict[str, Any] | None = None) -> dict[str, Any]:
        """Validate ``data`` (or a fresh report) with the configured checks."""
        if data is None:
            data = self.report()
        return validate_report(data, self.config.validation)
