"""Runtime coverage collection."""

from covguard.runtime.store import CoverageStore, Tracker

__all__ = ["CoverageStore", "Tracker"]
