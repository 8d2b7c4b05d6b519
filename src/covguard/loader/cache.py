"""In-memory cache of instrumented modules.

Entries are keyed by (path, signature). When a file changes its signature
changes, so the next lookup misses and the module is instrumented again;
stale entries for that path are dropped on the next set().

If the file cannot be stat'ed or read, there is no key and the cache is
bypassed: serving stale instrumented code is worse than re-instrumenting.
"""

from __future__ import annotations

import hashlib
import os
from typing import TYPE_CHECKING, NamedTuple

import structlog

from covguard.config.models import CacheKeyMode

if TYPE_CHECKING:
    from covguard.instrumentation.compiler import InstrumentedModule

log = structlog.get_logger()


class CacheKey(NamedTuple):
    path: str
    signature: str


class InstrumentationCache:
    """Instrumented modules keyed by path and file signature."""

    def __init__(self, key_mode: CacheKeyMode = "mtime") -> None:
        self._key_mode = key_mode
        self._entries: dict[CacheKey, InstrumentedModule] = {}
        self.hits = 0
        self.misses = 0

    def get_cache_key(self, path: str) -> CacheKey | None:
        """Build the key for a file, or None when the file is unavailable."""
        try:
            if self._key_mode == "content":
                with open(path, "rb") as f:
                    signature = hashlib.sha256(f.read()).hexdigest()
            else:
                st = os.stat(path)
                signature = f"{st.st_mtime_ns}:{st.st_size}"
        except OSError:
            return None
        return CacheKey(os.path.abspath(path), signature)

    def get(self, path: str) -> InstrumentedModule | None:
        key = self.get_cache_key(path)
        if key is None:
            return None
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        log.debug("cache.hit", path=path, signature=key.signature)
        return entry

    def set(self, path: str, entry: InstrumentedModule) -> bool:
        key = self.get_cache_key(path)
        if key is None:
            return False
        for stale in [k for k in self._entries if k.path == key.path and k != key]:
            del self._entries[stale]
        self._entries[key] = entry
        log.debug("cache.set", path=path, signature=key.signature)
        return True

    def clear(self) -> bool:
        self._entries = {}
        log.debug("cache.cleared")
        return True

    def stats(self) -> dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._entries)
