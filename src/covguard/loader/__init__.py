"""Instrumenting module loader and its cache."""

from covguard.loader.cache import CacheKey, InstrumentationCache
from covguard.loader.hook import (
    InstrumentingResolver,
    LoadState,
    ModuleLoader,
    ModuleResolver,
    ResolvedModule,
    SourceResolver,
    find_module_file,
    read_source,
)

__all__ = [
    "CacheKey",
    "InstrumentationCache",
    "InstrumentingResolver",
    "LoadState",
    "ModuleLoader",
    "ModuleResolver",
    "ResolvedModule",
    "SourceResolver",
    "find_module_file",
    "read_source",
]
