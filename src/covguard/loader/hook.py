"""Module loader with an installable instrumentation hook.

A ModuleLoader owns an ordered chain of resolvers and its own module table.
``require(name)`` walks the chain; the first resolver that finds a file wins,
and names no resolver knows are handed to the interpreter's import system.
``install()`` puts the instrumenting resolver at the front of the chain and
``uninstall()`` restores the chain saved at install time.

``import`` statements inside loaded modules are routed back through
``require`` so that module-to-module dependencies are visible to the loader:
requiring a module that is still loading raises CircularDependencyError
instead of handing out a half-initialised module. The one exception is a
package importing from itself (``from . import sub`` in ``__init__.py``, or a
submodule importing its own package), which gets the package as built so far,
the same way the interpreter's import system behaves.

A directory under a root with no ``__init__.py`` loads as a namespace package
when no regular module of that name exists anywhere else.

Per-name state: NOT_LOADING -> LOADING -> LOADED, or LOADING -> FAILED on any
read/parse/transform/compile/execution error (the error propagates).
"""

from __future__ import annotations

import builtins
import fnmatch
import importlib
import importlib.machinery
import importlib.util
import os
import tokenize
from dataclasses import dataclass
from enum import Enum
from types import CodeType, ModuleType
from typing import Any, Protocol

import structlog

from covguard.config.models import CoverageConfig
from covguard.core.errors import CircularDependencyError, SourceReadError
from covguard.instrumentation.compiler import (
    InstrumentedModule,
    compile_module,
    instrument_source,
)
from covguard.instrumentation.sourcemap import SourceMap
from covguard.instrumentation.transformer import TRACKER_NAME
from covguard.loader.cache import InstrumentationCache
from covguard.runtime.store import CoverageStore, Tracker

log = structlog.get_logger()


class LoadState(Enum):
    NOT_LOADING = "not_loading"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ResolvedModule:
    """A module file found and compiled by a resolver, ready to execute."""

    name: str
    path: str
    code: CodeType
    is_package: bool
    instrumented: InstrumentedModule | None = None


class ModuleResolver(Protocol):
    """One link of the loader's resolver chain."""

    def locate(self, name: str) -> str | None: ...

    def resolve(self, name: str) -> ResolvedModule | None: ...


def find_module_file(name: str, roots: list[str]) -> tuple[str, bool] | None:
    """Map a dotted module name to a file under one of the roots.

    Tries ``<root>/a/b.py`` then ``<root>/a/b/__init__.py`` for each root in
    order. Returns (path, is_package) or None.
    """
    rel = name.replace(".", os.sep)
    for root in roots:
        module_file = os.path.join(root, rel + ".py")
        if os.path.isfile(module_file):
            return module_file, False
        package_init = os.path.join(root, rel, "__init__.py")
        if os.path.isfile(package_init):
            return package_init, True
    return None


def find_namespace_dirs(name: str, roots: list[str]) -> list[str]:
    """Directories ``<root>/a/b`` for every root, in root order."""
    rel = name.replace(".", os.sep)
    return [path for path in (os.path.join(root, rel) for root in roots) if os.path.isdir(path)]


def _has_regular_module(name: str) -> bool:
    """True when the interpreter can import ``name`` as a module or regular package."""
    try:
        found = importlib.util.find_spec(name)
    except (ImportError, ValueError):
        return False
    return found is not None and found.origin is not None


def read_source(path: str) -> str:
    """Read module source honouring PEP 263 encoding declarations.

    Raises:
        SourceReadError: If the file exists but cannot be read or decoded.
    """
    try:
        with tokenize.open(path) as f:
            return f.read()
    except (OSError, UnicodeDecodeError, SyntaxError) as e:
        raise SourceReadError.unreadable(path, str(e)) from e


class SourceResolver:
    """Plain resolver: compiles module files as written."""

    def __init__(self, roots: list[str]) -> None:
        self.roots = roots

    def locate(self, name: str) -> str | None:
        found = find_module_file(name, self.roots)
        return found[0] if found else None

    def resolve(self, name: str) -> ResolvedModule | None:
        found = find_module_file(name, self.roots)
        if found is None:
            return None
        path, is_package = found
        code = compile_module(read_source(path), path)
        return ResolvedModule(name=name, path=path, code=code, is_package=is_package)


class InstrumentingResolver:
    """Resolver that instruments matching files, caching the result."""

    def __init__(
        self,
        roots: list[str],
        cache: InstrumentationCache,
        include: list[str],
        exclude: list[str],
    ) -> None:
        self.roots = roots
        self.cache = cache
        self.include = include
        self.exclude = exclude

    def accepts(self, path: str) -> bool:
        basename = os.path.basename(path)
        if any(fnmatch.fnmatch(basename, pattern) for pattern in self.exclude):
            return False
        return any(
            fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(basename, pattern)
            for pattern in self.include
        )

    def locate(self, name: str) -> str | None:
        found = find_module_file(name, self.roots)
        if found is None or not self.accepts(found[0]):
            return None
        return found[0]

    def resolve(self, name: str) -> ResolvedModule | None:
        found = find_module_file(name, self.roots)
        if found is None:
            return None
        path, is_package = found
        if not self.accepts(path):
            return None

        instrumented = self.cache.get(path)
        if instrumented is None:
            instrumented = instrument_source(read_source(path), path)
            self.cache.set(path, instrumented)
        else:
            log.debug("loader.cache_hit", name=name, path=path)

        return ResolvedModule(
            name=name,
            path=path,
            code=instrumented.code,
            is_package=is_package,
            instrumented=instrumented,
        )


class ModuleLoader:
    """Owns a resolver chain, a module table and per-name load states."""

    def __init__(
        self,
        store: CoverageStore,
        *,
        config: CoverageConfig | None = None,
        cache: InstrumentationCache | None = None,
        roots: list[str] | None = None,
        resolvers: list[ModuleResolver] | None = None,
    ) -> None:
        self.config = config or CoverageConfig()
        self.store = store
        self.cache = cache or InstrumentationCache(self.config.cache_key)
        self.roots = [os.path.abspath(r) for r in (roots or self.config.roots or [os.getcwd()])]
        self._chain: list[ModuleResolver] = (
            list(resolvers) if resolvers is not None else [SourceResolver(self.roots)]
        )
        self._saved_chain: list[ModuleResolver] | None = None
        self._hook: InstrumentingResolver | None = None
        self._tracker = Tracker(store)
        self._modules: dict[str, ModuleType] = {}
        self._states: dict[str, LoadState] = {}
        self._loading: list[str] = []
        self._partial: dict[str, ModuleType] = {}
        self._instrumented: set[str] = set()
        self.source_maps: dict[str, SourceMap] = {}

        self._builtins: dict[str, Any] = dict(builtins.__dict__)
        self._builtins["__import__"] = self._import

    # -- hook management ---------------------------------------------------

    @property
    def installed(self) -> bool:
        return self._hook is not None

    @property
    def resolvers(self) -> tuple[ModuleResolver, ...]:
        return tuple(self._chain)

    def install(self) -> bool:
        """Put the instrumenting resolver at the front of the chain.

        Returns False without changing anything when coverage or
        instrumentation is disabled in configuration.
        """
        if not self.config.enabled or not self.config.use_instrumentation:
            log.debug("loader.instrumentation_disabled")
            return False
        if self._hook is not None:
            return True

        self._saved_chain = list(self._chain)
        self._hook = InstrumentingResolver(
            self.roots, self.cache, self.config.include, self.config.exclude
        )
        self._chain.insert(0, self._hook)
        log.debug("loader.installed", roots=self.roots)
        return True

    def uninstall(self) -> bool:
        """Restore the pre-install chain, clear the cache, forget instrumented modules."""
        if self._saved_chain is not None:
            self._chain = self._saved_chain
        self._saved_chain = None
        self._hook = None
        self.cache.clear()

        for name in self._instrumented:
            self._modules.pop(name, None)
            self._states.pop(name, None)
        self._instrumented.clear()

        log.debug("loader.uninstalled")
        return True

    # -- module table ------------------------------------------------------

    def state(self, name: str) -> LoadState:
        return self._states.get(name, LoadState.NOT_LOADING)

    def loaded_modules(self) -> dict[str, ModuleType]:
        return dict(self._modules)

    def unload(self, name: str) -> bool:
        """Forget a loaded module so the next require() loads it again."""
        self._instrumented.discard(name)
        self._states.pop(name, None)
        return self._modules.pop(name, None) is not None

    def require(self, name: str) -> ModuleType:
        """Load a module through the resolver chain.

        A parent package that is still executing its ``__init__.py`` is used
        as built so far; only re-entering ``name`` itself is a cycle.

        Raises:
            CircularDependencyError: name is already loading.
            InstrumentationError: the file could not be read, parsed,
                transformed or compiled.
            ImportError: nothing (including the interpreter) can import name.
        """
        module = self._modules.get(name)
        if module is not None:
            return module
        if self.state(name) is LoadState.LOADING:
            raise CircularDependencyError.detected(name, list(self._loading))

        parent_name, _, child_name = name.rpartition(".")
        parent = None
        if parent_name:
            parent = self._partial.get(parent_name) or self.require(parent_name)
            # The parent's __init__ may have loaded this module already
            module = self._modules.get(name)
            if module is not None:
                return module

        self._states[name] = LoadState.LOADING
        self._loading.append(name)
        try:
            resolved = self._resolve(name)
            if resolved is not None:
                module = self._execute(resolved)
            elif self._is_namespace(name):
                module = self._namespace(name)
            else:
                module = importlib.import_module(name)
        except BaseException:
            self._states[name] = LoadState.FAILED
            raise
        finally:
            self._loading.pop()

        self._states[name] = LoadState.LOADED
        self._modules[name] = module
        if parent is not None and not hasattr(parent, child_name):
            setattr(parent, child_name, module)
        return module

    # -- internals ---------------------------------------------------------

    def _resolve(self, name: str) -> ResolvedModule | None:
        for resolver in self._chain:
            resolved = resolver.resolve(name)
            if resolved is not None:
                return resolved
        return None

    def _handles(self, name: str) -> bool:
        if name in self._modules or self.state(name) is LoadState.LOADING:
            return True
        return self._locates(name)

    def _locates(self, name: str) -> bool:
        return any(resolver.locate(name) for resolver in self._chain) or self._is_namespace(name)

    def _is_namespace(self, name: str) -> bool:
        if not find_namespace_dirs(name, self.roots):
            return False
        parent_name = name.rpartition(".")[0]
        if parent_name:
            return self._locates(parent_name)
        return not _has_regular_module(name)

    def _namespace(self, name: str) -> ModuleType:
        paths = find_namespace_dirs(name, self.roots)
        module = ModuleType(name)
        module.__spec__ = importlib.machinery.ModuleSpec(name, None, is_package=True)
        module.__spec__.submodule_search_locations = paths
        module.__path__ = paths
        module.__package__ = name
        log.debug("loader.namespace_package", name=name, paths=paths)
        return module

    def _execute(self, resolved: ResolvedModule) -> ModuleType:
        module = ModuleType(resolved.name)
        module.__file__ = resolved.path
        module.__spec__ = importlib.util.spec_from_loader(
            resolved.name, loader=None, origin=resolved.path, is_package=resolved.is_package
        )
        if resolved.is_package:
            module.__path__ = [os.path.dirname(resolved.path)]
            module.__package__ = resolved.name
        else:
            module.__package__ = resolved.name.rpartition(".")[0]
        namespace = module.__dict__
        namespace["__builtins__"] = self._builtins

        instrumented = resolved.instrumented
        if instrumented is not None:
            self.store.register_file(
                instrumented.path,
                instrumented.executable_lines,
                instrumented.functions,
                instrumented.blocks,
                source=instrumented.source,
            )
            self.source_maps[instrumented.path] = instrumented.source_map
            namespace[TRACKER_NAME] = self._tracker

        self._partial[resolved.name] = module
        try:
            exec(resolved.code, namespace)
        except Exception as e:
            if instrumented is not None:
                log.warning(
                    "loader.module_failed",
                    name=resolved.name,
                    path=resolved.path,
                    error=f"{type(e).__name__}: {e}",
                )
            raise
        finally:
            del self._partial[resolved.name]

        if instrumented is not None:
            self._instrumented.add(resolved.name)
        log.debug(
            "loader.module_loaded",
            name=resolved.name,
            path=resolved.path,
            instrumented=instrumented is not None,
        )
        return module

    def _import(
        self,
        name: str,
        globals: dict[str, Any] | None = None,
        locals: dict[str, Any] | None = None,
        fromlist: tuple[str, ...] | list[str] | None = (),
        level: int = 0,
    ) -> ModuleType:
        """``__import__`` replacement installed into loaded modules."""
        if level > 0:
            package = (globals or {}).get("__package__") or ""
            absolute = importlib.util.resolve_name("." * level + name, package)
        else:
            absolute = name

        if not self._handles(absolute):
            return builtins.__import__(name, globals, locals, fromlist or (), level)

        importer = (globals or {}).get("__name__") or ""
        module = self._own_package(absolute, importer) or self.require(absolute)
        if fromlist:
            for item in fromlist:
                if item == "*" or hasattr(module, item):
                    continue
                submodule = f"{absolute}.{item}"
                if self._handles(submodule):
                    self.require(submodule)
            return module
        if "." not in absolute:
            return module
        top = absolute.partition(".")[0]
        return self._modules.get(top) or self._partial[top]

    def _own_package(self, name: str, importer: str) -> ModuleType | None:
        """The still-executing package ``name`` when ``importer`` lives inside it."""
        partial = self._partial.get(name)
        if partial is None or not hasattr(partial, "__path__"):
            return None
        if importer == name or importer.startswith(name + "."):
            return partial
        return None
