"""
Discovery engine: turns roots into containers and drives the processors.

Architecture:
- Roots (namespace strings, modules, classes, paths, Locations) are
  resolved against the search path into a plan of container Locations.
- One task per planned Location runs the processor registered for its
  kind. Tasks are independent; a failure in one never cancels another.
- If any planned Location was a directory, a single search-path sweep then
  visits every archive on the search path not claimed yet.
- Results of one call are returned to the caller and also merged into the
  engine's cumulative view (:meth:`DiscoveryEngine.get_loaded_units`).

Usage::

    with DiscoveryEngine(search_path=["/app/classes", "/app/lib/extra.zip"]) as engine:
        units = engine.discover("a.b")

A scan never raises for per-container or per-entry problems. They reach the
configured error handler, and a root that cannot be resolved at all yields
an empty result for that call.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any

from unit_discovery.config.scan_config import ScanConfiguration
from unit_discovery.discovery.containers import (
    OPEN_ERRORS,
    archive_has_namespace,
    classify_path,
)
from unit_discovery.discovery.executor import BlockingRunner, gather_all
from unit_discovery.discovery.processors.aggregate import AggregatePathProcessor
from unit_discovery.discovery.processors.base import ScanContext, get_processor
from unit_discovery.discovery.resolvers import SpecResolver
from unit_discovery.discovery.state import ResultStore, ScanStats
from unit_discovery.errors import RootResolutionError
from unit_discovery.models import Location, LocationKind

if TYPE_CHECKING:
    from unit_discovery.config.scan_config import LayoutConfig
    from unit_discovery.discovery.resolvers import Resolver

logger = logging.getLogger(__name__)

Root = str | os.PathLike | Location | ModuleType | type


@dataclass(frozen=True)
class ScanTarget:
    """A container to dispatch and the namespace its top level maps to."""

    location: Location
    namespace: str = ""


class DiscoveryEngine:
    """Discover units reachable from namespaces, directories and archives.

    Args:
        resolver: Unit resolver (default: :class:`SpecResolver`)
        search_path: Ordered container paths consulted for namespace roots
            and the aggregate sweep (default: snapshot of ``sys.path``)
        max_workers: Threads for blocking work (default from settings)
        max_concurrency: In-flight blocking calls (default from settings)
    """

    def __init__(
        self,
        resolver: Resolver | None = None,
        *,
        search_path: Sequence[str | os.PathLike] | None = None,
        max_workers: int | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.resolver: Resolver = resolver if resolver is not None else SpecResolver()
        if search_path is None:
            search_path = list(sys.path)
        self.search_path: list[str] = [os.fspath(p) for p in search_path]
        self.max_workers = max_workers
        self.max_concurrency = max_concurrency
        self.last_stats: ScanStats | None = None
        self._loaded = ResultStore()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def discover(
        self, roots: Root | Sequence[Root], config: ScanConfiguration | None = None
    ) -> set[Any]:
        """Discover all units reachable from ``roots``.

        Must not be called from a running event loop; use :meth:`adiscover`.
        """
        return asyncio.run(self.adiscover(roots, config))

    def discover_grouped(
        self, roots: Root | Sequence[Root], config: ScanConfiguration | None = None
    ) -> dict[Location, set[Any]]:
        """Like :meth:`discover`, grouped by originating root Location."""
        return asyncio.run(self.adiscover_grouped(roots, config))

    def load_directory(
        self, path: str | os.PathLike, config: ScanConfiguration | None = None
    ) -> set[Any]:
        """Scan a bare directory tree, naming units relative to its root.

        Archives found inside the tree are processed as root archives.
        """
        return asyncio.run(self.aload_directory(path, config))

    def load_directory_grouped(
        self, path: str | os.PathLike, config: ScanConfiguration | None = None
    ) -> dict[Location, set[Any]]:
        return asyncio.run(self.aload_directory_grouped(path, config))

    async def adiscover(
        self, roots: Root | Sequence[Root], config: ScanConfiguration | None = None
    ) -> set[Any]:
        store = await self._scan(roots, config)
        return store.units()

    async def adiscover_grouped(
        self, roots: Root | Sequence[Root], config: ScanConfiguration | None = None
    ) -> dict[Location, set[Any]]:
        store = await self._scan(roots, config)
        return store.grouped()

    async def aload_directory(
        self, path: str | os.PathLike, config: ScanConfiguration | None = None
    ) -> set[Any]:
        store = await self._scan(
            [Path(path)], config, enter_archives=True, sweep=False
        )
        return store.units()

    async def aload_directory_grouped(
        self, path: str | os.PathLike, config: ScanConfiguration | None = None
    ) -> dict[Location, set[Any]]:
        store = await self._scan(
            [Path(path)], config, enter_archives=True, sweep=False
        )
        return store.grouped()

    def get_loaded_units(self) -> set[Any]:
        """Every unit discovered by this engine since construction or close."""
        return self._loaded.units()

    def close(self) -> None:
        """Release resolver caches and clear the cumulative view. Idempotent."""
        close = getattr(self.resolver, "close", None)
        if callable(close):
            try:
                close()
            except Exception as e:
                logger.warning(f"Resolver close failed: {e}")
        self._loaded = ResultStore()
        self.last_stats = None

    def __enter__(self) -> DiscoveryEngine:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Scan orchestration
    # ------------------------------------------------------------------

    def _runner(self) -> BlockingRunner:
        kwargs = {}
        if self.max_workers is not None:
            kwargs["max_workers"] = self.max_workers
        if self.max_concurrency is not None:
            kwargs["max_concurrency"] = self.max_concurrency
        return BlockingRunner(**kwargs)

    async def _scan(
        self,
        roots: Root | Sequence[Root],
        config: ScanConfiguration | None,
        *,
        enter_archives: bool = False,
        sweep: bool = True,
    ) -> ResultStore:
        config = config if config is not None else ScanConfiguration()
        stats = ScanStats()

        async with self._runner() as runner:
            context = ScanContext(
                config=config,
                resolver=self.resolver,
                runner=runner,
                stats=stats,
                enter_archives=enter_archives,
            )

            try:
                plan = await self._plan(roots, context)
            except (RootResolutionError, OSError, TypeError, ValueError) as e:
                logger.info(f"Root resolution failed: {e}")
                context.report(e)
                plan = []

            await gather_all(self._dispatch(target, context) for target in plan)

            directory_namespaces = [
                t.namespace for t in plan if t.location.kind is LocationKind.directory
            ]
            if sweep and directory_namespaces:
                aggregate = AggregatePathProcessor(
                    context, self.search_path, namespaces=directory_namespaces
                )
                try:
                    await aggregate.process()
                except Exception as e:
                    context.report(e)

        stats.finish()
        self.last_stats = stats
        store = context.results
        for unit in store.units():
            self._loaded.add(unit)

        logger.info(
            f"Discovered {len(store)} units from {len(plan)} roots "
            f"({stats.containers} containers, {stats.errors} errors, "
            f"{stats.elapsed:.2f}s)"
        )
        return store

    async def _dispatch(self, target: ScanTarget, context: ScanContext) -> None:
        location = target.location
        try:
            processor_cls = get_processor(location.kind)
        except KeyError:
            logger.debug(f"No processor for {location.kind.value}: {location.key}")
            return

        if not context.admit(location):
            return

        try:
            processor = processor_cls(context, origin=location)
            await processor.process(location, target.namespace, is_root=True)
        except Exception as e:
            context.report(e)

    # ------------------------------------------------------------------
    # Root resolution
    # ------------------------------------------------------------------

    async def _plan(
        self, roots: Root | Sequence[Root], context: ScanContext
    ) -> list[ScanTarget]:
        if roots is None:
            raise RootResolutionError("No roots given")
        if isinstance(
            roots, (str, os.PathLike, Location, ModuleType, type)
        ) or not isinstance(roots, Iterable):
            roots = [roots]
        roots = list(roots)

        plan: list[ScanTarget] = []
        seen: set[str] = set()
        for root in roots:
            targets = await self._resolve_root(root, context)
            for target in targets:
                if target.location.key not in seen:
                    seen.add(target.location.key)
                    plan.append(target)
        logger.debug(f"Planned {len(plan)} containers from {len(roots)} roots")
        return plan

    async def _resolve_root(self, root: Root, context: ScanContext) -> list[ScanTarget]:
        layout = context.layout
        if isinstance(root, Location):
            return [ScanTarget(root)]
        if isinstance(root, os.PathLike):
            return await context.runner.run(self._path_targets, Path(root), layout)
        if isinstance(root, ModuleType):
            return await self._namespace_targets(_module_namespace(root), context)
        if isinstance(root, type):
            return await self._namespace_targets(_class_namespace(root), context)
        if isinstance(root, str):
            return await self._namespace_targets(root, context)
        raise RootResolutionError(
            f"Unsupported root {root!r} ({type(root).__name__})"
        )

    @staticmethod
    def _path_targets(path: Path, layout: LayoutConfig) -> list[ScanTarget]:
        if not path.exists():
            raise RootResolutionError(f"Root path does not exist: {path}")
        kind = classify_path(path, layout)
        if kind is LocationKind.directory:
            return [ScanTarget(Location.directory(path))]
        if kind is LocationKind.archive:
            return [ScanTarget(Location.archive(path))]
        logger.debug(f"Skipping root that is not a container: {path}")
        return []

    async def _namespace_targets(
        self, namespace: str, context: ScanContext
    ) -> list[ScanTarget]:
        layout = context.layout
        _validate_namespace(namespace, layout.namespace_separator)
        if not self.search_path:
            raise RootResolutionError("Search path is empty")

        ns_path = layout.namespace_path(namespace)
        locations = await context.runner.run(
            self._locate_namespace, ns_path, layout
        )
        return [ScanTarget(location, namespace) for location in locations]

    def _locate_namespace(self, ns_path: str, layout: LayoutConfig) -> list[Location]:
        """Every search-path container holding the namespace path, in order."""
        locations = []
        for entry in self.search_path:
            base = Path(entry or os.curdir)
            if base.is_dir():
                candidate = base / ns_path if ns_path else base
                if candidate.is_dir():
                    locations.append(Location.directory(candidate))
            elif base.is_file() and layout.is_archive_name(base.name):
                try:
                    matched = archive_has_namespace(base, ns_path)
                except OPEN_ERRORS as e:
                    # Planned anyway: the archive processor reports it once
                    logger.debug(f"Cannot inspect {base}: {e}")
                    matched = True
                if matched:
                    locations.append(Location.archive(base))
        return locations


def _validate_namespace(namespace: str, separator: str) -> None:
    if namespace == "":
        return
    parts = namespace.split(separator)
    if not all(part.isidentifier() for part in parts):
        raise RootResolutionError(f"Invalid namespace: {namespace!r}")


def _module_namespace(module: ModuleType) -> str:
    if hasattr(module, "__path__"):
        return module.__name__
    package = getattr(module, "__package__", None)
    if package is not None:
        return package
    return module.__name__.rpartition(".")[0]


def _class_namespace(cls: type) -> str:
    module = sys.modules.get(cls.__module__)
    if module is not None:
        return _module_namespace(module)
    return cls.__module__.rpartition(".")[0]
