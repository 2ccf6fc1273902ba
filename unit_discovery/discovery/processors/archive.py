"""Zip archive processor.

Enumerates an archive once and fans out one task per entry:

- entries under reserved paths (``__pycache__``, ``*.dist-info`` …) and
  package descriptor files are skipped;
- unit files are qualified from their path, screened against the ignore
  rules and the target namespace, resolved and tag-filtered;
- nested archives are entered when the root/nested flags allow it and
  only by the task that wins the claim on the nested key.

Nested recursion happens inside the entry task, so ``process`` returns only
once the whole subtree below the archive has been drained.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from unit_discovery.discovery.containers import OPEN_ERRORS, list_archive
from unit_discovery.discovery.executor import gather_all
from unit_discovery.discovery.processors.base import register_processor
from unit_discovery.errors import ContainerOpenError, UnsupportedTargetError
from unit_discovery.models import LocationKind

if TYPE_CHECKING:
    from unit_discovery.discovery.processors.base import ScanContext
    from unit_discovery.models import Entry, Location

logger = logging.getLogger(__name__)


@register_processor
class ArchiveProcessor:
    """Process a zip archive and, optionally, the archives nested in it."""

    kind = LocationKind.archive

    def __init__(self, context: ScanContext, origin: Location | None = None) -> None:
        self.context = context
        self.origin = origin
        self._prefixes: tuple[str, ...] = ()

    async def process(
        self,
        location: Location,
        namespace: str | Iterable[str] = "",
        *,
        is_root: bool = True,
    ) -> None:
        """Process ``location``.

        Args:
            location: Archive to process, already claimed by the caller
            namespace: Target namespace, or several of them for a sweep;
                only consulted when ``include_all_entries`` is off
            is_root: Root archives obey ``ignore_root_archive`` for their
                nested archives, all others ``ignore_nested_archives``
        """
        if self.origin is None:
            self.origin = location
        self._prefixes = self._namespace_prefixes(namespace)
        try:
            await self._process_archive(location, is_root)
        except UnsupportedTargetError as e:
            self.context.report(e)

    def _namespace_prefixes(self, namespace: str | Iterable[str]) -> tuple[str, ...]:
        namespaces = [namespace] if isinstance(namespace, str) else list(namespace)
        layout = self.context.layout
        prefixes = []
        for ns in namespaces:
            path = layout.namespace_path(ns)
            if not path:
                # The empty namespace covers everything
                return ()
            prefixes.append(path + "/")
        return tuple(prefixes)

    async def _process_archive(self, location: Location, is_root: bool) -> None:
        try:
            entries = await self.context.runner.run(
                list_archive, location, self.context.layout
            )
        except OPEN_ERRORS as e:
            self.context.report(ContainerOpenError(location, e))
            return

        self.context.stats.bump("containers")
        logger.debug(
            f"Archive {location.key}: {len(entries)} entries (root={is_root})"
        )
        await gather_all(self._visit(location, entry, is_root) for entry in entries)

    def _in_namespace(self, entry_path: str) -> bool:
        if self.context.config.include_all_entries or not self._prefixes:
            return True
        return entry_path.startswith(self._prefixes)

    def _enters_nested(self, is_root: bool) -> bool:
        config = self.context.config
        if is_root:
            return not config.ignore_root_archive
        return not config.ignore_nested_archives

    async def _visit(self, location: Location, entry: Entry, is_root: bool) -> None:
        self.context.stats.bump("entries")
        layout = self.context.layout
        try:
            if layout.is_reserved_path(entry.path):
                return

            if entry.kind is LocationKind.archive:
                if not self._enters_nested(is_root):
                    return
                if self.context.config.is_ignored_archive(entry.path):
                    return
                nested = location.nested(entry.path)
                if not self.context.admit(nested):
                    return
                await self._process_archive(nested, is_root=False)

            elif layout.is_unit_name(entry.name):
                if not self._in_namespace(entry.path):
                    return
                name = layout.qualify(entry.path)
                await self.context.resolve_candidate(
                    name, location, entry.path, self.origin
                )
        except UnsupportedTargetError:
            raise
        except Exception as e:
            self.context.report(e)
