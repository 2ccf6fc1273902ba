"""Directory tree processor.

Lists one level at a time and spawns a task per entry: sub-directories
recurse with the namespace extended by the directory name, unit files are
resolved as ``namespace + "." + stem``. Each level joins all of its entry
tasks before returning, so the task tree mirrors the directory tree.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from unit_discovery.discovery.containers import list_directory
from unit_discovery.discovery.executor import gather_all
from unit_discovery.discovery.processors.archive import ArchiveProcessor
from unit_discovery.discovery.processors.base import register_processor
from unit_discovery.errors import ContainerOpenError, UnsupportedTargetError
from unit_discovery.models import Location, LocationKind, join_name

if TYPE_CHECKING:
    from unit_discovery.discovery.processors.base import ScanContext
    from unit_discovery.models import Entry

logger = logging.getLogger(__name__)


@register_processor
class DirectoryProcessor:
    """Walk a directory tree concurrently."""

    kind = LocationKind.directory

    def __init__(self, context: ScanContext, origin: Location | None = None) -> None:
        self.context = context
        self.origin = origin

    async def process(
        self, location: Location, namespace: str = "", *, is_root: bool = True
    ) -> None:
        if self.origin is None:
            self.origin = location
        try:
            await self._walk(location, namespace)
        except UnsupportedTargetError as e:
            self.context.report(e)

    async def _walk(self, directory: Location, namespace: str) -> None:
        try:
            entries = await self.context.runner.run(
                list_directory, directory.path, self.context.layout
            )
        except OSError as e:
            self.context.report(ContainerOpenError(directory, e))
            return

        self.context.stats.bump("containers")
        logger.debug(f"Directory {directory.path}: {len(entries)} entries")
        await gather_all(self._visit(directory, entry, namespace) for entry in entries)

    async def _visit(self, directory: Location, entry: Entry, namespace: str) -> None:
        self.context.stats.bump("entries")
        layout = self.context.layout
        try:
            if entry.kind is LocationKind.directory:
                if layout.is_reserved_segment(entry.name):
                    return
                child = Location.directory(directory.path / entry.name)
                # Claiming the resolved path stops symlink cycles
                if not self.context.admit(child):
                    return
                await self._walk(
                    child, join_name(namespace, entry.name, layout.namespace_separator)
                )

            elif entry.kind is LocationKind.archive:
                if not self.context.enter_archives:
                    return
                await self._enter_archive(Location.archive(directory.path / entry.name))

            elif layout.is_unit_name(entry.name):
                leaf = Location(directory.path / entry.name, LocationKind.file_leaf)
                if not self.context.accepts(leaf, LocationKind.file_leaf):
                    return
                name = join_name(
                    namespace, layout.unit_stem(entry.name), layout.namespace_separator
                )
                await self.context.resolve_candidate(
                    name, directory, entry.name, self.origin
                )
        except UnsupportedTargetError:
            raise
        except Exception as e:
            self.context.report(e)

    async def _enter_archive(self, location: Location) -> None:
        if self.context.config.is_ignored_archive(location.name):
            return
        if not self.context.admit(location):
            return
        processor = ArchiveProcessor(self.context, origin=self.origin)
        await processor.process(location, "", is_root=True)
