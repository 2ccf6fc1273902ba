"""Aggregate sweep over the search path.

Namespace lookup only reaches archives that hold an entry at the queried
namespace path. When a scan saw directory-style roots, this sweep visits
every other archive on the search path so units packed next to the
directories are found too.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from unit_discovery.discovery.executor import gather_all
from unit_discovery.discovery.processors.archive import ArchiveProcessor
from unit_discovery.models import Location, LocationKind

if TYPE_CHECKING:
    from unit_discovery.discovery.processors.base import ScanContext

logger = logging.getLogger(__name__)


class AggregatePathProcessor:
    """Process every unclaimed archive on the search path as a non-root archive."""

    kind = LocationKind.search_path_entry

    def __init__(
        self,
        context: ScanContext,
        search_path: Sequence[str | Path],
        namespaces: Iterable[str] = ("",),
    ) -> None:
        self.context = context
        self.search_path = list(search_path)
        self.namespaces = tuple(namespaces) or ("",)

    def candidates(self) -> list[Location]:
        """Existing archives on the search path that pass the name filters, in order."""
        layout = self.context.layout
        config = self.context.config
        found: list[Location] = []
        seen: set[str] = set()
        for entry in self.search_path:
            text = str(entry)
            if not text or not layout.is_archive_name(text):
                continue
            if not Path(text).is_file():
                # e.g. the interpreter's own pythonXY.zip placeholder
                continue
            if config.is_ignored_archive(text):
                logger.debug(f"Ignoring archive by name: {text}")
                continue
            location = Location.archive(text)
            if location.key in seen:
                continue
            seen.add(location.key)
            found.append(location)
        return found

    async def process(self) -> None:
        claimed = []
        candidates = await self.context.runner.run(self.candidates)
        for location in candidates:
            if location.key in self.context.processed:
                continue
            if self.context.admit(location):
                claimed.append(location)

        if not claimed:
            return
        logger.debug(f"Search-path sweep: {len(claimed)} archives")
        await gather_all(self._process_one(location) for location in claimed)

    async def _process_one(self, location: Location) -> None:
        try:
            processor = ArchiveProcessor(self.context, origin=location)
            await processor.process(location, self.namespaces, is_root=False)
        except Exception as e:
            self.context.report(e)
