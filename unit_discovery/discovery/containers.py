"""
Blocking container primitives: directory listing and zip enumeration.

Everything here runs on the worker pool (see :mod:`.executor`), never on the
event loop. Archive handles are opened and closed inside a single call, so
no handle outlives the task that opened it.
"""

from __future__ import annotations

import io
import logging
import os
import zipfile
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from unit_discovery.models import Entry, Location, LocationKind

if TYPE_CHECKING:
    from collections.abc import Iterator

    from unit_discovery.config.scan_config import LayoutConfig

logger = logging.getLogger(__name__)

# Failures that mean "this container cannot be read"
OPEN_ERRORS = (OSError, zipfile.BadZipFile, zipfile.LargeZipFile, KeyError, EOFError)


def classify_path(path: Path, layout: LayoutConfig) -> LocationKind:
    """Kind of a filesystem path: directory, archive or plain file."""
    if path.is_dir():
        return LocationKind.directory
    if layout.is_archive_name(path.name):
        return LocationKind.archive
    return LocationKind.file_leaf


def list_directory(path: Path, layout: LayoutConfig) -> list[Entry]:
    """List one directory level.

    Raises:
        OSError: If the directory cannot be read
    """
    entries = []
    with os.scandir(path) as it:
        for item in it:
            try:
                is_dir = item.is_dir()
            except OSError:
                # Broken symlink or vanished entry
                continue
            if is_dir:
                kind = LocationKind.directory
            elif layout.is_archive_name(item.name):
                kind = LocationKind.archive
            else:
                kind = LocationKind.file_leaf
            entries.append(Entry(item.name, kind))
    entries.sort(key=lambda e: e.path)
    return entries


@contextmanager
def open_archive(location: Location) -> Iterator[zipfile.ZipFile]:
    """Open an archive, following the member chain of nested locations.

    Inner archives are read into memory; every handle opened along the chain
    is closed when the context exits.
    """
    with ExitStack() as stack:
        archive = stack.enter_context(zipfile.ZipFile(location.path))
        for member in location.members:
            data = archive.read(member)
            archive = stack.enter_context(zipfile.ZipFile(io.BytesIO(data)))
        yield archive


def list_archive(location: Location, layout: LayoutConfig) -> list[Entry]:
    """Enumerate the file entries of an archive once.

    Directory records are skipped; members named like archives are reported
    as nested archives.

    Raises:
        OSError, zipfile.BadZipFile, KeyError: If the archive cannot be read
    """
    with open_archive(location) as archive:
        infos = archive.infolist()

    entries = []
    for info in infos:
        if info.is_dir():
            continue
        name = info.filename.replace("\\", "/")
        kind = (
            LocationKind.archive
            if layout.is_archive_name(name)
            else LocationKind.file_leaf
        )
        entries.append(Entry(name, kind))
    logger.debug(f"Listed {len(entries)} entries in {location.key}")
    return entries


def archive_has_namespace(path: Path, namespace_path: str) -> bool:
    """Check whether an archive holds anything under ``namespace_path``.

    An empty namespace path matches any archive.

    Raises:
        OSError, zipfile.BadZipFile: If the archive cannot be read
    """
    if not namespace_path:
        return True
    prefix = namespace_path.rstrip("/") + "/"
    with zipfile.ZipFile(path) as archive:
        return any(
            name.replace("\\", "/").startswith(prefix) for name in archive.namelist()
        )
