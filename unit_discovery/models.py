"""
Value types shared by the discovery engine and its processors.

A :class:`Location` names a container (directory or archive, possibly nested
inside other archives). Its :attr:`Location.key` is the canonical string used
for de-duplication: two locations with the same key are the same container.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from importlib.machinery import ModuleSpec
    from types import ModuleType

__all__ = [
    "Entry",
    "LoaderContext",
    "Location",
    "LocationKind",
    "UnitRef",
    "join_name",
]


class LocationKind(str, Enum):
    """Kind of a container or entry, as seen by the accept predicate."""

    directory = "directory"
    archive = "archive"
    search_path_entry = "search-path-entry"
    file_leaf = "file-leaf"


@dataclass(frozen=True)
class Location:
    """Reference to a container.

    Attributes:
        path: Filesystem path of the outermost container.
        kind: Directory, archive or search-path entry.
        members: Chain of archive member paths leading to a nested archive.
            Empty for anything that lives directly on disk.
    """

    path: Path
    kind: LocationKind
    members: tuple[str, ...] = ()

    @classmethod
    def directory(cls, path: str | Path) -> Location:
        # Resolving collapses symlink cycles onto a single key
        return cls(Path(path).resolve(), LocationKind.directory)

    @classmethod
    def archive(cls, path: str | Path) -> Location:
        return cls(Path(path).resolve(), LocationKind.archive)

    def nested(self, member: str) -> Location:
        """Location of an archive stored as ``member`` inside this archive."""
        member = posixpath.normpath(member.replace("\\", "/")).lstrip("/")
        return Location(self.path, LocationKind.archive, (*self.members, member))

    @property
    def key(self) -> str:
        base = self.path.as_uri()
        return base + "".join(f"!/{m}" for m in self.members)

    @property
    def name(self) -> str:
        if self.members:
            return posixpath.basename(self.members[-1])
        return self.path.name

    @property
    def is_nested(self) -> bool:
        return bool(self.members)

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Entry:
    """One member of a container listing.

    ``path`` is relative to the container root and always uses ``/``.
    """

    path: str
    kind: LocationKind

    @property
    def name(self) -> str:
        return posixpath.basename(self.path.rstrip("/"))


@dataclass(frozen=True)
class LoaderContext:
    """What a resolver gets to know about where a candidate was found."""

    location: Location
    entry: str


@dataclass(frozen=True)
class UnitRef:
    """Handle for a discovered unit.

    Identity is the qualified name plus the origin the resolver reported;
    the ``spec`` and ``module`` payloads do not take part in equality.
    """

    name: str
    origin: str
    spec: ModuleSpec | None = field(default=None, compare=False, repr=False)
    module: ModuleType | None = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return self.name


def join_name(namespace: str, name: str, separator: str = ".") -> str:
    """Qualify ``name`` with ``namespace``; an empty namespace adds nothing."""
    if not namespace:
        return name
    if not name:
        return namespace
    return f"{namespace}{separator}{name}"
