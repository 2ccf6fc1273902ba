"""
Resolvers turn a qualified unit name plus its container into a unit handle.

The engine only relies on the :class:`Resolver` protocol and its three
outcomes: return a handle, raise :class:`UnitNotFoundError`, or raise
:class:`UnitLinkError`. A ``None`` return is reported as not found.
Anything else a resolver raises is reported as a resolution failure,
except :class:`UnsupportedTargetError` which abandons the whole container.

Two implementations ship with the package:

- :class:`SpecResolver` locates a module spec without running module code.
  This is the default.
- :class:`ImportResolver` imports the module, so tag filters can inspect
  the live module (see :func:`marker_filter`).
"""

from __future__ import annotations

import importlib
import logging
import posixpath
import threading
import zipimport
from importlib.machinery import (
    BYTECODE_SUFFIXES,
    EXTENSION_SUFFIXES,
    SOURCE_SUFFIXES,
    ExtensionFileLoader,
    FileFinder,
    ModuleSpec,
    SourceFileLoader,
    SourcelessFileLoader,
)
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from unit_discovery.errors import (
    UnitLinkError,
    UnitNotFoundError,
    UnsupportedTargetError,
)
from unit_discovery.models import LocationKind, UnitRef

if TYPE_CHECKING:
    from collections.abc import Callable

    from unit_discovery.models import LoaderContext

logger = logging.getLogger(__name__)

_LOADER_DETAILS = (
    (ExtensionFileLoader, EXTENSION_SUFFIXES),
    (SourceFileLoader, SOURCE_SUFFIXES),
    (SourcelessFileLoader, BYTECODE_SUFFIXES),
)


@runtime_checkable
class Resolver(Protocol):
    """Interface the engine needs from a unit loader.

    Resolvers are called concurrently from worker threads and must be
    thread-safe.
    """

    def resolve(self, name: str, context: LoaderContext) -> Any:
        """Resolve ``name`` found at ``context``.

        Returns:
            A hashable unit handle

        Raises:
            UnitNotFoundError: Nothing loadable under that name
            UnitLinkError: The unit exists but cannot be loaded
            UnsupportedTargetError: The container cannot be handled at all
        """
        ...


class SpecResolver:
    """Find module specs without executing module code.

    Directory containers are searched with a :class:`FileFinder` bound to
    the directory; top-level archives with :class:`zipimport.zipimporter`.
    Nested archives cannot be imported from, so their units get a synthetic
    spec whose origin is the nested entry.

    Finders and importers are cached per container until :meth:`close`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._finders: dict[str, FileFinder] = {}
        self._importers: dict[str, zipimport.zipimporter] = {}

    def resolve(self, name: str, context: LoaderContext) -> UnitRef:
        location = context.location
        if location.kind is LocationKind.directory:
            spec = self._find_in_directory(name, str(location.path))
        elif location.kind is LocationKind.archive and not location.is_nested:
            spec = self._find_in_archive(name, str(location.path), context.entry)
        elif location.kind is LocationKind.archive:
            spec = ModuleSpec(name, None, origin=f"{location.key}!/{context.entry}")
        else:
            raise UnsupportedTargetError(
                f"Cannot resolve units in {location.kind.value} {location.key}"
            )

        if spec is None:
            raise UnitNotFoundError(name)
        return UnitRef(name=name, origin=spec.origin or location.key, spec=spec)

    def _find_in_directory(self, name: str, directory: str) -> ModuleSpec | None:
        with self._lock:
            finder = self._finders.get(directory)
            if finder is None:
                finder = FileFinder(directory, *_LOADER_DETAILS)
                self._finders[directory] = finder
        try:
            return finder.find_spec(name)
        except ImportError as e:
            raise UnitLinkError(name, f"{name}: {e}") from e

    def _find_in_archive(
        self, name: str, archive: str, entry: str
    ) -> ModuleSpec | None:
        package_dir = posixpath.dirname(entry)
        importer_path = f"{archive}/{package_dir}" if package_dir else archive
        try:
            with self._lock:
                importer = self._importers.get(importer_path)
                if importer is None:
                    importer = zipimport.zipimporter(importer_path)
                    self._importers[importer_path] = importer
            return importer.find_spec(name)
        except zipimport.ZipImportError as e:
            raise UnitLinkError(name, f"{name}: {e}") from e

    def close(self) -> None:
        """Drop cached finders and importers."""
        with self._lock:
            importers = list(self._importers.values())
            self._importers.clear()
            self._finders.clear()
        for importer in importers:
            importer.invalidate_caches()


class ImportResolver:
    """Import each unit through the regular import system.

    Runs module code, so only use it on trusted search paths. Units must be
    importable by name from the current ``sys.path``.
    """

    def resolve(self, name: str, context: LoaderContext) -> UnitRef:
        try:
            module = importlib.import_module(name)
        except ModuleNotFoundError as e:
            if e.name and (e.name == name or name.startswith(e.name + ".")):
                raise UnitNotFoundError(name) from e
            # A dependency of the unit is missing
            raise UnitLinkError(name, f"{name}: {e}") from e
        except Exception as e:
            raise UnitLinkError(name, f"{name}: {type(e).__name__}: {e}") from e

        spec = getattr(module, "__spec__", None)
        origin = (
            (spec.origin if spec is not None else None)
            or getattr(module, "__file__", None)
            or context.location.key
        )
        return UnitRef(name=name, origin=origin, spec=spec, module=module)


def marker_filter(attribute: str) -> Callable[[Any], bool]:
    """Build a tag filter keeping units whose module defines ``attribute``.

    Only meaningful for handles carrying a live module (:class:`ImportResolver`).
    """

    def _has_marker(unit: Any) -> bool:
        module = getattr(unit, "module", None)
        return module is not None and hasattr(module, attribute)

    _has_marker.__name__ = f"has_{attribute}"
    return _has_marker
