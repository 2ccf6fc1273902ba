"""
Scan configuration loader.

Two layers:

- :class:`LayoutConfig`: how containers are laid out (unit suffix, archive
  suffixes, reserved paths, default ignore lists). Loaded from the packaged
  ``defaults.yaml`` and cached.
- :class:`ScanConfiguration`: the per-scan options (inclusion, exclusion,
  callbacks). Immutable; derive variants with :meth:`ScanConfiguration.with_overrides`.

Configuration structure::

    unit_discovery/config/
    └── defaults.yaml     # Layout constants and default ignore lists
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from unit_discovery.models import Location, LocationKind

logger = logging.getLogger(__name__)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


@dataclass(frozen=True)
class LayoutConfig:
    """How units and containers are recognised."""

    unit_suffix: str = ".py"
    """File suffix of a unit candidate"""

    namespace_separator: str = "."
    """Separator between namespace segments in a qualified name"""

    anonymous_marker: str = "$"
    """Character marking synthetic/anonymous unit names"""

    archive_suffixes: tuple[str, ...] = (".zip", ".whl", ".egg", ".pyz")
    """File suffixes (case-insensitive) identifying archives"""

    reserved_directories: frozenset[str] = frozenset({"__pycache__", "EGG-INFO"})
    """Path segments whose subtree is never enumerated"""

    reserved_directory_suffixes: tuple[str, ...] = (".dist-info", ".egg-info")
    """Path segment suffixes whose subtree is never enumerated"""

    descriptor_names: frozenset[str] = frozenset({"__init__.py", "__main__.py"})
    """File names describing their package rather than being units"""

    ignore_namespace_prefixes: tuple[str, ...] = ()
    """Default for ScanConfiguration.ignore_namespace_prefixes"""

    ignore_archive_name_terms: tuple[str, ...] = ()
    """Default for ScanConfiguration.ignore_archive_name_terms"""

    @classmethod
    def load(cls, path: Path | None = None) -> LayoutConfig:
        """Load layout configuration from YAML.

        Args:
            path: Override YAML file (default: packaged defaults.yaml)

        Returns:
            Loaded LayoutConfig; built-in defaults when the file is missing
        """
        if path is None:
            path = DEFAULTS_PATH

        if not path.exists():
            logger.warning(f"Layout config not found: {path}")
            return cls()

        with path.open() as f:
            data = yaml.safe_load(f) or {}

        defaults = cls()
        return cls(
            unit_suffix=data.get("unit_suffix", defaults.unit_suffix),
            namespace_separator=data.get(
                "namespace_separator", defaults.namespace_separator
            ),
            anonymous_marker=data.get("anonymous_marker", defaults.anonymous_marker),
            archive_suffixes=tuple(
                s.lower()
                for s in data.get("archive_suffixes", defaults.archive_suffixes)
            ),
            reserved_directories=frozenset(
                data.get("reserved_directories", defaults.reserved_directories)
            ),
            reserved_directory_suffixes=tuple(
                data.get(
                    "reserved_directory_suffixes", defaults.reserved_directory_suffixes
                )
            ),
            descriptor_names=frozenset(
                data.get("descriptor_names", defaults.descriptor_names)
            ),
            ignore_namespace_prefixes=tuple(data.get("ignore_namespace_prefixes", [])),
            ignore_archive_name_terms=tuple(data.get("ignore_archive_name_terms", [])),
        )

    def is_archive_name(self, name: str) -> bool:
        lowered = name.lower()
        return any(lowered.endswith(suffix) for suffix in self.archive_suffixes)

    def is_unit_name(self, name: str) -> bool:
        return name.endswith(self.unit_suffix) and name not in self.descriptor_names

    def is_reserved_segment(self, segment: str) -> bool:
        if segment in self.reserved_directories:
            return True
        return any(segment.endswith(s) for s in self.reserved_directory_suffixes)

    def is_reserved_path(self, entry_path: str) -> bool:
        """Check whether an entry lives under a reserved path or is a descriptor."""
        parts = [p for p in entry_path.split("/") if p]
        if not parts:
            return True
        if any(self.is_reserved_segment(p) for p in parts[:-1]):
            return True
        return parts[-1] in self.descriptor_names or self.is_reserved_segment(
            parts[-1]
        )

    def qualify(self, entry_path: str) -> str:
        """Qualified unit name for a unit entry path (``a/b/X.py`` → ``a.b.X``)."""
        stem = entry_path[: -len(self.unit_suffix)] if self.unit_suffix else entry_path
        return stem.strip("/").replace("/", self.namespace_separator)

    def unit_stem(self, file_name: str) -> str:
        return posixpath.basename(file_name)[: -len(self.unit_suffix)]

    def namespace_path(self, namespace: str) -> str:
        """Relative container path of a namespace (``a.b`` → ``a/b``)."""
        if not namespace:
            return ""
        return namespace.replace(self.namespace_separator, "/")

    def is_anonymous(self, name: str) -> bool:
        return bool(self.anonymous_marker) and self.anonymous_marker in name


@lru_cache(maxsize=1)
def get_layout_config() -> LayoutConfig:
    """Get cached layout configuration.

    Returns:
        LayoutConfig instance (cached)
    """
    return LayoutConfig.load()


def clear_config_cache() -> None:
    """Clear the configuration cache (for testing/reloading)."""
    get_layout_config.cache_clear()


def _accept_all(location: Location, kind: LocationKind) -> bool:
    return True


def _ignore_error(error: BaseException) -> None:
    return None


def _default_ignore_prefixes() -> frozenset[str]:
    return frozenset(get_layout_config().ignore_namespace_prefixes)


def _default_archive_terms() -> frozenset[str]:
    return frozenset(get_layout_config().ignore_archive_name_terms)


@dataclass(frozen=True)
class ScanConfiguration:
    """Options controlling one scan.

    Never mutated once a scan starts; processors only read it.
    """

    include_all_entries: bool = True
    """Consider every archive entry, not only those under the target namespace"""

    include_anonymous_units: bool = True
    """Resolve candidates whose name carries the anonymous marker"""

    tag_filter: Callable[[Any], bool] | None = None
    """Opaque test a resolved unit must pass to be kept"""

    ignore_namespace_prefixes: frozenset[str] = field(
        default_factory=_default_ignore_prefixes
    )
    """Namespaces whose units are never resolved"""

    ignore_archive_name_terms: frozenset[str] = field(
        default_factory=_default_archive_terms
    )
    """Case-insensitive substrings excluding archives from the sweep"""

    ignore_nested_archives: bool = True
    """Do not enter archives nested in non-root archives"""

    ignore_root_archive: bool = True
    """Do not enter archives nested directly in a root archive"""

    error_handler: Callable[[BaseException], None] = _ignore_error
    """Sink for every recoverable error; may be called from several tasks"""

    accept_predicate: Callable[[Location, LocationKind], bool] = _accept_all
    """Veto hook evaluated before a container or entry is entered"""

    layout: LayoutConfig = field(default_factory=get_layout_config)

    def __post_init__(self) -> None:
        # Accept any iterable for the set-valued options
        object.__setattr__(
            self, "ignore_namespace_prefixes", frozenset(self.ignore_namespace_prefixes)
        )
        object.__setattr__(
            self,
            "ignore_archive_name_terms",
            frozenset(t.lower() for t in self.ignore_archive_name_terms),
        )
        if self.error_handler is None:
            object.__setattr__(self, "error_handler", _ignore_error)
        if self.accept_predicate is None:
            object.__setattr__(self, "accept_predicate", _accept_all)

    def with_overrides(self, **changes: Any) -> ScanConfiguration:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def is_ignored_namespace(self, name: str) -> bool:
        """Check whether a qualified name falls under an ignored namespace.

        Matching is a plain starts-with test: ``a.b.Pre`` covers
        ``a.b.Prefix``, and ``pip`` covers ``pipeline`` too, so the packaged
        defaults end with the separator.
        """
        return any(name.startswith(p) for p in self.ignore_namespace_prefixes)

    def is_ignored_archive(self, text: str) -> bool:
        lowered = text.lower()
        return any(term in lowered for term in self.ignore_archive_name_terms)

    @classmethod
    def from_mapping(cls, data: dict[str, Any], **extra: Any) -> ScanConfiguration:
        """Build a configuration from plain data (e.g. parsed YAML).

        Callable options cannot be expressed as data; pass them via ``extra``.
        Unknown keys are logged and ignored.
        """
        data = dict(data)
        layout_data = data.pop("layout", None)
        known = {f.name for f in fields(cls)} - {
            "layout",
            "tag_filter",
            "error_handler",
            "accept_predicate",
        }
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                kwargs[key] = value
            else:
                logger.warning(f"Ignoring unknown scan option '{key}'")
        if layout_data:
            base = get_layout_config()
            layout_known = {f.name for f in fields(LayoutConfig)}
            overrides = {k: v for k, v in layout_data.items() if k in layout_known}
            for key in ("archive_suffixes", "reserved_directory_suffixes"):
                if key in overrides:
                    overrides[key] = tuple(overrides[key])
            for key in ("reserved_directories", "descriptor_names"):
                if key in overrides:
                    overrides[key] = frozenset(overrides[key])
            kwargs["layout"] = replace(base, **overrides)
        kwargs.update(extra)
        return cls(**kwargs)

    @classmethod
    def load(cls, path: Path, **extra: Any) -> ScanConfiguration:
        """Load a configuration from a YAML file.

        Args:
            path: YAML file with snake_case option names
            **extra: Callable options (tag_filter, error_handler, accept_predicate)

        Returns:
            ScanConfiguration
        """
        with Path(path).open() as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Scan config {path} must be a mapping")
        return cls.from_mapping(data, **extra)


def iter_terms(values: Iterable[str] | None) -> frozenset[str]:
    """Normalise CLI/YAML term lists, splitting comma-separated values."""
    terms: set[str] = set()
    for value in values or ():
        terms.update(t.strip() for t in value.split(",") if t.strip())
    return frozenset(terms)
