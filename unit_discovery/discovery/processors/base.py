"""Base processor protocol, shared scan context and processor registry.

Defines what every container processor implements and the plumbing they
share: the accept/claim gate, candidate admission, resolution with tag
filtering, and error funnelling.

Processor types:
- directory: filesystem directory trees (recursing per level)
- archive: zip archives, optionally entering nested archives
- search-path-entry: the aggregate sweep over the search path (not
  dispatched by kind; see :mod:`.aggregate`)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from unit_discovery.discovery.state import ProcessedSet, ResultStore, ScanStats
from unit_discovery.errors import (
    UnitNotFoundError,
    UnitResolutionError,
    UnsupportedTargetError,
)
from unit_discovery.models import LoaderContext, LocationKind

if TYPE_CHECKING:
    from unit_discovery.config.scan_config import LayoutConfig, ScanConfiguration
    from unit_discovery.discovery.executor import BlockingRunner
    from unit_discovery.discovery.resolvers import Resolver
    from unit_discovery.models import Location

logger = logging.getLogger(__name__)


@dataclass
class ScanContext:
    """Everything the processors of one scan share.

    Attributes:
        config: Read-only scan options
        resolver: Unit resolver
        runner: Pool for blocking calls
        processed: Claimed container keys
        results: Units accepted so far
        stats: Scan counters
        enter_archives: Let directory walks open archives they meet
    """

    config: ScanConfiguration
    resolver: Resolver
    runner: BlockingRunner
    processed: ProcessedSet = field(default_factory=ProcessedSet)
    results: ResultStore = field(default_factory=ResultStore)
    stats: ScanStats = field(default_factory=ScanStats)
    enter_archives: bool = False

    @property
    def layout(self) -> LayoutConfig:
        return self.config.layout

    def report(self, error: BaseException) -> None:
        """Send a recoverable error to the configured handler."""
        self.stats.bump("errors")
        logger.debug(f"Discovery error: {type(error).__name__}: {error}")
        try:
            self.config.error_handler(error)
        except Exception as e:
            logger.warning(f"Error handler raised {type(e).__name__}: {e}")

    def accepts(self, location: Location, kind: LocationKind) -> bool:
        """Evaluate the accept predicate; a veto is not an error."""
        try:
            accepted = bool(self.config.accept_predicate(location, kind))
        except Exception as e:
            self.report(e)
            return False
        if not accepted:
            self.stats.bump("vetoed")
            logger.debug(f"Vetoed {kind.value} {location.key}")
        return accepted

    def admit(self, location: Location, kind: LocationKind | None = None) -> bool:
        """Veto check, then claim. True means the caller now owns ``location``."""
        if not self.accepts(location, kind or location.kind):
            return False
        return self.processed.claim(location)

    def admits_name(self, name: str) -> bool:
        """Name-level rules applied before a candidate is resolved."""
        if self.config.is_ignored_namespace(name):
            return False
        if not self.config.include_anonymous_units and self.layout.is_anonymous(name):
            return False
        return True

    async def resolve_candidate(
        self,
        name: str,
        location: Location,
        entry: str,
        origin: Location | None,
    ) -> None:
        """Resolve a candidate, apply the tag filter and record the unit.

        Resolution failures are reported and swallowed;
        :class:`UnsupportedTargetError` propagates to the container.
        """
        if not self.admits_name(name):
            return

        try:
            unit = await self.runner.run(
                self.resolver.resolve, name, LoaderContext(location, entry)
            )
        except UnsupportedTargetError:
            raise
        except UnitResolutionError as e:
            self.report(e)
            return
        except Exception as e:
            error = UnitResolutionError(name, f"Cannot resolve {name}: {e}")
            error.__cause__ = e
            self.report(error)
            return

        if unit is None:
            self.report(UnitNotFoundError(name))
            return
        self.stats.bump("resolved")

        tag_filter = self.config.tag_filter
        if tag_filter is not None:
            try:
                if not tag_filter(unit):
                    return
            except Exception as e:
                self.report(e)
                return

        if self.results.add(unit, origin):
            self.stats.bump("accepted")


@runtime_checkable
class ContainerProcessor(Protocol):
    """Interface for container-specific enumeration.

    A processor is built per dispatched root container and may recurse into
    containers nested under it. ``process`` returns only once the whole
    subtree is drained, and never raises for per-entry failures.
    """

    kind: LocationKind
    """Location kind handled by this processor."""

    def __init__(self, context: ScanContext, origin: Location | None = None) -> None:
        ...

    async def process(
        self, location: Location, namespace: str = "", *, is_root: bool = True
    ) -> None:
        """Enumerate ``location`` and feed matching units into the context.

        Args:
            location: Container to process (already claimed by the caller)
            namespace: Namespace the container's top level corresponds to
            is_root: Whether this container is a scan root
        """
        ...


# =============================================================================
# Processor Registry
# =============================================================================

_registry: dict[LocationKind, type[ContainerProcessor]] = {}


def register_processor(cls: type[Any]) -> type[Any]:
    """Register a processor class under its ``kind`` (usable as decorator)."""
    _registry[cls.kind] = cls
    logger.debug("Registered processor: %s", cls.kind.value)
    return cls


def get_processor(kind: LocationKind) -> type[ContainerProcessor]:
    """Get the processor class for a location kind.

    Raises:
        KeyError: If no processor handles this kind
    """
    if not _registry:
        _auto_register()

    if kind not in _registry:
        msg = (
            f"No processor registered for '{kind.value}'. "
            f"Available: {[k.value for k in _registry]}"
        )
        raise KeyError(msg)

    return _registry[kind]


def _auto_register() -> None:
    """Auto-register the built-in processors."""
    # Import triggers module-level registration
    from unit_discovery.discovery.processors import (  # noqa: F401
        archive,
        directory,
    )
