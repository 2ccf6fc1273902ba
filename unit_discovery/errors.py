"""Exception types reported by the discovery engine.

Only :class:`UnsupportedTargetError` ever ends the processing of a container
early; every other error is reported through the configured error handler
and the scan carries on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from unit_discovery.models import Location


class DiscoveryError(Exception):
    """Base class for all discovery errors."""


class RootResolutionError(DiscoveryError):
    """A root argument could not be turned into container locations."""


class ContainerOpenError(DiscoveryError):
    """A directory or archive could not be opened or enumerated."""

    def __init__(self, location: Location, cause: BaseException) -> None:
        self.location = location
        self.cause = cause
        super().__init__(f"Cannot open {location.key}: {cause}")


class UnitResolutionError(DiscoveryError):
    """A unit candidate could not be turned into a unit handle."""

    def __init__(self, name: str, message: str = "") -> None:
        self.name = name
        super().__init__(message or f"Cannot resolve {name}")


class UnitNotFoundError(UnitResolutionError):
    """The resolver found nothing for the qualified name."""

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(name, message or f"Unit not found: {name}")


class UnitLinkError(UnitResolutionError):
    """The unit exists but failed to load (broken dependency, bad source)."""

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(name, message or f"Unit failed to link: {name}")


class UnsupportedTargetError(DiscoveryError):
    """Raised by a resolver that cannot handle a container at all.

    Aborts the remaining work of the container it was raised in.
    """
