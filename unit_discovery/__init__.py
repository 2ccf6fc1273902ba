"""Concurrent discovery of Python modules across directories and archives."""

from importlib.metadata import PackageNotFoundError, version

from unit_discovery.config import ScanConfiguration
from unit_discovery.discovery import DiscoveryEngine
from unit_discovery.discovery.resolvers import (
    ImportResolver,
    Resolver,
    SpecResolver,
    marker_filter,
)
from unit_discovery.errors import (
    ContainerOpenError,
    DiscoveryError,
    RootResolutionError,
    UnitLinkError,
    UnitNotFoundError,
    UnitResolutionError,
    UnsupportedTargetError,
)
from unit_discovery.models import Location, LocationKind, UnitRef

try:
    __version__ = version("unit-discovery")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "ContainerOpenError",
    "DiscoveryEngine",
    "DiscoveryError",
    "ImportResolver",
    "Location",
    "LocationKind",
    "Resolver",
    "RootResolutionError",
    "ScanConfiguration",
    "SpecResolver",
    "UnitLinkError",
    "UnitNotFoundError",
    "UnitRef",
    "UnitResolutionError",
    "UnsupportedTargetError",
    "__version__",
    "marker_filter",
]
