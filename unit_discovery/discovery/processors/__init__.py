"""Container processors: directory, archive and search-path sweep."""

from unit_discovery.discovery.processors.aggregate import AggregatePathProcessor
from unit_discovery.discovery.processors.archive import ArchiveProcessor
from unit_discovery.discovery.processors.base import (
    ContainerProcessor,
    ScanContext,
    get_processor,
    register_processor,
)
from unit_discovery.discovery.processors.directory import DirectoryProcessor

__all__ = [
    "AggregatePathProcessor",
    "ArchiveProcessor",
    "ContainerProcessor",
    "DirectoryProcessor",
    "ScanContext",
    "get_processor",
    "register_processor",
]
