"""
Discovery engine and its building blocks.

Modules:
- engine: Root resolution, dispatch and result aggregation
- processors: Directory, archive and search-path sweep processors
- containers: Blocking directory/zip enumeration primitives
- resolvers: Turning qualified names into unit handles
- state: Shared processed-set, result store and scan counters
- executor: Bounded thread pool for blocking calls
"""

from unit_discovery.discovery.engine import DiscoveryEngine, ScanTarget
from unit_discovery.discovery.state import ProcessedSet, ResultStore, ScanStats

__all__ = [
    "DiscoveryEngine",
    "ProcessedSet",
    "ResultStore",
    "ScanStats",
    "ScanTarget",
]
