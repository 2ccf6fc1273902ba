"""Shared state for one discovery scan.

``ProcessedSet`` and ``ResultStore`` are the only mutable objects shared
between processor tasks. Both lock internally so callers never need to.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from unit_discovery.models import Location


class ProcessedSet:
    """Canonical container keys already claimed by a task.

    :meth:`add` is the claim: exactly one caller gets ``True`` for a key.
    """

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._keys: set[str] = set(keys)

    def add(self, key: str) -> bool:
        """Claim ``key``. Returns False when another task claimed it first."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def claim(self, location: Location) -> bool:
        return self.add(location.key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            key = getattr(key, "key", key)
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._keys)


class ResultStore:
    """Append-only set of discovered units, grouped by originating root.

    A unit is attributed to the first origin that added it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._units: dict[Hashable, str | None] = {}
        self._origins: dict[str, Location] = {}

    def add(self, unit: Hashable, origin: Location | None = None) -> bool:
        """Add a unit. Returns False if it was already present."""
        with self._lock:
            if unit in self._units:
                return False
            if origin is not None:
                self._origins.setdefault(origin.key, origin)
                self._units[unit] = origin.key
            else:
                self._units[unit] = None
            return True

    def __contains__(self, unit: object) -> bool:
        with self._lock:
            return unit in self._units

    def __len__(self) -> int:
        with self._lock:
            return len(self._units)

    def units(self) -> set[Any]:
        with self._lock:
            return set(self._units)

    def grouped(self) -> dict[Location, set[Any]]:
        """Units keyed by originating root; units without origin are omitted."""
        with self._lock:
            groups: dict[Location, set[Any]] = {}
            for unit, key in self._units.items():
                if key is None:
                    continue
                groups.setdefault(self._origins[key], set()).add(unit)
            return groups


@dataclass
class ScanStats:
    """Counters for one scan."""

    containers: int = 0
    vetoed: int = 0
    entries: int = 0
    resolved: int = 0
    accepted: int = 0
    errors: int = 0
    start_time: float = field(default_factory=time.monotonic)
    end_time: float | None = None
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def bump(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)

    def finish(self) -> None:
        self.end_time = time.monotonic()

    @property
    def elapsed(self) -> float:
        end = self.end_time if self.end_time is not None else time.monotonic()
        return end - self.start_time

    def to_dict(self) -> dict[str, Any]:
        return {
            "containers": self.containers,
            "vetoed": self.vetoed,
            "entries": self.entries,
            "resolved": self.resolved,
            "accepted": self.accepted,
            "errors": self.errors,
            "elapsed": round(self.elapsed, 3),
        }
