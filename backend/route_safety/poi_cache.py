from __future__ import annotations

import copy
import hashlib
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any

from .geometry import Coordinate, Polyline

RawElements = list[dict[str, Any]]


def sample_polyline(polyline: Polyline, *, max_samples: int = 15) -> list[Coordinate]:
    """Every Nth vertex so the sample holds at most ``max_samples`` points, plus the endpoint."""
    n = len(polyline)
    if n == 0:
        return []
    max_samples = max(2, int(max_samples))
    # Reserve one slot for the endpoint.
    step = max(1, -(-n // (max_samples - 1)))
    sampled = list(polyline[::step])
    if sampled[-1] != polyline[-1]:
        sampled.append(polyline[-1])
    return sampled


def route_fingerprint(polyline: Polyline, *, max_samples: int = 15) -> str:
    # round for stability; nearby re-plans of the same street map to one key
    parts = [f"{c.lat:.4f},{c.lon:.4f}" for c in sample_polyline(polyline, max_samples=max_samples)]
    return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()


@dataclass
class _POICacheEntry:
    inserted_at: float
    payload: RawElements


class POICacheStore:
    """Read-through TTL cache of raw Overpass elements keyed by route fingerprint."""

    def __init__(
        self,
        *,
        ttl_s: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = max(1.0, float(ttl_s))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = Lock()
        self._items: OrderedDict[str, _POICacheEntry] = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _is_expired(self, entry: _POICacheEntry) -> bool:
        return (self._clock() - entry.inserted_at) > self._ttl_s

    def get(self, key: str) -> RawElements | None:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._is_expired(entry):
                self._items.pop(key, None)
                self._misses += 1
                return None

            self._items.move_to_end(key)
            self._hits += 1
            return copy.deepcopy(entry.payload)

    def set(self, key: str, value: RawElements) -> None:
        payload = copy.deepcopy(value)
        with self._lock:
            if key in self._items:
                self._items.move_to_end(key)
            self._items[key] = _POICacheEntry(inserted_at=self._clock(), payload=payload)

            while len(self._items) > self._max_entries:
                self._items.popitem(last=False)
                self._evictions += 1

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
            return cleared

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "ttl_s": self._ttl_s,
                "max_entries": self._max_entries,
            }
