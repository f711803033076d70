from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

from .poi_classifier import POI

_RANGE_RE = re.compile(r"(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})")

# Shop kinds that are open around the clock or well into the night.
ALWAYS_OPEN_KINDS: frozenset[str] = frozenset({"fuel", "convenience", "kiosk", "pharmacy"})
LATE_OPEN_KINDS: frozenset[str] = frozenset({"bar", "pub", "fast_food", "restaurant", "alcohol"})

DEFAULT_OPEN_HOUR = 7
DEFAULT_CLOSE_HOUR = 22
LATE_CLOSE_HOUR = 2


@runtime_checkable
class ActivityStrategy(Protocol):
    """Decides whether a POI is active (e.g. an open shop) at a given hour."""

    def is_active(self, poi: POI, hour: int) -> bool: ...


def _in_window(minute_of_day: int, start: int, end: int) -> bool:
    if start == end:
        return True
    if start < end:
        return start <= minute_of_day < end
    # overnight window, e.g. 18:00-02:00
    return minute_of_day >= start or minute_of_day < end


def parse_simple_range(value: str) -> tuple[int, int] | None:
    """First ``HH:MM-HH:MM`` range in an opening_hours value, as minutes of day."""
    match = _RANGE_RE.search(value)
    if match is None:
        return None
    h1, m1, h2, m2 = (int(g) for g in match.groups())
    if h1 > 24 or h2 > 24 or m1 > 59 or m2 > 59:
        return None
    return (h1 * 60 + m1) % (24 * 60), (h2 * 60 + m2) % (24 * 60)


class OpeningHoursHeuristic:
    """Best-effort reading of OSM ``opening_hours`` tags.

    Order of evaluation: an explicit ``24/7``, then the first simple time range
    (overnight ranges wrap past midnight), then a fallback by shop kind, then a
    default 07:00-22:00 retail window.
    """

    def is_active(self, poi: POI, hour: int) -> bool:
        minute = (int(hour) % 24) * 60
        raw = (poi.raw_tags.get("opening_hours") or "").strip()

        if raw:
            if raw.lower() in {"24/7", "24 hours", "00:00-24:00"}:
                return True
            if raw.lower() == "closed" or raw.lower() == "off":
                return False
            span = parse_simple_range(raw)
            if span is not None:
                return _in_window(minute, span[0], span[1])

        kind = (poi.kind or "").lower()
        if kind in ALWAYS_OPEN_KINDS:
            return True
        if kind in LATE_OPEN_KINDS:
            return _in_window(minute, DEFAULT_OPEN_HOUR * 60, LATE_CLOSE_HOUR * 60)
        return _in_window(minute, DEFAULT_OPEN_HOUR * 60, DEFAULT_CLOSE_HOUR * 60)


class AlwaysActive:
    def is_active(self, poi: POI, hour: int) -> bool:
        return True


def count_active(pois: list[POI], hour: int | None, strategy: ActivityStrategy | None = None) -> int:
    """Number of POIs active at ``hour``; every POI counts when the hour is unknown."""
    if hour is None:
        return len(pois)
    judge = strategy or OpeningHoursHeuristic()
    return sum(1 for poi in pois if judge.is_active(poi, hour))
