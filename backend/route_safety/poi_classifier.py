from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .geometry import Coordinate, Polyline, distance_to_polyline
from .settings import settings


class POICategory(str, Enum):
    STREETLAMP = "streetlamp"
    TRAFFIC_SIGNAL = "trafficsignal"
    SHOP = "shop"


# Food and late-night amenities count as commercial activity alongside shop=*.
SHOP_AMENITIES: frozenset[str] = frozenset(
    {"restaurant", "cafe", "fast_food", "pharmacy", "fuel", "bar", "pub"}
)


@dataclass(frozen=True)
class POI:
    id: str
    category: POICategory
    coordinate: Coordinate
    raw_tags: Mapping[str, str] = field(default_factory=dict, hash=False, compare=False)
    distance_to_route_m: float = 0.0

    @property
    def kind(self) -> str | None:
        """The tag value that drove classification, e.g. ``supermarket`` for shops."""
        if self.category is POICategory.SHOP:
            return self.raw_tags.get("shop") or self.raw_tags.get("amenity")
        return self.raw_tags.get("highway")


@dataclass
class POISet:
    streetlamps: list[POI] = field(default_factory=list)
    signals: list[POI] = field(default_factory=list)
    shops: list[POI] = field(default_factory=list)

    def bucket(self, category: POICategory) -> list[POI]:
        if category is POICategory.STREETLAMP:
            return self.streetlamps
        if category is POICategory.TRAFFIC_SIGNAL:
            return self.signals
        return self.shops

    def is_empty(self) -> bool:
        return not (self.streetlamps or self.signals or self.shops)

    def counts(self) -> dict[str, int]:
        return {
            "street_lights": len(self.streetlamps),
            "traffic_signals": len(self.signals),
            "shops": len(self.shops),
        }


def default_thresholds() -> dict[POICategory, float]:
    return {
        POICategory.STREETLAMP: settings.streetlamp_threshold_m,
        POICategory.TRAFFIC_SIGNAL: settings.traffic_signal_threshold_m,
        POICategory.SHOP: settings.shop_threshold_m,
    }


def categorize(tags: Mapping[str, Any]) -> POICategory | None:
    highway = tags.get("highway")
    if highway == "street_lamp":
        return POICategory.STREETLAMP
    if highway == "traffic_signals":
        return POICategory.TRAFFIC_SIGNAL
    if tags.get("shop"):
        return POICategory.SHOP
    if tags.get("amenity") in SHOP_AMENITIES:
        return POICategory.SHOP
    return None


def _element_coordinate(element: Mapping[str, Any]) -> Coordinate | None:
    lat = element.get("lat")
    lon = element.get("lon")
    if lat is None or lon is None:
        # ways and relations come back with "out center"
        center = element.get("center")
        if isinstance(center, Mapping):
            lat = center.get("lat")
            lon = center.get("lon")
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return None
    return Coordinate(float(lat), float(lon))


def _source_id(element: Mapping[str, Any]) -> str | None:
    raw_id = element.get("id")
    if raw_id is None:
        return None
    return f"{element.get('type', 'node')}/{raw_id}"


def classify(
    raw_elements: Iterable[Mapping[str, Any]],
    polyline: Polyline,
    *,
    thresholds: Mapping[POICategory, float] | None = None,
) -> POISet:
    """Turn raw Overpass elements into per-category POIs close enough to the route.

    Elements are deduplicated by a 5-decimal coordinate key and by source id
    (first occurrence wins), dropped when no category applies, and kept only
    when within the category threshold (inclusive). Each bucket is sorted
    nearest-first.
    """
    limits = dict(thresholds) if thresholds is not None else default_thresholds()
    out = POISet()
    seen_keys: set[str] = set()
    seen_ids: set[str] = set()

    for element in raw_elements:
        coord = _element_coordinate(element)
        if coord is None:
            continue

        key = coord.rounded_key(5)
        source_id = _source_id(element)
        if key in seen_keys or (source_id is not None and source_id in seen_ids):
            continue
        seen_keys.add(key)
        if source_id is not None:
            seen_ids.add(source_id)

        tags = element.get("tags") or {}
        category = categorize(tags)
        if category is None:
            continue

        distance_m = distance_to_polyline(coord, polyline)
        if distance_m > limits[category]:
            continue

        out.bucket(category).append(
            POI(
                id=source_id or key,
                category=category,
                coordinate=coord,
                raw_tags={str(k): str(v) for k, v in tags.items()},
                distance_to_route_m=distance_m,
            )
        )

    for category in POICategory:
        out.bucket(category).sort(key=lambda poi: poi.distance_to_route_m)
    return out
