"""Spherical geometry helpers for measuring how close a point sits to a route.

All functions take coordinates in decimal degrees and return metres (distances)
or radians (angles). The Earth is modelled as a sphere of radius 6,371 km, which
is plenty for the tens-of-metres thresholds used when attributing map features to
a walking route.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .errors import InvalidGeometryError

EARTH_RADIUS_M = 6_371_000.0

# Segments shorter than this are treated as a single point.
MIN_SEGMENT_LENGTH_M = 1.0


@dataclass(frozen=True)
class Coordinate:
    """A WGS-84 latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float

    def rounded_key(self, places: int = 5) -> str:
        return f"{self.lat:.{places}f},{self.lon:.{places}f}"


Polyline = Sequence[Coordinate]


def great_circle_distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in metres."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlmb = math.radians(b.lon - a.lon)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1 - h)))


def bearing(a: Coordinate, b: Coordinate) -> float:
    """Initial bearing from a to b in radians, 0 when the points coincide."""
    if a == b:
        return 0.0
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    dlmb = math.radians(b.lon - a.lon)

    y = math.sin(dlmb) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlmb)
    return math.atan2(y, x)


def _signed_cross_track_angle(seg_start: Coordinate, seg_end: Coordinate, point: Coordinate) -> float:
    d13 = great_circle_distance(seg_start, point) / EARTH_RADIUS_M
    theta13 = bearing(seg_start, point)
    theta12 = bearing(seg_start, seg_end)
    s = math.sin(d13) * math.sin(theta13 - theta12)
    return math.asin(max(-1.0, min(1.0, s)))


def cross_track_distance(seg_start: Coordinate, seg_end: Coordinate, point: Coordinate) -> float:
    """Distance from point to the great circle through seg_start -> seg_end (>= 0)."""
    return abs(_signed_cross_track_angle(seg_start, seg_end, point)) * EARTH_RADIUS_M


def along_track_distance(seg_start: Coordinate, seg_end: Coordinate, point: Coordinate) -> float:
    """Signed distance from seg_start to the projection of point on the segment's great circle.

    Negative values lie behind seg_start; values above the segment length lie
    beyond seg_end.
    """
    d13 = great_circle_distance(seg_start, point) / EARTH_RADIUS_M
    dxt = _signed_cross_track_angle(seg_start, seg_end, point)
    cos_dxt = math.cos(dxt)
    if cos_dxt == 0.0:
        return 0.0
    ratio = max(-1.0, min(1.0, math.cos(d13) / cos_dxt))
    magnitude = math.acos(ratio) * EARTH_RADIUS_M

    # acos loses the sign; recover it from the bearing difference.
    theta13 = bearing(seg_start, point)
    theta12 = bearing(seg_start, seg_end)
    direction = math.cos(theta12 - theta13)
    return magnitude if direction >= 0 else -magnitude


def distance_to_segment(point: Coordinate, seg_start: Coordinate, seg_end: Coordinate) -> float:
    """Distance from point to the segment, clamped to the nearer endpoint outside it."""
    seg_len = great_circle_distance(seg_start, seg_end)
    if seg_len < MIN_SEGMENT_LENGTH_M:
        return great_circle_distance(seg_start, point)

    along = along_track_distance(seg_start, seg_end, point)
    if along < 0:
        return great_circle_distance(seg_start, point)
    if along > seg_len:
        return great_circle_distance(seg_end, point)
    return cross_track_distance(seg_start, seg_end, point)


def distance_to_polyline(point: Coordinate, polyline: Polyline) -> float:
    """Minimum distance from point to any segment of the polyline."""
    if len(polyline) < 2:
        raise InvalidGeometryError(
            "polyline needs at least two points",
            details={"point_count": len(polyline)},
        )
    best = math.inf
    for start, end in zip(polyline, polyline[1:]):
        d = distance_to_segment(point, start, end)
        if d < best:
            best = d
    return best


def route_length_km(polyline: Polyline) -> float:
    total = 0.0
    for start, end in zip(polyline, polyline[1:]):
        total += great_circle_distance(start, end)
    return total / 1000.0


def validate_polyline(points: Iterable[Coordinate | tuple[float, float]]) -> tuple[Coordinate, ...]:
    """Coerce (lat, lon) pairs into Coordinates and reject unusable routes."""
    out: list[Coordinate] = []
    for idx, pt in enumerate(points):
        coord = pt if isinstance(pt, Coordinate) else Coordinate(float(pt[0]), float(pt[1]))
        if not (math.isfinite(coord.lat) and math.isfinite(coord.lon)):
            raise InvalidGeometryError("non-finite coordinate", details={"index": idx})
        if not (-90.0 <= coord.lat <= 90.0 and -180.0 <= coord.lon <= 180.0):
            raise InvalidGeometryError("coordinate out of range", details={"index": idx})
        out.append(coord)
    if len(out) < 2:
        raise InvalidGeometryError(
            "polyline needs at least two points",
            details={"point_count": len(out)},
        )
    return tuple(out)
