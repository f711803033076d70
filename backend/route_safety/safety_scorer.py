from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

from .geometry import Coordinate, Polyline, great_circle_distance, route_length_km
from .models import RouteMetrics
from .opening_hours import ActivityStrategy, count_active
from .poi_classifier import POISet
from .settings import settings
from .time_of_day import pedestrian_time_factor

NEUTRAL_SCORE = 50

LIGHTING_WEIGHT = 0.4
CROWD_WEIGHT = 0.3
SHOP_WEIGHT = 0.2
INCIDENT_WEIGHT = 0.5


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_score(value: float) -> int:
    return max(0, min(100, _round_half_up(value)))


@dataclass(frozen=True)
class SubScores:
    lighting: int
    crowd: int
    shop: int


def density_ratio(count: int, length_km: float, expected_per_km: float) -> float:
    """Observed count relative to the count expected for a route of this length."""
    if length_km <= 0 or expected_per_km <= 0:
        return 0.0
    return max(0.0, count / (length_km * expected_per_km))


def compute_sub_scores(
    *,
    street_lights: int,
    traffic_signals: int,
    open_shops: int,
    length_km: float,
    hour: int | None = None,
) -> SubScores:
    if length_km <= 0:
        return SubScores(lighting=NEUTRAL_SCORE, crowd=NEUTRAL_SCORE, shop=NEUTRAL_SCORE)

    light_ratio = density_ratio(street_lights, length_km, settings.expected_lights_per_km)
    signal_ratio = density_ratio(traffic_signals, length_km, settings.expected_signals_per_km)
    shop_ratio = density_ratio(open_shops, length_km, settings.expected_shops_per_km)
    tf = pedestrian_time_factor(hour)

    # Lamps are lit at night whatever the footfall, so lighting is not time-scaled.
    return SubScores(
        lighting=min(100, _round_half_up(light_ratio * 100)),
        crowd=min(100, _round_half_up((0.5 * signal_ratio + 0.5 * shop_ratio) * tf * 100)),
        shop=min(100, _round_half_up(shop_ratio * tf * 100)),
    )


def combined_safety_score(
    lighting_score: float,
    crowd_score: float,
    shop_score: float,
    incident_impact: float = 0.0,
) -> int:
    raw = (
        lighting_score * LIGHTING_WEIGHT
        + crowd_score * CROWD_WEIGHT
        + shop_score * SHOP_WEIGHT
        - incident_impact * INCIDENT_WEIGHT
    )
    return _clamp_score(raw)


def incident_impact_for_route(
    polyline: Polyline,
    incidents: Iterable[Coordinate],
    *,
    radius_m: float | None = None,
    points_each: float | None = None,
) -> float:
    """Incident pressure near the middle of a route, 0-100."""
    if not polyline:
        return 0.0
    radius = settings.incident_radius_m if radius_m is None else radius_m
    each = settings.incident_points_each if points_each is None else points_each
    mid = polyline[len(polyline) // 2]
    nearby = sum(1 for inc in incidents if great_circle_distance(mid, inc) < radius)
    return float(min(100.0, nearby * each))


def score_route(
    route_id: str,
    polyline: Polyline,
    pois: POISet,
    *,
    hour: int | None = None,
    incident_impact: float = 0.0,
    activity: ActivityStrategy | None = None,
) -> RouteMetrics:
    length_km = route_length_km(polyline)
    open_shops = count_active(pois.shops, hour, activity)
    subs = compute_sub_scores(
        street_lights=len(pois.streetlamps),
        traffic_signals=len(pois.signals),
        open_shops=open_shops,
        length_km=length_km,
        hour=hour,
    )
    impact = max(0.0, min(100.0, float(incident_impact)))
    return RouteMetrics(
        route_id=route_id,
        length_km=round(length_km, 3),
        lighting_score=subs.lighting,
        crowd_score=subs.crowd,
        shop_score=subs.shop,
        street_light_count=len(pois.streetlamps),
        traffic_signal_count=len(pois.signals),
        shop_count=len(pois.shops),
        open_shop_count=open_shops,
        incident_impact=impact,
        safety_score=combined_safety_score(subs.lighting, subs.crowd, subs.shop, impact),
    )


def safety_label(score: float) -> str:
    if score >= 80:
        return "Safe"
    if score >= 50:
        return "Moderate"
    return "Risky"


def safety_color(score: float) -> str:
    if score >= 80:
        return "#10b981"
    if score >= 50:
        return "#f59e0b"
    return "#ef4444"
