from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, StringConstraints, field_validator

from .geometry import Coordinate

RouteLabel = Literal["safest", "fastest", "alternative"]
SafetyLabel = Literal["Safe", "Moderate", "Risky"]


class LatLng(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lon)


class IncidentPoint(BaseModel):
    """An active incident location supplied by the incident subsystem."""

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lon)


Address = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=300)]


class SafeRouteRequest(BaseModel):
    """Origin and destination are either coordinates or free-text addresses."""

    origin: LatLng | Address
    destination: LatLng | Address
    hour: int | None = Field(default=None, ge=0, le=23)
    departure_time: datetime | None = None
    incidents: list[IncidentPoint] = Field(default_factory=list, max_length=500)
    max_alternatives: int = Field(default=5, ge=1, le=5)


class ScoreRouteRequest(BaseModel):
    """Score one already-chosen polyline, e.g. the route highlighted in a client."""

    coordinates: list[tuple[float, float]] = Field(..., min_length=2)  # [lat, lon]
    route_id: str = "selected"
    hour: int | None = Field(default=None, ge=0, le=23)
    incident_impact: float = Field(default=0.0, ge=0.0, le=100.0)
    base_radius_m: float | None = Field(default=None, gt=0.0, le=1000.0)

    @field_validator("coordinates")
    @classmethod
    def finite(cls, v: list[tuple[float, float]]) -> list[tuple[float, float]]:
        for lat, lon in v:
            if lat != lat or lon != lon or abs(lat) == float("inf") or abs(lon) == float("inf"):
                raise ValueError("coordinates must be finite")
        return v


class RouteMetrics(BaseModel):
    route_id: str
    length_km: float = Field(..., ge=0.0)
    lighting_score: int = Field(..., ge=0, le=100)
    crowd_score: int = Field(..., ge=0, le=100)
    shop_score: int = Field(..., ge=0, le=100)
    street_light_count: int = Field(..., ge=0)
    traffic_signal_count: int = Field(..., ge=0)
    shop_count: int = Field(..., ge=0)
    open_shop_count: int = Field(..., ge=0)
    incident_impact: float = Field(default=0.0, ge=0.0, le=100.0)
    safety_score: int = Field(..., ge=0, le=100)


class RankedRoute(BaseModel):
    id: str
    label: RouteLabel
    also_fastest: bool = False
    distance_m: float
    duration_s: float
    rank_score: int
    efficiency_score: float
    metrics: RouteMetrics
    safety_label: SafetyLabel
    safety_color: str
    risk_factors: list[str] = Field(default_factory=list)
    narrative: str = ""
    poi_precision: Literal["shared", "dedicated"] = "shared"
    coordinates: list[tuple[float, float]]  # [lat, lon]


class SafeRouteResponse(BaseModel):
    routes: list[RankedRoute]
    candidate_count: int
    scored_count: int
    duration_ms: float


class CacheStatsResponse(BaseModel):
    size: int
    hits: int
    misses: int
    evictions: int
    ttl_s: float
    max_entries: int
    upstream_calls: int
