from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import InvalidGeometryError, RouteNotFoundError
from .geocoding import NominatimClient
from .geometry import Coordinate, validate_polyline
from .logging_utils import log_event
from .models import RankedRoute, RouteMetrics
from .narrative import risk_factors, route_narrative
from .opening_hours import ActivityStrategy
from .overpass_client import OverpassClient
from .route_ranker import dedupe_candidates, rank_routes, route_signature
from .routing_osrm import CandidateRoute, OSRMClient, parse_candidate
from .safety_scorer import incident_impact_for_route, safety_color, safety_label, score_route
from .settings import settings


@dataclass(frozen=True)
class ScoredRoute:
    candidate: CandidateRoute
    metrics: RouteMetrics
    poi_precision: str = "shared"

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def distance_m(self) -> float:
        return self.candidate.distance_m

    @property
    def duration_s(self) -> float:
        return self.candidate.duration_s

    @property
    def safety_score(self) -> float:
        return float(self.metrics.safety_score)


@dataclass(frozen=True)
class PlanResult:
    routes: list[RankedRoute]
    candidate_count: int
    scored_count: int


class SafetyEngine:
    """Candidate routes in, labelled and scored routes out.

    Upstream routing failures propagate; POI failures only ever lower a route's
    sub-scores.
    """

    def __init__(
        self,
        *,
        osrm: OSRMClient,
        overpass: OverpassClient,
        activity: ActivityStrategy | None = None,
        geocoder: NominatimClient | None = None,
    ) -> None:
        self.osrm = osrm
        self.overpass = overpass
        self.activity = activity
        self.geocoder = geocoder

    async def resolve_place(self, place: Coordinate | str) -> Coordinate:
        """Pass coordinates through; geocode free-text addresses."""
        if isinstance(place, Coordinate):
            return place
        if self.geocoder is None:
            raise RouteNotFoundError(
                f"Address not found: {place}",
                details={"address": place, "geocoder": "disabled"},
            )
        found = await self.geocoder.geocode(place)
        log_event("address_geocoded", address=place, lat=found.coordinate.lat, lon=found.coordinate.lon)
        return found.coordinate

    async def candidate_routes(
        self,
        origin: Coordinate,
        destination: Coordinate,
        *,
        max_routes: int | None = None,
    ) -> list[CandidateRoute]:
        limit = max(1, min(int(max_routes or settings.max_candidate_routes), settings.max_candidate_routes))
        raw = await self.osrm.fetch_routes(origin=origin, destination=destination, alternatives=limit)

        parsed: list[CandidateRoute] = []
        for idx, route in enumerate(raw):
            route_id = f"route-{chr(97 + idx)}" if idx < 26 else f"route-{idx}"
            try:
                parsed.append(parse_candidate(route, route_id=route_id))
            except InvalidGeometryError as e:
                log_event(
                    "route_geometry_rejected",
                    level=logging.WARNING,
                    route_id=route_id,
                    reason_code=e.reason_code,
                    error=str(e),
                )

        unique = dedupe_candidates(parsed, key=lambda c: route_signature(c.coordinates))[:limit]
        if not unique:
            raise RouteNotFoundError(
                "no candidate routes between origin and destination",
                details={"raw_route_count": len(raw)},
            )
        return unique

    async def score_candidate(
        self,
        candidate: CandidateRoute,
        *,
        hour: int | None = None,
        incidents: Sequence[Coordinate] = (),
        radius_m: float | None = None,
        dedicated: bool = False,
    ) -> ScoredRoute:
        pois = await self.overpass.fetch_pois(
            candidate.coordinates,
            radius_m,
            use_cache=not dedicated,
            query_samples=settings.fastest_requery_samples if dedicated else None,
        )
        impact = incident_impact_for_route(candidate.coordinates, incidents) if incidents else 0.0
        metrics = score_route(
            candidate.id,
            candidate.coordinates,
            pois,
            hour=hour,
            incident_impact=impact,
            activity=self.activity,
        )
        return ScoredRoute(candidate=candidate, metrics=metrics, poi_precision="dedicated" if dedicated else "shared")

    async def _score_all(
        self,
        candidates: list[CandidateRoute],
        *,
        hour: int | None,
        incidents: Sequence[Coordinate],
    ) -> list[ScoredRoute]:
        sem = asyncio.Semaphore(settings.poi_fetch_concurrency)

        async def one(candidate: CandidateRoute) -> ScoredRoute | None:
            async with sem:
                try:
                    return await self.score_candidate(candidate, hour=hour, incidents=incidents)
                except InvalidGeometryError as e:
                    log_event(
                        "route_scoring_failed",
                        level=logging.WARNING,
                        route_id=candidate.id,
                        reason_code=e.reason_code,
                        error=str(e),
                    )
                    return None

        results = await asyncio.gather(*[one(c) for c in candidates])
        return [r for r in results if r is not None]

    async def _refine_fastest(
        self,
        scored: list[ScoredRoute],
        *,
        hour: int | None,
        incidents: Sequence[Coordinate],
    ) -> list[ScoredRoute]:
        fastest = min(scored, key=lambda s: (s.duration_s, -s.safety_score))
        refined = await self.score_candidate(
            fastest.candidate,
            hour=hour,
            incidents=incidents,
            radius_m=settings.fastest_requery_radius_m,
            dedicated=True,
        )
        counts = (
            refined.metrics.street_light_count
            + refined.metrics.traffic_signal_count
            + refined.metrics.shop_count
        )
        if counts == 0:
            # Keep the shared data rather than replace it with a failed re-query.
            return scored
        log_event(
            "fastest_route_rescored",
            route_id=fastest.id,
            shared_score=fastest.metrics.safety_score,
            dedicated_score=refined.metrics.safety_score,
        )
        return [refined if s.id == fastest.id else s for s in scored]

    async def plan(
        self,
        origin: Coordinate,
        destination: Coordinate,
        *,
        hour: int | None = None,
        incidents: Sequence[Coordinate] = (),
        max_routes: int | None = None,
    ) -> PlanResult:
        candidates = await self.candidate_routes(origin, destination, max_routes=max_routes)
        scored = await self._score_all(candidates, hour=hour, incidents=incidents)
        if not scored:
            raise RouteNotFoundError(
                "no candidate route could be scored",
                details={"candidate_count": len(candidates)},
            )

        if settings.fastest_requery_enabled:
            scored = await self._refine_fastest(scored, hour=hour, incidents=incidents)

        routes: list[RankedRoute] = []
        for choice in rank_routes(scored):
            s = choice.candidate
            routes.append(
                RankedRoute(
                    id=s.id,
                    label=choice.label,
                    also_fastest=choice.also_fastest,
                    distance_m=s.distance_m,
                    duration_s=s.duration_s,
                    rank_score=choice.rank_score,
                    efficiency_score=choice.efficiency_score,
                    metrics=s.metrics,
                    safety_label=safety_label(s.metrics.safety_score),
                    safety_color=safety_color(s.metrics.safety_score),
                    risk_factors=risk_factors(s.metrics),
                    narrative=route_narrative(s.metrics, label=choice.label, duration_s=s.duration_s),
                    poi_precision=s.poi_precision,
                    coordinates=[(c.lat, c.lon) for c in s.candidate.coordinates],
                )
            )

        return PlanResult(routes=routes, candidate_count=len(candidates), scored_count=len(scored))

    async def score_polyline(
        self,
        points: Sequence[tuple[float, float]],
        *,
        route_id: str = "selected",
        hour: int | None = None,
        incident_impact: float = 0.0,
        base_radius_m: float | None = None,
    ) -> RouteMetrics:
        polyline = validate_polyline(points)
        pois = await self.overpass.fetch_pois(polyline, base_radius_m)
        return score_route(
            route_id,
            polyline,
            pois,
            hour=hour,
            incident_impact=incident_impact,
            activity=self.activity,
        )
