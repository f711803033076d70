from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .engine import SafetyEngine
from .errors import InvalidGeometryError, RouteNotFoundError, RouteSafetyError, normalize_reason_code
from .geocoding import GeocodingError, NominatimClient
from .geometry import Coordinate
from .logging_utils import log_event
from .models import (
    CacheStatsResponse,
    LatLng,
    RouteMetrics,
    SafeRouteRequest,
    SafeRouteResponse,
    ScoreRouteRequest,
)
from .overpass_client import OverpassClient
from .routing_osrm import OSRMClient, OSRMError
from .settings import settings
from .time_of_day import hour_of


@asynccontextmanager
async def lifespan(app: FastAPI):
    osrm = OSRMClient(base_url=settings.osrm_base_url, profile=settings.osrm_profile)
    overpass = OverpassClient()
    geocoder = NominatimClient()
    app.state.engine = SafetyEngine(osrm=osrm, overpass=overpass, geocoder=geocoder)
    yield
    await osrm.aclose()
    await overpass.aclose()
    await geocoder.aclose()


app = FastAPI(title="Route Safety Engine", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def safety_engine(request: Request) -> SafetyEngine:
    engine: SafetyEngine | None = getattr(request.app.state, "engine", None)  # type: ignore[attr-defined]
    if engine is None:
        raise HTTPException(status_code=503, detail="engine not initialised")
    return engine


EngineDep = Annotated[SafetyEngine, Depends(safety_engine)]


def _error_detail(e: RouteSafetyError, *, default: str) -> dict[str, Any]:
    return {"reason_code": normalize_reason_code(e.reason_code, default=default), "message": str(e)}


def _place(value: LatLng | str) -> Coordinate | str:
    return value.to_coordinate() if isinstance(value, LatLng) else value


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/routes/safety", response_model=SafeRouteResponse)
async def plan_safe_routes(req: SafeRouteRequest, engine: EngineDep) -> SafeRouteResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    hour = req.hour if req.hour is not None else hour_of(req.departure_time)

    try:
        origin = await engine.resolve_place(_place(req.origin))
        destination = await engine.resolve_place(_place(req.destination))
        result = await engine.plan(
            origin,
            destination,
            hour=hour,
            incidents=[i.to_coordinate() for i in req.incidents],
            max_routes=req.max_alternatives,
        )
    except RouteNotFoundError as e:
        raise HTTPException(status_code=404, detail=_error_detail(e, default="route_not_found")) from e
    except (OSRMError, GeocodingError) as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    duration_ms = round((time.perf_counter() - t0) * 1000, 2)
    log_event(
        "safety_request",
        request_id=request_id,
        origin={"lat": origin.lat, "lon": origin.lon},
        destination={"lat": destination.lat, "lon": destination.lon},
        hour=hour,
        incident_count=len(req.incidents),
        candidate_count=result.candidate_count,
        scored_count=result.scored_count,
        labels={r.label: r.id for r in result.routes},
        duration_ms=duration_ms,
    )

    return SafeRouteResponse(
        routes=result.routes,
        candidate_count=result.candidate_count,
        scored_count=result.scored_count,
        duration_ms=duration_ms,
    )


@app.post("/routes/score", response_model=RouteMetrics)
async def score_route_polyline(req: ScoreRouteRequest, engine: EngineDep) -> RouteMetrics:
    try:
        return await engine.score_polyline(
            req.coordinates,
            route_id=req.route_id,
            hour=req.hour,
            incident_impact=req.incident_impact,
            base_radius_m=req.base_radius_m,
        )
    except InvalidGeometryError as e:
        raise HTTPException(status_code=422, detail=_error_detail(e, default="invalid_geometry")) from e


@app.get("/cache", response_model=CacheStatsResponse)
async def cache_stats(engine: EngineDep) -> CacheStatsResponse:
    return CacheStatsResponse(**engine.overpass.stats())


@app.delete("/cache")
async def clear_cache(engine: EngineDep) -> dict[str, int]:
    cleared = engine.overpass.cache.clear()
    log_event("poi_cache_cleared", cleared=cleared)
    return {"cleared": cleared}
