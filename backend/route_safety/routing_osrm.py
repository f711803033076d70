from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Final

import httpx

from .errors import InvalidGeometryError
from .geometry import Coordinate, validate_polyline


class OSRMError(RuntimeError):
    pass


class OSRMRetryableError(OSRMError):
    """An OSRM error that is likely transient and safe to retry."""

    pass


_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class CandidateRoute:
    """One routing alternative: geometry in travel order plus OSRM totals."""

    id: str
    distance_m: float
    duration_s: float
    coordinates: tuple[Coordinate, ...]


def _format_osrm_error(resp: httpx.Response) -> str:
    """Best-effort decode of OSRM JSON error payloads."""
    try:
        data = resp.json()
        if isinstance(data, dict):
            code = data.get("code")
            message = data.get("message")
            if code and message:
                return f"OSRM {resp.status_code} {code}: {message}"
            if code:
                return f"OSRM {resp.status_code} {code}"
    except ValueError:
        # fall through to text
        pass

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"OSRM {resp.status_code}: {body}"
    return f"OSRM HTTP {resp.status_code}"


class OSRMClient:
    def __init__(
        self,
        *,
        base_url: str,
        profile: str = "foot",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_s: float = 15.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.profile = profile

        # IMPORTANT: trust_env=False prevents corporate proxy env vars (HTTP_PROXY/HTTPS_PROXY)
        # from hijacking requests to localhost / docker service names.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=5.0),
            trust_env=False,
            transport=transport,
            headers={"accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_routes(
        self,
        *,
        origin: Coordinate,
        destination: Coordinate,
        alternatives: int = 3,
        max_retries: int = 3,
    ) -> list[dict[str, Any]]:
        """Fetch raw OSRM routes (GeoJSON geometry) between two points."""
        coords = f"{origin.lon},{origin.lat};{destination.lon},{destination.lat}"
        url = f"{self.base_url}/route/v1/{self.profile}/{coords}"
        params = {
            "overview": "full",
            "geometries": "geojson",
            "steps": "false",
            "alternatives": str(alternatives) if alternatives > 1 else "false",
        }

        max_retries_i = max(1, int(max_retries))
        last_err: Exception | None = None

        for attempt in range(max_retries_i):
            try:
                resp = await self._client.get(url, params=params)

                # Fast-fail on most 4xx: these are usually request errors
                if 400 <= resp.status_code < 500 and resp.status_code not in _RETRYABLE_STATUS:
                    raise OSRMError(_format_osrm_error(resp))

                if resp.status_code in _RETRYABLE_STATUS:
                    raise OSRMRetryableError(_format_osrm_error(resp))

                resp.raise_for_status()
                data = resp.json()

                if data.get("code") != "Ok":
                    raise OSRMError(f"OSRM error code={data.get('code')} message={data.get('message')}")

                routes = data.get("routes", [])
                if not isinstance(routes, list):
                    raise OSRMError("OSRM returned malformed routes")
                return routes

            except OSRMRetryableError as e:
                last_err = e
            except httpx.TransportError as e:
                last_err = e
            except httpx.HTTPStatusError as e:
                raise OSRMError(str(e)) from e

            if attempt < max_retries_i - 1:
                await asyncio.sleep(min(0.25 * (2**attempt), 2.0))

        # httpx exceptions can stringify to "" (e.g. some timeouts), so include the type.
        detail = "unknown error" if last_err is None else f"{type(last_err).__name__}: {last_err}"
        raise OSRMError(f"OSRM request failed after {max_retries_i} retries (base={self.base_url}): {detail}")


def parse_candidate(route: dict[str, Any], *, route_id: str) -> CandidateRoute:
    """Convert an OSRM route to a CandidateRoute, raising InvalidGeometryError on bad shapes."""
    geom = route.get("geometry")
    coords = geom.get("coordinates") if isinstance(geom, dict) else None
    if not isinstance(coords, list):
        raise InvalidGeometryError("OSRM route missing geometry", details={"route_id": route_id})

    points: list[tuple[float, float]] = []
    for pt in coords:
        if isinstance(pt, (list, tuple)) and len(pt) >= 2:
            # GeoJSON order is [lon, lat]
            points.append((float(pt[1]), float(pt[0])))
    polyline = validate_polyline(points)

    return CandidateRoute(
        id=route_id,
        distance_m=max(0.0, float(route.get("distance", 0.0) or 0.0)),
        duration_s=max(0.0, float(route.get("duration", 0.0) or 0.0)),
        coordinates=polyline,
    )
