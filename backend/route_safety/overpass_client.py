from __future__ import annotations

import asyncio
import logging
from typing import Any, Final

import httpx

from .errors import GeodataPermanentError, GeodataTransientError
from .geometry import Polyline
from .logging_utils import log_event
from .poi_cache import POICacheStore, RawElements, route_fingerprint, sample_polyline
from .poi_classifier import SHOP_AMENITIES, POISet, classify
from .selection import CancellationToken
from .settings import settings

_TRANSIENT_STATUS: Final[set[int]] = {429, 502, 503, 504}


def build_around_query(polyline: Polyline, radius_m: float, *, max_samples: int, timeout_s: float) -> str:
    """Overpass QL selecting lamps, signals and shops within ``radius_m`` of the sampled route."""
    points = ",".join(
        f"{c.lat:.6f},{c.lon:.6f}" for c in sample_polyline(polyline, max_samples=max_samples)
    )
    around = f"(around:{radius_m:.0f},{points})"
    parts = [
        f'node["highway"="street_lamp"]{around};',
        f'node["highway"="traffic_signals"]{around};',
        f'way["highway"="traffic_signals"]{around};',
        f'node["shop"]{around};',
        f'way["shop"]{around};',
    ]
    amenities = "|".join(sorted(SHOP_AMENITIES))
    parts.append(f'node["amenity"~"^({amenities})$"]{around};')
    return f"[out:json][timeout:{int(timeout_s)}];({''.join(parts)});out center;"


def _format_overpass_error(resp: httpx.Response) -> str:
    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"Overpass {resp.status_code}: {body}"
    return f"Overpass HTTP {resp.status_code}"


class OverpassClient:
    """Fetches map features near a route, hiding transient Overpass failures.

    Failures never escape ``fetch_pois``: rate limits and timeouts are retried
    after a fixed backoff, and anything left over degrades to an empty POI set.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_s: float | None = None,
        cache: POICacheStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        transient_backoff_s: float | None = None,
    ) -> None:
        self.base_url = base_url or settings.overpass_url
        self.timeout_s = float(timeout_s if timeout_s is not None else settings.overpass_timeout_s)
        self.cache = cache or POICacheStore(
            ttl_s=settings.poi_cache_ttl_s,
            max_entries=settings.poi_cache_max_entries,
        )
        self.transient_backoff_s = (
            settings.poi_transient_backoff_s if transient_backoff_s is None else max(0.0, float(transient_backoff_s))
        )
        self.upstream_calls = 0
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s, connect=5.0),
            transport=transport,
            headers={"accept": "application/json", "user-agent": "route-safety/0.1"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _query(self, ql: str) -> RawElements:
        self.upstream_calls += 1
        try:
            # httpx limits each I/O phase; this bounds the whole exchange.
            async with asyncio.timeout(self.timeout_s):
                resp = await self._client.post(self.base_url, data={"data": ql})
        except TimeoutError as e:
            raise GeodataTransientError(f"Overpass exceeded {self.timeout_s:g}s deadline") from e
        except httpx.TimeoutException as e:
            raise GeodataTransientError(f"Overpass timeout: {type(e).__name__}") from e
        except httpx.TransportError as e:
            raise GeodataTransientError(f"Overpass transport error: {type(e).__name__}: {e}") from e

        if resp.status_code in _TRANSIENT_STATUS:
            raise GeodataTransientError(_format_overpass_error(resp), status_code=resp.status_code)
        if resp.status_code >= 400:
            raise GeodataPermanentError(_format_overpass_error(resp), status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise GeodataPermanentError("Overpass returned non-JSON payload", status_code=resp.status_code) from e

        elements = data.get("elements") if isinstance(data, dict) else None
        if not isinstance(elements, list):
            raise GeodataPermanentError("Overpass payload missing elements", status_code=resp.status_code)
        return [e for e in elements if isinstance(e, dict)]

    async def _query_with_retry(self, ql: str, *, token: CancellationToken | None) -> RawElements | None:
        """Run one query, retrying transient failures. None means give up."""
        retries = max(0, int(settings.poi_transient_retries))
        for attempt in range(retries + 1):
            if token is not None and token.cancelled:
                return None
            try:
                return await self._query(ql)
            except GeodataTransientError as e:
                if attempt >= retries:
                    log_event(
                        "overpass_failed",
                        level=logging.WARNING,
                        reason_code=e.reason_code,
                        status_code=e.status_code,
                        error=str(e),
                        attempts=attempt + 1,
                    )
                    return None
                log_event(
                    "overpass_retry",
                    reason_code=e.reason_code,
                    status_code=e.status_code,
                    backoff_s=self.transient_backoff_s,
                )
                await asyncio.sleep(self.transient_backoff_s)
            except GeodataPermanentError as e:
                log_event(
                    "overpass_failed",
                    level=logging.ERROR,
                    reason_code=e.reason_code,
                    status_code=e.status_code,
                    error=str(e),
                    attempts=attempt + 1,
                )
                return None
        return None

    def cache_key(self, polyline: Polyline, base_radius_m: float | None = None) -> str:
        """Fingerprint plus starting radius; results for different radii never mix."""
        radius_m = float(base_radius_m if base_radius_m is not None else settings.poi_base_radius_m)
        fingerprint = route_fingerprint(polyline, max_samples=settings.poi_fingerprint_max_samples)
        return f"{fingerprint}:{radius_m:.0f}"

    async def fetch_elements(
        self,
        polyline: Polyline,
        base_radius_m: float | None = None,
        *,
        token: CancellationToken | None = None,
        use_cache: bool = True,
        query_samples: int | None = None,
    ) -> RawElements:
        if len(polyline) < 2:
            return []

        fingerprint = self.cache_key(polyline, base_radius_m)
        if use_cache:
            cached = self.cache.get(fingerprint)
            if cached is not None:
                log_event("poi_cache_hit", fingerprint=fingerprint, element_count=len(cached))
                return cached

        radius_m = float(base_radius_m if base_radius_m is not None else settings.poi_base_radius_m)
        max_attempts = max(1, int(settings.poi_max_attempts))
        elements: RawElements = []

        for attempt in range(1, max_attempts + 1):
            ql = build_around_query(
                polyline,
                radius_m,
                max_samples=query_samples or settings.poi_fingerprint_max_samples,
                timeout_s=self.timeout_s,
            )
            result = await self._query_with_retry(ql, token=token)
            if token is not None and token.cancelled:
                log_event("poi_fetch_cancelled", fingerprint=fingerprint, reason=token.reason)
                return []
            if result is None:
                # Degraded: do not cache so the next request can try again.
                return []

            elements = result
            log_event(
                "overpass_query",
                fingerprint=fingerprint,
                radius_m=radius_m,
                attempt=attempt,
                element_count=len(elements),
            )
            if elements or attempt >= max_attempts:
                break
            radius_m += float(settings.poi_radius_step_m)

        if use_cache:
            self.cache.set(fingerprint, elements)
        return elements

    async def fetch_pois(
        self,
        polyline: Polyline,
        base_radius_m: float | None = None,
        *,
        token: CancellationToken | None = None,
        use_cache: bool = True,
        query_samples: int | None = None,
    ) -> POISet:
        elements = await self.fetch_elements(
            polyline,
            base_radius_m,
            token=token,
            use_cache=use_cache,
            query_samples=query_samples,
        )
        if not elements:
            return POISet()
        return classify(elements, polyline)

    def stats(self) -> dict[str, Any]:
        return {"upstream_calls": self.upstream_calls, **self.cache.snapshot()}
