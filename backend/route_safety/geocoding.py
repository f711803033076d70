from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from .errors import RouteNotFoundError
from .geometry import Coordinate
from .settings import settings


class GeocodingError(RuntimeError):
    pass


@dataclass(frozen=True)
class GeocodedPlace:
    coordinate: Coordinate
    display_name: str


def _format_geocoder_error(resp: httpx.Response) -> str:
    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"Nominatim {resp.status_code}: {body}"
    return f"Nominatim HTTP {resp.status_code}"


class NominatimClient:
    """Free-text address lookup against a Nominatim ``/search`` endpoint."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_s: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.nominatim_url).rstrip("/")
        timeout = float(timeout_s if timeout_s is not None else settings.geocoder_timeout_s)
        # Nominatim's usage policy rejects requests without an identifying agent.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=5.0),
            transport=transport,
            headers={
                "accept": "application/json",
                "user-agent": user_agent or settings.geocoder_user_agent,
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def geocode(self, address: str) -> GeocodedPlace:
        """Best match for ``address``; RouteNotFoundError when there is none."""
        query = address.strip()
        if not query:
            raise RouteNotFoundError("Address not found: empty query", details={"address": address})

        try:
            resp = await self._client.get(
                f"{self.base_url}/search",
                params={"q": query, "format": "json", "limit": "1"},
            )
        except httpx.TransportError as e:
            raise GeocodingError(f"Nominatim request failed: {type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            raise GeocodingError(_format_geocoder_error(resp))

        try:
            data: Any = resp.json()
        except ValueError as e:
            raise GeocodingError("Nominatim returned non-JSON payload") from e

        if not isinstance(data, list) or not data:
            raise RouteNotFoundError(f"Address not found: {query}", details={"address": query})

        best = data[0]
        try:
            coord = Coordinate(float(best["lat"]), float(best["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingError("Nominatim result missing coordinates") from e

        return GeocodedPlace(coordinate=coord, display_name=str(best.get("display_name") or query))
