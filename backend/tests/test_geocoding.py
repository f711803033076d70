from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from route_safety.engine import SafetyEngine
from route_safety.errors import RouteNotFoundError
from route_safety.geocoding import GeocodedPlace, GeocodingError, NominatimClient
from route_safety.geometry import Coordinate


def _geocode(handler: Any, address: str) -> GeocodedPlace:
    async def scenario() -> GeocodedPlace:
        client = NominatimClient(base_url="http://nominatim.test/", transport=httpx.MockTransport(handler))
        try:
            return await client.geocode(address)
        finally:
            await client.aclose()

    return asyncio.run(scenario())


def test_geocode_returns_first_match() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[{"lat": "51.5007", "lon": "-0.1246", "display_name": "Big Ben, London"}],
        )

    place = _geocode(handler, "  Big Ben, London ")

    assert place.coordinate == Coordinate(51.5007, -0.1246)
    assert place.display_name == "Big Ben, London"
    assert seen[0].url.path == "/search"
    assert seen[0].url.params["q"] == "Big Ben, London"
    assert seen[0].url.params["limit"] == "1"
    assert seen[0].headers["user-agent"]


def test_unknown_address_raises_route_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    with pytest.raises(RouteNotFoundError) as exc:
        _geocode(handler, "nowhere at all")
    assert exc.value.reason_code == "route_not_found"
    assert "Address not found" in str(exc.value)


def test_upstream_failure_raises_geocoding_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="Service Unavailable")

    with pytest.raises(GeocodingError, match="Nominatim 503"):
        _geocode(handler, "London")


def test_result_without_coordinates_raises_geocoding_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"display_name": "London"}])

    with pytest.raises(GeocodingError):
        _geocode(handler, "London")


class FakeGeocoder:
    def __init__(self, places: dict[str, Coordinate]) -> None:
        self.places = places
        self.calls: list[str] = []

    async def geocode(self, address: str) -> GeocodedPlace:
        self.calls.append(address)
        if address not in self.places:
            raise RouteNotFoundError(f"Address not found: {address}")
        return GeocodedPlace(coordinate=self.places[address], display_name=address)


def test_engine_resolves_addresses_and_passes_coordinates_through() -> None:
    geocoder = FakeGeocoder({"King's Cross": Coordinate(51.5308, -0.1238)})
    engine = SafetyEngine(osrm=None, overpass=None, geocoder=geocoder)  # type: ignore[arg-type]
    point = Coordinate(51.5, -0.12)

    assert asyncio.run(engine.resolve_place(point)) is point
    assert asyncio.run(engine.resolve_place("King's Cross")) == Coordinate(51.5308, -0.1238)
    assert geocoder.calls == ["King's Cross"]


def test_engine_without_geocoder_rejects_addresses() -> None:
    engine = SafetyEngine(osrm=None, overpass=None)  # type: ignore[arg-type]

    with pytest.raises(RouteNotFoundError):
        asyncio.run(engine.resolve_place("King's Cross"))
