from __future__ import annotations

import asyncio
from urllib.parse import parse_qs

import httpx

from route_safety.geometry import Coordinate
from route_safety.overpass_client import OverpassClient
from route_safety.poi_cache import route_fingerprint
from route_safety.selection import CancellationToken, SelectionContext

ROUTE_X = (Coordinate(51.5000, -0.1200), Coordinate(51.5050, -0.1200))
ROUTE_Y = (Coordinate(48.8500, 2.3500), Coordinate(48.8550, 2.3500))
ROUTE_Z = (Coordinate(40.4100, -3.7000), Coordinate(40.4150, -3.7000))


def _lamp_at(c: Coordinate, node_id: int) -> dict:
    return {"type": "node", "id": node_id, "lat": c.lat, "lon": c.lon, "tags": {"highway": "street_lamp"}}


def test_cancellation_token() -> None:
    token = CancellationToken()
    assert token.cancelled is False
    token.cancel("superseded")
    assert token.cancelled is True
    assert token.reason == "superseded"


def test_superseded_fetch_is_discarded_and_not_cached() -> None:
    async def scenario() -> None:
        release_x = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            ql = parse_qs(request.content.decode("utf-8"))["data"][0]
            if "51.500000" in ql:
                await release_x.wait()
                return httpx.Response(200, json={"elements": [_lamp_at(ROUTE_X[0], 1)]})
            return httpx.Response(200, json={"elements": [_lamp_at(ROUTE_Y[0], 2)]})

        client = OverpassClient(transport=httpx.MockTransport(handler), transient_backoff_s=0)
        ctx = SelectionContext(client, debounce_s=0)
        try:
            task_x = asyncio.create_task(ctx.select(ROUTE_X))
            await asyncio.sleep(0.01)

            result_y = await ctx.select(ROUTE_Y)
            release_x.set()
            result_x = await task_x

            assert result_x is None
            assert result_y is not None
            assert ctx.current is result_y
            assert ctx.current.fingerprint == route_fingerprint(ROUTE_Y)
            assert [p.id for p in ctx.current.pois.streetlamps] == ["node/2"]
            assert ctx.discarded == 1
            assert ctx.sequence == 2

            assert client.cache.get(client.cache_key(ROUTE_X)) is None
            assert client.cache.get(client.cache_key(ROUTE_Y)) is not None
        finally:
            await client.aclose()

    asyncio.run(scenario())


def test_rapid_selections_coalesce_into_one_fetch() -> None:
    async def scenario() -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"elements": [_lamp_at(ROUTE_Z[0], 3)]})

        client = OverpassClient(transport=httpx.MockTransport(handler), transient_backoff_s=0)
        ctx = SelectionContext(client, debounce_s=0.05)
        try:
            tasks = [asyncio.create_task(ctx.select(r)) for r in (ROUTE_X, ROUTE_Y, ROUTE_Z)]
            results = await asyncio.gather(*tasks)

            assert results[0] is None
            assert results[1] is None
            assert results[2] is not None
            assert results[2].sequence == 3
            assert ctx.current is results[2]
            assert client.upstream_calls == 1
        finally:
            await client.aclose()

    asyncio.run(scenario())


def test_explicit_cancel_drops_in_flight_fetch() -> None:
    async def scenario() -> None:
        release = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            await release.wait()
            return httpx.Response(200, json={"elements": [_lamp_at(ROUTE_X[0], 1)]})

        client = OverpassClient(transport=httpx.MockTransport(handler), transient_backoff_s=0)
        ctx = SelectionContext(client, debounce_s=0)
        try:
            task = asyncio.create_task(ctx.select(ROUTE_X))
            await asyncio.sleep(0.01)
            ctx.cancel()
            release.set()

            assert await task is None
            assert ctx.current is None
        finally:
            await client.aclose()

    asyncio.run(scenario())
