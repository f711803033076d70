"""Latest-selection-wins POI fetching for interactive clients.

SelectionContext is meant for a long-lived session (a map UI or websocket
handler) that re-selects routes as the user clicks; the stateless HTTP API
scores each request on its own and does not use it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .geometry import Polyline
from .logging_utils import log_event
from .poi_cache import route_fingerprint
from .settings import settings

if TYPE_CHECKING:
    from .overpass_client import OverpassClient
    from .poi_classifier import POISet


class CancellationToken:
    """Cooperative cancellation flag handed to a single POI fetch."""

    def __init__(self, reason: str | None = None) -> None:
        self._cancelled = False
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "superseded") -> None:
        self._cancelled = True
        self.reason = reason


@dataclass(frozen=True)
class SelectionResult:
    sequence: int
    fingerprint: str
    pois: POISet


class SelectionContext:
    """Keeps at most one logical POI fetch in flight for the currently selected route.

    Every ``select`` call bumps a sequence number and cancels the token of the
    previous fetch. Calls arriving within the debounce window collapse into the
    last one, and a fetch that finishes after being superseded is discarded
    instead of replacing ``current``.
    """

    def __init__(
        self,
        client: OverpassClient,
        *,
        debounce_s: float | None = None,
        base_radius_m: float | None = None,
    ) -> None:
        self._client = client
        self._debounce_s = settings.selection_debounce_s if debounce_s is None else max(0.0, float(debounce_s))
        self._base_radius_m = base_radius_m
        self._sequence = 0
        self._token: CancellationToken | None = None
        self.current: SelectionResult | None = None
        self.discarded = 0

    @property
    def sequence(self) -> int:
        return self._sequence

    def cancel(self, reason: str = "cleared") -> None:
        if self._token is not None:
            self._token.cancel(reason)
            self._token = None

    async def select(self, polyline: Polyline) -> SelectionResult | None:
        self._sequence += 1
        sequence = self._sequence
        if self._token is not None:
            self._token.cancel("superseded")
        token = CancellationToken()
        self._token = token

        if self._debounce_s > 0:
            await asyncio.sleep(self._debounce_s)
        if token.cancelled:
            # a newer selection arrived during the quiet period
            return None

        fingerprint = route_fingerprint(polyline, max_samples=settings.poi_fingerprint_max_samples)
        pois = await self._client.fetch_pois(polyline, self._base_radius_m, token=token)

        if token.cancelled or sequence != self._sequence:
            self.discarded += 1
            log_event(
                "poi_selection_discarded",
                sequence=sequence,
                current_sequence=self._sequence,
                fingerprint=fingerprint,
            )
            return None

        result = SelectionResult(sequence=sequence, fingerprint=fingerprint, pois=pois)
        self.current = result
        if self._token is token:
            self._token = None
        return result
