from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "route_not_found",
        "geodata_transient",
        "geodata_permanent",
        "invalid_geometry",
    }
)


@dataclass
class RouteSafetyError(Exception):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class RouteNotFoundError(RouteSafetyError):
    """No candidate routes are available; fatal to the whole request."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__("route_not_found", message, details)


class GeodataTransientError(RouteSafetyError):
    """Rate limit, gateway error or timeout from the geodata source; safe to retry."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__("geodata_transient", message, details)
        self.status_code = status_code


class GeodataPermanentError(RouteSafetyError):
    """Malformed query, auth failure or undecodable payload; never retried."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__("geodata_permanent", message, details)
        self.status_code = status_code


class InvalidGeometryError(RouteSafetyError, ValueError):
    """Polyline too short or holding non-finite coordinates; fatal for one route only."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__("invalid_geometry", message, details)


def normalize_reason_code(reason_code: str, *, default: str = "geodata_permanent") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
