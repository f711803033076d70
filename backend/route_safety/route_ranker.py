from __future__ import annotations

import hashlib
import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

from .geometry import Coordinate
from .settings import settings


class Rankable(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def distance_m(self) -> float: ...

    @property
    def duration_s(self) -> float: ...

    @property
    def safety_score(self) -> float: ...


T = TypeVar("T", bound=Rankable)
U = TypeVar("U")


@dataclass(frozen=True)
class RankedChoice(Generic[T]):
    candidate: T
    label: str
    rank_score: int
    efficiency_score: float
    also_fastest: bool = False


def normalise_weights(w_safety: float, w_efficiency: float) -> tuple[float, float]:
    s = w_safety + w_efficiency
    if s <= 0:
        return (0.7, 0.3)
    return (w_safety / s, w_efficiency / s)


def efficiency_score(duration_s: float, fastest_duration_s: float) -> float:
    """100 for the fastest route, minus 2 points per percent of extra travel time."""
    if fastest_duration_s <= 0:
        return 100.0
    return max(0.0, 100.0 - (duration_s / fastest_duration_s - 1.0) * 200.0)


def rank_score(safety_score: float, efficiency: float, *, w_safety: float, w_efficiency: float) -> int:
    return int(math.floor(safety_score * w_safety + efficiency * w_efficiency + 0.5))


def route_signature(coords: Sequence[Coordinate]) -> str:
    n = len(coords)
    step = max(1, n // 30)
    sample = list(coords[::step][:40])
    if coords and sample[-1] != coords[-1]:
        sample.append(coords[-1])

    # round for stability; avoid huge hash variability
    parts = [f"{c.lat:.4f},{c.lon:.4f}" for c in sample]
    return hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()


def dedupe_candidates(items: Iterable[U], key: Callable[[U], str]) -> list[U]:
    """Drop near-identical candidates, keeping the first of each signature."""
    unique: list[U] = []
    seen: set[str] = set()
    for item in items:
        sig = key(item)
        if sig in seen:
            continue
        seen.add(sig)
        unique.append(item)
    return unique


def rank_routes(
    candidates: Sequence[T],
    *,
    max_detour_ratio: float | None = None,
    w_safety: float | None = None,
    w_efficiency: float | None = None,
) -> list[RankedChoice[T]]:
    """Pick the safest, fastest and (when available) an alternative route.

    The safest route is chosen only among candidates no more than
    ``max_detour_ratio`` times the shortest distance; if none qualify every
    candidate is eligible. The fastest route is chosen from the full set.
    """
    if not candidates:
        return []

    ratio = settings.max_detour_ratio if max_detour_ratio is None else max(1.0, float(max_detour_ratio))
    ws, we = normalise_weights(
        settings.rank_safety_weight if w_safety is None else float(w_safety),
        settings.rank_efficiency_weight if w_efficiency is None else float(w_efficiency),
    )

    shortest = min(c.distance_m for c in candidates)
    fastest_duration = min(c.duration_s for c in candidates)

    eff: dict[str, float] = {}
    score: dict[str, int] = {}
    for c in candidates:
        eff[c.id] = efficiency_score(c.duration_s, fastest_duration)
        score[c.id] = rank_score(c.safety_score, eff[c.id], w_safety=ws, w_efficiency=we)

    pool = [c for c in candidates if c.distance_m <= shortest * ratio] or list(candidates)

    safest = max(pool, key=lambda c: (score[c.id], -c.duration_s))
    fastest = min(candidates, key=lambda c: (c.duration_s, -c.safety_score))

    def choice(c: T, label: str, *, also_fastest: bool = False) -> RankedChoice[T]:
        return RankedChoice(
            candidate=c,
            label=label,
            rank_score=score[c.id],
            efficiency_score=round(eff[c.id], 2),
            also_fastest=also_fastest,
        )

    same = safest.id == fastest.id
    out = [choice(safest, "safest", also_fastest=same)]
    if not same:
        out.append(choice(fastest, "fastest"))

    taken = {r.candidate.id for r in out}
    by_rank = lambda c: (-score[c.id], c.duration_s)  # noqa: E731
    remaining = sorted((c for c in pool if c.id not in taken), key=by_rank)
    if not remaining:
        remaining = sorted((c for c in candidates if c.id not in taken), key=by_rank)
    if remaining:
        out.append(choice(remaining[0], "alternative"))
    return out
