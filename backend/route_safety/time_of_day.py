from __future__ import annotations

from datetime import datetime


def pedestrian_time_factor(hour: int | None) -> float:
    """Deterministic pedestrian-density multiplier for an hour of the day.

    Profile bands are intentionally simple and stable for reproducible scores.
    """
    if hour is None:
        return 1.0

    hour = int(hour) % 24

    if 9 <= hour <= 21:
        return 1.0
    if hour == 8:
        return 0.75
    if hour == 7:
        return 0.5
    if hour == 22:
        return 0.5
    if hour == 6:
        return 0.25
    return 0.1


def hour_of(moment: datetime | None) -> int | None:
    if moment is None:
        return None
    return int(moment.hour)
