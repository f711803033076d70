from __future__ import annotations

import pytest

from route_safety.geometry import Coordinate
from route_safety.opening_hours import (
    ActivityStrategy,
    AlwaysActive,
    OpeningHoursHeuristic,
    count_active,
    parse_simple_range,
)
from route_safety.poi_classifier import POI, POICategory
from route_safety.time_of_day import hour_of, pedestrian_time_factor


def _shop(tags: dict[str, str]) -> POI:
    return POI(id="node/1", category=POICategory.SHOP, coordinate=Coordinate(51.5, -0.12), raw_tags=tags)


def test_parse_simple_range() -> None:
    assert parse_simple_range("Mo-Fr 08:00-18:00; Sa 10:00-16:00") == (480, 1080)
    assert parse_simple_range("18:00 - 02:00") == (1080, 120)
    assert parse_simple_range("sunrise-sunset") is None


@pytest.mark.parametrize(
    ("tags", "hour", "expected"),
    [
        ({"shop": "supermarket", "opening_hours": "24/7"}, 3, True),
        ({"shop": "supermarket", "opening_hours": "closed"}, 12, False),
        ({"shop": "books", "opening_hours": "Mo-Sa 09:00-17:30"}, 9, True),
        ({"shop": "books", "opening_hours": "Mo-Sa 09:00-17:30"}, 18, False),
        ({"amenity": "bar", "opening_hours": "18:00-02:00"}, 1, True),
        ({"amenity": "bar", "opening_hours": "18:00-02:00"}, 12, False),
        ({"amenity": "fuel"}, 3, True),
        ({"shop": "convenience"}, 4, True),
        ({"amenity": "pub"}, 1, True),
        ({"amenity": "pub"}, 5, False),
        ({"shop": "clothes"}, 10, True),
        ({"shop": "clothes"}, 23, False),
        ({"shop": "clothes"}, 6, False),
    ],
)
def test_opening_hours_heuristic(tags: dict[str, str], hour: int, expected: bool) -> None:
    assert OpeningHoursHeuristic().is_active(_shop(tags), hour) is expected


def test_count_active_with_unknown_hour_counts_every_shop() -> None:
    shops = [_shop({"shop": "clothes"}), _shop({"amenity": "fuel"})]

    assert count_active(shops, None) == 2
    assert count_active(shops, 23) == 1
    assert count_active(shops, 23, AlwaysActive()) == 2
    assert isinstance(AlwaysActive(), ActivityStrategy)


@pytest.mark.parametrize(
    ("hour", "factor"),
    [(None, 1.0), (0, 0.1), (3, 0.1), (5, 0.1), (6, 0.25), (7, 0.5), (8, 0.75), (9, 1.0), (14, 1.0), (21, 1.0), (22, 0.5), (23, 0.1)],
)
def test_pedestrian_time_factor(hour: int | None, factor: float) -> None:
    assert pedestrian_time_factor(hour) == factor


def test_hour_of() -> None:
    from datetime import datetime

    assert hour_of(None) is None
    assert hour_of(datetime(2026, 3, 1, 22, 15)) == 22
