from __future__ import annotations

import math

import pytest

from route_safety.errors import InvalidGeometryError
from route_safety.geometry import (
    EARTH_RADIUS_M,
    Coordinate,
    along_track_distance,
    bearing,
    cross_track_distance,
    distance_to_polyline,
    distance_to_segment,
    great_circle_distance,
    route_length_km,
    validate_polyline,
)

M_PER_DEG = EARTH_RADIUS_M * math.pi / 180.0

# ~1.1 km segment along the equator
A = Coordinate(0.0, 0.0)
B = Coordinate(0.0, 0.01)


def _north_of(c: Coordinate, meters: float) -> Coordinate:
    return Coordinate(c.lat + meters / M_PER_DEG, c.lon)


def test_great_circle_distance_basics() -> None:
    london = Coordinate(51.5074, -0.1278)
    paris = Coordinate(48.8566, 2.3522)

    assert great_circle_distance(london, london) == 0.0
    assert great_circle_distance(london, paris) == pytest.approx(343_500, rel=0.01)
    assert great_circle_distance(london, paris) == pytest.approx(great_circle_distance(paris, london))
    assert great_circle_distance(A, _north_of(A, 100.0)) == pytest.approx(100.0, abs=1e-6)


def test_bearing_cardinal_directions() -> None:
    assert bearing(A, _north_of(A, 100)) == pytest.approx(0.0, abs=1e-9)
    assert bearing(A, B) == pytest.approx(math.pi / 2, abs=1e-9)
    assert bearing(B, A) == pytest.approx(-math.pi / 2, abs=1e-9)
    assert bearing(A, A) == 0.0


def test_cross_track_is_perpendicular_offset_and_non_negative() -> None:
    mid = Coordinate(0.0, 0.005)
    above = _north_of(mid, 20.0)
    below = _north_of(mid, -20.0)

    assert cross_track_distance(A, B, above) == pytest.approx(20.0, abs=1e-3)
    assert cross_track_distance(A, B, below) == pytest.approx(20.0, abs=1e-3)


def test_along_track_sign_before_inside_and_beyond() -> None:
    seg_len = great_circle_distance(A, B)

    inside = _north_of(Coordinate(0.0, 0.005), 5.0)
    assert along_track_distance(A, B, inside) == pytest.approx(seg_len / 2, rel=1e-3)

    before = Coordinate(0.0, -0.002)
    assert along_track_distance(A, B, before) < 0

    beyond = Coordinate(0.0, 0.012)
    assert along_track_distance(A, B, beyond) > seg_len


def test_distance_to_segment_uses_nearest_endpoint_outside_segment() -> None:
    # A point far beyond B but almost on the line: cross-track would say ~0.
    beyond = _north_of(Coordinate(0.0, 0.02), 1.0)
    assert cross_track_distance(A, B, beyond) == pytest.approx(1.0, abs=1e-3)
    assert distance_to_segment(beyond, A, B) == pytest.approx(great_circle_distance(B, beyond))

    before = Coordinate(0.0, -0.003)
    assert distance_to_segment(before, A, B) == pytest.approx(great_circle_distance(A, before))

    inside = _north_of(Coordinate(0.0, 0.004), 12.0)
    assert distance_to_segment(inside, A, B) == pytest.approx(12.0, abs=1e-3)


@pytest.mark.parametrize(
    "point",
    [Coordinate(0.001, 0.001), Coordinate(-3.0, 40.0), Coordinate(51.5, -0.12), Coordinate(0.0, 0.0)],
)
def test_degenerate_segment_equals_distance_to_start(point: Coordinate) -> None:
    assert distance_to_segment(point, A, A) == pytest.approx(great_circle_distance(point, A))
    assert distance_to_segment(point, A, A) >= 0.0


def test_short_segment_is_treated_as_point() -> None:
    a = Coordinate(10.0, 10.0)
    b = _north_of(a, 0.5)
    p = Coordinate(10.0, 10.001)
    assert distance_to_segment(p, a, b) == pytest.approx(great_circle_distance(a, p))


def test_distance_to_polyline_is_min_over_segments() -> None:
    c = Coordinate(0.01, 0.01)
    p = Coordinate(0.006, 0.0102)

    expected = min(distance_to_segment(p, A, B), distance_to_segment(p, B, c))
    assert distance_to_polyline(p, [A, B, c]) == pytest.approx(expected)
    assert distance_to_polyline(p, [A, B, c]) < distance_to_segment(p, A, B)


def test_distance_to_polyline_rejects_single_point() -> None:
    with pytest.raises(InvalidGeometryError) as exc:
        distance_to_polyline(A, [A])
    assert exc.value.reason_code == "invalid_geometry"


def test_route_length_km_sums_segments() -> None:
    c = _north_of(B, 500.0)
    expected = (great_circle_distance(A, B) + 500.0) / 1000.0
    assert route_length_km([A, B, c]) == pytest.approx(expected, rel=1e-9)
    assert route_length_km([A]) == 0.0


def test_validate_polyline_coerces_and_rejects_bad_points() -> None:
    line = validate_polyline([(51.5, -0.1), (51.51, -0.11)])
    assert line == (Coordinate(51.5, -0.1), Coordinate(51.51, -0.11))

    with pytest.raises(InvalidGeometryError):
        validate_polyline([(51.5, -0.1)])
    with pytest.raises(InvalidGeometryError):
        validate_polyline([(51.5, -0.1), (float("nan"), 0.0)])
    with pytest.raises(InvalidGeometryError):
        validate_polyline([(51.5, -0.1), (95.0, 0.0)])
