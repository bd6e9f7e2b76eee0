"""Tests for haversine and point-to-route distance helpers."""

from __future__ import annotations

import math

import pytest

from trail_tracker.geo import (
    distance,
    distance_3d,
    distance_to_polyline,
    get_prepared_route,
    path_length,
    prepare_route,
)
from trail_tracker.models import Coordinate

HK_PEAK = Coordinate(22.2707, 114.1497)
LANTAU_PEAK = Coordinate(22.2550, 113.9190)
EQUATOR_ORIGIN = Coordinate(0.0, 0.0)


@pytest.mark.parametrize(
    "a,b",
    [
        (HK_PEAK, LANTAU_PEAK),
        (EQUATOR_ORIGIN, Coordinate(0.0, 0.0009)),
        (Coordinate(-33.9, 151.2), Coordinate(51.5, -0.12)),
        (Coordinate(89.9, 10.0), Coordinate(89.9, -170.0)),
    ],
)
def test_distance_is_symmetric_and_zero_on_self(a, b):
    assert distance(a, a) == 0.0
    assert distance(b, b) == 0.0
    assert distance(a, b) == pytest.approx(distance(b, a))
    assert distance(a, b) > 0


def test_distance_matches_arc_length_on_equator():
    expected = 6_371_000.0 * math.radians(0.0009)
    assert distance(EQUATOR_ORIGIN, Coordinate(0.0, 0.0009)) == pytest.approx(expected)
    assert expected == pytest.approx(100.0, abs=1.0)


def test_distance_ignores_elevation():
    low = Coordinate(22.3, 114.1, 0.0)
    high = Coordinate(22.3, 114.1, 500.0)
    assert distance(low, high) == 0.0
    assert distance_3d(low, high) == pytest.approx(500.0)


def test_distance_3d_falls_back_to_horizontal_without_elevation():
    a = Coordinate(0.0, 0.0, 0.0)
    b = Coordinate(0.0, 0.0009)
    assert distance_3d(a, b) == distance(a, b)
    c = Coordinate(0.0, 0.0009, 10.0)
    assert distance_3d(a, c) == pytest.approx(math.hypot(distance(a, c), 10.0))


def test_antipodal_distance_is_half_circumference():
    far = distance(Coordinate(0.0, 0.0), Coordinate(0.0, 180.0))
    assert far == pytest.approx(math.pi * 6_371_000.0)


def test_path_length_equals_sum_of_hops():
    points = [
        Coordinate(22.2550, 113.9190),
        Coordinate(22.2560, 113.9200),
        Coordinate(22.2575, 113.9195),
        Coordinate(22.2575, 113.9195),
        Coordinate(22.2590, 113.9210),
    ]
    hops = sum(distance(a, b) for a, b in zip(points, points[1:]))
    assert path_length(points) == pytest.approx(hops)
    assert path_length(points[:1]) == 0.0
    assert path_length([]) == 0.0


def test_distance_to_polyline_degenerate_inputs():
    point = Coordinate(0.001, 0.0)
    assert distance_to_polyline(point, []) == math.inf
    single = [Coordinate(0.0, 0.0)]
    assert distance_to_polyline(point, single) == pytest.approx(distance(point, single[0]))
    repeated = [Coordinate(0.0, 0.0), Coordinate(0.0, 0.0)]
    assert distance_to_polyline(point, repeated) == pytest.approx(distance(point, repeated[0]))


def test_distance_to_polyline_on_vertex_and_segment():
    route = [Coordinate(0.0, 0.0), Coordinate(0.0, 0.01), Coordinate(0.01, 0.01)]
    assert distance_to_polyline(route[1], route) == pytest.approx(0.0, abs=1e-6)
    midpoint = Coordinate(0.0, 0.005)
    assert distance_to_polyline(midpoint, route) == pytest.approx(0.0, abs=0.01)


def test_distance_to_polyline_perpendicular_offset():
    route = [Coordinate(0.0, 0.0), Coordinate(0.0, 0.01)]
    # 500 m north of the middle of an east-west route on the equator.
    offset_deg = math.degrees(500.0 / 6_371_000.0)
    point = Coordinate(offset_deg, 0.005)
    assert distance_to_polyline(point, route) == pytest.approx(500.0, abs=1.0)


def test_distance_to_polyline_beyond_end_measures_to_endpoint():
    route = [Coordinate(0.0, 0.0), Coordinate(0.0, 0.01)]
    point = Coordinate(0.0, 0.02)
    assert distance_to_polyline(point, route) == pytest.approx(
        distance(point, route[-1]), rel=1e-3
    )


def test_prepared_route_is_cached_per_waypoint_sequence():
    route = [Coordinate(22.25, 113.91), Coordinate(22.26, 113.92)]
    first = get_prepared_route(route)
    again = get_prepared_route(list(route))
    assert first is again
    other = get_prepared_route(list(reversed(route)))
    assert other is not first


def test_prepare_route_length_close_to_haversine():
    route = [Coordinate(22.25, 113.91), Coordinate(22.26, 113.92), Coordinate(22.27, 113.92)]
    prepared = prepare_route(route)
    assert prepared.metric_points.shape == (3, 2)
    assert prepared.length_m == pytest.approx(path_length(route), rel=1e-3)


def test_prepare_route_requires_two_points():
    with pytest.raises(ValueError):
        prepare_route([Coordinate(0.0, 0.0)])
