"""Unit tests for the geometry engine."""

import math

import pytest

from core.errors import MalformedGeometryError
from core.geometry_engine import (
    EARTH_RADIUS_MILES,
    distance_point_to_polygon,
    distance_point_to_polyline,
    distance_point_to_segment,
    distance_to_geometry,
    haversine_distance,
    point_in_polygon,
    point_in_ring,
    ring_centroid,
)
from core.models import GeometryKind, ParsedGeometry, Point

UNIT_SQUARE = [[0, 0], [1, 0], [1, 1], [0, 1]]


def test_point_inside_unit_square():
    assert point_in_polygon(Point(lat=0.5, lon=0.5), [UNIT_SQUARE]) is True


def test_point_outside_unit_square():
    assert point_in_polygon(Point(lat=2, lon=2), [UNIT_SQUARE]) is False


def test_boundary_points_are_deterministic():
    """Edge and vertex points may go either way but never flip between calls."""
    for lat, lon in [(0, 0), (0.5, 0), (1, 1), (0, 0.5)]:
        point = Point(lat=lat, lon=lon)
        first = point_in_polygon(point, [UNIT_SQUARE])
        assert all(point_in_polygon(point, [UNIT_SQUARE]) == first for _ in range(5))


def test_explicitly_closed_ring_matches_open_ring():
    closed = UNIT_SQUARE + [UNIT_SQUARE[0]]
    point = Point(lat=0.25, lon=0.75)
    assert point_in_ring(point, closed) == point_in_ring(point, UNIT_SQUARE) is True


def test_hole_excludes_point():
    outer = [[0, 0], [10, 0], [10, 10], [0, 10]]
    hole = [[4, 4], [6, 4], [6, 6], [4, 6]]

    assert point_in_polygon(Point(lat=5, lon=5), [outer, hole]) is False
    assert point_in_polygon(Point(lat=2, lon=2), [outer, hole]) is True


def test_empty_polygon_contains_nothing():
    assert point_in_polygon(Point(lat=0, lon=0), []) is False
    assert point_in_ring(Point(lat=0, lon=0), [[0, 0], [1, 1]]) is False


def test_haversine_is_symmetric():
    houston = Point(lat=29.76, lon=-95.37)
    austin = Point(lat=30.27, lon=-97.74)

    assert haversine_distance(houston, austin) == haversine_distance(austin, houston)
    assert haversine_distance(houston, austin) == pytest.approx(146, abs=2)


def test_haversine_self_distance_is_zero():
    p = Point(lat=45.0, lon=-120.0)
    assert haversine_distance(p, p) == 0


def test_haversine_one_degree_of_latitude():
    d = haversine_distance(Point(lat=0, lon=0), Point(lat=1, lon=0))
    assert d == pytest.approx(math.pi * EARTH_RADIUS_MILES / 180)


def test_segment_distance_perpendicular_foot():
    # Segment along the equator, point one degree north of its middle
    d = distance_point_to_segment(Point(lat=1, lon=0), [-1, 0], [1, 0])
    assert d == pytest.approx(haversine_distance(Point(lat=1, lon=0), Point(lat=0, lon=0)))


def test_segment_distance_clamps_to_nearer_endpoint():
    p = Point(lat=0.5, lon=3)
    a = [0, 0]
    b = [1, 0]

    expected = haversine_distance(p, b)
    line_projection = haversine_distance(p, Point(lat=0, lon=3))

    assert distance_point_to_segment(p, a, b) == pytest.approx(expected)
    assert distance_point_to_segment(p, a, b) > line_projection


def test_degenerate_segment_measures_to_vertex():
    p = Point(lat=1, lon=1)
    assert distance_point_to_segment(p, [0, 0], [0, 0]) == pytest.approx(haversine_distance(p, [0, 0]))


def test_polyline_distance_is_minimum_over_paths():
    p = Point(lat=0, lon=0)
    near_path = [[-1, 0.1], [1, 0.1]]
    far_path = [[-1, 2], [1, 2]]

    d = distance_point_to_polyline(p, [far_path, near_path])
    assert d == pytest.approx(distance_point_to_segment(p, near_path[0], near_path[1]))


def test_empty_polyline_is_infinitely_far():
    assert distance_point_to_polyline(Point(lat=0, lon=0), []) == math.inf
    assert distance_point_to_polygon(Point(lat=0, lon=0), []) == math.inf


def test_polygon_distance_counts_hole_edges():
    outer = [[0, 0], [10, 0], [10, 10], [0, 10]]
    hole = [[4, 4], [6, 4], [6, 6], [4, 6]]
    p = Point(lat=5, lon=5)

    # The hole boundary (1 degree away) is closer than the outer boundary (5 degrees)
    with_hole = distance_point_to_polygon(p, [outer, hole])
    outer_only = distance_point_to_polygon(p, [outer])

    assert with_hole < outer_only
    assert with_hole == pytest.approx(haversine_distance(p, Point(lat=5, lon=4)), rel=1e-3)


def test_polygon_distance_includes_closing_edge():
    # Open ring: the closing edge runs from [0, 1] back to [0, 0]
    ring = [[0, 0], [1, 0], [1, 1], [0, 1]]
    p = Point(lat=0.5, lon=-0.5)
    assert distance_point_to_polygon(p, [ring]) == pytest.approx(
        haversine_distance(p, Point(lat=0.5, lon=0)), rel=1e-3
    )


def test_ring_centroid_is_vertex_mean():
    centroid = ring_centroid([[0, 0], [2, 0], [2, 2], [0, 2], [0, 0]])
    assert centroid.lon == pytest.approx(1)
    assert centroid.lat == pytest.approx(1)


def test_ring_centroid_rejects_empty_ring():
    with pytest.raises(MalformedGeometryError):
        ring_centroid([])


def test_distance_to_geometry_dispatches_by_kind():
    p = Point(lat=0, lon=0)

    inside = ParsedGeometry(kind=GeometryKind.POLYGON, rings=[[[-1, -1], [1, -1], [1, 1], [-1, 1]]])
    point = ParsedGeometry(kind=GeometryKind.POINT, point=[0, 1])
    line = ParsedGeometry(kind=GeometryKind.POLYLINE, paths=[[[-1, 1], [1, 1]]])

    assert distance_to_geometry(p, inside) == 0
    assert distance_to_geometry(p, point) == pytest.approx(haversine_distance(p, [0, 1]))
    assert distance_to_geometry(p, line) == pytest.approx(haversine_distance(p, [0, 1]))
    assert distance_to_geometry(p, None) == math.inf
