"""
Geometry engine for containment and proximity tests.

All functions work on WGS84 degrees with ESRI ``[x, y]`` (lon, lat) vertex order
and report distances in statute miles. A single Earth radius is used everywhere
so distances from different layers are comparable.

Functions:
    haversine_distance: Great-circle distance between two points
    point_in_ring: Ray-casting test against a single ring
    point_in_polygon: Ray-casting test honouring hole rings
    distance_point_to_segment: Distance to the closest point of a segment
    distance_point_to_polyline: Minimum distance to any segment of any path
    distance_point_to_polygon: Minimum distance to any ring edge (holes included)
    ring_centroid: Vertex-mean centroid of a ring
    distance_to_geometry: Dispatch on parsed geometry kind
"""

import math
from typing import Sequence, Tuple, Union

from core.errors import MalformedGeometryError
from core.models import GeometryKind, ParsedGeometry, Point

EARTH_RADIUS_MILES = 3958.8
METERS_PER_MILE = 1609.344

Vertex = Union[Point, Sequence[float]]


def _lon_lat(vertex: Vertex) -> Tuple[float, float]:
    if isinstance(vertex, Point):
        return vertex.lon, vertex.lat
    return float(vertex[0]), float(vertex[1])


def _wrap_degrees(delta: float) -> float:
    """Fold a longitude difference into [-180, 180)."""
    return (delta + 180.0) % 360.0 - 180.0


def _haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    # Guard against rounding pushing a marginally above 1
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_MILES * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_distance(p1: Vertex, p2: Vertex) -> float:
    """
    Great-circle distance in miles.

    Example:
        >>> haversine_distance(Point(29.76, -95.37), Point(29.76, -95.37))
        0.0
    """
    lon1, lat1 = _lon_lat(p1)
    lon2, lat2 = _lon_lat(p2)
    return _haversine(lat1, lon1, lat2, lon2)


def point_in_ring(point: Vertex, ring: Sequence[Sequence[float]]) -> bool:
    """
    Ray-casting (even-odd) test of a point against one ring.

    The ring is treated as closed whether or not the first vertex is repeated.
    Points exactly on an edge or vertex resolve the same way on every call but
    may fall on either side; this is the usual ray-casting boundary ambiguity.
    """
    lon, lat = _lon_lat(point)
    n = len(ring)
    if n < 3:
        return False

    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]

        if (yi > lat) != (yj > lat):
            x_cross = (xj - xi) * (lat - yi) / (yj - yi) + xi
            if lon < x_cross:
                inside = not inside
        j = i

    return inside


def point_in_polygon(point: Vertex, rings: Sequence[Sequence[Sequence[float]]]) -> bool:
    """
    Test whether a point lies inside a polygon.

    Ring 0 is the outer boundary and every following ring is a hole. The point
    is inside when it is inside the outer ring and inside none of the holes.

    Parameters:
    -----------
    point : Point or [lon, lat]
        Location to test
    rings : Sequence of rings
        Polygon rings as ``[x, y]`` vertex lists

    Returns:
    --------
    bool
        True if the point is inside the polygon
    """
    if not rings:
        return False

    if not point_in_ring(point, rings[0]):
        return False

    for hole in rings[1:]:
        if point_in_ring(point, hole):
            return False

    return True


def distance_point_to_segment(p: Vertex, a: Vertex, b: Vertex) -> float:
    """
    Distance in miles from ``p`` to the closest point of segment ``ab``.

    The projection parameter is computed in a local equirectangular frame
    centred on ``p`` (longitudes scaled by cos(lat)) and clamped to [0, 1], so a
    point beyond either end measures to that endpoint. The final distance is
    great-circle.
    """
    p_lon, p_lat = _lon_lat(p)
    a_lon, a_lat = _lon_lat(a)
    b_lon, b_lat = _lon_lat(b)

    k = math.cos(math.radians(p_lat))

    # Longitude deltas are wrapped so segments near the antimeridian project correctly
    ax = _wrap_degrees(a_lon - p_lon) * k
    ay = a_lat - p_lat
    d_lon = _wrap_degrees(b_lon - a_lon)
    dx = d_lon * k
    dy = b_lat - a_lat

    len_sq = dx * dx + dy * dy
    if len_sq == 0:
        return _haversine(p_lat, p_lon, a_lat, a_lon)

    t = -(ax * dx + ay * dy) / len_sq
    t = max(0.0, min(1.0, t))

    c_lon = a_lon + t * d_lon
    c_lat = a_lat + t * dy
    return _haversine(p_lat, p_lon, c_lat, c_lon)


def distance_point_to_polyline(p: Vertex, paths: Sequence[Sequence[Sequence[float]]]) -> float:
    """
    Minimum distance in miles from ``p`` to any segment of any path.

    A path with a single vertex contributes the distance to that vertex. An
    empty polyline returns ``math.inf`` so callers treat it as out of range.
    """
    best = math.inf
    for path in paths or []:
        if len(path) == 1:
            best = min(best, haversine_distance(p, path[0]))
            continue
        for i in range(len(path) - 1):
            d = distance_point_to_segment(p, path[i], path[i + 1])
            if d < best:
                best = d
    return best


def distance_point_to_polygon(p: Vertex, rings: Sequence[Sequence[Sequence[float]]]) -> float:
    """
    Minimum distance in miles from ``p`` to the boundary of a polygon.

    Hole rings are boundaries too. Every ring is closed implicitly. This does
    not check containment; callers test ``point_in_polygon`` first.
    """
    best = math.inf
    for ring in rings or []:
        n = len(ring)
        if n == 1:
            best = min(best, haversine_distance(p, ring[0]))
            continue
        for i in range(n):
            d = distance_point_to_segment(p, ring[i], ring[(i + 1) % n])
            if d < best:
                best = d
    return best


def ring_centroid(ring: Sequence[Sequence[float]]) -> Point:
    """
    Arithmetic mean of the ring's vertices (not area weighted).

    Only a cheap ranking proxy; use ``distance_point_to_polygon`` when the
    ranking must be accurate. A repeated closing vertex is ignored.
    """
    vertices = list(ring or [])
    if len(vertices) > 1 and list(vertices[0][:2]) == list(vertices[-1][:2]):
        vertices = vertices[:-1]
    if not vertices:
        raise MalformedGeometryError("Cannot take the centroid of an empty ring")

    lon = sum(v[0] for v in vertices) / len(vertices)
    lat = sum(v[1] for v in vertices) / len(vertices)
    return Point(lat=lat, lon=lon)


def distance_to_geometry(p: Vertex, geometry: ParsedGeometry) -> float:
    """
    Distance in miles from ``p`` to a parsed geometry of any kind.

    Polygons containing ``p`` measure 0. Missing geometry measures ``math.inf``.
    """
    if geometry is None:
        return math.inf

    if geometry.kind == GeometryKind.POINT:
        if geometry.point is None:
            return math.inf
        return haversine_distance(p, geometry.point)

    if geometry.kind == GeometryKind.POLYLINE:
        return distance_point_to_polyline(p, geometry.paths)

    if geometry.kind == GeometryKind.POLYGON:
        if point_in_polygon(p, geometry.rings):
            return 0.0
        return distance_point_to_polygon(p, geometry.rings)

    return math.inf
