"""
Geometry conversion utilities for the Proximity Resolver.

ArcGIS FeatureServers return geometries in ESRI JSON format. This module parses
them into normalized WGS84 geometries for the geometry engine, converts them to
GeoJSON, and turns a ranked feature list into a GeoDataFrame for downstream
formatting and export code.

Functions:
    parse_esri_geometry: Parse and validate ESRI JSON geometry
    parsed_point_to_geojson: Parsed point to a GeoJSON Feature
    parsed_paths_to_geojson: Parsed paths to a GeoJSON (Multi)LineString Feature
    parsed_rings_to_geojson: Parsed rings to a GeoJSON Polygon Feature
    convert_esri_to_geojson: Main dispatcher for ESRI to GeoJSON conversion
    resolved_features_to_geodataframe: Ranked features to a GeoDataFrame
"""

import math
from typing import Dict, Iterable, List, Optional

import geopandas as gpd
from shapely.geometry import shape

from core.coordinates import is_web_mercator_reference, looks_projected, normalize_coordinates
from core.errors import MalformedGeometryError
from core.models import GeometryKind, ParsedGeometry, ResolvedFeature
from utils.logger import get_logger

logger = get_logger(__name__)

MIN_RING_VERTICES = 3
MIN_PATH_VERTICES = 2


def _distinct_vertex_count(coords: List[List[float]]) -> int:
    return len({(c[0], c[1]) for c in coords})


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _checked_vertices(coords, label: str) -> List[List[float]]:
    """Return ``coords`` as [x, y] lists, raising on any non-numeric or short vertex."""
    if not isinstance(coords, (list, tuple)):
        raise MalformedGeometryError(f"{label} is not a vertex list: {coords!r}")

    vertices = []
    for vertex in coords:
        if (
            not isinstance(vertex, (list, tuple))
            or len(vertex) < 2
            or not (_is_number(vertex[0]) and _is_number(vertex[1]))
        ):
            raise MalformedGeometryError(f"{label} has an invalid vertex: {vertex!r}")
        vertices.append(list(vertex))
    return vertices


def _projected_hint(geom: Dict, first_vertex: Optional[List[float]]) -> bool:
    if is_web_mercator_reference(geom.get('spatialReference')):
        return True
    if first_vertex is None:
        return False
    return looks_projected(first_vertex[0], first_vertex[1])


def parse_esri_geometry(geom: Optional[Dict]) -> ParsedGeometry:
    """
    Parse ESRI JSON geometry into a normalized WGS84 geometry.

    Geometry type is detected by structure (``x``/``y``, ``paths`` or ``rings``),
    and Web Mercator coordinates are converted to degrees.

    Parameters:
    -----------
    geom : Optional[Dict]
        ESRI geometry dict as returned by the service

    Returns:
    --------
    ParsedGeometry
        Geometry with ``[lon, lat]`` coordinates

    Raises:
    -------
    MalformedGeometryError
        If geometry is missing, of unknown type, has a vertex that is not a
        pair of finite numbers, or has too few vertices: outer ring with fewer
        than 3 distinct vertices, no path with at least 2 vertices, or a point
        without numeric x/y
    """
    if not geom or not isinstance(geom, dict):
        raise MalformedGeometryError("Feature has no geometry")

    if 'x' in geom or 'y' in geom:
        x, y = geom.get('x'), geom.get('y')
        if not (_is_number(x) and _is_number(y)):
            raise MalformedGeometryError(f"Point geometry lacks numeric x/y: {x!r}, {y!r}")
        projected = _projected_hint(geom, [x, y])
        point = normalize_coordinates([[x, y]], projected=projected)[0]
        return ParsedGeometry(kind=GeometryKind.POINT, point=point)

    if 'rings' in geom:
        raw_rings = geom.get('rings') or []
        if not isinstance(raw_rings, (list, tuple)) or not raw_rings or not raw_rings[0]:
            raise MalformedGeometryError("Polygon geometry has no rings")

        raw_rings = [_checked_vertices(ring, 'Ring') for ring in raw_rings]
        projected = _projected_hint(geom, raw_rings[0][0])
        outer = normalize_coordinates(raw_rings[0], projected=projected)
        if _distinct_vertex_count(outer) < MIN_RING_VERTICES:
            raise MalformedGeometryError(
                f"Outer ring has fewer than {MIN_RING_VERTICES} distinct vertices"
            )

        rings = [outer]
        for hole in raw_rings[1:]:
            hole = normalize_coordinates(hole, projected=projected)
            if _distinct_vertex_count(hole) < MIN_RING_VERTICES:
                logger.debug("Dropping degenerate hole ring")
                continue
            rings.append(hole)

        return ParsedGeometry(kind=GeometryKind.POLYGON, rings=rings)

    if 'paths' in geom:
        raw_paths = geom.get('paths') or []
        if not isinstance(raw_paths, (list, tuple)):
            raise MalformedGeometryError("Polyline geometry has no paths")
        raw_paths = [_checked_vertices(p, 'Path') for p in raw_paths if p]
        if not raw_paths:
            raise MalformedGeometryError("Polyline geometry has no paths")

        projected = _projected_hint(geom, raw_paths[0][0])
        paths = [
            normalize_coordinates(p, projected=projected)
            for p in raw_paths
            if len(p) >= MIN_PATH_VERTICES
        ]
        if not paths:
            raise MalformedGeometryError(
                f"Polyline has no path with at least {MIN_PATH_VERTICES} vertices"
            )

        return ParsedGeometry(kind=GeometryKind.POLYLINE, paths=paths)

    raise MalformedGeometryError(f"Unsupported geometry keys: {sorted(geom.keys())}")


def parsed_point_to_geojson(geom: ParsedGeometry, props: Dict) -> Dict:
    """
    Convert a parsed point geometry to a GeoJSON Feature.

    Example:
        >>> geom = parse_esri_geometry({'x': -95.37, 'y': 29.76})
        >>> parsed_point_to_geojson(geom, {'name': 'Houston'})['geometry']
        {'type': 'Point', 'coordinates': [-95.37, 29.76]}
    """
    return {
        'type': 'Feature',
        'geometry': {
            'type': 'Point',
            'coordinates': list(geom.point)
        },
        'properties': props
    }


def parsed_paths_to_geojson(geom: ParsedGeometry, props: Dict) -> Dict:
    """
    Convert parsed paths to a GeoJSON LineString or MultiLineString.

    Single path becomes LineString, multiple paths become MultiLineString.
    """
    if len(geom.paths) == 1:
        coords = geom.paths[0]
        geom_type = 'LineString'
    else:
        coords = geom.paths
        geom_type = 'MultiLineString'

    return {
        'type': 'Feature',
        'geometry': {
            'type': geom_type,
            'coordinates': coords
        },
        'properties': props
    }


def parsed_rings_to_geojson(geom: ParsedGeometry, props: Dict) -> Dict:
    """
    Convert parsed rings to a GeoJSON Polygon.

    The first ring is the exterior, subsequent rings are holes. GeoJSON requires
    closed rings, so the first vertex is repeated where the service omitted it.
    """
    rings = []
    for ring in geom.rings:
        ring = [list(c) for c in ring]
        if ring[0] != ring[-1]:
            ring.append(list(ring[0]))
        rings.append(ring)

    return {
        'type': 'Feature',
        'geometry': {
            'type': 'Polygon',
            'coordinates': rings
        },
        'properties': props
    }


def convert_esri_to_geojson(esri_feature: Dict) -> Optional[Dict]:
    """
    Main converter dispatcher for ESRI JSON to GeoJSON.

    Parameters:
    -----------
    esri_feature : Dict
        ESRI JSON feature with 'geometry' and 'attributes' keys

    Returns:
    --------
    Optional[Dict]
        GeoJSON Feature dict or None if the geometry is missing or malformed
    """
    props = esri_feature.get('attributes') or {}

    try:
        geom = parse_esri_geometry(esri_feature.get('geometry'))
    except MalformedGeometryError as e:
        logger.debug(f"Skipping GeoJSON conversion: {e}")
        return None

    if geom.kind == GeometryKind.POINT:
        return parsed_point_to_geojson(geom, props)
    elif geom.kind == GeometryKind.POLYLINE:
        return parsed_paths_to_geojson(geom, props)
    return parsed_rings_to_geojson(geom, props)


def resolved_features_to_geodataframe(features: Iterable[ResolvedFeature]) -> gpd.GeoDataFrame:
    """
    Convert a ranked feature list to a GeoDataFrame in EPSG:4326.

    Row order follows the ranking. Features whose geometry cannot be converted
    keep their row with an empty geometry so the ranking is not disturbed.

    Parameters:
    -----------
    features : Iterable[ResolvedFeature]
        Ranked output of the resolver

    Returns:
    --------
    gpd.GeoDataFrame
        Columns: layer_name, feature_id, distance_miles, is_containing, the
        mapped properties, and geometry
    """
    records = []
    geometries = []

    for feature in features:
        record = {
            'layer_name': feature.layer_name,
            'feature_id': feature.id,
            'distance_miles': feature.distance_miles,
            'is_containing': feature.is_containing,
        }
        record.update(feature.properties)
        records.append(record)

        geojson_feat = convert_esri_to_geojson({'geometry': feature.geometry})
        geometries.append(shape(geojson_feat['geometry']) if geojson_feat else None)

    if not records:
        return gpd.GeoDataFrame(
            columns=['layer_name', 'feature_id', 'distance_miles', 'is_containing', 'geometry'],
            geometry='geometry',
            crs='EPSG:4326'
        )

    return gpd.GeoDataFrame(records, geometry=geometries, crs='EPSG:4326')
