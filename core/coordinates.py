"""
Coordinate normalization for feature service responses.

Some services ignore ``outSR=4326`` and answer in Web Mercator (EPSG:3857,
ESRI wkid 102100). Values whose magnitude cannot be degrees are treated as
projected meters and transformed back to WGS84 with pyproj.

Functions:
    looks_projected: Decide whether a coordinate pair is Web Mercator meters
    web_mercator_to_wgs84: Convert one Web Mercator pair to (lon, lat)
    wgs84_to_web_mercator: Convert one (lon, lat) pair to Web Mercator
    normalize_coordinates: Normalize a list of [x, y] pairs to WGS84
"""

from typing import List, Optional, Sequence, Tuple

from pyproj import Transformer

WGS84 = 'EPSG:4326'
WEB_MERCATOR = 'EPSG:3857'

# ESRI well-known ids that denote Web Mercator
WEB_MERCATOR_WKIDS = {3857, 102100, 102113, 900913}

_TO_WGS84 = Transformer.from_crs(WEB_MERCATOR, WGS84, always_xy=True)
_TO_MERCATOR = Transformer.from_crs(WGS84, WEB_MERCATOR, always_xy=True)


def looks_projected(x: float, y: float) -> bool:
    """Return True when (x, y) is out of the degree range and must be meters."""
    return abs(x) > 180 or abs(y) > 90


def is_web_mercator_reference(spatial_reference: Optional[dict]) -> bool:
    """Check an ESRI ``spatialReference`` block for a Web Mercator wkid."""
    if not spatial_reference:
        return False
    wkid = spatial_reference.get('latestWkid') or spatial_reference.get('wkid')
    return wkid in WEB_MERCATOR_WKIDS


def web_mercator_to_wgs84(x: float, y: float) -> Tuple[float, float]:
    lon, lat = _TO_WGS84.transform(x, y)
    return lon, lat


def wgs84_to_web_mercator(lon: float, lat: float) -> Tuple[float, float]:
    x, y = _TO_MERCATOR.transform(lon, lat)
    return x, y


def normalize_coordinates(
    coords: Sequence[Sequence[float]],
    projected: Optional[bool] = None
) -> List[List[float]]:
    """
    Normalize a coordinate sequence to WGS84 ``[lon, lat]`` pairs.

    The projection is decided once per sequence from its first vertex (as the
    services never mix systems within one geometry) unless ``projected`` is given.

    Parameters:
    -----------
    coords : Sequence[Sequence[float]]
        ``[x, y]`` pairs, extra ordinates (z, m) are dropped
    projected : Optional[bool]
        Force the decision; None detects it from the first vertex

    Returns:
    --------
    List[List[float]]
        ``[lon, lat]`` pairs in degrees
    """
    if not coords:
        return []

    if projected is None:
        first = coords[0]
        projected = looks_projected(first[0], first[1])

    if not projected:
        return [[float(c[0]), float(c[1])] for c in coords]

    xs = [float(c[0]) for c in coords]
    ys = [float(c[1]) for c in coords]
    lons, lats = _TO_WGS84.transform(xs, ys)
    return [[lon, lat] for lon, lat in zip(lons, lats)]
