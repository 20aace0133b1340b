"""
Containment and proximity resolution for one feature service layer.

Two query strategies run one after the other against the same service:

1. Containment: a point intersects query without a buffer. Polygon results are
   re-verified locally with ray casting; the local answer wins over the
   service's spatial filter.
2. Proximity: the same query buffered by the effective radius, paginated.
   True distances are computed locally per geometry kind and features beyond
   the radius are dropped.

A feature returned by both strategies is kept once, as its containment record.
The merged list is ranked containing-first, then by ascending distance. A
failure in one strategy is recorded as a warning and never prevents the other
from running.

Classes:
    ContainmentProximityResolver: Resolve one layer for a point

Functions:
    merge_and_rank: Deduplicate and order containment and proximity records
    rank_features: Containing first, then ascending distance
    resolve: One-shot helper building a resolver and resolving a point
"""

import math
import threading
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from config.config_loader import RESOLVER_DEFAULTS, LayerDefinition
from core.arcgis_query import FeatureServiceClient, build_point_query_params, fetch_all_pages, fetch_layer_metadata
from core.errors import InvalidInputError, MalformedGeometryError
from core.geometry_engine import (
    distance_point_to_polygon,
    distance_to_geometry,
    haversine_distance,
    point_in_polygon,
    ring_centroid,
)
from core.models import (
    FetchResult,
    GeometryKind,
    LayerQuery,
    ParsedGeometry,
    Point,
    RawFeature,
    ResolutionResult,
    ResolvedFeature,
    Strategy,
    StrategyWarning,
)
from core.schema_mapping import extract_feature_id, map_attributes
from utils.geometry_converters import parse_esri_geometry
from utils.logger import get_logger

logger = get_logger(__name__)

INCOMPLETE_REASONS = ('max_records', 'timeout', 'cancelled')


def rank_features(features: Iterable[ResolvedFeature]) -> List[ResolvedFeature]:
    """Sort containing features first, then by ascending distance (stable)."""
    return sorted(features, key=lambda f: (0 if f.is_containing else 1, f.distance_miles))


def merge_and_rank(
    containing: Iterable[ResolvedFeature],
    nearby: Iterable[ResolvedFeature]
) -> List[ResolvedFeature]:
    """
    Merge containment and proximity records into one ranked list.

    Every id appears once. Containment records are taken first so a feature
    found by both strategies keeps its containment record. Features without an
    id are never treated as duplicates of each other.

    Parameters:
    -----------
    containing : Iterable[ResolvedFeature]
        Records accepted by the containment strategy
    nearby : Iterable[ResolvedFeature]
        Records accepted by the proximity strategy

    Returns:
    --------
    List[ResolvedFeature]
        Deduplicated, ranked features
    """
    seen: Set[str] = set()
    merged = []

    for feature in list(containing) + list(nearby):
        if feature.id is not None:
            if feature.id in seen:
                continue
            seen.add(feature.id)
        merged.append(feature)

    return rank_features(merged)


class ContainmentProximityResolver:
    """
    Resolve which features of one layer contain or lie near a point.

    Parameters:
    -----------
    client : FeatureServiceClient
        Client used for every request this resolver makes
    layer : LayerDefinition
        Layer to query
    settings : Optional[Dict]
        Resolver settings (see config_loader.load_resolver_settings); missing
        keys fall back to defaults
    sleep : Optional[Callable[[float], None]]
        Inter-page wait replacement, passed through to the fetcher

    Example:
        >>> resolver = ContainmentProximityResolver(FeatureServiceClient(), layer)
        >>> result = resolver.resolve(Point(lat=29.76, lon=-95.37), radius_miles=5)
        >>> [f.distance_miles for f in result]
        [0.0, 1.8, 4.2]
    """

    def __init__(
        self,
        client: FeatureServiceClient,
        layer: LayerDefinition,
        settings: Optional[Dict] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        self.client = client
        self.layer = layer
        self.settings = {**RESOLVER_DEFAULTS, **(settings or {})}
        self.sleep = sleep
        self._id_field: Optional[str] = layer.id_field

    @property
    def id_field(self) -> str:
        """Dedup field: configured, else read from layer metadata, else the default."""
        if self._id_field:
            return self._id_field

        id_field = None
        if self.settings['detect_id_field']:
            metadata, error = fetch_layer_metadata(self.client, self.layer.layer_url)
            if error:
                logger.warning(f"    ⚠ {self.layer.name}: could not fetch layer metadata: {error}")
            elif metadata:
                id_field = metadata.get('oid_field')

        self._id_field = id_field or self.settings['default_id_field']
        logger.debug(f"{self.layer.name}: deduplicating on '{self._id_field}'")
        return self._id_field

    def resolve(
        self,
        point: Point,
        radius_miles: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> ResolutionResult:
        """
        Resolve the layer for a point.

        Parameters:
        -----------
        point : Point
            Query location in WGS84
        radius_miles : Optional[float]
            Requested search radius; clamped to the layer maximum. None or 0
            disables the proximity query only.
        cancel_event : Optional[threading.Event]
            Set to abort pagination early; features fetched so far are kept

        Returns:
        --------
        ResolutionResult
            Ranked features plus a warning for every failed or truncated strategy

        Raises:
        -------
        InvalidInputError
            If point is not a Point or the radius is NaN
        """
        if not isinstance(point, Point):
            raise InvalidInputError(f"point must be a Point, got {type(point).__name__}")

        query = LayerQuery(
            point=point,
            radius_miles=0.0 if radius_miles is None else radius_miles,
            max_radius_miles=self.layer.max_radius_miles
        )
        effective_radius = query.effective_radius

        result = ResolutionResult(layer_name=self.layer.name, effective_radius_miles=effective_radius)
        containing: List[ResolvedFeature] = []
        nearby: List[ResolvedFeature] = []
        seen_ids: Set[str] = set()

        logger.info(
            f"  Resolving {self.layer.name} at [{point.lat}, {point.lon}] "
            f"(radius {effective_radius:g} mi)"
        )

        if self.layer.supports_containment:
            result.strategies_attempted.append(Strategy.CONTAINMENT)
            fetch = self._fetch(Strategy.CONTAINMENT, point, None, cancel_event)
            self._record_fetch_outcome(result, Strategy.CONTAINMENT, fetch)

            for esri_feature in fetch.features:
                feature = self._containment_record(esri_feature, point)
                if feature is None:
                    continue
                if feature.id is not None:
                    if feature.id in seen_ids:
                        continue
                    seen_ids.add(feature.id)
                containing.append(feature)

            logger.info(f"    - {len(containing)} feature(s) contain the point")

        if query.proximity_enabled:
            result.strategies_attempted.append(Strategy.PROXIMITY)
            fetch = self._fetch(Strategy.PROXIMITY, point, effective_radius, cancel_event)
            self._record_fetch_outcome(result, Strategy.PROXIMITY, fetch)

            for esri_feature in fetch.features:
                feature = self._proximity_record(esri_feature, point, effective_radius, seen_ids)
                if feature is None:
                    continue
                if feature.id is not None:
                    seen_ids.add(feature.id)
                nearby.append(feature)

            logger.info(f"    - {len(nearby)} additional feature(s) within {effective_radius:g} mi")

        result.features = merge_and_rank(containing, nearby)

        if result.failed:
            logger.warning(f"    ✗ {self.layer.name}: all query strategies failed")
        else:
            logger.info(f"    ✓ Found {len(result.features)} feature(s)")

        return result

    def _fetch(
        self,
        strategy: Strategy,
        point: Point,
        radius_miles: Optional[float],
        cancel_event: Optional[threading.Event]
    ) -> FetchResult:
        logger.info(f"    - {strategy.value.capitalize()} query")
        return fetch_all_pages(
            self.client,
            self.layer.query_url,
            build_point_query_params(point, radius_miles),
            batch_size=self.settings['batch_size'],
            layer_name=self.layer.name,
            max_records=self.settings['max_records'],
            page_delay=self.settings['page_delay_seconds'],
            total_timeout=self.settings['pagination_total_timeout'],
            cancel_event=cancel_event,
            sleep=self.sleep
        )

    def _record_fetch_outcome(self, result: ResolutionResult, strategy: Strategy, fetch: FetchResult):
        if fetch.error is not None:
            partial = bool(fetch.features)
            message = f"{strategy.value} query failed: {fetch.error}"
            if partial:
                message += f" (keeping {len(fetch.features)} features fetched before the failure)"
            logger.warning(f"    ⚠ {self.layer.name}: {message}")
            result.warnings.append(StrategyWarning(strategy, message, fetch.error, partial=partial))
        elif fetch.stopped_reason in INCOMPLETE_REASONS:
            message = f"{strategy.value} results may be incomplete ({fetch.stopped_reason})"
            logger.warning(f"    ⚠ {self.layer.name}: {message}")
            result.warnings.append(StrategyWarning(strategy, message, partial=True))

    def _build_record(
        self,
        raw: RawFeature,
        feature_id: Optional[str],
        distance_miles: float,
        is_containing: bool
    ) -> ResolvedFeature:
        return ResolvedFeature(
            id=feature_id,
            geometry=raw.geometry,
            distance_miles=distance_miles,
            is_containing=is_containing,
            attributes=raw.attributes,
            properties=map_attributes(raw.attributes, self.layer.fields),
            layer_name=self.layer.name
        )

    def _parse(self, raw: RawFeature, feature_id: Optional[str]) -> Optional[ParsedGeometry]:
        try:
            return parse_esri_geometry(raw.geometry)
        except MalformedGeometryError as e:
            logger.debug(f"{self.layer.name}: skipping feature {feature_id}: {e}")
            return None

    def _containment_record(self, esri_feature: Dict, point: Point) -> Optional[ResolvedFeature]:
        raw = RawFeature.from_esri(esri_feature)
        feature_id = extract_feature_id(raw.attributes, self.id_field)

        geometry = self._parse(raw, feature_id)
        if geometry is None or geometry.kind != GeometryKind.POLYGON:
            return None

        # The service filter may be approximate; only local ray casting decides
        if not point_in_polygon(point, geometry.rings):
            logger.debug(f"{self.layer.name}: feature {feature_id} rejected by local containment check")
            return None

        return self._build_record(raw, feature_id, 0.0, True)

    def _measure(self, point: Point, geometry: ParsedGeometry) -> Tuple[float, bool]:
        """Return (distance_miles, is_containing) for a parsed geometry."""
        if geometry.kind != GeometryKind.POLYGON:
            return distance_to_geometry(point, geometry), False

        if point_in_polygon(point, geometry.rings):
            return 0.0, True

        if self.layer.polygon_distance == 'centroid':
            return haversine_distance(point, ring_centroid(geometry.rings[0])), False

        return distance_point_to_polygon(point, geometry.rings), False

    def _proximity_record(
        self,
        esri_feature: Dict,
        point: Point,
        radius_miles: float,
        seen_ids: Set[str]
    ) -> Optional[ResolvedFeature]:
        raw = RawFeature.from_esri(esri_feature)
        feature_id = extract_feature_id(raw.attributes, self.id_field)

        if feature_id is not None and feature_id in seen_ids:
            return None

        geometry = self._parse(raw, feature_id)
        if geometry is None:
            return None

        distance, is_containing = self._measure(point, geometry)
        if math.isinf(distance) or distance > radius_miles:
            return None

        return self._build_record(raw, feature_id, distance, is_containing)


def resolve(
    point: Point,
    radius_miles: Optional[float],
    layer: LayerDefinition,
    client: Optional[FeatureServiceClient] = None,
    settings: Optional[Dict] = None,
    cancel_event: Optional[threading.Event] = None
) -> ResolutionResult:
    """
    Resolve one layer for a point with a fresh resolver.

    A client is created (and closed afterwards) when none is supplied.
    """
    if client is not None:
        return ContainmentProximityResolver(client, layer, settings).resolve(point, radius_miles, cancel_event)

    timeout = (settings or {}).get('request_timeout', RESOLVER_DEFAULTS['request_timeout'])
    with FeatureServiceClient(timeout=timeout) as own_client:
        return ContainmentProximityResolver(own_client, layer, settings).resolve(point, radius_miles, cancel_event)
