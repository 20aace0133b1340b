"""
ArcGIS FeatureServer query module for the Proximity Resolver.

This module builds point queries against ArcGIS FeatureServers, issues them over
HTTP, and pages through results with resultOffset / resultRecordCount. Uses POST
requests to avoid URI length limitations.

Pagination continues while the service signals more data (exceededTransferLimit
or a full page) and stops on an empty page, an error payload, a transport
failure, the record safety ceiling, the total timeout, or cancellation. Features
accumulated before a failure are always returned together with the error.

Classes:
    FeatureServiceClient: Thin requests-based client for query and metadata calls

Functions:
    build_point_query_params: Query parameters for a point intersects query
    fetch_layer_metadata: Get layer metadata including the ObjectID field
    fetch_all_pages: Execute a paginated query and collect all features
"""

import json
import threading
import time
from typing import Callable, Dict, Optional, Tuple

import requests

from core.errors import InvalidInputError, ServiceError, TransportError
from core.geometry_engine import METERS_PER_MILE
from core.models import FetchResult, PaginationCursor, Point
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 2000
DEFAULT_MAX_RECORDS = 100_000
DEFAULT_PAGE_DELAY = 0.1

COMMON_OID_NAMES = ['OBJECTID', 'FID', 'OID', 'objectid', 'fid', 'oid']


class FeatureServiceClient:
    """
    HTTP client for ArcGIS feature service endpoints.

    Returns decoded JSON payloads as-is; an ``error`` member in the payload is
    left for the caller to interpret. Network failures, HTTP error statuses and
    undecodable bodies raise TransportError.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60):
        self.session = session or requests.Session()
        self.session.headers.setdefault('Accept', 'application/json')
        self.timeout = timeout

    def _decode(self, response: requests.Response, url: str) -> Dict:
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(f"Response is not valid JSON: {e}", url=url) from e
        if not isinstance(payload, dict):
            raise TransportError(f"Unexpected JSON payload type: {type(payload).__name__}", url=url)
        return payload

    def query(self, query_url: str, params: Dict) -> Dict:
        """POST a query and return the decoded payload."""
        try:
            response = self.session.post(query_url, data=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise TransportError("Request timed out", url=query_url) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}", url=query_url) from e
        return self._decode(response, query_url)

    def get_json(self, url: str, params: Optional[Dict] = None) -> Dict:
        """GET a JSON resource (layer metadata) and return the decoded payload."""
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise TransportError("Request timed out", url=url) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}", url=url) from e
        return self._decode(response, url)

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


def build_point_query_params(point: Point, distance_miles: Optional[float] = None) -> Dict:
    """
    Build query parameters for a point-geometry intersects query.

    Parameters:
    -----------
    point : Point
        Query location in WGS84
    distance_miles : Optional[float]
        Buffer radius; None or 0 builds a plain containment query

    Returns:
    --------
    Dict
        Form parameters for the /query endpoint (pagination keys are added
        by fetch_all_pages)
    """
    params = {
        'f': 'json',
        'where': '1=1',
        'outFields': '*',
        'geometry': json.dumps(point.to_esri()),
        'geometryType': 'esriGeometryPoint',
        'spatialRel': 'esriSpatialRelIntersects',
        'inSR': '4326',
        'outSR': '4326',
        'returnGeometry': 'true'
    }

    if distance_miles:
        params['distance'] = distance_miles * METERS_PER_MILE
        params['units'] = 'esriSRUnit_Meter'

    return params


def fetch_layer_metadata(
    client: FeatureServiceClient,
    layer_url: str
) -> Tuple[Optional[Dict], Optional[str]]:
    """
    Fetch layer metadata to determine pagination support and ObjectID field.

    Parameters:
    -----------
    client : FeatureServiceClient
        HTTP client
    layer_url : str
        URL of the layer (FeatureServer/<id>)

    Returns:
    --------
    Tuple[Optional[Dict], Optional[str]]
        - metadata dict with keys:
          - supports_pagination: bool
          - max_record_count: int
          - oid_field: str | None (name of ObjectID field)
        - error message if failed, None if successful
    """
    try:
        data = client.get_json(layer_url, params={'f': 'json'})
    except TransportError as e:
        return None, f"Metadata request failed: {e}"

    if data.get('error'):
        return None, f"Layer metadata error: {ServiceError.from_payload(data, url=layer_url)}"

    advanced_caps = data.get('advancedQueryCapabilities') or {}
    supports_pagination = advanced_caps.get('supportsPagination', False)
    max_record_count = data.get('maxRecordCount', 1000)

    # Find ObjectID field (look for esriFieldTypeOID type)
    oid_field = data.get('objectIdField')
    fields = data.get('fields') or []
    if not oid_field:
        for field in fields:
            if field.get('type') == 'esriFieldTypeOID':
                oid_field = field.get('name')
                break

    # Fallback: try common ObjectID field names
    if not oid_field:
        field_names = [f.get('name', '') for f in fields]
        for common_name in COMMON_OID_NAMES:
            if common_name in field_names:
                oid_field = common_name
                break

    return {
        'supports_pagination': supports_pagination,
        'max_record_count': max_record_count,
        'oid_field': oid_field
    }, None


def _wait_between_pages(
    delay: float,
    cancel_event: Optional[threading.Event],
    sleep: Optional[Callable[[float], None]]
):
    if delay <= 0:
        return
    if sleep is not None:
        sleep(delay)
    elif cancel_event is not None:
        cancel_event.wait(delay)
    else:
        time.sleep(delay)


def fetch_all_pages(
    client: FeatureServiceClient,
    query_url: str,
    base_params: Dict,
    batch_size: int = DEFAULT_BATCH_SIZE,
    layer_name: str = 'Layer',
    max_records: int = DEFAULT_MAX_RECORDS,
    page_delay: float = DEFAULT_PAGE_DELAY,
    total_timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], None]] = None
) -> FetchResult:
    """
    Execute a paginated query and collect every feature the service returns.

    Parameters:
    -----------
    client : FeatureServiceClient
        HTTP client
    query_url : str
        Full query URL endpoint
    base_params : Dict
        Base query parameters (geometry, spatial rel, etc.)
    batch_size : int
        Records requested per page (resultRecordCount)
    layer_name : str
        Name of the layer for logging
    max_records : int
        Safety ceiling on total records; pagination stops once reached
    page_delay : float
        Courtesy delay in seconds between pages (0 disables)
    total_timeout : Optional[float]
        Maximum total time for all pages, None for no limit
    cancel_event : Optional[threading.Event]
        Set by the caller to abort the loop before the next page
    sleep : Optional[Callable[[float], None]]
        Replacement for the inter-page wait (tests inject a no-op)

    Returns:
    --------
    FetchResult
        Accumulated features, pages fetched, stop reason and the error that
        ended the loop (None on normal completion)
    """
    if max_records <= 0:
        raise InvalidInputError(f"max_records must be positive, got {max_records}")

    cursor = PaginationCursor(batch_size=batch_size)
    result = FetchResult()
    start_time = time.monotonic()

    while not cursor.exhausted:
        if cancel_event is not None and cancel_event.is_set():
            result.stopped_reason = 'cancelled'
            logger.warning(f"    ⚠ {layer_name}: pagination cancelled after {result.pages_fetched} pages")
            break

        elapsed = time.monotonic() - start_time
        if total_timeout is not None and elapsed >= total_timeout:
            result.stopped_reason = 'timeout'
            logger.warning(
                f"    ⚠ {layer_name}: pagination timeout after {result.pages_fetched} pages "
                f"({elapsed:.1f}s >= {total_timeout}s limit)"
            )
            break

        page_params = dict(base_params)
        page_params['resultOffset'] = cursor.offset
        page_params['resultRecordCount'] = batch_size

        try:
            payload = client.query(query_url, page_params)
        except TransportError as e:
            logger.warning(f"    ⚠ {layer_name}: request error on page {cursor.page + 1}: {e}")
            result.error = e
            result.stopped_reason = 'error'
            break

        if payload.get('error'):
            error = ServiceError.from_payload(payload, url=query_url)
            logger.warning(f"    ⚠ {layer_name}: service error on page {cursor.page + 1}: {error}")
            result.error = error
            result.stopped_reason = 'error'
            break

        result.pages_fetched += 1
        page_features = payload.get('features') or []

        if not page_features:
            logger.debug(f"    - Page {cursor.page + 1}: no features (complete)")
            break

        result.features.extend(page_features)
        more_available = (
            payload.get('exceededTransferLimit') is True
            or len(page_features) == batch_size
        )

        if len(result.features) > max_records:
            del result.features[max_records:]
            more_available = True

        if more_available and len(result.features) >= max_records:
            result.stopped_reason = 'max_records'
            logger.warning(
                f"    ⚠ {layer_name}: safety limit of {max_records:,} records reached. "
                f"Additional features may exist."
            )
            break

        if not more_available:
            logger.info(f"    - Page {cursor.page + 1}: {len(page_features)} features (complete)")
            break

        logger.info(f"    - Page {cursor.page + 1}: {len(page_features)} features (more available)")
        cursor.advance()
        _wait_between_pages(page_delay, cancel_event, sleep)

    cursor.exhaust()
    result.pagination_time = time.monotonic() - start_time

    return result
