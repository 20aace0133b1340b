"""
Layer processing module for the Proximity Resolver.

This module fans a single point lookup out over every configured layer. Each
layer is resolved by its own resolver call in a worker thread; calls share no
mutable state, so results are simply collected. A shared cancel event lets the
caller abort every in-flight pagination loop.

Functions:
    process_all_layers: Resolve all configured layers and return results
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, Optional, Tuple

from config.config_loader import LayerDefinition, load_layer_definitions, load_resolver_settings
from core.arcgis_query import FeatureServiceClient
from core.errors import InvalidInputError
from core.models import Point, ResolutionResult
from core.resolver import ContainmentProximityResolver
from utils.logger import get_logger

logger = get_logger(__name__)


def _resolve_layer(
    layer: LayerDefinition,
    point: Point,
    radius_miles: Optional[float],
    settings: Dict,
    client: Optional[FeatureServiceClient],
    cancel_event: Optional[threading.Event]
) -> Tuple[ResolutionResult, float]:
    start_time = time.monotonic()

    try:
        if client is not None:
            result = ContainmentProximityResolver(client, layer, settings).resolve(point, radius_miles, cancel_event)
        else:
            # requests.Session is not shared across threads; one client per layer
            with FeatureServiceClient(timeout=settings['request_timeout']) as own_client:
                result = ContainmentProximityResolver(own_client, layer, settings).resolve(
                    point, radius_miles, cancel_event
                )
    except InvalidInputError:
        raise
    except Exception as e:
        logger.error(f"  ✗ {layer.name}: unexpected error: {e}", exc_info=True)
        result = ResolutionResult(layer_name=layer.name, error=e)

    return result, time.monotonic() - start_time


def _worker_count(settings: Dict, layer_count: int, shared_client: bool) -> int:
    """Threads to use; a caller-supplied client is used from one thread only."""
    if shared_client:
        return 1
    return max(1, min(settings['max_workers'], layer_count))


def process_all_layers(
    point: Point,
    radius_miles: Optional[float],
    config: Dict,
    client: Optional[FeatureServiceClient] = None,
    layer_names: Optional[Iterable[str]] = None,
    cancel_event: Optional[threading.Event] = None
) -> Tuple[Dict[str, ResolutionResult], Dict[str, Dict]]:
    """
    Resolve all configured feature service layers for a point.

    Parameters:
    -----------
    point : Point
        Query location
    radius_miles : Optional[float]
        Requested radius; each layer clamps it to its own maximum
    config : Dict
        Configuration dictionary with layer definitions
    client : Optional[FeatureServiceClient]
        Client shared by all layers, which are then resolved one at a time;
        when None each layer gets its own client and layers run in parallel
    layer_names : Optional[Iterable[str]]
        Restrict processing to these layer names
    cancel_event : Optional[threading.Event]
        Set to stop pagination in every layer

    Returns:
    --------
    Tuple[Dict[str, ResolutionResult], Dict[str, Dict]]
        - Dictionary of layer results (layer name -> ResolutionResult)
        - Dictionary of metadata (layer name -> summary dict)

    Example:
        >>> results, metadata = process_all_layers(Point(29.76, -95.37), 5, config)
        >>> metadata['Houston Neighborhoods 2021']['containing_count']
        1
    """
    logger.info("=" * 80)
    logger.info("Resolving ArcGIS FeatureServer layers")
    logger.info("=" * 80)

    settings = load_resolver_settings(config)
    layers = load_layer_definitions(config)

    if layer_names is not None:
        wanted = set(layer_names)
        unknown = wanted - {layer.name for layer in layers}
        if unknown:
            logger.warning(f"Unknown layer name(s) ignored: {', '.join(sorted(unknown))}")
        layers = [layer for layer in layers if layer.name in wanted]

    layers_to_process = []
    for layer in layers:
        if not layer.enabled:
            logger.info(f"Skipping {layer.name} (disabled)")
            continue
        layers_to_process.append(layer)

    results: Dict[str, ResolutionResult] = {}
    metadata: Dict[str, Dict] = {}

    if not layers_to_process:
        logger.warning("No enabled layers to process")
        return results, metadata

    max_workers = _worker_count(settings, len(layers_to_process), client is not None)
    logger.info(f"Processing {len(layers_to_process)} layer(s) with {max_workers} worker(s)")

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(_resolve_layer, layer, point, radius_miles, settings, client, cancel_event): layer
            for layer in layers_to_process
        }

        for future in as_completed(futures):
            layer = futures[future]
            result, elapsed = future.result()
            results[layer.name] = result
            metadata[layer.name] = {
                'layer_name': layer.name,
                'feature_count': len(result),
                'containing_count': len(result.containing),
                'effective_radius_miles': result.effective_radius_miles,
                'strategies': [s.value for s in result.strategies_attempted],
                'warnings': [w.message for w in result.warnings],
                'failed': result.failed,
                'error': str(result.error) if result.error is not None else None,
                'query_time': elapsed,
            }

    # Keep configuration order in the returned mappings
    order = [layer.name for layer in layers_to_process]
    results = {name: results[name] for name in order}
    metadata = {name: metadata[name] for name in order}

    logger.info("=" * 80)
    logger.info("Query Summary")
    logger.info("=" * 80)
    total_features = sum(m['feature_count'] for m in metadata.values())
    layers_with_data = sum(1 for m in metadata.values() if m['feature_count'] > 0)
    logger.info(f"Total layers queried: {len(metadata)}")
    logger.info(f"Layers with results: {layers_with_data}")
    logger.info(f"Total features found: {total_features}")

    failed_layers = [name for name, m in metadata.items() if m['failed']]
    degraded_layers = [name for name, m in metadata.items() if m['warnings'] and not m['failed']]

    if failed_layers:
        logger.warning(f"⚠ FAILED: {len(failed_layers)} layer(s) returned no usable response")
        for name in failed_layers:
            error = metadata[name]['error']
            logger.warning(f"  - {name}: {error}" if error else f"  - {name}")

    if degraded_layers:
        logger.warning(f"⚠ PARTIAL RESULTS: {len(degraded_layers)} layer(s) may have missing features")
        for name in degraded_layers:
            for message in metadata[name]['warnings']:
                logger.warning(f"  - {name}: {message}")

    logger.info("")

    return results, metadata
