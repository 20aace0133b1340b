#!/usr/bin/env python
"""
Proximity Resolver
==================
Resolve which features of configured ArcGIS FeatureServer layers contain or lie
near a point, ranked containing-first and then by distance.

Usage:
    python proximity_resolver.py LAT LON [RADIUS_MILES]
"""

import sys
import time
from typing import Dict, Iterable, Optional

from config.config_loader import load_config
from core.layer_processor import process_all_layers
from core.models import Point, ResolutionResult
from utils.logger import setup_logging, get_logger


def main(
    lat: float,
    lon: float,
    radius_miles: Optional[float] = None,
    layer_names: Optional[Iterable[str]] = None
) -> Optional[Dict[str, ResolutionResult]]:
    """
    Main execution workflow for the Proximity Resolver.

    Workflow Steps:
    1. Setup logging to console and file
    2. Load configuration
    3. Resolve every enabled layer for the point
    4. Log the ranked features per layer

    Parameters:
    -----------
    lat, lon : float
        Query location in WGS84 degrees
    radius_miles : Optional[float]
        Requested proximity radius (clamped per layer)
    layer_names : Optional[Iterable[str]]
        Only resolve these layers

    Returns:
    --------
    Optional[Dict[str, ResolutionResult]]
        Results per layer, or None if the workflow failed

    Example:
        >>> results = main(29.76, -95.37, 5)
        >>> results['Houston Neighborhoods 2021'].features[0].is_containing
        True
    """
    workflow_start_time = time.time()

    log_file = setup_logging()
    logger = get_logger(__name__)

    logger.info("=" * 80)
    logger.info("PROXIMITY RESOLVER - Containment & Proximity Lookup")
    logger.info("=" * 80)
    logger.info(f"Log file: {log_file}")
    logger.info("")

    try:
        point = Point(lat=lat, lon=lon)
        config = load_config()
        logger.info(f"Configuration loaded: {len(config['layers'])} layers defined")
        logger.info("")

        results, _ = process_all_layers(point, radius_miles, config, layer_names=layer_names)

        for layer_name, result in results.items():
            if not result.features:
                continue
            logger.info(f"{layer_name}:")
            for feature in result.features:
                label = 'contains point' if feature.is_containing else f"{feature.distance_miles:.2f} mi"
                name = next((v for v in feature.properties.values() if v is not None), feature.id)
                logger.info(f"  - {name} ({label})")

        elapsed_time = time.time() - workflow_start_time
        logger.info("")
        logger.info("✓ WORKFLOW COMPLETE")
        logger.info(f"✓ Total execution time: {elapsed_time:.2f} seconds")

        return results

    except Exception as e:
        elapsed_time = time.time() - workflow_start_time

        logger.error("")
        logger.error("=" * 80)
        logger.error("✗ WORKFLOW FAILED")
        logger.error("=" * 80)
        logger.error(f"Error: {str(e)}", exc_info=True)
        logger.error(f"Workflow failed after {elapsed_time:.2f} seconds")
        logger.error(f"See log file for details: {log_file}")
        return None


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(2)

    radius = float(sys.argv[3]) if len(sys.argv) > 3 else None
    outcome = main(float(sys.argv[1]), float(sys.argv[2]), radius)
    sys.exit(0 if outcome is not None else 1)
