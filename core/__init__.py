"""
Core modules for the Proximity Resolver.

This package contains the geometry engine, the feature service client and the
resolver that merges containment and proximity results.

Modules:
    models: Data records shared across the resolver
    errors: Error taxonomy
    coordinates: Web Mercator / WGS84 normalization
    geometry_engine: Point-in-polygon, distances and centroids
    radius_policy: Search radius clamping
    schema_mapping: Per-layer attribute mapping
    arcgis_query: Query ArcGIS FeatureServers with pagination
    resolver: Resolve one layer for a point
    layer_processor: Resolve all configured layers
"""

__version__ = '1.0.0'
