"""
Utility modules for the Proximity Resolver.

Modules:
    logger: Logging configuration and setup
    geometry_converters: ESRI JSON parsing, GeoJSON and GeoDataFrame conversion
"""

__version__ = '1.0.0'
