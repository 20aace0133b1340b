"""
Configuration loading for the Proximity Resolver.

This module handles loading and validation of the layer configuration JSON file.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    DEFAULT_CONFIG_PATH: Bundled layer configuration

Classes:
    LayerDefinition: Typed record for one configured feature service layer

Functions:
    load_config: Load and validate layer configuration from JSON
    load_resolver_settings: Resolver settings merged over defaults
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from core.radius_policy import validate_max_radius

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'
DEFAULT_CONFIG_PATH = CONFIG_DIR / 'layers_config.json'

REQUIRED_LAYER_KEYS = ('name', 'url', 'geometry_type', 'max_radius_miles')
GEOMETRY_TYPES = ('polygon', 'line', 'point')
POLYGON_DISTANCE_MODES = ('edge', 'centroid')

RESOLVER_DEFAULTS = {
    'batch_size': 2000,
    'page_delay_seconds': 0.1,
    'max_records': 100_000,
    'request_timeout': 60,
    'pagination_total_timeout': 300.0,
    'max_workers': 4,
    'detect_id_field': True,
    'default_id_field': 'OBJECTID',
}


@dataclass
class LayerDefinition:
    """
    One feature service layer the resolver can query.

    Attributes:
        name: Display name used in logs and results
        url: FeatureServer/MapServer base URL
        layer_id: Layer index appended to the URL, or None if the URL already
            points at the layer
        geometry_type: 'polygon', 'line' or 'point'
        max_radius_miles: Largest proximity radius allowed for this layer
        id_field: Attribute used for deduplication; None means detect it
        fields: Output property -> candidate attribute names
        polygon_distance: 'edge' (accurate) or 'centroid' (cheap proxy)
        enabled: Disabled layers are skipped by the layer processor
    """

    name: str
    url: str
    geometry_type: str
    max_radius_miles: float
    layer_id: Optional[int] = None
    id_field: Optional[str] = None
    fields: Dict[str, Union[str, List[str]]] = field(default_factory=dict)
    polygon_distance: str = 'edge'
    enabled: bool = True

    def __post_init__(self):
        if self.geometry_type not in GEOMETRY_TYPES:
            raise ValueError(
                f"Layer '{self.name}': geometry_type must be one of {GEOMETRY_TYPES}, "
                f"got '{self.geometry_type}'"
            )
        if self.polygon_distance not in POLYGON_DISTANCE_MODES:
            raise ValueError(
                f"Layer '{self.name}': polygon_distance must be one of {POLYGON_DISTANCE_MODES}"
            )
        self.max_radius_miles = validate_max_radius(self.max_radius_miles)

    @property
    def layer_url(self) -> str:
        base = self.url.rstrip('/')
        if self.layer_id is None:
            return base
        return f"{base}/{self.layer_id}"

    @property
    def query_url(self) -> str:
        return f"{self.layer_url}/query"

    @property
    def supports_containment(self) -> bool:
        return self.geometry_type == 'polygon'

    @classmethod
    def from_config(cls, layer_config: Dict) -> 'LayerDefinition':
        """
        Build a LayerDefinition from one entry of the 'layers' list.

        Raises:
        -------
        KeyError
            If a required key is missing
        ValueError
            If a value is out of its allowed set
        """
        missing = [k for k in REQUIRED_LAYER_KEYS if k not in layer_config]
        if missing:
            name = layer_config.get('name', '<unnamed>')
            raise KeyError(f"Layer '{name}' missing required key(s): {', '.join(missing)}")

        return cls(
            name=layer_config['name'],
            url=layer_config['url'],
            geometry_type=layer_config['geometry_type'],
            max_radius_miles=float(layer_config['max_radius_miles']),
            layer_id=layer_config.get('layer_id'),
            id_field=layer_config.get('id_field'),
            fields=layer_config.get('fields', {}),
            polygon_distance=layer_config.get('polygon_distance', 'edge'),
            enabled=layer_config.get('enabled', True),
        )


def load_config(config_path: Optional[Path] = None) -> Dict:
    """
    Load layer configuration from JSON file.

    Reads the layers_config.json file and validates basic structure.

    Parameters:
    -----------
    config_path : Optional[Path]
        Configuration file to read (default: config/layers_config.json)

    Returns:
    --------
    Dict
        Configuration dictionary with 'layers' and 'settings' keys

    Raises:
    -------
    FileNotFoundError
        If configuration file doesn't exist
    json.JSONDecodeError
        If configuration file contains invalid JSON
    KeyError
        If required configuration keys are missing
    """
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    # Validate required keys
    if 'layers' not in config:
        raise KeyError("Configuration missing required 'layers' key")
    if 'settings' not in config:
        raise KeyError("Configuration missing required 'settings' key")

    # Fail early on a bad layer rather than mid-run
    for layer_config in config['layers']:
        LayerDefinition.from_config(layer_config)

    return config


def load_layer_definitions(config: Dict) -> List[LayerDefinition]:
    """Build typed layer definitions for every configured layer, in order."""
    return [LayerDefinition.from_config(layer) for layer in config['layers']]


def load_resolver_settings(config: Dict = None) -> Dict:
    """
    Load resolver settings from configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        Dictionary with resolver settings

    Defaults:
        - batch_size: 2000 (records per page)
        - page_delay_seconds: 0.1 (courtesy delay between pages)
        - max_records: 100000 (pagination safety ceiling)
        - request_timeout: 60 (seconds per request)
        - pagination_total_timeout: 300.0 (seconds per paginated query)
        - max_workers: 4 (layers resolved in parallel)
        - detect_id_field: True (read the OID field from layer metadata)
        - default_id_field: 'OBJECTID'

    Note:
        Returns defaults if the 'resolver_settings' section is missing.
    """
    if config is None:
        config = load_config()

    resolver_settings = config.get('resolver_settings', {})

    # Config values override defaults
    return {**RESOLVER_DEFAULTS, **resolver_settings}
