"""
Data model for the Proximity Resolver.

All records are created fresh for each resolve call and never shared between
calls. Coordinates inside rings and paths follow the ESRI convention of
``[x, y]`` pairs, i.e. ``[lon, lat]``.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

from core.errors import FeatureServiceError, InvalidInputError
from core.radius_policy import clamp

Coordinate = Sequence[float]
Ring = Sequence[Coordinate]
Path = Sequence[Coordinate]


class GeometryKind(str, Enum):
    POLYGON = 'polygon'
    POLYLINE = 'polyline'
    POINT = 'point'


class Strategy(str, Enum):
    CONTAINMENT = 'containment'
    PROXIMITY = 'proximity'


@dataclass(frozen=True)
class Point:
    """A WGS84 location in decimal degrees."""

    lat: float
    lon: float

    def __post_init__(self):
        if not (isinstance(self.lat, (int, float)) and isinstance(self.lon, (int, float))):
            raise InvalidInputError(f"Point coordinates must be numeric, got ({self.lat!r}, {self.lon!r})")
        if math.isnan(self.lat) or not -90.0 <= self.lat <= 90.0:
            raise InvalidInputError(f"Latitude out of range [-90, 90]: {self.lat}")
        if math.isnan(self.lon) or not -180.0 <= self.lon <= 180.0:
            raise InvalidInputError(f"Longitude out of range [-180, 180]: {self.lon}")

    def to_esri(self) -> Dict:
        return {'x': self.lon, 'y': self.lat, 'spatialReference': {'wkid': 4326}}


@dataclass
class RawFeature:
    """A feature exactly as the service returned it."""

    attributes: Dict[str, Any]
    geometry: Optional[Dict[str, Any]]

    @classmethod
    def from_esri(cls, esri_feature: Dict) -> 'RawFeature':
        return cls(
            attributes=esri_feature.get('attributes') or {},
            geometry=esri_feature.get('geometry') or None
        )


@dataclass
class ParsedGeometry:
    """
    Geometry normalized to WGS84 ``[lon, lat]`` coordinates.

    Exactly one of ``rings``, ``paths`` or ``point`` is populated, matching ``kind``.
    """

    kind: GeometryKind
    rings: List[List[List[float]]] = field(default_factory=list)
    paths: List[List[List[float]]] = field(default_factory=list)
    point: Optional[List[float]] = None


@dataclass
class ResolvedFeature:
    id: Optional[str]
    geometry: Optional[Dict[str, Any]]
    distance_miles: float
    is_containing: bool
    attributes: Dict[str, Any]
    properties: Dict[str, Any] = field(default_factory=dict)
    layer_name: str = ''

    def __post_init__(self):
        if self.is_containing and self.distance_miles != 0:
            raise ValueError("A containing feature must have distance_miles == 0")


@dataclass
class LayerQuery:
    point: Point
    radius_miles: float
    max_radius_miles: float

    @property
    def effective_radius(self) -> float:
        return clamp(self.radius_miles, self.max_radius_miles)

    @property
    def proximity_enabled(self) -> bool:
        return self.effective_radius > 0


@dataclass
class PaginationCursor:
    """Offset state for one paginated query."""

    batch_size: int
    offset: int = 0
    exhausted: bool = False
    page: int = 0

    def __post_init__(self):
        if self.batch_size <= 0:
            raise InvalidInputError(f"batch_size must be positive, got {self.batch_size}")

    def advance(self):
        self.page += 1
        self.offset = self.page * self.batch_size

    def exhaust(self):
        self.exhausted = True


@dataclass
class FetchResult:
    """Features accumulated by a paginated query and why it stopped."""

    features: List[Dict] = field(default_factory=list)
    pages_fetched: int = 0
    stopped_reason: Optional[str] = None
    error: Optional[FeatureServiceError] = None
    pagination_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total_features_fetched(self) -> int:
        return len(self.features)


@dataclass
class StrategyWarning:
    strategy: Strategy
    message: str
    error: Optional[Exception] = None
    # Set when features fetched before the failure were still used
    partial: bool = False


@dataclass
class ResolutionResult:
    """Ranked features for one layer plus any degraded-strategy warnings."""

    layer_name: str
    features: List[ResolvedFeature] = field(default_factory=list)
    warnings: List[StrategyWarning] = field(default_factory=list)
    strategies_attempted: List[Strategy] = field(default_factory=list)
    effective_radius_miles: float = 0.0
    # Unexpected exception that aborted the whole layer
    error: Optional[Exception] = None

    @property
    def failed_strategies(self) -> List[Strategy]:
        return [w.strategy for w in self.warnings if w.error is not None and not w.partial]

    @property
    def failed(self) -> bool:
        """True when the layer aborted or every attempted strategy failed outright."""
        if self.error is not None:
            return True
        if not self.strategies_attempted:
            return False
        return set(self.strategies_attempted) <= set(self.failed_strategies)

    @property
    def containing(self) -> List[ResolvedFeature]:
        return [f for f in self.features if f.is_containing]

    def __iter__(self) -> Iterator[ResolvedFeature]:
        return iter(self.features)

    def __len__(self) -> int:
        return len(self.features)
