"""Shared fixtures for resolver tests."""

import math
from unittest.mock import Mock

import pytest

from config.config_loader import LayerDefinition
from core.geometry_engine import EARTH_RADIUS_MILES

MILES_PER_DEGREE_LAT = math.pi * EARTH_RADIUS_MILES / 180.0


def degrees_north(miles: float) -> float:
    """Latitude offset that lies exactly ``miles`` due north along a meridian."""
    return miles / MILES_PER_DEGREE_LAT


def square_ring(lon: float, lat: float, half_size: float):
    return [
        [lon - half_size, lat - half_size],
        [lon + half_size, lat - half_size],
        [lon + half_size, lat + half_size],
        [lon - half_size, lat + half_size],
        [lon - half_size, lat - half_size],
    ]


def esri_feature(object_id, geometry, **attributes):
    attrs = {'OBJECTID': object_id}
    attrs.update(attributes)
    return {'attributes': attrs, 'geometry': geometry}


def make_query_client(containment_pages=None, proximity_pages=None):
    """
    Mock FeatureServiceClient answering by strategy and page.

    Pages are payload dicts (or exceptions to raise) indexed by request order
    within the strategy; requests past the last page get an empty payload.
    """
    calls = {'containment': 0, 'proximity': 0}
    pages = {'containment': containment_pages or [], 'proximity': proximity_pages or []}

    def query(url, params):
        strategy = 'proximity' if 'distance' in params else 'containment'
        index = calls[strategy]
        calls[strategy] += 1
        if index >= len(pages[strategy]):
            return {'features': []}
        page = pages[strategy][index]
        if isinstance(page, Exception):
            raise page
        return page

    client = Mock()
    client.query.side_effect = query
    client.calls = calls
    return client


@pytest.fixture
def no_delay_settings():
    return {
        'batch_size': 2,
        'page_delay_seconds': 0,
        'max_records': 100_000,
        'pagination_total_timeout': None,
        'detect_id_field': False,
    }


@pytest.fixture
def polygon_layer():
    return LayerDefinition(
        name='Test Neighborhoods',
        url='https://example.com/arcgis/rest/services/Neighborhoods/FeatureServer',
        layer_id=0,
        geometry_type='polygon',
        max_radius_miles=10.0,
        id_field='OBJECTID',
        fields={'name': ['NAME', 'Name']},
    )


@pytest.fixture
def point_layer():
    return LayerDefinition(
        name='Test Transit Centers',
        url='https://example.com/arcgis/rest/services/Transit/FeatureServer',
        layer_id=7,
        geometry_type='point',
        max_radius_miles=25.0,
        id_field='OBJECTID',
    )
