"""Unit tests for fanning a point lookup out over configured layers."""

import threading
from unittest.mock import MagicMock, Mock

from core.layer_processor import _worker_count, process_all_layers
from core.models import Point

from tests.conftest import degrees_north, esri_feature, square_ring

HOUSTON = Point(lat=29.76, lon=-95.37)

NEIGHBORHOODS_URL = 'https://example.com/arcgis/rest/services/Neighborhoods/FeatureServer'
TRANSIT_URL = 'https://example.com/arcgis/rest/services/Transit/FeatureServer'
ROADS_URL = 'https://example.com/arcgis/rest/services/Roads/FeatureServer'


def make_config(**overrides):
    config = {
        'settings': {'title': 'Test'},
        'resolver_settings': {
            'batch_size': 100,
            'page_delay_seconds': 0,
            'pagination_total_timeout': None,
            'max_workers': 1,
            'detect_id_field': False,
        },
        'layers': [
            {
                'name': 'Neighborhoods',
                'url': NEIGHBORHOODS_URL,
                'layer_id': 0,
                'geometry_type': 'polygon',
                'max_radius_miles': 10,
                'fields': {'name': 'NAME'},
            },
            {
                'name': 'Transit Centers',
                'url': TRANSIT_URL,
                'layer_id': 7,
                'geometry_type': 'point',
                'max_radius_miles': 25,
            },
            {
                'name': 'Roads',
                'url': ROADS_URL,
                'layer_id': 18,
                'geometry_type': 'line',
                'max_radius_miles': 10,
                'enabled': False,
            },
        ],
    }
    config.update(overrides)
    return config


def routing_client():
    """Client answering by layer URL; unknown layers fail with a service error."""
    containing = {'rings': [square_ring(HOUSTON.lon, HOUSTON.lat, 0.01)]}
    near_stop = {'x': HOUSTON.lon, 'y': HOUSTON.lat + degrees_north(3.0)}

    def query(url, params):
        if url.startswith(f'{NEIGHBORHOODS_URL}/0'):
            return {'features': [esri_feature(1, containing, NAME='Downtown')]}
        if url.startswith(f'{TRANSIT_URL}/7'):
            return {'features': [esri_feature(10, near_stop)]}
        return {'error': {'code': 400, 'message': 'Invalid URL'}}

    client = Mock()
    client.query.side_effect = query
    return client


def test_all_enabled_layers_are_resolved_in_config_order():
    results, metadata = process_all_layers(HOUSTON, 5, make_config(), client=routing_client())

    assert list(results) == ['Neighborhoods', 'Transit Centers']
    assert list(metadata) == ['Neighborhoods', 'Transit Centers']
    assert results['Neighborhoods'].features[0].is_containing is True
    assert results['Transit Centers'].features[0].distance_miles > 0


def test_metadata_summarizes_each_layer():
    _, metadata = process_all_layers(HOUSTON, 5, make_config(), client=routing_client())

    neighborhoods = metadata['Neighborhoods']
    assert neighborhoods['feature_count'] == 1
    assert neighborhoods['containing_count'] == 1
    assert neighborhoods['effective_radius_miles'] == 5
    assert neighborhoods['strategies'] == ['containment', 'proximity']
    assert neighborhoods['failed'] is False
    assert neighborhoods['query_time'] >= 0

    assert metadata['Transit Centers']['strategies'] == ['proximity']


def test_disabled_layers_are_skipped():
    client = routing_client()
    results, _ = process_all_layers(HOUSTON, 5, make_config(), client=client)

    assert 'Roads' not in results
    assert not any(c.args[0].startswith(ROADS_URL) for c in client.query.call_args_list)


def test_layer_names_filter_and_unknown_names():
    results, _ = process_all_layers(
        HOUSTON, 5, make_config(), client=routing_client(),
        layer_names=['Transit Centers', 'Does Not Exist']
    )
    assert list(results) == ['Transit Centers']


def test_failing_layer_does_not_affect_others():
    config = make_config()
    config['layers'][2]['enabled'] = True

    results, metadata = process_all_layers(HOUSTON, 5, config, client=routing_client())

    assert metadata['Roads']['failed'] is True
    assert results['Roads'].features == []
    assert metadata['Roads']['warnings']
    assert len(results['Neighborhoods']) == 1


def test_parallel_workers_use_one_client_per_layer(monkeypatch):
    created = []

    def client_factory(**kwargs):
        wrapper = MagicMock()
        wrapper.__enter__.return_value = routing_client()
        created.append(wrapper)
        return wrapper

    monkeypatch.setattr('core.layer_processor.FeatureServiceClient', client_factory)
    config = make_config()
    config['resolver_settings']['max_workers'] = 4

    results, _ = process_all_layers(HOUSTON, 5, config)

    assert len(created) == 2
    assert all(wrapper.__exit__.called for wrapper in created)
    assert list(results) == ['Neighborhoods', 'Transit Centers']
    assert [f.id for f in results['Transit Centers']] == ['10']


def test_no_enabled_layers_returns_empty():
    config = make_config()
    for layer in config['layers']:
        layer['enabled'] = False

    assert process_all_layers(HOUSTON, 5, config, client=Mock()) == ({}, {})


def test_cancel_event_is_shared_by_all_layers():
    cancel = threading.Event()
    cancel.set()
    client = routing_client()

    results, _ = process_all_layers(HOUSTON, 5, make_config(), client=client, cancel_event=cancel)

    client.query.assert_not_called()
    assert all(len(result) == 0 for result in results.values())


def test_shared_client_is_used_from_a_single_worker():
    assert _worker_count({'max_workers': 4}, 3, shared_client=True) == 1
    assert _worker_count({'max_workers': 4}, 3, shared_client=False) == 3
    assert _worker_count({'max_workers': 0}, 3, shared_client=False) == 1


def test_bad_vertices_in_one_layer_do_not_abort_others():
    config = make_config()
    config['layers'][2]['enabled'] = True
    client = routing_client()
    route = client.query.side_effect
    stop = {'x': HOUSTON.lon, 'y': HOUSTON.lat + degrees_north(1.0)}

    def query(url, params):
        if url.startswith(f'{ROADS_URL}/18'):
            return {'features': [
                esri_feature(1, {'paths': [[['a', 'b'], [1, 2]]]}),
                esri_feature(2, {'paths': [[[HOUSTON.lon - 0.1, stop['y']], [HOUSTON.lon + 0.1, stop['y']]]]}),
            ]}
        return route(url, params)

    client.query.side_effect = query

    results, metadata = process_all_layers(HOUSTON, 5, config, client=client)

    assert [f.id for f in results['Roads']] == ['2']
    assert metadata['Roads']['failed'] is False
    assert [f.id for f in results['Transit Centers']] == ['10']


def test_unexpected_layer_error_is_isolated():
    config = make_config()
    config['layers'][2]['enabled'] = True
    client = routing_client()
    route = client.query.side_effect

    def query(url, params):
        if url.startswith(f'{ROADS_URL}/18'):
            raise RuntimeError('decoder exploded')
        return route(url, params)

    client.query.side_effect = query

    results, metadata = process_all_layers(HOUSTON, 5, config, client=client)

    assert results['Roads'].features == []
    assert results['Roads'].failed is True
    assert metadata['Roads']['failed'] is True
    assert metadata['Roads']['error'] == 'decoder exploded'
    assert metadata['Neighborhoods']['error'] is None
    assert len(results['Neighborhoods']) == 1
    assert [f.id for f in results['Transit Centers']] == ['10']
