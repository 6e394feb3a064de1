"""Tests for the HTTP backend client."""

from unittest.mock import MagicMock

import pytest
import requests

from vpn_orchestrator.core.errors import BackendError
from vpn_orchestrator.providers.backend import HTTPBackend


def _response(status=200, payload=None, text=None):
    response = MagicMock()
    response.status_code = status
    if payload is None and text is None:
        response.content = b''
    else:
        response.content = b'x'
    response.text = text if text is not None else ''
    if payload is not None:
        response.json.return_value = payload
    else:
        response.json.side_effect = ValueError("no json")
    return response


@pytest.fixture()
def http():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture()
def client(http):
    return HTTPBackend('http://api.local/', timeout=7, access_token='tok', session=http)


class TestRequests:
    def test_headers(self, client, http):
        assert http.headers['Authorization'] == 'Bearer tok'
        assert http.headers['Content-Type'] == 'application/json'

        client.set_access_token(None)
        assert 'Authorization' not in http.headers

    def test_get_nodes(self, client, http):
        http.request.return_value = _response(payload={'nodes': [
            {'id': 'n1', 'name': 'ams-1', 'country': 'Netherlands', 'load_score': 12.5,
             'supports_wireguard': True, 'last_heartbeat': '2024-01-02T03:04:05Z'},
        ]})

        nodes = client.get_nodes(country='Netherlands', protocol='wireguard')

        http.request.assert_called_once_with(
            'GET', 'http://api.local/api/v1/nodes',
            params={'country': 'Netherlands', 'protocol': 'wireguard'},
            json=None, timeout=7
        )
        assert nodes[0].id == 'n1'
        assert nodes[0].load_score == 12.5
        assert nodes[0].supports_wireguard
        assert not nodes[0].supports_openvpn
        assert nodes[0].last_heartbeat.year == 2024

    def test_bare_node_list(self, client, http):
        http.request.return_value = _response(payload=[{'id': 'x'}])
        assert [n.id for n in client.get_nodes()] == ['x']

    def test_connect(self, client, http):
        http.request.return_value = _response(payload={
            'success': True,
            'session': {'id': 's1', 'client_ip': '10.8.0.5', 'protocol': 'openvpn'},
        })

        result = client.connect_to_vpn('n1', 'openvpn')

        assert http.request.call_args.kwargs['json'] == {'node_id': 'n1', 'protocol': 'openvpn'}
        assert result.connected
        assert result.client_ip == '10.8.0.5'
        assert result.session.id == 's1'

    def test_status_and_stats(self, client, http):
        http.request.side_effect = [
            _response(payload={'connected': True}),
            _response(payload={'connected': True, 'node_id': 'n1',
                               'bytes_received': 10, 'bytes_sent': 4}),
        ]

        assert client.is_connected() is True
        stats = client.get_vpn_stats()
        assert (stats.bytes_received, stats.bytes_sent) == (10, 4)

    def test_empty_body(self, client, http):
        http.request.return_value = _response()
        assert client.disconnect_vpn() is None


class TestErrors:
    def test_message_field(self, client, http):
        http.request.return_value = _response(400, payload={'message': 'bad node'})

        with pytest.raises(BackendError) as exc:
            client.connect_to_vpn('n1', 'wireguard')

        assert str(exc.value) == "API error (400): bad node"
        assert exc.value.status_code == 400

    def test_error_field(self, client, http):
        http.request.return_value = _response(500, payload={'error': 'failed to connect VPN'})
        with pytest.raises(BackendError, match=r"API error \(500\): failed to connect VPN"):
            client.is_connected()

    def test_raw_text(self, client, http):
        http.request.return_value = _response(502, text='Bad Gateway')
        with pytest.raises(BackendError, match="Bad Gateway"):
            client.get_user_stats()

    def test_transport_failure(self, client, http):
        http.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(BackendError, match="Failed to perform request"):
            client.get_nodes()

    def test_invalid_json(self, client, http):
        http.request.return_value = _response(200, text='<html>')
        with pytest.raises(BackendError):
            client.get_vpn_stats()
