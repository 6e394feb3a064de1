"""Tests for wire record parsing."""

import pytest

from vpn_orchestrator.core.types import (
    ConnectResult, Node, Protocol, Settings, parse_timestamp
)


class TestProtocol:
    @pytest.mark.parametrize("raw", ['wireguard', 'WireGuard', ' WIREGUARD ', Protocol.WIREGUARD])
    def test_parse(self, raw):
        assert Protocol.parse(raw) is Protocol.WIREGUARD

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown protocol"):
            Protocol.parse('l2tp')


def test_parse_timestamp():
    assert parse_timestamp('2024-05-01T10:00:00Z').tzinfo is not None
    assert parse_timestamp('') is None
    assert parse_timestamp('yesterday') is None
    assert parse_timestamp(None) is None


class TestNode:
    def test_from_dict_defaults(self):
        node = Node.from_dict({'id': 42, 'name': 'edge'})
        assert node.id == '42'
        assert node.is_active
        assert not node.supports(Protocol.WIREGUARD)
        assert node.location == 'edge'

    def test_ports_and_location(self):
        node = Node.from_dict({
            'id': 'n', 'city': 'Paris', 'country': 'France',
            'supports_openvpn': True, 'openvpn_port': 1194, 'wireguard_port': 51820,
        })
        assert node.location == 'Paris, France'
        assert node.port_for(Protocol.OPENVPN) == 1194
        assert node.port_for(Protocol.WIREGUARD) == 51820


class TestConnectResult:
    def test_success_shape(self):
        result = ConnectResult.from_dict({
            'success': True, 'session': {'id': 's', 'client_ip': '10.0.0.9'},
        })
        assert result.connected
        assert result.client_ip == '10.0.0.9'

    def test_connected_shape(self):
        result = ConnectResult.from_dict({'connected': True, 'client_ip': '10.0.0.3'})
        assert result.connected
        assert result.session is None

    def test_failure_carries_error(self):
        result = ConnectResult.from_dict({'success': False, 'error': 'no capacity'})
        assert not result.connected
        assert result.message == 'no capacity'


def test_settings_serialize_protocol_name():
    assert Settings(protocol=Protocol.OPENVPN).to_dict()['protocol'] == 'openvpn'
