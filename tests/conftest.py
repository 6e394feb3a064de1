"""Shared fixtures for the orchestrator test suite."""

import threading

import pytest

from vpn_orchestrator.core.connection_controller import ConnectionController
from vpn_orchestrator.core.errors import BackendError
from vpn_orchestrator.core.node_catalog import NodeCatalog
from vpn_orchestrator.core.settings_store import SettingsStore
from vpn_orchestrator.core.types import (
    ConnectResult, ConnectionState, Node, Session, UserStats, VPNStats
)
from vpn_orchestrator.providers.backend import VPNBackend

# Long enough that background threads never tick during a test
IDLE_INTERVAL = 3600.0


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ScriptedBackend(VPNBackend):
    """In-memory backend whose answers are set by each test."""

    def __init__(self, nodes=None):
        self.nodes = list(nodes or [])
        self.connected = False
        self.node_id = ''
        self.node_name = ''
        self.bytes_received = 0
        self.bytes_sent = 0

        self.nodes_error = None
        self.connect_error = None
        self.connect_result = None
        self.disconnect_error = None
        self.disconnect_leaves_connected = False
        self.status_error = None
        self.session_started_at = None
        self.calls = []

    def get_nodes(self, country=None, protocol=None):
        self.calls.append(('get_nodes', country, protocol))
        if self.nodes_error:
            raise self.nodes_error
        nodes = self.nodes
        if country:
            nodes = [n for n in nodes if n.country == country]
        if protocol == 'wireguard':
            nodes = [n for n in nodes if n.supports_wireguard]
        elif protocol == 'openvpn':
            nodes = [n for n in nodes if n.supports_openvpn]
        return list(nodes)

    def connect_to_vpn(self, node_id, protocol):
        self.calls.append(('connect', node_id, protocol))
        if self.connect_error:
            raise self.connect_error
        if self.connect_result is not None:
            return self.connect_result

        self.connected = True
        self.node_id = node_id
        self.node_name = next((n.name for n in self.nodes if n.id == node_id), '')
        return ConnectResult(
            connected=True,
            session=Session(id='session-1', node_id=node_id, protocol=protocol,
                            client_ip='10.8.0.2'),
            client_ip='10.8.0.2',
            node_id=node_id,
        )

    def disconnect_vpn(self):
        self.calls.append(('disconnect',))
        if self.disconnect_error:
            if not self.disconnect_leaves_connected:
                self.connected = False
            raise self.disconnect_error
        self.connected = False

    def is_connected(self):
        self.calls.append(('is_connected',))
        if self.status_error:
            raise self.status_error
        return self.connected

    def get_vpn_stats(self):
        if not self.connected:
            return VPNStats(connected=False)
        return VPNStats(
            connected=True,
            node_id=self.node_id,
            node_name=self.node_name,
            bytes_received=self.bytes_received,
            bytes_sent=self.bytes_sent,
        )

    def get_current_session(self):
        if not self.connected:
            raise BackendError("no active VPN session")
        return Session(id='session-1', node_id=self.node_id, protocol='wireguard',
                       client_ip='10.8.0.2', tunnel_ip='10.8.0.1',
                       connected_at=self.session_started_at)

    def get_user_stats(self):
        return UserStats(total_sessions=12, active_sessions=1, data_transferred_gb=3.25)


def make_node(node_id, load, country='Netherlands', city='Amsterdam',
              wireguard=True, openvpn=True, **kwargs):
    return Node(
        id=node_id,
        name=kwargs.pop('name', f"{node_id}-server"),
        country=country,
        country_code=kwargs.pop('country_code', 'nl'),
        city=city,
        load_score=load,
        supports_wireguard=wireguard,
        supports_openvpn=openvpn,
        **kwargs
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def nodes():
    return [
        make_node('b', 75, country='Germany', city='Berlin', country_code='de'),
        make_node('a', 20),
        make_node('c', 40, country='Japan', city='Tokyo', country_code='jp',
                  wireguard=False),
    ]


@pytest.fixture()
def backend(nodes):
    return ScriptedBackend(nodes)


@pytest.fixture()
def settings_store(tmp_path):
    return SettingsStore(tmp_path / 'storage.json')


@pytest.fixture()
def catalog(backend):
    return NodeCatalog(backend)


@pytest.fixture()
def state():
    return ConnectionState()


@pytest.fixture()
def lock():
    return threading.RLock()


@pytest.fixture()
def controller(backend, catalog, settings_store, clock):
    ctrl = ConnectionController(
        backend,
        catalog=catalog,
        settings=settings_store,
        sample_interval=IDLE_INTERVAL,
        timer_interval=IDLE_INTERVAL,
        clock=clock,
    )
    yield ctrl
    ctrl.shutdown()
