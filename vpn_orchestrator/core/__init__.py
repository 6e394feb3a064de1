"""
Connection state machine, node catalog, protocol resolution and telemetry
"""

from .types import (
    Node, Session, ConnectResult, VPNStats, UserStats, Settings,
    Protocol, ConnectionPhase, ConnectionState
)
from .errors import (
    VPNError, EmptyCatalog, NoCompatibleProtocol, NoNodeSelected,
    ConnectFailed, DisconnectFailed, ConnectionLost, InvalidTransition,
    BackendError, SettingsError, InvalidSetting
)
from .node_catalog import NodeCatalog, SelectionPolicy, best_by_load, random_pick
from .protocol_resolver import resolve
from .settings_store import SettingsStore
from .telemetry import TelemetrySampler, ConnectionTimer, derive_throughput
from .connection_controller import ConnectionController
