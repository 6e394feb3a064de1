"""
Connection controller: the single owner of the connection lifecycle
"""

import threading
import time
from dataclasses import asdict
from typing import Optional, Dict, List, Callable

from .errors import (
    BackendError, ConnectFailed, DisconnectFailed,
    InvalidTransition, NoNodeSelected
)
from .node_catalog import NodeCatalog, SelectionPolicy
from .protocol_resolver import resolve
from .settings_store import SettingsStore
from .telemetry import (
    TelemetrySampler, ConnectionTimer, ThroughputSample,
    DEFAULT_SAMPLE_INTERVAL, DEFAULT_TIMER_INTERVAL
)
from .types import (
    ConnectionPhase, ConnectionState, ConnectResult, Node, Protocol
)
from ..utils.logging_setup import get_logger

logger = get_logger(__name__)

EVENTS = ('state_change', 'throughput', 'duration', 'connection_lost', 'error')


class ConnectionController:
    """Drives the backend through connect, disconnect and loss detection"""

    def __init__(
        self,
        backend,
        catalog: Optional[NodeCatalog] = None,
        settings: Optional[SettingsStore] = None,
        sample_interval: float = DEFAULT_SAMPLE_INTERVAL,
        timer_interval: float = DEFAULT_TIMER_INTERVAL,
        clock: Callable[[], float] = time.time
    ):
        self.backend = backend
        self.catalog = catalog or NodeCatalog(backend)
        self.settings = settings or SettingsStore()
        self.clock = clock
        self.state = ConnectionState()

        self._lock = threading.RLock()
        self._callbacks: Dict[str, List[Callable]] = {event: [] for event in EVENTS}

        self.sampler = TelemetrySampler(
            backend,
            self.state,
            self._lock,
            interval=sample_interval,
            clock=clock,
            on_sample=self._on_sample,
            on_lost=self._on_connection_lost
        )
        self.timer = ConnectionTimer(
            self.state,
            interval=timer_interval,
            clock=clock,
            on_tick=self._on_timer_tick,
            lock=self._lock
        )

    @property
    def phase(self) -> ConnectionPhase:
        return self.state.phase

    def register_callback(self, event: str, callback: Callable):
        """Register event callback"""
        if event not in self._callbacks:
            raise ValueError(f"Unknown event: {event}")
        self._callbacks[event].append(callback)

    def _notify_callbacks(self, event: str, *args, **kwargs):
        """Notify registered callbacks"""
        for callback in self._callbacks.get(event, []):
            try:
                callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Callback error: {e}")

    def _change_state(self, new_phase: ConnectionPhase, message: str = ""):
        """Change phase with notification"""
        old_phase = self.state.phase
        self.state.phase = new_phase

        logger.debug(f"State change: {old_phase.name} -> {new_phase.name} {message}")
        self._notify_callbacks('state_change', old_phase, new_phase, message)

    def select_node(self, node: Optional[Node]):
        """Remember the candidate node for the next connect"""
        with self._lock:
            self.state.selected_node = node

    def _pick_target(self, node: Optional[Node],
                     policy: Optional[SelectionPolicy]) -> Node:
        if node is not None:
            return node

        if policy is None or SelectionPolicy(policy) is SelectionPolicy.MANUAL:
            if self.state.selected_node is None:
                raise NoNodeSelected()
            return self.state.selected_node

        if len(self.catalog) == 0:
            self.catalog.refresh()
        return self.catalog.select(policy)

    def connect(self, node: Optional[Node] = None,
                policy: Optional[SelectionPolicy] = None) -> ConnectResult:
        """
        Connect to a node

        Args:
            node: Explicit target; defaults to the selected node
            policy: Selection policy used when no node is given

        Returns:
            ConnectResult from the backend

        Raises:
            NoNodeSelected: No target and no policy
            EmptyCatalog: The policy had nothing to choose from
            NoCompatibleProtocol: The target supports neither protocol
            InvalidTransition: A connection is already active or in flight
            ConnectFailed: The backend rejected the connection
        """
        with self._lock:
            if self.state.phase is not ConnectionPhase.DISCONNECTED:
                raise InvalidTransition(
                    f"Cannot connect while {self.state.phase.name.lower()}"
                )

            # A stale run must not touch the new session's baseline
            self.sampler.stop()

            target = self._pick_target(node, policy)
            protocol = resolve(self.settings.settings.protocol, target)

            self.state.selected_node = target
            self.state.protocol = protocol

            logger.info(
                f"Connecting to {target.location} ({target.id}) over {protocol.value}"
            )
            self._change_state(ConnectionPhase.CONNECTING)

            try:
                result = self.backend.connect_to_vpn(target.id, protocol.value)
            except Exception as e:
                logger.error(f"Connection failed: {e}")
                self._fail_connect(str(e))
                raise ConnectFailed(str(e)) from e

            if not result.connected:
                message = result.message or "Backend did not confirm the connection"
                logger.error(f"Connection failed: {message}")
                self._fail_connect(message)
                raise ConnectFailed(message)

            self._enter_connected(target, protocol, result)
            logger.info(f"Connected successfully. Tunnel IP: {result.client_ip}")
            return result

    def quick_connect(self) -> ConnectResult:
        """Connect to the lowest-load node"""
        return self.connect(policy=SelectionPolicy.QUICK)

    def secure_connect(self) -> ConnectResult:
        return self.connect(policy=SelectionPolicy.SECURE)

    def random_connect(self) -> ConnectResult:
        return self.connect(policy=SelectionPolicy.RANDOM)

    def disconnect(self) -> bool:
        """
        Disconnect the active tunnel

        When the backend call fails the backend is asked whether the
        tunnel is still up, and only a live tunnel counts as a failure.

        Returns:
            True if a connection was torn down, False if there was none

        Raises:
            DisconnectFailed: The tunnel is still up
        """
        with self._lock:
            if self.state.phase is ConnectionPhase.DISCONNECTED:
                logger.debug("Disconnect requested while already disconnected")
                return False
            if self.state.phase is not ConnectionPhase.CONNECTED:
                raise InvalidTransition(
                    f"Cannot disconnect while {self.state.phase.name.lower()}"
                )

            logger.info("Disconnecting VPN...")
            node = self.state.connected_node
            self.state.connected_node = None
            self._change_state(ConnectionPhase.DISCONNECTING)

            try:
                self.backend.disconnect_vpn()
            except Exception as e:
                logger.warning(f"Disconnect call failed, checking backend status: {e}")

                if self._backend_reports_connected():
                    self.state.connected_node = node
                    self._change_state(ConnectionPhase.CONNECTED, str(e))
                    self._notify_callbacks('error', str(e))
                    raise DisconnectFailed(str(e)) from e

                logger.info("Backend reports the tunnel is already down")

            self._enter_disconnected("Disconnected")
            logger.info("Disconnected successfully")
            return True

    def switch_server(self, node: Optional[Node] = None,
                      policy: Optional[SelectionPolicy] = None) -> ConnectResult:
        """Disconnect then connect; a failed disconnect aborts the switch"""
        with self._lock:
            if self.state.phase is ConnectionPhase.CONNECTED:
                self.disconnect()
            return self.connect(node=node, policy=policy)

    def restore(self) -> bool:
        """
        Adopt a tunnel the backend already has up

        Returns:
            True if the controller is now connected
        """
        with self._lock:
            if self.state.phase is not ConnectionPhase.DISCONNECTED:
                return self.state.phase is ConnectionPhase.CONNECTED

            if not self._backend_reports_connected():
                return False

            try:
                stats = self.backend.get_vpn_stats()
            except BackendError as e:
                logger.warning(f"Could not read stats of existing tunnel: {e}")
                return False

            if not stats.connected:
                return False

            if len(self.catalog) == 0:
                try:
                    self.catalog.refresh()
                except BackendError as e:
                    logger.warning(f"Could not load servers for existing tunnel: {e}")

            node = (
                self.catalog.find(stats.node_id)
                or self.catalog.find(stats.node_name)
                or Node(id=stats.node_id or 'unknown', name=stats.node_name)
            )
            self.state.selected_node = node
            self._change_state(ConnectionPhase.CONNECTING, "restoring")

            session = None
            try:
                session = self.backend.get_current_session()
            except BackendError as e:
                logger.debug(f"No session details for existing tunnel: {e}")

            protocol = self.state.protocol
            if session is not None and session.protocol:
                try:
                    protocol = Protocol.parse(session.protocol)
                except ValueError:
                    pass

            result = ConnectResult(
                connected=True,
                session=session,
                client_ip=session.client_ip if session else None,
                node_id=node.id
            )
            started_at = None
            if session is not None and session.connected_at is not None:
                started_at = session.connected_at.timestamp()

            self._enter_connected(node, protocol, result, started_at=started_at)
            logger.info(f"Restored existing connection to {node.location}")
            return True

    def shutdown(self):
        """Stop background work without touching the tunnel"""
        with self._lock:
            self.sampler.stop()
            self.timer.stop()

    def _backend_reports_connected(self) -> bool:
        try:
            return self.backend.is_connected()
        except Exception as e:
            # Unknown is treated as still connected
            logger.error(f"Status check failed: {e}")
            return True

    def _fail_connect(self, message: str):
        self.state.protocol = None
        self._change_state(ConnectionPhase.DISCONNECTED, message)
        self._notify_callbacks('error', message)

    def _enter_connected(self, node: Node, protocol: Optional[Protocol],
                         result: ConnectResult,
                         started_at: Optional[float] = None):
        """
        Publish a confirmed tunnel and start telemetry

        Args:
            node: Node the tunnel runs to
            protocol: Tunnel protocol, None when unknown
            result: Backend answer carrying session and client address
            started_at: Backend start time of an adopted tunnel; the
                connection time counts from here instead of now
        """
        now = self.clock()
        if started_at is None or started_at > now:
            started_at = now

        self.state.connected_node = node
        self.state.protocol = protocol
        self.state.session = result.session
        self.state.client_ip = result.client_ip
        self.state.connection_start_time = started_at
        self.state.previous_bytes_received = 0
        self.state.previous_bytes_sent = 0
        self.state.previous_sample_time = now
        self.state.download_rate = 0.0
        self.state.upload_rate = 0.0
        self.state.total_transferred = 0

        self._change_state(ConnectionPhase.CONNECTED)
        self.sampler.start()
        self.timer.start()

    def _enter_disconnected(self, message: str):
        # Cleared first so a late timer tick can only count zero
        self.state.connection_start_time = None
        self.sampler.stop()
        self.timer.stop()

        self.state.connected_node = None
        self.state.session = None
        self.state.client_ip = None
        self.state.protocol = None
        self.state.total_transferred = 0

        self._change_state(ConnectionPhase.DISCONNECTED, message)

    def _on_connection_lost(self):
        """Called by the sampler, under the lock, when the tunnel vanished"""
        if self.state.phase is not ConnectionPhase.CONNECTED:
            return

        node = self.state.connected_node
        logger.warning(
            f"Connection lost to {node.location if node else 'unknown node'}"
        )
        self.state.connected_node = None
        self.state.session = None
        self._change_state(ConnectionPhase.LOST, "Connection lost")
        self._enter_disconnected("Connection lost")
        self._notify_callbacks('connection_lost', node)

    def _on_sample(self, sample: ThroughputSample):
        self._notify_callbacks('throughput', sample)

    def _on_timer_tick(self, elapsed: int, formatted: str):
        self._notify_callbacks('duration', elapsed, formatted)

    def get_status(self) -> Dict:
        """Get current connection status"""
        with self._lock:
            node = self.state.connected_node
            return {
                'state': self.state.phase.name,
                'connected': self.state.phase is ConnectionPhase.CONNECTED,
                'node': asdict(node) if node else None,
                'selected_node_id': (
                    self.state.selected_node.id if self.state.selected_node else None
                ),
                'protocol': self.state.protocol.value if self.state.protocol else None,
                'client_ip': self.state.client_ip,
                'download_rate': self.state.download_rate,
                'upload_rate': self.state.upload_rate,
                'total_transferred': self.state.total_transferred,
                'uptime': self.timer.elapsed(),
                'uptime_text': self.timer.formatted(),
            }
