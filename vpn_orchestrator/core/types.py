"""
Type definitions for the VPN orchestrator
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum, auto
from typing import Optional, Dict, Any


class Protocol(str, Enum):
    """Tunnel protocols a node can offer"""
    WIREGUARD = 'wireguard'
    OPENVPN = 'openvpn'

    @classmethod
    def parse(cls, value) -> 'Protocol':
        """Accept a member or a case-insensitive protocol name"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown protocol: {value!r}") from None

    @property
    def display_name(self) -> str:
        return 'WireGuard' if self is Protocol.WIREGUARD else 'OpenVPN'


class ConnectionPhase(Enum):
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    DISCONNECTING = auto()
    LOST = auto()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as sent by the control API"""
    if value is None or isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class Node:
    """VPN node snapshot as published by the catalog"""
    id: str
    name: str = ''
    hostname: str = ''
    city: str = ''
    country: str = ''
    country_code: str = ''
    latitude: float = 0.0
    longitude: float = 0.0
    load_score: float = 0.0
    latency: int = 0
    current_connections: int = 0
    max_connections: int = 0
    supports_wireguard: bool = False
    supports_openvpn: bool = False
    wireguard_port: int = 0
    openvpn_port: int = 0
    status: str = ''
    is_active: bool = True
    last_heartbeat: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'Node':
        return cls(
            id=str(data.get('id', '')),
            name=data.get('name') or '',
            hostname=data.get('hostname') or '',
            city=data.get('city') or '',
            country=data.get('country') or '',
            country_code=data.get('country_code') or '',
            latitude=float(data.get('latitude') or 0.0),
            longitude=float(data.get('longitude') or 0.0),
            load_score=float(data.get('load_score') or 0.0),
            latency=int(data.get('latency') or 0),
            current_connections=int(data.get('current_connections') or 0),
            max_connections=int(data.get('max_connections') or 0),
            supports_wireguard=bool(data.get('supports_wireguard', False)),
            supports_openvpn=bool(data.get('supports_openvpn', False)),
            wireguard_port=int(data.get('wireguard_port') or 0),
            openvpn_port=int(data.get('openvpn_port') or 0),
            status=data.get('status') or '',
            is_active=bool(data.get('is_active', True)),
            last_heartbeat=parse_timestamp(data.get('last_heartbeat')),
        )

    def supports(self, protocol: Protocol) -> bool:
        if protocol is Protocol.WIREGUARD:
            return self.supports_wireguard
        return self.supports_openvpn

    def port_for(self, protocol: Protocol) -> int:
        if protocol is Protocol.WIREGUARD:
            return self.wireguard_port
        return self.openvpn_port

    @property
    def location(self) -> str:
        parts = [p for p in (self.city, self.country) if p]
        return ', '.join(parts) or self.name or self.id


@dataclass(frozen=True)
class Session:
    """Read-only mirror of the backend's session record"""
    id: str
    user_id: str = ''
    node_id: str = ''
    protocol: str = ''
    client_ip: str = ''
    tunnel_ip: str = ''
    status: str = ''
    connected_at: Optional[datetime] = None
    bytes_sent: int = 0
    bytes_received: int = 0
    data_used_gb: float = 0.0
    latency: int = 0

    @classmethod
    def from_dict(cls, data: Dict) -> 'Session':
        return cls(
            id=str(data.get('id', '')),
            user_id=str(data.get('user_id') or ''),
            node_id=str(data.get('node_id') or ''),
            protocol=data.get('protocol') or '',
            client_ip=data.get('client_ip') or '',
            tunnel_ip=data.get('tunnel_ip') or '',
            status=data.get('status') or '',
            connected_at=parse_timestamp(data.get('connected_at')),
            bytes_sent=int(data.get('bytes_sent') or 0),
            bytes_received=int(data.get('bytes_received') or 0),
            data_used_gb=float(data.get('data_used_gb') or 0.0),
            latency=int(data.get('latency') or 0),
        )


@dataclass(frozen=True)
class ConnectResult:
    """Outcome of a connect call, whatever shape the backend answered with"""
    connected: bool
    session: Optional[Session] = None
    client_ip: Optional[str] = None
    node_id: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'ConnectResult':
        session_data = data.get('session')
        session = Session.from_dict(session_data) if session_data else None
        client_ip = data.get('client_ip') or (
            session.client_ip if session else None
        )
        return cls(
            connected=bool(data.get('success') or data.get('connected')),
            session=session,
            client_ip=client_ip or None,
            node_id=data.get('node_id'),
            message=data.get('message') or data.get('error'),
        )


@dataclass(frozen=True)
class VPNStats:
    """Live counters reported by the backend"""
    connected: bool
    node_id: str = ''
    node_name: str = ''
    bytes_received: int = 0
    bytes_sent: int = 0

    @classmethod
    def from_dict(cls, data: Dict) -> 'VPNStats':
        return cls(
            connected=bool(data.get('connected', False)),
            node_id=str(data.get('node_id') or ''),
            node_name=data.get('node_name') or '',
            bytes_received=int(data.get('bytes_received') or 0),
            bytes_sent=int(data.get('bytes_sent') or 0),
        )


@dataclass(frozen=True)
class UserStats:
    total_sessions: int = 0
    active_sessions: int = 0
    data_transferred_gb: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict) -> 'UserStats':
        return cls(
            total_sessions=int(data.get('total_sessions') or 0),
            active_sessions=int(data.get('active_sessions') or 0),
            data_transferred_gb=float(data.get('data_transferred_gb') or 0.0),
        )


@dataclass(frozen=True)
class Settings:
    """User preferences; the defaults are the documented ones"""
    protocol: Protocol = Protocol.WIREGUARD
    killswitch: bool = False
    autoconnect: bool = False
    dns: bool = True
    notifications: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['protocol'] = self.protocol.value
        return data


@dataclass
class ConnectionState:
    """Process-wide connection state, written only by the controller"""
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    selected_node: Optional[Node] = None
    connected_node: Optional[Node] = None
    protocol: Optional[Protocol] = None
    session: Optional[Session] = None
    client_ip: Optional[str] = None

    # Sampler bookkeeping
    previous_bytes_received: int = 0
    previous_bytes_sent: int = 0
    previous_sample_time: Optional[float] = None
    connection_start_time: Optional[float] = None

    # Published values
    download_rate: float = 0.0
    upload_rate: float = 0.0
    total_transferred: int = 0

    @property
    def is_connected(self) -> bool:
        return self.phase is ConnectionPhase.CONNECTED

    def reset_baseline(self):
        self.previous_bytes_received = 0
        self.previous_bytes_sent = 0
        self.previous_sample_time = None
