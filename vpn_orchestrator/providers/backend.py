"""
Backend control surface and its HTTP client
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, List, Any
import logging

import requests

from ..core.errors import BackendError
from ..core.types import Node, Session, ConnectResult, VPNStats, UserStats

logger = logging.getLogger(__name__)


class VPNBackend(ABC):
    """Operations the orchestrator needs from the tunnel backend"""

    @abstractmethod
    def get_nodes(self, country: Optional[str] = None,
                  protocol: Optional[str] = None) -> List[Node]:
        ...

    @abstractmethod
    def connect_to_vpn(self, node_id: str, protocol: str) -> ConnectResult:
        ...

    @abstractmethod
    def disconnect_vpn(self) -> None:
        ...

    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    def get_vpn_stats(self) -> VPNStats:
        ...

    @abstractmethod
    def get_current_session(self) -> Session:
        ...

    @abstractmethod
    def get_user_stats(self) -> UserStats:
        ...


class HTTPBackend(VPNBackend):
    """Backend reached through the JSON control API"""

    def __init__(self, base_url: str, timeout: float = 10.0,
                 access_token: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({'Content-Type': 'application/json'})
        self.set_access_token(access_token)

    def set_access_token(self, token: Optional[str]):
        """Forward an already issued bearer token"""
        if token:
            self.http.headers['Authorization'] = f"Bearer {token}"
        else:
            self.http.headers.pop('Authorization', None)

    def _request(self, method: str, path: str,
                 params: Optional[Dict] = None,
                 body: Optional[Dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")

        try:
            response = self.http.request(
                method, url, params=params, json=body, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise BackendError(f"Failed to perform request: {e}") from e

        if response.status_code >= 400:
            raise BackendError(
                f"API error ({response.status_code}): {self._error_text(response)}",
                status_code=response.status_code
            )

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"Failed to parse response from {path}: {e}") from e

    @staticmethod
    def _error_text(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text

        if isinstance(data, dict):
            if data.get('message'):
                return str(data['message'])
            if data.get('error'):
                return str(data['error'])
        return response.text

    def get_nodes(self, country: Optional[str] = None,
                  protocol: Optional[str] = None) -> List[Node]:
        params = {}
        if country:
            params['country'] = country
        if protocol:
            params['protocol'] = protocol

        data = self._request('GET', '/api/v1/nodes', params=params or None)
        items = data.get('nodes', []) if isinstance(data, dict) else data
        return [Node.from_dict(item) for item in items or []]

    def connect_to_vpn(self, node_id: str, protocol: str) -> ConnectResult:
        data = self._request(
            'POST', '/api/v1/vpn/connect',
            body={'node_id': node_id, 'protocol': protocol}
        )
        return ConnectResult.from_dict(data)

    def disconnect_vpn(self) -> None:
        self._request('POST', '/api/v1/vpn/disconnect')

    def is_connected(self) -> bool:
        data = self._request('GET', '/api/v1/vpn/status')
        return bool(data.get('connected', False))

    def get_vpn_stats(self) -> VPNStats:
        return VPNStats.from_dict(self._request('GET', '/api/v1/vpn/stats'))

    def get_current_session(self) -> Session:
        return Session.from_dict(self._request('GET', '/api/v1/vpn/session'))

    def get_user_stats(self) -> UserStats:
        return UserStats.from_dict(self._request('GET', '/api/v1/user/stats'))
