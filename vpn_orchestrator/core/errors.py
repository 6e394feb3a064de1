"""
Exceptions raised by the orchestrator core
"""

from typing import Optional


class VPNError(Exception):
    """Base class for orchestrator errors"""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class EmptyCatalog(VPNError):
    """There are no nodes to select from"""

    def __init__(self, message: str = "No servers available"):
        super().__init__(message)


class NoCompatibleProtocol(VPNError):
    """The node supports neither the preferred protocol nor the fallback"""

    def __init__(self, node_id: str, preferred: str):
        super().__init__(
            f"Node {node_id} supports neither {preferred} nor a fallback protocol"
        )
        self.node_id = node_id
        self.preferred = preferred


class NoNodeSelected(VPNError):
    def __init__(self, message: str = "No server selected"):
        super().__init__(message)


class InvalidTransition(VPNError):
    """A connection operation was requested from the wrong phase"""


class BackendError(VPNError):
    """The control API rejected a request or could not be reached"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectFailed(VPNError):
    """The backend rejected or errored the connect call"""


class DisconnectFailed(VPNError):
    """Disconnect failed and the backend still reports a live tunnel"""


class ConnectionLost(VPNError):
    """The tunnel went away without a disconnect request"""


class SettingsError(VPNError):
    """Settings could not be validated or persisted"""


class InvalidSetting(SettingsError):
    def __init__(self, key: str, reason: str = "unknown setting"):
        super().__init__(f"Invalid setting {key!r}: {reason}")
        self.key = key
