"""
Protocol resolution against a node's declared capabilities
"""

import logging
from typing import List, Union

from .errors import NoCompatibleProtocol
from .types import Node, Protocol

logger = logging.getLogger(__name__)


def other_protocol(protocol: Protocol) -> Protocol:
    if protocol is Protocol.WIREGUARD:
        return Protocol.OPENVPN
    return Protocol.WIREGUARD


def supported_protocols(node: Node) -> List[Protocol]:
    """Protocols the node advertises, WireGuard first"""
    return [p for p in Protocol if node.supports(p)]


def resolve(preferred: Union[Protocol, str], node: Node) -> Protocol:
    """
    Pick the protocol to connect to a node with

    The node's capability flags win over the user's preference: the
    preferred protocol is used when the node supports it, otherwise the
    other one.

    Args:
        preferred: Protocol from the user's settings
        node: Target node

    Returns:
        Protocol to request from the backend

    Raises:
        NoCompatibleProtocol: The node supports neither protocol
    """
    preferred = Protocol.parse(preferred)

    if node.supports(preferred):
        return preferred

    fallback = other_protocol(preferred)
    if node.supports(fallback):
        logger.info(
            f"Node {node.id} does not support {preferred.value}, "
            f"falling back to {fallback.value}"
        )
        return fallback

    raise NoCompatibleProtocol(node.id, preferred.value)
