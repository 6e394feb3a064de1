"""
Node catalog: the cached server list and node selection
"""

import random
import threading
from enum import Enum
from typing import Optional, List, Callable, Iterable, Sequence, Tuple
import logging

from .errors import EmptyCatalog, NoNodeSelected
from .types import Node, Protocol

logger = logging.getLogger(__name__)


class SelectionPolicy(Enum):
    QUICK = 'quick'
    SECURE = 'secure'
    RANDOM = 'random'
    MANUAL = 'manual'


def best_by_load(nodes: Iterable[Node]) -> Node:
    """Node with the lowest load score, first one wins on ties"""
    best = None
    for node in nodes:
        if best is None or node.load_score < best.load_score:
            best = node

    if best is None:
        raise EmptyCatalog()
    return best


def random_pick(nodes: Sequence[Node], rng=random) -> Node:
    """Uniformly random node"""
    if not nodes:
        raise EmptyCatalog()
    return rng.choice(list(nodes))


class NodeCatalog:
    """Available VPN nodes, ordered by load"""

    def __init__(self, backend, rng: Optional[random.Random] = None):
        self.backend = backend
        self.rng = rng or random.Random()
        self._nodes: Tuple[Node, ...] = ()
        self._lock = threading.Lock()

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def refresh(self, country: Optional[str] = None,
                protocol: Optional[Protocol] = None) -> List[Node]:
        """
        Fetch the node list from the backend and replace the cache

        On failure the backend error propagates and the previous cache
        is kept as it was.

        Args:
            country: Only nodes in this country
            protocol: Only nodes supporting this protocol

        Returns:
            Nodes sorted by ascending load score
        """
        protocol_name = Protocol.parse(protocol).value if protocol else None

        try:
            fetched = self.backend.get_nodes(country, protocol_name)
        except Exception as e:
            logger.warning(
                f"Node refresh failed, keeping {len(self._nodes)} cached nodes: {e}"
            )
            raise

        ordered = tuple(sorted(fetched, key=lambda n: n.load_score))
        with self._lock:
            self._nodes = ordered

        logger.debug(f"Catalog refreshed: {len(ordered)} nodes")
        return list(ordered)

    def filter(self, predicate: Callable[[Node], bool]) -> List[Node]:
        """Filter the cached nodes without a round trip"""
        return [node for node in self._nodes if predicate(node)]

    def search(self, text: Optional[str]) -> List[Node]:
        """Free-text match on country, city and name"""
        needle = (text or '').strip().lower()
        if not needle:
            return list(self._nodes)

        return self.filter(
            lambda n: needle in n.country.lower()
            or needle in n.city.lower()
            or needle in n.name.lower()
        )

    def find(self, identifier: str) -> Optional[Node]:
        """Look a node up by id, then by name"""
        if not identifier:
            return None
        for node in self._nodes:
            if node.id == identifier:
                return node
        for node in self._nodes:
            if node.name == identifier:
                return node
        return None

    def countries(self) -> List[str]:
        return sorted({node.country for node in self._nodes if node.country})

    def best_by_load(self, nodes: Optional[Sequence[Node]] = None) -> Node:
        return best_by_load(self._nodes if nodes is None else nodes)

    def random_pick(self, nodes: Optional[Sequence[Node]] = None) -> Node:
        return random_pick(self._nodes if nodes is None else nodes, self.rng)

    def select(self, policy: SelectionPolicy,
               node: Optional[Node] = None) -> Node:
        """
        Apply a selection policy to the cached catalog

        QUICK and SECURE both take the lowest-load node.
        """
        policy = SelectionPolicy(policy)

        if policy is SelectionPolicy.MANUAL:
            if node is None:
                raise NoNodeSelected()
            return node

        if policy is SelectionPolicy.RANDOM:
            return self.random_pick()

        return self.best_by_load()
