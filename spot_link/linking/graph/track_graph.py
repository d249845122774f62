"""Track graph built by frame-to-frame linking.

Nodes are spots, edges are accepted links weighted by their realized cost.
The graph is undirected and simple: at most one edge per unordered spot
pair, no self-loops. Every method takes the instance lock, so worker
threads may merge into one graph concurrently.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from spot_link.data.schema import Spot


@dataclass(frozen=True)
class TrackEdge:
    """Link between two spots.

    Attributes:
        source: Spot in the earlier frame of the pair.
        target: Spot in the later frame of the pair.
        weight: Realized linking cost.
    """
    source: Spot
    target: Spot
    weight: float


def _key(a: Spot, b: Spot) -> FrozenSet[Spot]:
    return frozenset((a, b))


class TrackGraph:
    """Thread-safe undirected weighted graph of spots."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._adjacency: Dict[Spot, Set[Spot]] = {}
        self._edges: Dict[FrozenSet[Spot], TrackEdge] = {}

    # -- mutation ------------------------------------------------------------

    def add_vertex(self, spot: Spot) -> bool:
        """Add *spot*; returns False if it was already present."""
        with self._lock:
            if spot in self._adjacency:
                return False
            self._adjacency[spot] = set()
            return True

    def add_edge(self, source: Spot, target: Spot, weight: float) -> bool:
        """Add the edge ``source - target``.

        Returns False, leaving the graph unchanged, if the pair is already
        linked.

        Raises:
            ValueError: for a self-loop.
            KeyError: if either spot is not a vertex.
        """
        if source is target:
            raise ValueError(f"Self-loops are not allowed: {source!r}")
        with self._lock:
            for spot in (source, target):
                if spot not in self._adjacency:
                    raise KeyError(spot)
            key = _key(source, target)
            if key in self._edges:
                return False
            self._edges[key] = TrackEdge(source=source, target=target, weight=float(weight))
            self._adjacency[source].add(target)
            self._adjacency[target].add(source)
            return True

    def merge_links(
        self,
        links: Iterable[Tuple[Spot, Spot, float]],
        abort: Optional[threading.Event] = None,
    ) -> int:
        """Add a batch of ``(source, target, cost)`` links atomically.

        Vertices are added as needed. Returns the number of new edges. When
        *abort* is already set once the lock is held, nothing is merged.
        """
        links = list(links)
        added = 0
        with self._lock:
            if abort is not None and abort.is_set():
                return 0
            for source, target, weight in links:
                self.add_vertex(source)
                self.add_vertex(target)
                if self.add_edge(source, target, weight):
                    added += 1
        return added

    def set_edge_weight(self, source: Spot, target: Spot, weight: float) -> None:
        with self._lock:
            edge = self._edges[_key(source, target)]
            self._edges[_key(source, target)] = TrackEdge(edge.source, edge.target, float(weight))

    # -- queries -------------------------------------------------------------

    def has_edge(self, source: Spot, target: Spot) -> bool:
        with self._lock:
            return _key(source, target) in self._edges

    def edge_weight(self, source: Spot, target: Spot) -> float:
        with self._lock:
            return self._edges[_key(source, target)].weight

    def edges(self) -> List[TrackEdge]:
        with self._lock:
            return list(self._edges.values())

    def edges_of(self, spot: Spot) -> List[TrackEdge]:
        with self._lock:
            return [self._edges[_key(spot, other)] for other in self._adjacency[spot]]

    def neighbors(self, spot: Spot) -> Set[Spot]:
        with self._lock:
            return set(self._adjacency[spot])

    def degree(self, spot: Spot) -> int:
        with self._lock:
            return len(self._adjacency[spot])

    def vertices(self) -> List[Spot]:
        with self._lock:
            return list(self._adjacency)

    @property
    def number_of_vertices(self) -> int:
        with self._lock:
            return len(self._adjacency)

    @property
    def number_of_edges(self) -> int:
        with self._lock:
            return len(self._edges)

    def connected_components(self) -> List[Set[Spot]]:
        """Vertex sets of the connected components; lone spots included.

        With frame-to-frame links each component is one track segment.
        """
        with self._lock:
            seen: Set[Spot] = set()
            components: List[Set[Spot]] = []
            for start in self._adjacency:
                if start in seen:
                    continue
                component = {start}
                stack = [start]
                while stack:
                    spot = stack.pop()
                    for other in self._adjacency[spot]:
                        if other not in component:
                            component.add(other)
                            stack.append(other)
                seen |= component
                components.append(component)
            return components

    def __contains__(self, spot: object) -> bool:
        with self._lock:
            return spot in self._adjacency

    def __len__(self) -> int:
        return self.number_of_vertices

    def __repr__(self) -> str:
        return f"TrackGraph(vertices={self.number_of_vertices}, edges={self.number_of_edges})"
