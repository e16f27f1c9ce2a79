"""Network topology with precomputed shortest-path trees."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

import networkx as nx
import numpy as np

from vnfpsa.foundation.exceptions import InvalidTopologyError


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


@dataclass(frozen=True)
class Node:
    name: str
    resources: tuple[float, ...]

    @property
    def can_host(self) -> bool:
        """True if the node offers any positive resource."""
        return any(r > 0.0 for r in self.resources)


@dataclass(frozen=True)
class Link:
    index: int
    u: int
    v: int
    bandwidth: float
    delay: float

    def other(self, node: int) -> int:
        return self.v if node == self.u else self.u


class Topology:
    """
    Immutable network graph shared read-only by every component of a run.

    Nodes and links are addressed by integer position. Delay-shortest
    (Dijkstra on link delay) and hop-shortest (BFS) paths are computed once for
    every source with networkx.

    Parameters
    ----------
    nodes : Sequence[Node]
        Nodes with one capacity per library resource.
    links : Iterable[tuple[str, str, float, float]]
        Undirected links as ``(node_a, node_b, bandwidth, delay)``.
    """

    def __init__(self, nodes: Sequence[Node], links: Iterable[tuple[str, str, float, float]]) -> None:
        if not nodes:
            raise InvalidTopologyError("Topology needs at least one node.")
        self.nodes: tuple[Node, ...] = tuple(nodes)
        self.node_index: dict[str, int] = {}
        for i, node in enumerate(self.nodes):
            if node.name in self.node_index:
                raise InvalidTopologyError(f"Duplicate node name '{node.name}'.")
            self.node_index[node.name] = i
        n_res = {len(node.resources) for node in self.nodes}
        if len(n_res) > 1:
            raise InvalidTopologyError("All nodes must declare the same number of resources.")
        self.n_resources = n_res.pop()
        self.capacities = np.array([node.resources for node in self.nodes], dtype=float).reshape(
            len(self.nodes), self.n_resources
        )

        self.graph = nx.Graph()
        self.graph.add_nodes_from(range(len(self.nodes)))
        built: list[Link] = []
        for a, b, bandwidth, delay in links:
            if a not in self.node_index or b not in self.node_index:
                raise InvalidTopologyError(f"Link {a}-{b} references an unknown node.")
            u, v = self.node_index[a], self.node_index[b]
            if u == v:
                raise InvalidTopologyError(f"Self-loop on node '{a}' is not allowed.")
            if self.graph.has_edge(u, v):
                raise InvalidTopologyError(f"Duplicate link {a}-{b}.")
            if bandwidth < 0 or delay < 0:
                raise InvalidTopologyError(f"Link {a}-{b} has negative bandwidth or delay.")
            link = Link(index=len(built), u=u, v=v, bandwidth=float(bandwidth), delay=float(delay))
            built.append(link)
            self.graph.add_edge(u, v, delay=link.delay, link=link.index)
        if not nx.is_connected(self.graph):
            raise InvalidTopologyError(
                "Topology must be connected.",
                details={"components": nx.number_connected_components(self.graph)},
            )
        self.links: tuple[Link, ...] = tuple(built)
        self.bandwidths = np.array([link.bandwidth for link in self.links], dtype=float)
        self.hosts: tuple[int, ...] = tuple(i for i, node in enumerate(self.nodes) if node.can_host)

        self._delay_dist: dict[int, dict[int, float]] = {}
        self._delay_paths: dict[int, dict[int, list[int]]] = {}
        for source, (dist, paths) in nx.all_pairs_dijkstra(self.graph, weight="delay"):
            self._delay_dist[source] = dist
            self._delay_paths[source] = paths
        self._hop_paths: dict[int, dict[int, list[int]]] = dict(nx.all_pairs_shortest_path(self.graph))
        _logger().debug(
            "Topology ready: %d nodes, %d links, %d hosting nodes", len(self.nodes), len(self.links), len(self.hosts)
        )

    def __len__(self) -> int:
        return len(self.nodes)

    def index(self, name: str) -> int:
        try:
            return self.node_index[name]
        except KeyError:
            raise InvalidTopologyError(f"Unknown node '{name}'.") from None

    def link_between(self, u: int, v: int) -> int | None:
        data = self.graph.get_edge_data(u, v)
        return None if data is None else int(data["link"])

    def delay(self, u: int, v: int) -> float:
        """Delay of the delay-shortest path, ``inf`` if unreachable."""
        return self._delay_dist[u].get(v, float("inf"))

    def hops(self, u: int, v: int) -> float:
        """Length of the hop-shortest path, ``inf`` if unreachable."""
        path = self._hop_paths[u].get(v)
        return float("inf") if path is None else float(len(path) - 1)

    def path(self, u: int, v: int, *, by_delay: bool) -> list[int]:
        """Node sequence from ``u`` to ``v`` on the delay- or hop-shortest tree."""
        table = self._delay_paths if by_delay else self._hop_paths
        path = table[u].get(v)
        if path is None:
            raise InvalidTopologyError(f"No path between '{self.nodes[u].name}' and '{self.nodes[v].name}'.")
        return path

    def shortest_middle(self, start: int, end: int, choices: Sequence[int], *, by_delay: bool) -> int | None:
        """Node of ``choices`` minimising the distance start -> node -> end."""
        dist = self.delay if by_delay else self.hops
        best, best_d = None, float("inf")
        for node in choices:
            d = dist(start, node) + dist(node, end)
            if d < best_d:
                best, best_d = node, d
        return best


__all__ = ["Link", "Node", "Topology"]
