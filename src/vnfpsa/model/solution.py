"""
Placement solutions.

A :class:`Solution` assigns one :class:`Route` to every request. VNF instances
are not stored explicitly: on each node, the bandwidth demands of all flows
using a VNF type there are packed first-fit-decreasing into bins of the type's
processing capacity, and every bin is one instance. Node resource usage and
link loads follow from the routes.

Solutions are values. ``with_routes`` and ``without`` return new objects that
share unchanged bookkeeping with their parent; once the evaluator attaches a
score the object is never modified again.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Mapping, NamedTuple, Sequence

import numpy as np

from vnfpsa.foundation.exceptions import InvalidPlacementError

if TYPE_CHECKING:
    from vnfpsa.foundation.metrics import ValueVector
    from vnfpsa.model.problem import ProblemInstance


class Hop(NamedTuple):
    node: int
    vnf: int | None
    link: int | None


class VnfInstances(NamedTuple):
    """All instances of one VNF type on one node."""

    node: int
    vnf: int
    loads: tuple[float, ...]
    flows: tuple[tuple[int, ...], ...]

    @property
    def count(self) -> int:
        return len(self.loads)


class Route(NamedTuple):
    flow: int
    hops: tuple[Hop, ...]
    delay: float
    n_hops: float
    delay_index: float
    hops_index: float

    @property
    def path(self) -> tuple[int, ...]:
        return tuple(h.node for h in self.hops)

    @property
    def vnf_nodes(self) -> tuple[int, ...]:
        """Hosting node of every chain VNF, in chain order."""
        return tuple(h.node for h in self.hops if h.vnf is not None)

    @property
    def links(self) -> tuple[int, ...]:
        return tuple(h.link for h in self.hops if h.link is not None)


def index_ratio(achieved: float, minimum: float) -> float:
    """
    Ratio of an achieved value to its theoretical minimum.

    A zero minimum yields ``1 + achieved``: 1.0 when the optimum of zero is
    met, larger otherwise.
    """
    if minimum > 0.0:
        return achieved / minimum
    return 1.0 + achieved


def make_route(problem: "ProblemInstance", flow_index: int, hops: Sequence[Hop]) -> Route:
    flow = problem.flows[flow_index]
    links = problem.topology.links
    vnfs = problem.library.vnfs
    delay = 0.0
    n_hops = 0.0
    for hop in hops:
        if hop.vnf is not None:
            delay += vnfs[hop.vnf].delay
        if hop.link is not None:
            delay += links[hop.link].delay
            n_hops += 1.0
    return Route(
        flow=flow_index,
        hops=tuple(hops),
        delay=delay,
        n_hops=n_hops,
        delay_index=index_ratio(delay - flow.chain_delay, flow.min_delay),
        hops_index=index_ratio(n_hops, flow.min_hops),
    )


def build_route(problem: "ProblemInstance", flow_index: int, order: Sequence[int], *, by_delay: bool) -> Route:
    """
    Route a flow through the given VNF hosting nodes.

    Parameters
    ----------
    problem : ProblemInstance
        Problem the flow belongs to.
    flow_index : int
        Position of the request.
    order : Sequence[int]
        Hosting node for each chain VNF, in chain order.
    by_delay : bool
        Follow delay-shortest (True) or hop-shortest (False) sub-paths.

    Returns
    -------
    Route
        Path ingress -> order[0] -> ... -> order[-1] -> egress with VNFs marked.
    """
    flow = problem.flows[flow_index]
    topo = problem.topology
    if len(order) != len(flow.chain):
        raise ValueError(f"order has {len(order)} nodes, chain of flow {flow_index} has {len(flow.chain)} VNFs")

    hops: list[Hop] = []
    last = flow.ingress
    if not order:
        hops.append(Hop(flow.ingress, None, None))
    for k, node in enumerate(order):
        part = topo.path(last, node, by_delay=by_delay)
        if k == 0 and len(part) > 1:
            hops.append(Hop(part[0], None, None))
        for a, b in zip(part[:-2], part[1:-1]):
            hops.append(Hop(b, None, topo.link_between(a, b)))
        link = topo.link_between(part[-2], part[-1]) if len(part) > 1 else None
        hops.append(Hop(node, flow.chain[k], link))
        last = node
    if last != flow.egress:
        part = topo.path(last, flow.egress, by_delay=by_delay)
        for a, b in zip(part, part[1:]):
            hops.append(Hop(b, None, topo.link_between(a, b)))
    return make_route(problem, flow_index, hops)


def route_from_steps(
    problem: "ProblemInstance",
    flow_index: int,
    steps: Sequence[tuple[str, str | None]],
) -> Route:
    """
    Build a route from an explicit node sequence, e.g. a previously exported placement.

    ``steps`` lists ``(node_name, vnf_name_or_None)`` from ingress to egress.
    A node repeated consecutively is only allowed when it applies another VNF.
    """
    flow = problem.flows[flow_index]
    topo, lib = problem.topology, problem.library
    req_id = flow.request.id
    if not steps:
        raise InvalidPlacementError("empty route", req_id)
    hops: list[Hop] = []
    prev: int | None = None
    for name, vnf_name in steps:
        if name not in topo.node_index:
            raise InvalidPlacementError(f"unknown node '{name}'", req_id)
        node = topo.node_index[name]
        vnf = None
        if vnf_name is not None:
            if vnf_name not in [v.name for v in lib.vnfs]:
                raise InvalidPlacementError(f"unknown VNF '{vnf_name}'", req_id)
            vnf = lib.index(vnf_name)
        link = None
        if prev is not None and node != prev:
            link = topo.link_between(prev, node)
            if link is None:
                raise InvalidPlacementError(f"no link between '{topo.nodes[prev].name}' and '{name}'", req_id)
        elif prev is not None and vnf is None:
            raise InvalidPlacementError(f"node '{name}' repeated without applying a VNF", req_id)
        hops.append(Hop(node, vnf, link))
        prev = node
    if hops[0].node != flow.ingress:
        raise InvalidPlacementError("route does not start at the ingress", req_id)
    if hops[-1].node != flow.egress:
        raise InvalidPlacementError("route does not end at the egress", req_id)
    applied = tuple(h.vnf for h in hops if h.vnf is not None)
    if applied != flow.chain:
        raise InvalidPlacementError("VNFs on the route do not match the chain order", req_id)
    return make_route(problem, flow_index, hops)


def _pack(problem: "ProblemInstance", node: int, vnf: int, flows: tuple[int, ...]) -> VnfInstances:
    """First-fit-decreasing packing of flow demands into instances."""
    capacity = problem.library.vnfs[vnf].processing_capacity
    demands = sorted(((problem.flows[f].bandwidth, f) for f in flows), key=lambda d: -d[0])
    loads: list[float] = []
    members: list[list[int]] = []
    for bandwidth, f in demands:
        for b, load in enumerate(loads):
            if load + bandwidth <= capacity:
                loads[b] = load + bandwidth
                members[b].append(f)
                break
        else:
            loads.append(bandwidth)
            members.append([f])
    return VnfInstances(node, vnf, tuple(loads), tuple(tuple(m) for m in members))


class Solution:
    """
    One placement: a route per request plus derived instance and load overviews.

    Use :meth:`empty` for a placement without routes and :meth:`with_routes` /
    :meth:`without` to derive neighbours.
    """

    __slots__ = (
        "problem",
        "routes",
        "_assignments",
        "_by_node",
        "_link_loads",
        "_packed",
        "_remaining",
        "values",
        "objective",
        "unfeasible",
    )

    def __init__(
        self,
        problem: "ProblemInstance",
        routes: tuple[Route | None, ...],
        assignments: Mapping[tuple[int, int], tuple[int, ...]],
        by_node: Mapping[int, frozenset[int]],
        link_loads: np.ndarray,
        packed: dict[tuple[int, int], VnfInstances] | None = None,
        remaining: dict[int, np.ndarray] | None = None,
    ) -> None:
        self.problem = problem
        self.routes = routes
        self._assignments = assignments
        self._by_node = by_node
        self._link_loads = link_loads
        self._packed = packed if packed is not None else {}
        self._remaining = remaining if remaining is not None else {}
        self.values: ValueVector | None = None
        self.objective: np.ndarray | None = None
        self.unfeasible: np.ndarray | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def empty(cls, problem: "ProblemInstance") -> "Solution":
        return cls(
            problem,
            routes=(None,) * len(problem.flows),
            assignments={},
            by_node={},
            link_loads=np.zeros(len(problem.topology.links), dtype=float),
        )

    @classmethod
    def from_routes(cls, problem: "ProblemInstance", routes: Iterable[Route]) -> "Solution":
        return cls.empty(problem).with_routes(routes)

    def with_routes(self, routes: Iterable[Route]) -> "Solution":
        """New solution where the given routes replace (or fill) their flows' routes."""
        added = list(routes)
        removed = [self.routes[r.flow] for r in added if self.routes[r.flow] is not None]
        new_routes = list(self.routes)
        for route in added:
            new_routes[route.flow] = route
        return self._derive(tuple(new_routes), removed, added)  # type: ignore[arg-type]

    def without(self, flows: Iterable[int]) -> "Solution":
        """New solution with the routes of ``flows`` removed."""
        new_routes = list(self.routes)
        removed = []
        for f in set(flows):
            if new_routes[f] is not None:
                removed.append(new_routes[f])
                new_routes[f] = None
        return self._derive(tuple(new_routes), removed, [])

    def _derive(self, routes: tuple[Route | None, ...], removed: list[Route], added: list[Route]) -> "Solution":
        flows = self.problem.flows
        assignments = dict(self._assignments)
        link_loads = self._link_loads.copy()
        touched: set[tuple[int, int]] = set()

        drop: dict[tuple[int, int], set[int]] = {}
        for route in removed:
            bandwidth = flows[route.flow].bandwidth
            for hop in route.hops:
                if hop.link is not None:
                    link_loads[hop.link] -= bandwidth
                if hop.vnf is not None:
                    drop.setdefault((hop.node, hop.vnf), set()).add(route.flow)
        for key, gone in drop.items():
            assignments[key] = tuple(f for f in assignments.get(key, ()) if f not in gone)
            touched.add(key)
        for route in added:
            bandwidth = flows[route.flow].bandwidth
            for hop in route.hops:
                if hop.link is not None:
                    link_loads[hop.link] += bandwidth
                if hop.vnf is not None:
                    key = (hop.node, hop.vnf)
                    assignments[key] = assignments.get(key, ()) + (route.flow,)
                    touched.add(key)

        by_node = dict(self._by_node)
        packed = dict(self._packed)
        remaining = dict(self._remaining)
        for key in touched:
            node, vnf = key
            packed.pop(key, None)
            remaining.pop(node, None)
            current = set(by_node.get(node, frozenset()))
            if assignments[key]:
                current.add(vnf)
            else:
                del assignments[key]
                current.discard(vnf)
            if current:
                by_node[node] = frozenset(current)
            else:
                by_node.pop(node, None)
        return Solution(self.problem, routes, assignments, by_node, link_loads, packed, remaining)

    # ------------------------------------------------------------------
    # Overviews
    # ------------------------------------------------------------------

    @property
    def complete(self) -> bool:
        return all(r is not None for r in self.routes)

    @property
    def scored(self) -> bool:
        return self.values is not None

    @property
    def feasible(self) -> bool:
        if self.values is None:
            raise RuntimeError("solution has not been scored yet")
        return self.values.feasible

    def assigned_flows(self, node: int, vnf: int) -> tuple[int, ...]:
        return self._assignments.get((node, vnf), ())

    def instances(self, node: int, vnf: int) -> VnfInstances:
        key = (node, vnf)
        inst = self._packed.get(key)
        if inst is None:
            inst = _pack(self.problem, node, vnf, self._assignments.get(key, ()))
            self._packed[key] = inst
        return inst

    def node_instances(self, node: int) -> list[VnfInstances]:
        return [self.instances(node, vnf) for vnf in sorted(self._by_node.get(node, ()))]

    def all_instances(self) -> list[VnfInstances]:
        return [self.instances(node, vnf) for node, vnf in sorted(self._assignments)]

    def instance_count(self, vnf: int) -> int:
        return sum(self.instances(node, v).count for node, v in self._assignments if v == vnf)

    def occupied_nodes(self) -> list[int]:
        """Nodes hosting at least one VNF instance."""
        return sorted(self._by_node)

    def hosting_nodes(self, vnf: int) -> list[int]:
        return sorted(node for node, v in self._assignments if v == vnf)

    def remaining_resources(self, node: int) -> np.ndarray:
        rem = self._remaining.get(node)
        if rem is None:
            demands = self.problem.library.demands
            rem = self.problem.topology.capacities[node].copy()
            for vnf in self._by_node.get(node, ()):
                rem -= self.instances(node, vnf).count * demands[vnf]
            rem.setflags(write=False)
            self._remaining[node] = rem
        return rem

    def remaining_bandwidth(self) -> np.ndarray:
        return self.problem.topology.bandwidths - self._link_loads

    @property
    def link_loads(self) -> np.ndarray:
        return self._link_loads

    def __repr__(self) -> str:
        state = "unscored" if self.values is None else ("feasible" if self.feasible else "infeasible")
        placed = sum(r is not None for r in self.routes)
        return f"Solution({placed}/{len(self.routes)} routes, {state})"


__all__ = [
    "Hop",
    "Route",
    "Solution",
    "VnfInstances",
    "build_route",
    "index_ratio",
    "make_route",
    "route_from_steps",
]
