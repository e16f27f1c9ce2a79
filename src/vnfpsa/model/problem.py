"""Validated problem instance: topology, VNF library and requests resolved to indices."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from vnfpsa.foundation.exceptions import InvalidRequestError, InvalidTopologyError, ProblemError
from vnfpsa.foundation.metrics import MetricSchema
from vnfpsa.model.request import Request
from vnfpsa.model.topology import Topology
from vnfpsa.model.vnf import VnfLibrary


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


@dataclass(frozen=True)
class Flow:
    """A request resolved against the topology and library."""

    index: int
    request: Request
    ingress: int
    egress: int
    chain: tuple[int, ...]
    bandwidth: float
    expected_delay: float
    chain_delay: float
    min_delay: float
    min_hops: float


class ProblemInstance:
    """
    Read-only object graph consumed by the search.

    Parameters
    ----------
    topology : Topology
        Network graph.
    library : VnfLibrary
        VNF catalog; its resource names define the node resource order.
    requests : Sequence[Request]
        Service requests. Request ids must be unique.

    Raises
    ------
    ProblemError
        If requests reference unknown nodes or VNFs, resource schemas differ,
        or an egress is unreachable.
    """

    def __init__(self, topology: Topology, library: VnfLibrary, requests: Sequence[Request]) -> None:
        if topology.n_resources != len(library.resources):
            raise InvalidTopologyError(
                f"Nodes declare {topology.n_resources} resources, library defines {len(library.resources)}.",
                details={"resources": list(library.resources)},
            )
        self.topology = topology
        self.library = library
        self.requests: tuple[Request, ...] = tuple(requests)
        if not self.requests:
            raise ProblemError("A problem needs at least one request.")
        self.schema = MetricSchema(library.resources)

        seen: set[str] = set()
        flows = []
        for idx, req in enumerate(self.requests):
            if req.id in seen:
                raise InvalidRequestError(req.id, "duplicate request id")
            seen.add(req.id)
            flows.append(self._resolve(idx, req))
        self.flows: tuple[Flow, ...] = tuple(flows)
        self.request_index = {req.id: i for i, req in enumerate(self.requests)}
        _logger().debug(
            "Problem: %d nodes, %d links, %d VNF types, %d requests",
            len(topology),
            len(topology.links),
            len(library),
            len(self.requests),
        )

    def __len__(self) -> int:
        return len(self.flows)

    def _resolve(self, idx: int, req: Request) -> Flow:
        topo, lib = self.topology, self.library
        if req.ingress not in topo.node_index:
            raise InvalidRequestError(req.id, f"unknown ingress '{req.ingress}'")
        if req.egress not in topo.node_index:
            raise InvalidRequestError(req.id, f"unknown egress '{req.egress}'")
        if req.bandwidth < 0:
            raise InvalidRequestError(req.id, "negative bandwidth demand")
        try:
            chain = tuple(lib.index(name) for name in req.chain)
        except ProblemError as exc:
            raise InvalidRequestError(req.id, exc.message) from exc
        ingress, egress = topo.node_index[req.ingress], topo.node_index[req.egress]
        if topo.delay(ingress, egress) == float("inf"):
            raise InvalidRequestError(req.id, "egress is unreachable from ingress")

        if chain:
            if not topo.hosts:
                raise InvalidRequestError(req.id, "no node offers resources for its VNF chain")
            by_delay = topo.shortest_middle(ingress, egress, topo.hosts, by_delay=True)
            by_hops = topo.shortest_middle(ingress, egress, topo.hosts, by_delay=False)
            if by_delay is None or by_hops is None:
                raise InvalidRequestError(req.id, "no reachable node can host its VNF chain")
            min_delay = topo.delay(ingress, by_delay) + topo.delay(by_delay, egress)
            min_hops = topo.hops(ingress, by_hops) + topo.hops(by_hops, egress)
        else:
            min_delay = topo.delay(ingress, egress)
            min_hops = topo.hops(ingress, egress)

        return Flow(
            index=idx,
            request=req,
            ingress=ingress,
            egress=egress,
            chain=chain,
            bandwidth=float(req.bandwidth),
            expected_delay=float(req.expected_delay),
            chain_delay=float(sum(lib.vnfs[v].delay for v in chain)),
            min_delay=float(min_delay),
            min_hops=float(min_hops),
        )


__all__ = ["Flow", "ProblemInstance"]
