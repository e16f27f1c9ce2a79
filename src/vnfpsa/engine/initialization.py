"""
Initial population strategies.

Every strategy returns exactly ``size`` scored solutions. Strategies that
produce fewer distinct placements are cycled (index modulo length) to fill the
population deterministically.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Mapping, Sequence

import numpy as np

from vnfpsa.engine.evaluator import ObjectiveEvaluator
from vnfpsa.engine.routing import WeightSettings, random_selection
from vnfpsa.foundation.exceptions import InvalidPlacementError, InvalidPrepModeError
from vnfpsa.model.problem import ProblemInstance
from vnfpsa.model.solution import Route, Solution, build_route, route_from_steps

ExistingPlacement = Mapping[str, Sequence[tuple[str, "str | None"]]]


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


class PrepMode(str, Enum):
    RAND = "RAND"
    SHORT_PSA = "SHORT_PSA"
    LEAST_DELAY = "LEAST_DELAY"
    LEAST_CPU = "LEAST_CPU"
    EXISTING = "EXISTING"

    @classmethod
    def parse(cls, value: "PrepMode | str") -> "PrepMode":
        if isinstance(value, PrepMode):
            return value
        key = str(value).strip().upper()
        try:
            return cls(key)
        except ValueError:
            raise InvalidPrepModeError(str(value), [m.value for m in cls]) from None


def cycle_fill(solutions: Sequence[Solution], size: int) -> list[Solution]:
    """Repeat ``solutions`` in order until exactly ``size`` entries exist."""
    if not solutions:
        raise ValueError("cannot fill a population from an empty list of solutions")
    return [solutions[k % len(solutions)] for k in range(size)]


def existing_solution(problem: ProblemInstance, placement: ExistingPlacement) -> Solution:
    """Solution described by per-request node paths; every request must be covered."""
    routes: list[Route] = []
    for f, flow in enumerate(problem.flows):
        steps = placement.get(flow.request.id)
        if steps is None:
            raise InvalidPlacementError("request missing from the placement", flow.request.id)
        routes.append(route_from_steps(problem, f, [(str(n), v) for n, v in steps]))
    unknown = set(placement) - set(problem.request_index)
    if unknown:
        raise InvalidPlacementError(f"placement references unknown requests {sorted(unknown)}")
    return Solution.from_routes(problem, routes)


class InitialSolutionBuilder:
    """
    Builds the starting population of a run.

    Parameters
    ----------
    problem : ProblemInstance
        Problem to place.
    evaluator : ObjectiveEvaluator
        Scores every produced solution.
    rng : numpy.random.Generator
        Source of randomness for the randomized strategies.
    weights : WeightSettings
        Passed on to randomized route construction.
    """

    def __init__(
        self,
        problem: ProblemInstance,
        evaluator: ObjectiveEvaluator,
        rng: np.random.Generator,
        weights: WeightSettings = WeightSettings(),
    ) -> None:
        self.problem = problem
        self.evaluator = evaluator
        self.rng = rng
        self.weights = weights

    def build(
        self,
        mode: PrepMode | str,
        size: int,
        *,
        existing: Solution | None = None,
        short_run: Callable[[], Sequence[Solution]] | None = None,
    ) -> list[Solution]:
        mode = PrepMode.parse(mode)
        if mode is PrepMode.RAND:
            produced = [self.random() for _ in range(size)]
        elif mode is PrepMode.LEAST_DELAY:
            produced = [self.least_delay() for _ in range(size)]
        elif mode is PrepMode.LEAST_CPU:
            produced = [self.least_cpu()]
        elif mode is PrepMode.EXISTING:
            if existing is None:
                raise InvalidPlacementError("prep mode EXISTING needs an existing placement")
            produced = [existing]
        else:
            if short_run is None:
                raise ValueError("prep mode SHORT_PSA needs a short_run callable")
            produced = list(short_run())
        produced = [self.evaluator.score(s) for s in produced]
        _logger().debug("Prepared %d distinct initial solutions (%s)", len(produced), mode.value)
        return cycle_fill(produced, size)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def random(self) -> Solution:
        return random_selection(Solution.empty(self.problem), range(len(self.problem.flows)), self.rng)

    def least_delay(self) -> Solution:
        """Every chain collapsed onto one random hosting node of the delay-shortest path."""
        problem = self.problem
        topo = problem.topology
        routes = []
        for f, flow in enumerate(problem.flows):
            if not flow.chain:
                routes.append(build_route(problem, f, (), by_delay=True))
                continue
            middle = topo.shortest_middle(flow.ingress, flow.egress, topo.hosts, by_delay=True)
            path = topo.path(flow.ingress, middle, by_delay=True) + topo.path(middle, flow.egress, by_delay=True)[1:]
            on_path = [n for n in path if topo.nodes[n].can_host]
            host = on_path[int(self.rng.integers(len(on_path)))]
            routes.append(build_route(problem, f, [host] * len(flow.chain), by_delay=True))
        return Solution.from_routes(problem, routes)

    def least_cpu(self) -> Solution:
        """
        Greedy placement on central nodes.

        Instance counts per type come from packing all demands of that type.
        Instances go to the resource-capable nodes traversed by the most
        shortest paths of flows needing the type. Each flow is then routed over
        the placed instances with a minimum-delay dynamic program.
        """
        problem = self.problem
        topo, lib = problem.topology, problem.library
        hosts = topo.hosts

        # centrality of each host per VNF type over the flows' shortest paths
        centrality: list[dict[int, int]] = [dict.fromkeys(hosts, 0) for _ in lib.vnfs]
        pending: list[list[tuple[int, list[int]]]] = [[] for _ in lib.vnfs]
        for f, flow in enumerate(problem.flows):
            if not flow.chain:
                continue
            middle = topo.shortest_middle(flow.ingress, flow.egress, hosts, by_delay=True)
            path = topo.path(flow.ingress, middle, by_delay=True) + topo.path(middle, flow.egress, by_delay=True)[1:]
            for vnf in flow.chain:
                pending[vnf].append((f, path))
                for node in path:
                    if node in centrality[vnf]:
                        centrality[vnf][node] += 1

        used = np.zeros_like(topo.capacities)
        locations: list[list[list[float]]] = [[] for _ in lib.vnfs]  # [node, load] per instance
        for vnf, spec in enumerate(lib.vnfs):
            demand = lib.demands[vnf]
            for _ in range(self._instances_needed(vnf)):
                fitting = [n for n in hosts if np.all(used[n] + demand <= topo.capacities[n])]
                node = max(fitting or list(hosts), key=lambda n: centrality[vnf][n])
                used[node] += demand
                locations[vnf].append([node, 0.0])
                kept = []
                served = 0.0
                for f, path in pending[vnf]:
                    served += problem.flows[f].bandwidth
                    if served > spec.processing_capacity or node not in path:
                        kept.append((f, path))
                        continue
                    for n in path:
                        if n in centrality[vnf]:
                            centrality[vnf][n] -= 1
                pending[vnf] = kept

        routes = []
        for f in range(len(problem.flows)):
            order = self._route_over_instances(f, locations, used)
            routes.append(build_route(problem, f, order, by_delay=True))
        return Solution.from_routes(problem, routes)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _instances_needed(self, vnf: int) -> int:
        capacity = self.problem.library.vnfs[vnf].processing_capacity
        demands = sorted(
            (flow.bandwidth for flow in self.problem.flows for v in flow.chain if v == vnf),
            reverse=True,
        )
        bins: list[float] = []
        for bandwidth in demands:
            for b, load in enumerate(bins):
                if load + bandwidth <= capacity:
                    bins[b] = load + bandwidth
                    break
            else:
                bins.append(bandwidth)
        return len(bins)

    def _route_over_instances(self, f: int, locations: list[list[list[float]]], used: np.ndarray) -> list[int]:
        """Minimum-delay choice of one placed instance per chain VNF; new instances when none fit."""
        problem = self.problem
        topo, lib = problem.topology, problem.library
        flow = problem.flows[f]
        if not flow.chain:
            return []

        # stage entries: (node, instance index or None for a new instance)
        stages: list[list[tuple[int, int | None]]] = []
        for vnf in flow.chain:
            capacity = lib.vnfs[vnf].processing_capacity
            stage: list[tuple[int, int | None]] = [
                (int(loc[0]), k) for k, loc in enumerate(locations[vnf]) if loc[1] + flow.bandwidth <= capacity
            ]
            if not stage:
                demand = lib.demands[vnf]
                stage = [(n, None) for n in topo.hosts if np.all(used[n] + demand <= topo.capacities[n])]
            if not stage:
                stage = [(n, None) for n in topo.hosts]
            stages.append(stage)

        cost = [0.0]
        back: list[list[int]] = []
        previous = [flow.ingress]
        for position, stage in enumerate(stages):
            pair = lib.pair_latency(flow.chain[position - 1], flow.chain[position]) if position else None
            stage_cost, stage_back = [], []
            for node, _ in stage:
                options = [
                    (cost[j] + topo.delay(p, node), j)
                    for j, p in enumerate(previous)
                    if pair is None or topo.delay(p, node) <= pair
                ]
                if not options:
                    options = [(cost[j] + topo.delay(p, node), j) for j, p in enumerate(previous)]
                best = min(options)
                stage_cost.append(best[0])
                stage_back.append(best[1])
            cost, previous = stage_cost, [node for node, _ in stage]
            back.append(stage_back)

        final = min(range(len(previous)), key=lambda j: cost[j] + topo.delay(previous[j], flow.egress))
        picks = [0] * len(stages)
        j = final
        for position in range(len(stages) - 1, -1, -1):
            picks[position] = j
            j = back[position][j]

        order = []
        for position, j in enumerate(picks):
            vnf = flow.chain[position]
            node, instance = stages[position][j]
            if instance is None:
                locations[vnf].append([node, flow.bandwidth])
                used[node] += lib.demands[vnf]
            else:
                locations[vnf][instance][1] += flow.bandwidth
            order.append(node)
        return order


__all__ = ["ExistingPlacement", "InitialSolutionBuilder", "PrepMode", "cycle_fill", "existing_solution"]
