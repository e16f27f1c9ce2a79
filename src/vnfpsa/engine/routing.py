"""
Route construction for (re)placed flows.

``viterbi_selection`` builds one candidate stage per chain VNF, each
candidate carrying its best delay and hop count from the ingress, and then
draws the hosting nodes back to front, weighting every candidate by the
inverse of its estimated end-to-end cost. ``random_selection`` is the
unweighted fallback used when weighting is disabled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from vnfpsa.engine.evaluator import lower_median
from vnfpsa.model.problem import Flow
from vnfpsa.model.solution import Solution, build_route


@dataclass(frozen=True)
class WeightSettings:
    """Which costs steer randomized choices."""

    use_weights: bool = True
    delay: bool = True
    hops: bool = True


class _Candidate:
    __slots__ = ("node", "delay", "hops")

    def __init__(self, node: int, delay: float, hops: float) -> None:
        self.node = node
        self.delay = delay
        self.hops = hops


def weighted_choice(weights: Sequence[float], rng: np.random.Generator) -> int:
    """Index drawn proportionally to ``weights``; uniform when they sum to zero."""
    w = np.asarray(weights, dtype=float)
    total = float(w.sum())
    if not np.isfinite(total) or total <= 0.0:
        return int(rng.integers(len(w)))
    return int(rng.choice(len(w), p=w / total))


def _fits(solution: Solution, node: int, vnf: int) -> bool:
    topo, lib = solution.problem.topology, solution.problem.library
    return bool(np.all(topo.capacities[node] >= lib.demands[vnf]))


def _add_best_connection(
    solution: Solution,
    previous: list[_Candidate],
    stage: list[_Candidate],
    node: int,
    pair_latency: float | None,
    weights: WeightSettings,
) -> None:
    topo = solution.problem.topology
    delays = [c.delay + topo.delay(c.node, node) for c in previous]
    hops = [c.hops + topo.hops(c.node, node) for c in previous]
    combined = weights.delay == weights.hops
    med_d = med_h = 1.0
    if combined:
        med_d = lower_median(delays) or 1.0
        med_h = lower_median(hops) or 1.0

    best: int | None = None
    best_cost = float("inf")
    for j, c in enumerate(previous):
        if pair_latency is not None and topo.delay(c.node, node) > pair_latency:
            continue
        if combined:
            cost = delays[j] / med_d + hops[j] / med_h
        elif weights.delay:
            cost = delays[j]
        else:
            cost = hops[j]
        if cost < best_cost:
            best, best_cost = j, cost
    if best is not None:
        stage.append(_Candidate(node, delays[best], hops[best]))


def _build_stage(
    solution: Solution,
    flow: Flow,
    position: int,
    previous: list[_Candidate],
    create_new: bool,
    weights: WeightSettings,
) -> list[_Candidate]:
    problem = solution.problem
    lib = problem.library
    vnf = flow.chain[position]
    pair = lib.pair_latency(flow.chain[position - 1], vnf) if position > 0 else None
    nodes = range(len(problem.topology))
    stage: list[_Candidate] = []

    def extend(candidates, pair_latency):
        for node in candidates:
            _add_best_connection(solution, previous, stage, node, pair_latency, weights)

    if create_new:
        extend((n for n in nodes if _fits(solution, n, vnf)), pair)
    if not stage:
        capacity = lib.vnfs[vnf].processing_capacity
        spare = [
            n
            for n in solution.hosting_nodes(vnf)
            if any(load + flow.bandwidth <= capacity for load in solution.instances(n, vnf).loads)
        ]
        extend(spare, pair)
    if not stage:
        demand = lib.demands[vnf]
        extend((n for n in nodes if np.all(solution.remaining_resources(n) >= demand)), pair)
    if not stage:
        extend((n for n in nodes if _fits(solution, n, vnf)), pair)
    if not stage:
        extend(nodes, pair)
    if not stage:
        extend(nodes, None)
    return stage


def _candidate_weights(candidates: list[_Candidate], weights: WeightSettings) -> list[float]:
    positive = [c.delay for c in candidates if c.delay > 0.0]
    min_delay = min(positive) if positive else 1.0
    for c in candidates:
        if c.delay == 0.0:
            c.delay = min_delay / 2.0
        if c.hops == 0.0:
            c.hops = 0.5
    if weights.delay and weights.hops:
        med_d = lower_median([c.delay for c in candidates])
        med_h = lower_median([c.hops for c in candidates])
        return [1.0 / (c.delay / med_d + c.hops / med_h) for c in candidates]
    if weights.delay:
        return [1.0 / c.delay for c in candidates]
    if weights.hops:
        return [1.0 / c.hops for c in candidates]
    return [1.0] * len(candidates)


def _draw_order(
    solution: Solution,
    flow: Flow,
    stages: list[list[_Candidate]],
    create_new: bool,
    weights: WeightSettings,
    rng: np.random.Generator,
) -> list[int] | None:
    """Resolve hosting nodes from the last VNF back to the first; None asks for new instances."""
    topo = solution.problem.topology
    order = [0] * len(flow.chain)
    delay_so_far = flow.chain_delay
    hops_so_far = 0.0
    last = flow.egress
    for position in range(len(flow.chain) - 1, -1, -1):
        candidates = [
            _Candidate(
                c.node,
                c.delay + delay_so_far + topo.delay(c.node, last),
                c.hops + hops_so_far + topo.hops(c.node, last),
            )
            for c in stages[position]
        ]
        viable = [c for c in candidates if c.delay <= flow.expected_delay]
        if not viable:
            if not create_new:
                return None
            viable = candidates
        pick = viable[weighted_choice(_candidate_weights(viable, weights), rng)]
        order[position] = pick.node
        delay_so_far += topo.delay(pick.node, last)
        hops_so_far += topo.hops(pick.node, last)
        last = pick.node
    return order


def viterbi_selection(
    solution: Solution,
    flows: Sequence[int],
    p_new_instance: float,
    rng: np.random.Generator,
    weights: WeightSettings = WeightSettings(),
) -> Solution:
    """
    Place each of ``flows`` (which must be unrouted in ``solution``) one after another.

    With probability ``p_new_instance / len(flows)`` a flow prefers nodes where
    a new instance fits; otherwise it prefers existing instances with spare
    capacity, then nodes with remaining resources. Flows that land on new
    instances may afterwards pull other flows over, see
    :func:`improve_flows_for_instance`.
    """
    problem = solution.problem
    created: list[tuple[int, int]] = []
    for f in flows:
        flow = problem.flows[f]
        if not flow.chain:
            solution = solution.with_routes([build_route(problem, f, (), by_delay=bool(rng.random() > 0.5))])
            continue
        force_new = False
        while True:
            create_new = force_new or bool(rng.random() <= p_new_instance / len(flows))
            stages: list[list[_Candidate]] = []
            previous = [_Candidate(flow.ingress, 0.0, 0.0)]
            for position in range(len(flow.chain)):
                previous = _build_stage(solution, flow, position, previous, create_new, weights)
                stages.append(previous)
            order = _draw_order(solution, flow, stages, create_new, weights, rng)
            if order is not None:
                break
            force_new = True

        before = [solution.instances(node, vnf).count for node, vnf in zip(order, flow.chain)]
        route = build_route(problem, f, order, by_delay=bool(rng.random() > 0.5))
        solution = solution.with_routes([route])
        for (node, vnf), count in zip(zip(order, flow.chain), before):
            if solution.instances(node, vnf).count > count and (node, vnf) not in created:
                created.append((node, vnf))
    return improve_flows_for_instance(solution, created)


def random_selection(solution: Solution, flows: Sequence[int], rng: np.random.Generator) -> Solution:
    """Place every VNF of each flow on a uniformly drawn hosting node."""
    problem = solution.problem
    topo = problem.topology
    candidates = topo.hosts or tuple(range(len(topo)))
    routes = []
    for f in flows:
        chain = problem.flows[f].chain
        order = [candidates[int(rng.integers(len(candidates)))] for _ in chain]
        routes.append(build_route(problem, f, order, by_delay=bool(rng.random() > 0.5)))
    return solution.with_routes(routes)


def improve_flows_for_instance(solution: Solution, created: Sequence[tuple[int, int]]) -> Solution:
    """
    Fill freshly created instances with flows served elsewhere.

    A flow is moved onto a new instance (node, vnf) when the instance still has
    capacity for it and the rerouted path is neither longer in delay nor in hops.
    """
    problem = solution.problem
    for node, vnf in created:
        inst = solution.instances(node, vnf)
        if inst.count == 0:
            continue
        capacity = problem.library.vnfs[vnf].processing_capacity
        loads = list(inst.loads)
        moved = []
        for other in solution.hosting_nodes(vnf):
            if other == node:
                continue
            for f in solution.assigned_flows(other, vnf):
                if any(r.flow == f for r in moved):
                    continue
                flow = problem.flows[f]
                slot = next((b for b, load in enumerate(loads) if load + flow.bandwidth <= capacity), None)
                if slot is None:
                    continue
                route = solution.routes[f]
                order = list(route.vnf_nodes)
                position = next(
                    k for k, (n, v) in enumerate(zip(order, flow.chain)) if n == other and v == vnf
                )
                order[position] = node
                for by_delay in (False, True):
                    candidate = build_route(problem, f, order, by_delay=by_delay)
                    if candidate.delay <= route.delay and candidate.n_hops <= route.n_hops:
                        moved.append(candidate)
                        loads[slot] += flow.bandwidth
                        break
        if moved:
            solution = solution.with_routes(moved)
    return solution


__all__ = [
    "WeightSettings",
    "improve_flows_for_instance",
    "random_selection",
    "viterbi_selection",
    "weighted_choice",
]
