"""
Neighbourhood moves of the search.

Two moves exist. ``replace_traffic_assignment`` removes one flow and places it
again; ``replace_vnf_instance`` removes enough flows from one VNF instance for
it to disappear and places them again. Both pick their target by priority:
violations of the parent first, otherwise a draw weighted by how badly routes
perform.
"""

from __future__ import annotations

import logging

import numpy as np

from vnfpsa.engine.evaluator import EPS, ObjectiveEvaluator
from vnfpsa.engine.routing import WeightSettings, random_selection, viterbi_selection, weighted_choice
from vnfpsa.foundation.metrics import Metric
from vnfpsa.model.problem import ProblemInstance
from vnfpsa.model.solution import Route, Solution, VnfInstances


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


class NeighborhoodGenerator:
    """
    Produces scored neighbours of scored solutions.

    Parameters
    ----------
    problem : ProblemInstance
        Problem all solutions belong to.
    evaluator : ObjectiveEvaluator
        Used to score every generated neighbour.
    weights : WeightSettings
        Whether route costs bias the random choices.
    """

    def __init__(
        self,
        problem: ProblemInstance,
        evaluator: ObjectiveEvaluator,
        weights: WeightSettings = WeightSettings(),
    ) -> None:
        self.problem = problem
        self.evaluator = evaluator
        self.weights = weights

    def generate(
        self,
        solution: Solution,
        p_reassign_vnf: float,
        p_new_instance: float,
        rng: np.random.Generator,
    ) -> Solution:
        if rng.random() < p_reassign_vnf:
            neighbour = self.replace_vnf_instance(solution, p_new_instance, rng)
        else:
            neighbour = self.replace_traffic_assignment(solution, p_new_instance, rng)
        return self.evaluator.score(neighbour)

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    def replace_traffic_assignment(
        self, solution: Solution, p_new_instance: float, rng: np.random.Generator
    ) -> Solution:
        values = solution.values
        routes = [r for r in solution.routes if r is not None]
        choices: list[int] = []
        if values is not None and values[Metric.NUMBER_OF_DELAY_VIOLATIONS] > 0:
            choices = [r.flow for r in routes if r.delay > self.problem.flows[r.flow].expected_delay + EPS]
        elif values is not None and values[Metric.NUMBER_OF_CONGESTED_LINKS] > 0:
            congested = set(np.flatnonzero(solution.remaining_bandwidth() < -EPS).tolist())
            choices = [r.flow for r in routes if any(link in congested for link in r.links)]

        if choices:
            flow = choices[int(rng.integers(len(choices)))]
        else:
            flow = routes[weighted_choice([self._route_weight(r) for r in routes], rng)].flow
        return self._place(solution.without([flow]), [flow], p_new_instance, rng)

    def replace_vnf_instance(self, solution: Solution, p_new_instance: float, rng: np.random.Generator) -> Solution:
        instances = solution.all_instances()
        if not instances:
            return self.replace_traffic_assignment(solution, p_new_instance, rng)
        values = solution.values
        lib = self.problem.library
        choices: list[VnfInstances] = []
        if values is not None and values[Metric.NUMBER_OF_EXCESSIVE_VNFS] > 0:
            choices = [
                inst
                for inst in instances
                if lib.vnfs[inst.vnf].max_instances > -1
                and solution.instance_count(inst.vnf) > lib.vnfs[inst.vnf].max_instances
            ]
        elif values is not None and values[Metric.NUMBER_OF_RESOURCE_VIOLATIONS] > 0:
            choices = [inst for inst in instances if np.any(solution.remaining_resources(inst.node) < -EPS)]

        if choices:
            target = choices[int(rng.integers(len(choices)))]
        else:
            target = instances[weighted_choice([self._instance_weight(solution, inst) for inst in instances], rng)]

        removed = self._release_instance(solution, target, rng)
        return self._place(solution.without(removed), sorted(removed), p_new_instance, rng)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _release_instance(self, solution: Solution, target: VnfInstances, rng: np.random.Generator) -> set[int]:
        """Flows to remove from ``target``'s node until one instance of its type is gone there."""
        node, vnf = target.node, target.vnf
        if target.count == 1:
            return set(solution.assigned_flows(node, vnf))
        removed: set[int] = set()
        current = solution
        while current.instances(node, vnf).count == target.count:
            assigned = current.assigned_flows(node, vnf)
            flow = assigned[int(rng.integers(len(assigned)))]
            removed.add(flow)
            current = current.without([flow])
        return removed

    def _place(self, partial: Solution, flows: list[int], p_new_instance: float, rng: np.random.Generator) -> Solution:
        if self.weights.use_weights:
            return viterbi_selection(partial, flows, p_new_instance, rng, self.weights)
        return random_selection(partial, flows, rng)

    def _route_weight(self, route: Route) -> float:
        w = self.weights
        if not w.use_weights:
            return 1.0
        if w.delay and w.hops:
            return route.delay_index + route.hops_index
        if w.delay:
            return route.delay_index
        if w.hops:
            return route.hops_index
        return 1.0

    def _instance_weight(self, solution: Solution, inst: VnfInstances) -> float:
        flows = solution.assigned_flows(inst.node, inst.vnf)
        mean = sum(self._route_weight(solution.routes[f]) for f in flows) / len(flows)  # type: ignore[arg-type]
        return mean * inst.count


__all__ = ["NeighborhoodGenerator"]
