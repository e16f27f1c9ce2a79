"""Objective and feasibility evaluation of placements."""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Sequence

import numpy as np

from vnfpsa.foundation.metrics import Metric, ValueVector, VectorSelector
from vnfpsa.model.problem import ProblemInstance
from vnfpsa.model.solution import Solution, index_ratio

# Tolerance for accumulated floating point error in loads.
EPS = 1e-9


def lower_median(values: Sequence[float]) -> float:
    """The ((n-1)/2)-th smallest value; 0.0 for an empty sequence."""
    if not values:
        return 0.0
    return float(sorted(values)[(len(values) - 1) // 2])


def _mean(values: Sequence[float]) -> float:
    return float(sum(values) / len(values)) if values else 0.0


class ObjectiveEvaluator:
    """
    Computes the full metric vector of a complete solution.

    Parameters
    ----------
    problem : ProblemInstance
        Problem all evaluated solutions belong to.
    objective : VectorSelector
        Selector producing the vector compared between feasible solutions.
    unfeasible : VectorSelector
        Selector producing the vector compared between infeasible solutions.
    references : Sequence[Solution], optional
        Previous placements for the migration metrics. Without references,
        NUMBER_OF_VNF_REPLACEMENTS and TOTAL_FLOW_MIGRATION_PENALTY stay 0.
    """

    def __init__(
        self,
        problem: ProblemInstance,
        objective: VectorSelector,
        unfeasible: VectorSelector,
        references: Sequence[Solution] = (),
    ) -> None:
        self.problem = problem
        self.objective = objective
        self.unfeasible = unfeasible
        self.references = tuple(references)
        self._resource_slots = [problem.schema.resource_slot(k) for k in range(len(problem.library.resources))]

    def evaluate(self, solution: Solution) -> ValueVector:
        """Pure function of the solution's routes; does not modify ``solution``."""
        if not solution.complete:
            raise ValueError("only complete solutions (one route per request) can be evaluated")
        problem = self.problem
        topo, lib = problem.topology, problem.library
        v = problem.schema.empty()

        inverse_loads: list[float] = []
        per_type_count: dict[int, int] = defaultdict(int)
        per_type_rooted: dict[int, float] = defaultdict(float)
        for node in solution.occupied_nodes():
            remaining = solution.remaining_resources(node)
            v[self._resource_slots] += topo.capacities[node] - remaining
            overloaded = bool(np.any(remaining < -EPS))
            if overloaded:
                v[Metric.NUMBER_OF_RESOURCE_VIOLATIONS] += 1
            for inst in solution.node_instances(node):
                capacity = lib.vnfs[inst.vnf].processing_capacity
                for load in inst.loads:
                    rooted = math.sqrt(max(load, 0.0))
                    v[Metric.TOTAL_ROOTED_VNF_LOADS] += rooted
                    per_type_rooted[inst.vnf] += rooted
                    if overloaded:
                        v[Metric.TOTAL_OVERLOADED_VNF_CAPACITY] += load
                    inverse_loads.append(index_ratio(capacity, load))
                per_type_count[inst.vnf] += inst.count
        v[Metric.MEAN_INVERSE_LOAD_INDEX] = _mean(inverse_loads)
        v[Metric.MEDIAN_INVERSE_LOAD_INDEX] = lower_median(inverse_loads)

        for vnf, count in per_type_count.items():
            limit = lib.vnfs[vnf].max_instances
            if limit > -1 and count > limit:
                v[Metric.NUMBER_OF_EXCESSIVE_VNFS] += count - limit
                v[Metric.TOTAL_ROOTED_EXCESSIVE_VNF_CAPACITY] += per_type_rooted[vnf]
            v[Metric.NUMBER_OF_VNF_INSTANCES] += count

        v[Metric.NUMBER_OF_CONGESTED_LINKS] = float(np.count_nonzero(solution.remaining_bandwidth() < -EPS))

        delay_idx: list[float] = []
        hops_idx: list[float] = []
        for route in solution.routes:
            assert route is not None
            v[Metric.TOTAL_DELAY] += route.delay
            v[Metric.NUMBER_OF_HOPS] += route.n_hops
            delay_idx.append(route.delay_index)
            hops_idx.append(route.hops_index)
            if route.delay > problem.flows[route.flow].expected_delay + EPS:
                v[Metric.NUMBER_OF_DELAY_VIOLATIONS] += 1
        v[Metric.MEAN_DELAY_INDEX] = _mean(delay_idx)
        v[Metric.MEDIAN_DELAY_INDEX] = lower_median(delay_idx)
        v[Metric.MAX_DELAY_INDEX] = max(delay_idx, default=0.0)
        v[Metric.MEAN_HOPS_INDEX] = _mean(hops_idx)
        v[Metric.MEDIAN_HOPS_INDEX] = lower_median(hops_idx)
        v[Metric.MAX_HOPS_INDEX] = max(hops_idx, default=0.0)

        if self.references:
            v[Metric.NUMBER_OF_VNF_REPLACEMENTS] = min(self._replacements(solution, ref) for ref in self.references)
            v[Metric.TOTAL_FLOW_MIGRATION_PENALTY] = min(self._migration_penalty(solution, ref) for ref in self.references)

        violations = (
            Metric.NUMBER_OF_DELAY_VIOLATIONS,
            Metric.NUMBER_OF_RESOURCE_VIOLATIONS,
            Metric.NUMBER_OF_EXCESSIVE_VNFS,
            Metric.NUMBER_OF_CONGESTED_LINKS,
        )
        v[Metric.UNFEASIBLE] = 1.0 if any(v[m] > 0 for m in violations) else 0.0
        return ValueVector(problem.schema, v)

    def score(self, solution: Solution) -> Solution:
        """Attach values and comparison vectors to ``solution`` (once) and return it."""
        if solution.values is not None:
            return solution
        values = self.evaluate(solution)
        solution.objective = self.objective.select(values.values)
        solution.unfeasible = self.unfeasible.select(values.values)
        solution.values = values
        return solution

    @staticmethod
    def _replacements(solution: Solution, reference: Solution) -> float:
        keys = {(inst.node, inst.vnf) for inst in solution.all_instances()}
        keys.update((inst.node, inst.vnf) for inst in reference.all_instances())
        return float(sum(abs(solution.instances(n, f).count - reference.instances(n, f).count) for n, f in keys))

    def _migration_penalty(self, solution: Solution, reference: Solution) -> float:
        vnfs = self.problem.library.vnfs
        penalty = 0.0
        for old in reference.routes:
            if old is None:
                continue
            new = solution.routes[old.flow]
            if new is None:
                continue
            chain = self.problem.flows[old.flow].chain
            for k, (a, b) in enumerate(zip(old.vnf_nodes, new.vnf_nodes)):
                if a != b:
                    penalty += vnfs[chain[k]].flow_migration_penalty
        return penalty


__all__ = ["EPS", "ObjectiveEvaluator", "lower_median"]
