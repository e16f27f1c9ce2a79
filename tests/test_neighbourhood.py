from __future__ import annotations

import numpy as np
import pytest

from helpers import A, B, C, FW, NAT, baseline_solution, build_problem, build_topology, make_evaluator
from vnfpsa.engine.neighbourhood import NeighborhoodGenerator
from vnfpsa.engine.routing import (
    WeightSettings,
    improve_flows_for_instance,
    random_selection,
    viterbi_selection,
    weighted_choice,
)
from vnfpsa.model.problem import ProblemInstance
from vnfpsa.model.request import Request
from vnfpsa.model.solution import Solution, build_route
from vnfpsa.model.vnf import VNF, VnfLibrary


def _assert_valid(solution: Solution) -> None:
    problem = solution.problem
    assert solution.complete
    for route in solution.routes:
        flow = problem.flows[route.flow]
        assert route.path[0] == flow.ingress
        assert route.path[-1] == flow.egress
        assert tuple(h.vnf for h in route.hops if h.vnf is not None) == flow.chain
        for hop, prev in zip(route.hops[1:], route.path):
            if hop.link is not None:
                assert problem.topology.link_between(prev, hop.node) == hop.link


class TestWeightedChoice:
    def test_follows_weights(self):
        rng = np.random.default_rng(1)
        draws = [weighted_choice([0.0, 1.0, 0.0], rng) for _ in range(20)]
        assert set(draws) == {1}

    def test_uniform_when_all_zero(self):
        rng = np.random.default_rng(1)
        draws = {weighted_choice([0.0, 0.0, 0.0], rng) for _ in range(200)}
        assert draws == {0, 1, 2}


class TestSelection:
    @pytest.mark.parametrize("seed", range(10))
    def test_viterbi_places_removed_flows(self, problem, seed):
        rng = np.random.default_rng(seed)
        partial = baseline_solution(problem).without([0, 1])
        placed = viterbi_selection(partial, [0, 1], 0.5, rng)
        _assert_valid(placed)
        for node in placed.routes[0].vnf_nodes + placed.routes[1].vnf_nodes:
            assert node in (B, C)

    def test_viterbi_routes_chainless_flow(self, problem):
        partial = baseline_solution(problem).without([2])
        placed = viterbi_selection(partial, [2], 0.0, np.random.default_rng(0))
        assert placed.routes[2].path[0] == A
        assert placed.routes[2].path[-1] == C

    @pytest.mark.parametrize("seed", range(5))
    def test_random_selection_uses_hosts(self, problem, seed):
        partial = Solution.empty(problem)
        placed = random_selection(partial, [0, 1, 2], np.random.default_rng(seed))
        _assert_valid(placed)
        assert set(placed.occupied_nodes()) <= {B, C}


class TestImproveFlowsForInstance:
    @pytest.fixture
    def roomy_problem(self):
        library = VnfLibrary.create(
            ("cpu", "ram"),
            [
                VNF("fw", (2.0, 1.0), processing_capacity=20.0, delay=0.5),
                VNF("nat", (1.0, 1.0), processing_capacity=20.0, delay=0.2),
            ],
        )
        requests = [
            Request("r1", "A", "D", 5.0, chain=("fw", "nat")),
            Request("r2", "D", "A", 8.0, chain=("fw",)),
        ]
        return ProblemInstance(build_topology(), library, requests)

    def test_flow_moves_onto_new_instance_without_getting_longer(self, roomy_problem):
        solution = Solution.from_routes(
            roomy_problem,
            [
                build_route(roomy_problem, 0, [B, C], by_delay=True),
                build_route(roomy_problem, 1, [C], by_delay=True),
            ],
        )
        improved = improve_flows_for_instance(solution, [(B, FW)])
        assert improved.instances(C, FW).count == 0
        assert improved.instances(B, FW).loads == (13.0,)
        assert improved.routes[1].delay <= solution.routes[1].delay
        assert improved.routes[1].n_hops <= solution.routes[1].n_hops

    def test_full_instance_keeps_flows(self, problem):
        solution = Solution.from_routes(
            problem,
            [
                build_route(problem, 0, [B, C], by_delay=True),
                build_route(problem, 1, [C], by_delay=True),
                build_route(problem, 2, [], by_delay=True),
            ],
        )
        # fw capacity is 10, so r2 (8) does not fit next to r1 (5)
        improved = improve_flows_for_instance(solution, [(B, FW)])
        assert improved.routes == solution.routes


class TestNeighborhoodGenerator:
    @pytest.mark.parametrize("seed", range(20))
    def test_neighbours_are_complete_and_scored(self, problem, evaluator, baseline, seed):
        generator = NeighborhoodGenerator(problem, evaluator)
        rng = np.random.default_rng(seed)
        neighbour = generator.generate(baseline, 0.5, 0.25, rng)
        _assert_valid(neighbour)
        assert neighbour.scored
        assert np.all(np.isfinite(neighbour.values.values))
        # parent untouched
        assert baseline.instances(B, FW).count == 2

    def test_delay_violating_flow_is_moved(self):
        problem = build_problem(r1_expected=3.5)
        evaluator = make_evaluator(problem)
        parent = evaluator.score(baseline_solution(problem))
        generator = NeighborhoodGenerator(problem, evaluator)
        for seed in range(5):
            neighbour = generator.replace_traffic_assignment(parent, 0.0, np.random.default_rng(seed))
            assert neighbour.routes[1] == parent.routes[1]
            assert neighbour.routes[2] == parent.routes[2]

    def test_resource_violation_targets_the_overloaded_node(self):
        problem = build_problem()
        evaluator = make_evaluator(problem)
        parent = evaluator.score(baseline_solution(problem, nat_node=B))
        generator = NeighborhoodGenerator(problem, evaluator)
        for seed in range(5):
            neighbour = generator.replace_vnf_instance(parent, 0.5, np.random.default_rng(seed))
            _assert_valid(neighbour)
            assert neighbour.routes[2] == parent.routes[2]

    def test_release_single_instance_frees_all_its_flows(self, problem, evaluator, baseline):
        generator = NeighborhoodGenerator(problem, evaluator)
        rng = np.random.default_rng(0)
        assert generator._release_instance(baseline, baseline.instances(C, NAT), rng) == {0}
        removed = generator._release_instance(baseline, baseline.instances(B, FW), rng)
        assert len(removed) == 1
        assert baseline.without(removed).instances(B, FW).count == 1

    def test_unweighted_moves_stay_on_hosts(self, problem, evaluator, baseline):
        generator = NeighborhoodGenerator(problem, evaluator, WeightSettings(use_weights=False))
        for seed in range(10):
            neighbour = generator.generate(baseline, 0.5, 0.5, np.random.default_rng(seed))
            _assert_valid(neighbour)
            assert set(neighbour.occupied_nodes()) <= {B, C}

    def test_problem_without_instances(self, trivial_problem):
        evaluator = make_evaluator(trivial_problem)
        parent = evaluator.score(Solution.from_routes(trivial_problem, [build_route(trivial_problem, 0, [], by_delay=True)]))
        generator = NeighborhoodGenerator(trivial_problem, evaluator)
        neighbour = generator.generate(parent, 1.0, 0.5, np.random.default_rng(0))
        assert neighbour.routes[0].path == (0, 1)
        assert neighbour.feasible
