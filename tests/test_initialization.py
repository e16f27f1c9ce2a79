from __future__ import annotations

import numpy as np
import pytest

from helpers import B, C, FW, NAT, baseline_solution
from vnfpsa.engine.initialization import InitialSolutionBuilder, PrepMode, cycle_fill, existing_solution
from vnfpsa.engine.population import SolutionPopulation
from vnfpsa.foundation.exceptions import InvalidPlacementError, InvalidPrepModeError

PLACEMENT = {
    "r1": [("A", None), ("B", "fw"), ("C", "nat"), ("D", None)],
    "r2": [("D", None), ("C", None), ("B", "fw"), ("A", None)],
    "r3": [("A", None), ("B", None), ("C", None)],
}


@pytest.fixture
def builder(problem, evaluator):
    return InitialSolutionBuilder(problem, evaluator, np.random.default_rng(3))


def test_prep_mode_parsing():
    assert PrepMode.parse("least_cpu") is PrepMode.LEAST_CPU
    assert PrepMode.parse(PrepMode.RAND) is PrepMode.RAND
    with pytest.raises(InvalidPrepModeError) as info:
        PrepMode.parse("GREEDY")
    assert info.value.parameter == "prep_mode"


@pytest.mark.parametrize("mode", ["RAND", "LEAST_DELAY", "LEAST_CPU"])
@pytest.mark.parametrize("size", [1, 5, 8])
def test_every_mode_fills_the_population(builder, mode, size):
    population = builder.build(mode, size)
    assert len(population) == size
    for solution in population:
        assert solution.complete
        assert solution.scored


def test_least_delay_collapses_each_chain(builder):
    for _ in range(5):
        solution = builder.least_delay()
        r1 = solution.routes[0]
        assert len(set(r1.vnf_nodes)) == 1
        assert r1.vnf_nodes[0] in (B, C)


def test_least_cpu_packs_demands_into_few_instances(builder):
    population = builder.build(PrepMode.LEAST_CPU, 4)
    assert all(s is population[0] for s in population)
    solution = population[0]
    # fw: 8 + 5 exceeds capacity 10, nat: a single flow
    assert solution.instance_count(FW) == 2
    assert solution.instance_count(NAT) == 1
    assert solution.feasible


class TestExisting:
    def test_placement_is_rebuilt(self, problem):
        solution = existing_solution(problem, PLACEMENT)
        assert solution.routes == baseline_solution(problem).routes

    def test_missing_request(self, problem):
        placement = {k: v for k, v in PLACEMENT.items() if k != "r2"}
        with pytest.raises(InvalidPlacementError, match="r2"):
            existing_solution(problem, placement)

    def test_unknown_request(self, problem):
        with pytest.raises(InvalidPlacementError, match="r9"):
            existing_solution(problem, {**PLACEMENT, "r9": [("A", None)]})

    def test_population_repeats_the_placement(self, builder, problem):
        existing = existing_solution(problem, PLACEMENT)
        population = builder.build("EXISTING", 3, existing=existing)
        assert len(population) == 3
        assert all(s is population[0] for s in population)
        assert population[0].feasible

    def test_mode_without_placement(self, builder):
        with pytest.raises(InvalidPlacementError):
            builder.build(PrepMode.EXISTING, 2)


def test_short_run_results_are_cycled(builder, problem):
    a = baseline_solution(problem)
    b = baseline_solution(problem, nat_node=B)
    population = builder.build(PrepMode.SHORT_PSA, 5, short_run=lambda: [a, b])
    assert [s is a for s in population] == [True, False, True, False, True]


def test_cycle_fill():
    assert cycle_fill(["x", "y", "z"], 2) == ["x", "y"]
    assert cycle_fill(["x"], 3) == ["x", "x", "x"]
    with pytest.raises(ValueError):
        cycle_fill([], 2)


def test_population_needs_scored_members(problem, baseline):
    with pytest.raises(ValueError):
        SolutionPopulation([baseline_solution(problem)])
    with pytest.raises(ValueError):
        SolutionPopulation([])
    population = SolutionPopulation([baseline, baseline])
    population.replace(1, baseline)
    assert len(population) == 2
    assert population.feasible_count() == 2
