"""Builders for the small test network used throughout the suite.

Topology (link delays)::

    A --1-- B --1-- C --1-- D
     \\_______3_______/

B and C offer resources (cpu=4, ram=4); A and D offer none.
"""

from __future__ import annotations

from vnfpsa.engine.evaluator import ObjectiveEvaluator
from vnfpsa.foundation.metrics import DEFAULT_OBJECTIVE_VECTOR, DEFAULT_UNFEASIBLE_VECTOR, parse_selector
from vnfpsa.model.problem import ProblemInstance
from vnfpsa.model.request import Request
from vnfpsa.model.solution import Solution, build_route
from vnfpsa.model.topology import Node, Topology
from vnfpsa.model.vnf import VNF, VnfLibrary

A, B, C, D = 0, 1, 2, 3
FW, NAT = 0, 1


def build_library(max_fw: int = 4, pair_latencies=None) -> VnfLibrary:
    return VnfLibrary.create(
        ("cpu", "ram"),
        [
            VNF("fw", (2.0, 1.0), processing_capacity=10.0, delay=0.5, max_instances=max_fw),
            VNF("nat", (1.0, 1.0), processing_capacity=20.0, delay=0.2, flow_migration_penalty=3.0),
        ],
        pair_latencies,
    )


def build_topology(bandwidth: float = 100.0) -> Topology:
    nodes = [
        Node("A", (0.0, 0.0)),
        Node("B", (4.0, 4.0)),
        Node("C", (4.0, 4.0)),
        Node("D", (0.0, 0.0)),
    ]
    links = [
        ("A", "B", bandwidth, 1.0),
        ("B", "C", bandwidth, 1.0),
        ("C", "D", bandwidth, 1.0),
        ("A", "C", bandwidth, 3.0),
    ]
    return Topology(nodes, links)


def build_problem(*, bandwidth: float = 100.0, max_fw: int = 4, r1_expected: float = 10.0) -> ProblemInstance:
    requests = [
        Request("r1", "A", "D", 5.0, expected_delay=r1_expected, chain=("fw", "nat")),
        Request("r2", "D", "A", 8.0, chain=("fw",)),
        Request("r3", "A", "C", 2.0),
    ]
    return ProblemInstance(build_topology(bandwidth), build_library(max_fw), requests)


def build_trivial_problem() -> ProblemInstance:
    """Two nodes, one link, one request without VNFs."""
    topology = Topology([Node("A", (0.0,)), Node("B", (0.0,))], [("A", "B", 10.0, 1.0)])
    library = VnfLibrary.create(("cpu",), [])
    return ProblemInstance(topology, library, [Request("only", "A", "B", 1.0, expected_delay=5.0)])


def make_evaluator(problem: ProblemInstance, references=()) -> ObjectiveEvaluator:
    return ObjectiveEvaluator(
        problem,
        parse_selector(DEFAULT_OBJECTIVE_VECTOR, problem.schema),
        parse_selector(DEFAULT_UNFEASIBLE_VECTOR, problem.schema, parameter="unfeasible_vector"),
        references,
    )


def baseline_solution(problem: ProblemInstance, nat_node: int = C) -> Solution:
    """r1: fw on B, nat on ``nat_node``; r2: fw on B; r3: no VNFs. All delay-shortest."""
    return Solution.from_routes(
        problem,
        [
            build_route(problem, 0, [B, nat_node], by_delay=True),
            build_route(problem, 1, [B], by_delay=True),
            build_route(problem, 2, [], by_delay=True),
        ],
    )
