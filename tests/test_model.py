from __future__ import annotations

import pytest

from helpers import A, B, C, D, FW, NAT, baseline_solution, build_library, build_topology
from vnfpsa.foundation.exceptions import InvalidPlacementError, InvalidRequestError, InvalidTopologyError, ProblemError
from vnfpsa.model.problem import ProblemInstance
from vnfpsa.model.request import Request
from vnfpsa.model.solution import Solution, build_route, index_ratio, route_from_steps
from vnfpsa.model.topology import Node, Topology
from vnfpsa.model.vnf import VnfLibrary


class TestTopology:
    def test_shortest_paths_by_delay_and_hops(self):
        topo = build_topology()
        assert topo.delay(A, D) == pytest.approx(3.0)
        assert topo.path(A, D, by_delay=True) == [A, B, C, D]
        assert topo.hops(A, D) == 2.0
        assert topo.path(A, D, by_delay=False) == [A, C, D]
        assert topo.hosts == (B, C)

    def test_shortest_middle(self):
        topo = build_topology()
        assert topo.shortest_middle(A, D, topo.hosts, by_delay=False) == C

    def test_rejects_disconnected_graph(self):
        with pytest.raises(InvalidTopologyError):
            Topology([Node("A", (1.0,)), Node("B", (1.0,))], [])

    def test_rejects_self_loop_and_duplicate_link(self):
        nodes = [Node("A", (1.0,)), Node("B", (1.0,))]
        with pytest.raises(InvalidTopologyError):
            Topology(nodes, [("A", "A", 1.0, 1.0)])
        with pytest.raises(InvalidTopologyError):
            Topology(nodes, [("A", "B", 1.0, 1.0), ("B", "A", 1.0, 1.0)])

    def test_rejects_unknown_node(self):
        with pytest.raises(InvalidTopologyError):
            Topology([Node("A", (1.0,))], [("A", "Z", 1.0, 1.0)])


class TestProblemInstance:
    def test_minimum_delay_and_hops(self, problem):
        r1 = problem.flows[0]
        assert r1.chain == (FW, NAT)
        assert r1.chain_delay == pytest.approx(0.7)
        assert r1.min_delay == pytest.approx(3.0)
        assert r1.min_hops == 2.0
        r3 = problem.flows[2]
        assert r3.min_delay == pytest.approx(2.0)
        assert r3.min_hops == 1.0

    def test_unknown_vnf_names_the_request(self):
        with pytest.raises(InvalidRequestError, match="r9"):
            ProblemInstance(build_topology(), build_library(), [Request("r9", "A", "D", 1.0, chain=("dpi",))])

    def test_unknown_ingress(self):
        with pytest.raises(InvalidRequestError):
            ProblemInstance(build_topology(), build_library(), [Request("r1", "X", "D", 1.0)])

    def test_duplicate_request_ids(self):
        reqs = [Request("r1", "A", "D", 1.0), Request("r1", "D", "A", 1.0)]
        with pytest.raises(InvalidRequestError):
            ProblemInstance(build_topology(), build_library(), reqs)

    def test_resource_count_mismatch(self):
        topo = Topology([Node("A", (1.0,)), Node("B", (1.0,))], [("A", "B", 1.0, 1.0)])
        with pytest.raises(ProblemError):
            ProblemInstance(topo, build_library(), [Request("r1", "A", "B", 1.0)])

    def test_needs_requests(self):
        with pytest.raises(ProblemError):
            ProblemInstance(build_topology(), build_library(), [])


class TestRoutes:
    def test_build_route_marks_vnfs_in_chain_order(self, problem):
        route = build_route(problem, 0, [B, C], by_delay=True)
        assert route.path == (A, B, C, D)
        assert route.vnf_nodes == (B, C)
        assert [h.vnf for h in route.hops] == [None, FW, NAT, None]
        assert route.delay == pytest.approx(3.7)
        assert route.n_hops == 3.0
        assert route.delay_index == pytest.approx(1.0)
        assert route.hops_index == pytest.approx(1.5)

    def test_consecutive_vnfs_on_one_node(self, problem):
        route = build_route(problem, 0, [C, C], by_delay=False)
        assert route.path == (A, C, C, D)
        assert route.hops[2].link is None
        assert route.n_hops == 2.0

    def test_route_without_vnfs_between_equal_nodes(self):
        topo = Topology([Node("A", (0.0,))], [])
        problem = ProblemInstance(topo, VnfLibrary.create(("cpu",), []), [Request("loop", "A", "A", 1.0)])
        route = build_route(problem, 0, [], by_delay=True)
        assert route.path == (A,)
        assert route.delay_index == 1.0
        assert route.hops_index == 1.0

    def test_index_ratio_sentinel(self):
        assert index_ratio(3.0, 2.0) == 1.5
        assert index_ratio(0.0, 0.0) == 1.0
        assert index_ratio(2.0, 0.0) == 3.0

    def test_route_from_steps(self, problem):
        route = route_from_steps(problem, 0, [("A", None), ("B", "fw"), ("C", "nat"), ("D", None)])
        assert route == build_route(problem, 0, [B, C], by_delay=True)

    def test_route_from_steps_rejects_missing_link(self, problem):
        with pytest.raises(InvalidPlacementError):
            route_from_steps(problem, 0, [("A", None), ("D", None)])

    def test_route_from_steps_rejects_wrong_chain(self, problem):
        with pytest.raises(InvalidPlacementError):
            route_from_steps(problem, 0, [("A", None), ("B", "nat"), ("C", "fw"), ("D", None)])


class TestSolution:
    def test_instances_are_packed_first_fit_decreasing(self, problem):
        solution = baseline_solution(problem)
        fw = solution.instances(B, FW)
        assert fw.count == 2
        assert fw.loads == (8.0, 5.0)
        assert solution.instances(C, NAT).count == 1
        assert solution.instance_count(FW) == 2
        assert list(solution.remaining_resources(B)) == [0.0, 2.0]
        assert solution.occupied_nodes() == [B, C]

    def test_link_loads(self, problem):
        solution = baseline_solution(problem)
        # A-B carries r1 (5), r2 (8) and r3 (2)
        assert solution.link_loads[0] == pytest.approx(15.0)
        # A-C is unused
        assert solution.link_loads[3] == 0.0

    def test_without_and_with_routes_are_consistent(self, problem):
        full = baseline_solution(problem)
        partial = full.without([1])
        assert not partial.complete
        assert partial.instances(B, FW).count == 1
        assert partial.link_loads[0] == pytest.approx(7.0)
        # parent untouched
        assert full.instances(B, FW).count == 2
        again = partial.with_routes([full.routes[1]])
        assert again.instances(B, FW).loads == full.instances(B, FW).loads
        assert list(again.link_loads) == pytest.approx(list(full.link_loads))

    def test_empty_solution(self, problem):
        empty = Solution.empty(problem)
        assert not empty.complete
        assert empty.all_instances() == []
        assert not empty.scored
