from __future__ import annotations

import math

import pytest

from helpers import B, baseline_solution, build_problem, make_evaluator
from vnfpsa.engine.evaluator import lower_median
from vnfpsa.foundation.metrics import Metric


def test_lower_median():
    assert lower_median([]) == 0.0
    assert lower_median([3.0, 1.0, 2.0]) == 2.0
    assert lower_median([4.0, 1.0, 3.0, 2.0]) == 2.0


class TestFeasibleBaseline:
    def test_value_vector(self, baseline):
        v = baseline.values
        assert baseline.feasible
        assert v.violations() == 0.0
        assert v[Metric.NUMBER_OF_VNF_INSTANCES] == 3
        assert v["TOTAL_USED_RESOURCE_CPU"] == pytest.approx(5.0)
        assert v["TOTAL_USED_RESOURCES[1]"] == pytest.approx(3.0)
        assert v[Metric.NUMBER_OF_HOPS] == 8
        assert v[Metric.TOTAL_DELAY] == pytest.approx(9.2)
        # delay indices 1, 1, 1; hops indices 1.5, 1.5, 2
        assert v[Metric.MEAN_DELAY_INDEX] == pytest.approx(1.0)
        assert v[Metric.MAX_HOPS_INDEX] == pytest.approx(2.0)
        assert v[Metric.MEDIAN_HOPS_INDEX] == pytest.approx(1.5)
        # inverse loads: 10/8, 10/5 and 20/5
        assert v[Metric.MEAN_INVERSE_LOAD_INDEX] == pytest.approx((1.25 + 2.0 + 4.0) / 3)
        assert v[Metric.MEDIAN_INVERSE_LOAD_INDEX] == pytest.approx(2.0)
        assert v[Metric.TOTAL_ROOTED_VNF_LOADS] == pytest.approx(math.sqrt(8) + 2 * math.sqrt(5))

    def test_comparison_vectors_follow_selectors(self, baseline):
        assert list(baseline.objective) == pytest.approx([1.0, 5.0, 3.0])
        assert len(baseline.unfeasible) == 6

    def test_score_is_attached_once(self, evaluator, baseline):
        values = baseline.values
        assert evaluator.score(baseline).values is values

    def test_incomplete_solution_is_rejected(self, evaluator, problem):
        with pytest.raises(ValueError):
            evaluator.evaluate(baseline_solution(problem).without([0]))


class TestViolations:
    def test_resource_violation(self, problem, evaluator):
        solution = evaluator.score(baseline_solution(problem, nat_node=B))
        v = solution.values
        assert not solution.feasible
        assert v[Metric.NUMBER_OF_RESOURCE_VIOLATIONS] == 1
        assert v[Metric.TOTAL_OVERLOADED_VNF_CAPACITY] == pytest.approx(18.0)

    def test_delay_violation(self):
        problem = build_problem(r1_expected=3.5)
        solution = make_evaluator(problem).score(baseline_solution(problem))
        assert solution.values[Metric.NUMBER_OF_DELAY_VIOLATIONS] == 1
        assert solution.values[Metric.UNFEASIBLE] == 1.0

    def test_congested_links(self):
        problem = build_problem(bandwidth=6.0)
        solution = make_evaluator(problem).score(baseline_solution(problem))
        # A-B, B-C and C-D all carry more than 6
        assert solution.values[Metric.NUMBER_OF_CONGESTED_LINKS] == 3

    def test_excessive_instances(self):
        problem = build_problem(max_fw=1)
        solution = make_evaluator(problem).score(baseline_solution(problem))
        assert solution.values[Metric.NUMBER_OF_EXCESSIVE_VNFS] == 1
        assert solution.values[Metric.TOTAL_ROOTED_EXCESSIVE_VNF_CAPACITY] == pytest.approx(math.sqrt(8) + math.sqrt(5))


class TestMigration:
    def test_without_references_migration_metrics_are_zero(self, baseline):
        assert baseline.values[Metric.NUMBER_OF_VNF_REPLACEMENTS] == 0
        assert baseline.values[Metric.TOTAL_FLOW_MIGRATION_PENALTY] == 0

    def test_against_a_reference(self, problem):
        reference = baseline_solution(problem, nat_node=B)
        solution = make_evaluator(problem, references=[reference]).score(baseline_solution(problem))
        # nat moved from B to C: one instance removed, one added
        assert solution.values[Metric.NUMBER_OF_VNF_REPLACEMENTS] == 2
        assert solution.values[Metric.TOTAL_FLOW_MIGRATION_PENALTY] == pytest.approx(3.0)

    def test_minimum_over_references(self, problem):
        refs = [baseline_solution(problem, nat_node=B), baseline_solution(problem)]
        solution = make_evaluator(problem, references=refs).score(baseline_solution(problem))
        assert solution.values[Metric.NUMBER_OF_VNF_REPLACEMENTS] == 0
        assert solution.values[Metric.TOTAL_FLOW_MIGRATION_PENALTY] == 0
