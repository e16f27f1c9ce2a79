from __future__ import annotations

import pytest

from helpers import baseline_solution, build_problem, build_trivial_problem, make_evaluator


@pytest.fixture
def problem():
    return build_problem()


@pytest.fixture
def trivial_problem():
    return build_trivial_problem()


@pytest.fixture
def evaluator(problem):
    return make_evaluator(problem)


@pytest.fixture
def baseline(problem, evaluator):
    """Scored feasible placement of the three test requests."""
    return evaluator.score(baseline_solution(problem))
