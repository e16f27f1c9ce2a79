"""Feasibility-first Pareto dominance."""

from __future__ import annotations

from enum import Enum

import numpy as np

from vnfpsa.model.solution import Solution


class Dominance(Enum):
    A_DOMINATES = 1
    B_DOMINATES = -1
    INCOMPARABLE = 0


def vector_dominance(a: np.ndarray, b: np.ndarray) -> Dominance:
    """Plain Pareto dominance of two minimisation vectors; equal vectors are incomparable."""
    le = bool(np.all(a <= b))
    ge = bool(np.all(a >= b))
    if le and not ge:
        return Dominance.A_DOMINATES
    if ge and not le:
        return Dominance.B_DOMINATES
    return Dominance.INCOMPARABLE


def pareto_nondominated_mask(F: np.ndarray) -> np.ndarray:
    """
    Minimization assumed.
    Returns boolean mask for nondominated rows of ``F``. O(n^2) broadcast.
    """
    n = F.shape[0]
    if n == 0:
        return np.zeros((0,), dtype=bool)
    # dominates(a,b) if all(a<=b) and any(a<b)
    le = F[:, None, :] <= F[None, :, :]
    lt = F[:, None, :] < F[None, :, :]
    dom = np.all(le, axis=2) & np.any(lt, axis=2)
    dominated = np.any(dom, axis=0)
    return ~dominated


class DominanceComparator:
    """
    Decides dominance between two scored solutions.

    1. A feasible solution dominates an infeasible one.
    2. Two feasible solutions compare their objective vectors.
    3. Two infeasible solutions compare their unfeasible vectors.
    """

    def compare(self, a: Solution, b: Solution) -> Dominance:
        fa, fb = a.feasible, b.feasible
        if fa != fb:
            return Dominance.A_DOMINATES if fa else Dominance.B_DOMINATES
        if fa:
            return vector_dominance(a.objective, b.objective)  # type: ignore[arg-type]
        return vector_dominance(a.unfeasible, b.unfeasible)  # type: ignore[arg-type]

    def dominates(self, a: Solution, b: Solution) -> bool:
        return self.compare(a, b) is Dominance.A_DOMINATES

    @staticmethod
    def comparison_key(solution: Solution) -> tuple:
        """Identity of a solution in comparison space (feasibility plus its compared vector)."""
        vec = solution.objective if solution.feasible else solution.unfeasible
        return (solution.feasible, tuple(float(x) for x in vec))  # type: ignore[union-attr]


__all__ = ["Dominance", "DominanceComparator", "pareto_nondominated_mask", "vector_dominance"]
