"""Transition statistics and the acceptance rule of Pareto simulated annealing."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from vnfpsa.engine.dominance import Dominance
from vnfpsa.foundation.formulas import Formula, FormulaContext


@dataclass
class LevelCounters:
    """
    Transition counts of one member during one temperature level.

    ``n`` counts evaluated neighbours, ``better`` those dominating their
    parent and ``incomp`` those incomparable to it.
    """

    better: int = 0
    incomp: int = 0
    n: int = 0
    accepted: int = 0

    def record(self, outcome: Dominance) -> None:
        """Count a neighbour compared against its parent (neighbour first)."""
        self.n += 1
        if outcome is Dominance.A_DOMINATES:
            self.better += 1
        elif outcome is Dominance.INCOMPARABLE:
            self.incomp += 1

    @classmethod
    def seeded(cls, neighbours: int) -> "LevelCounters":
        """Counters used for the first level when no calibration run happens."""
        n = min(neighbours, 100) if neighbours > 0 else 100
        half = min(n // 2, 50)
        return cls(better=half, incomp=half, n=n)


class AcceptanceProbabilities(NamedTuple):
    worse: float
    incomparable: float


def clamp_probability(value: float, upper: float = 1.0) -> float:
    if math.isnan(value):
        return 0.0
    return min(max(value, 0.0), upper)


class AcceptanceCriterion:
    """
    Evaluates the acceptance formulas and decides transitions.

    Parameters
    ----------
    accept_worse, accept_incomparable : Formula
        Compiled formulas over ``t``, ``tmax``, ``better``, ``incomp`` and ``n``.
    max_worse, max_incomp : float
        Hard ceilings applied to the formula results.
    """

    def __init__(
        self,
        accept_worse: Formula,
        accept_incomparable: Formula,
        max_worse: float = 0.25,
        max_incomp: float = 0.5,
    ) -> None:
        self.accept_worse = accept_worse
        self.accept_incomparable = accept_incomparable
        self.max_worse = float(max_worse)
        self.max_incomp = float(max_incomp)

    def probabilities(self, context: FormulaContext) -> AcceptanceProbabilities:
        return AcceptanceProbabilities(
            worse=clamp_probability(self.accept_worse(context), self.max_worse),
            incomparable=clamp_probability(self.accept_incomparable(context), self.max_incomp),
        )

    @staticmethod
    def probability(outcome: Dominance, probs: AcceptanceProbabilities) -> float:
        """
        Probability of moving to a neighbour, given ``outcome = compare(neighbour, parent)``.

        A feasible neighbour of an infeasible parent dominates it and is always
        accepted; an infeasible neighbour of a feasible parent counts as worse.
        """
        if outcome is Dominance.A_DOMINATES:
            return 1.0
        if outcome is Dominance.B_DOMINATES:
            return probs.worse
        return probs.incomparable

    def accept(self, outcome: Dominance, probs: AcceptanceProbabilities, rng: np.random.Generator) -> bool:
        p = self.probability(outcome, probs)
        if p >= 1.0:
            return True
        return bool(rng.random() < p)


__all__ = ["AcceptanceCriterion", "AcceptanceProbabilities", "LevelCounters", "clamp_probability"]
