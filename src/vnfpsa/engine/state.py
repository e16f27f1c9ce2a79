"""
State container of a running PSA search.

Keeps everything that changes from one temperature level to the next, so that
the engine loop itself stays a thin orchestration of components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from vnfpsa.engine.acceptance import LevelCounters
from vnfpsa.engine.archive import ParetoArchive
from vnfpsa.engine.population import SolutionPopulation


@dataclass
class PSAState:
    """
    Mutable run state owned by the engine thread.

    Worker threads never touch this object; they receive the values they need
    and return their results, which are folded back in after each level.
    """

    population: SolutionPopulation
    archive: ParetoArchive
    counters: list[LevelCounters]
    rng: np.random.Generator

    # Level tracking
    level: int = 0
    temperature: float = 0.0
    levels_completed: int = 0

    # Totals
    neighbours_evaluated: int = 0
    accepted: int = 0
    started_at: float = 0.0

    history: list[dict[str, Any]] = field(default_factory=list)

    def level_totals(self) -> tuple[int, int]:
        """Neighbours evaluated and accepted over all members in the current counters."""
        return sum(c.n for c in self.counters), sum(c.accepted for c in self.counters)

    def summary(self, elapsed: float) -> dict[str, Any]:
        return {
            "levels_completed": self.levels_completed,
            "neighbours_evaluated": self.neighbours_evaluated,
            "accepted": self.accepted,
            "archive_size": len(self.archive),
            "feasible_in_archive": len(self.archive.feasible_contents()),
            "elapsed_seconds": elapsed,
        }


__all__ = ["PSAState"]
