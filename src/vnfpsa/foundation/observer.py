from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    from vnfpsa.engine.archive import ParetoArchive
    from vnfpsa.model.solution import Solution


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


@dataclass
class RunContext:
    """
    Encapsulates the static context of a search run.
    Passed to on_start events.
    """

    problem: Any  # ProblemInstance
    config: Any  # PSAConfigData
    number_of_levels: int = 0
    population_size: int = 0
    seed: int | None = None
    algorithm_name: str = "psa"


@runtime_checkable
class PSAObserver(Protocol):
    """
    Observer interface for search lifecycle events.

    Archives and populations handed to observers are snapshots; observers may
    keep them without affecting the run.
    """

    def on_start(self, ctx: RunContext) -> None:
        """Called once before the first level."""
        ...

    def on_level_start(
        self, level: int, temperature: float, archive: "ParetoArchive", population: Sequence["Solution"]
    ) -> None:
        ...

    def on_new_frontier_solution(self, level: int, temperature: float, solution: "Solution") -> None:
        """Called for every solution admitted to the global archive."""
        ...

    def on_level_end(
        self,
        level: int,
        temperature: float,
        archive: "ParetoArchive",
        population: Sequence["Solution"],
        stats: dict[str, Any],
    ) -> None:
        ...

    def on_end(self, archive: "ParetoArchive", stats: dict[str, Any]) -> None:
        """Called once after the last level."""
        ...


class NoOpObserver:
    """Observer that ignores every event; subclass and override what you need."""

    def on_start(self, ctx: RunContext) -> None:
        return None

    def on_level_start(self, level, temperature, archive, population) -> None:
        return None

    def on_new_frontier_solution(self, level, temperature, solution) -> None:
        return None

    def on_level_end(self, level, temperature, archive, population, stats) -> None:
        return None

    def on_end(self, archive, stats) -> None:
        return None


class LoggingObserver(NoOpObserver):
    """
    Reports progress through the ``vnfpsa`` logger.

    Parameters
    ----------
    every : int
        Log every N-th level end (the last level is always logged).
    """

    def __init__(self, every: int = 1) -> None:
        self.every = max(1, int(every))
        self._levels = 0

    def on_start(self, ctx: RunContext) -> None:
        self._levels = ctx.number_of_levels
        _logger().info(
            "[%s] %d requests, population %d, %d temperature levels",
            ctx.algorithm_name.upper(),
            len(ctx.problem.requests),
            ctx.population_size,
            ctx.number_of_levels,
        )

    def on_level_end(self, level, temperature, archive, population, stats) -> None:
        if (level + 1) % self.every and level + 1 != self._levels:
            return
        _logger().info(
            "Level %d/%d t=%.4g | archive %d | accepted %d/%d | pReassignVnf=%.3f",
            level + 1,
            self._levels,
            temperature,
            len(archive),
            stats.get("accepted", 0),
            stats.get("neighbours", 0),
            stats.get("p_reassign_vnf", 0.0),
        )

    def on_end(self, archive, stats) -> None:
        _logger().info(
            "[PSA] done: %d archive members (%d feasible), %d neighbours in %.2fs",
            len(archive),
            stats.get("feasible_in_archive", 0),
            stats.get("neighbours_evaluated", 0),
            stats.get("elapsed_seconds", 0.0),
        )


__all__ = ["LoggingObserver", "NoOpObserver", "PSAObserver", "RunContext"]
