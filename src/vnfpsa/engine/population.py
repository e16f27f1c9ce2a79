"""Fixed-size population of current solutions, one per annealing member."""

from __future__ import annotations

from typing import Iterator, Sequence

from vnfpsa.model.solution import Solution


class SolutionPopulation:
    """
    The ``s`` current solutions of a run.

    Size never changes after construction; members are replaced in place
    after every level barrier.
    """

    def __init__(self, solutions: Sequence[Solution]) -> None:
        if not solutions:
            raise ValueError("population needs at least one solution")
        if any(not s.scored for s in solutions):
            raise ValueError("population members must be scored")
        self._members = list(solutions)

    def __len__(self) -> int:
        return len(self._members)

    def __getitem__(self, index: int) -> Solution:
        return self._members[index]

    def __iter__(self) -> Iterator[Solution]:
        return iter(list(self._members))

    def replace(self, index: int, solution: Solution) -> None:
        self._members[index] = solution

    def snapshot(self) -> list[Solution]:
        return list(self._members)

    def feasible_count(self) -> int:
        return sum(1 for s in self._members if s.feasible)


__all__ = ["SolutionPopulation"]
