"""
Thread-safe Pareto archive of non-dominated placements.

The archive never holds two members where one dominates the other, nor two
members with the same comparison key (feasibility plus compared vector). When a
candidate ties with a member, the member seen first is kept.
"""

from __future__ import annotations

import threading
from typing import Iterable, Iterator

import numpy as np

from vnfpsa.engine.dominance import Dominance, DominanceComparator, pareto_nondominated_mask
from vnfpsa.model.solution import Solution


class ParetoArchive:
    """
    Non-dominated set of scored solutions.

    Parameters
    ----------
    comparator : DominanceComparator, optional
        Dominance rule; the feasibility-first comparator by default.

    Notes
    -----
    ``update`` holds a lock for the whole check-and-replace step, so readers
    calling :meth:`contents` never see two mutually dominating members.
    """

    def __init__(self, comparator: DominanceComparator | None = None) -> None:
        self.comparator = comparator or DominanceComparator()
        self._members: list[Solution] = []
        self._keys: set[tuple] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_solutions(
        cls, solutions: Iterable[Solution], comparator: DominanceComparator | None = None
    ) -> "ParetoArchive":
        """Bulk-build an archive; equivalent to inserting ``solutions`` one by one."""
        archive = cls(comparator)
        candidates = list(solutions)
        feasible = [s for s in candidates if s.feasible]
        pool = feasible if feasible else candidates
        if not pool:
            return archive
        vectors = np.array([s.objective if feasible else s.unfeasible for s in pool], dtype=float)
        mask = pareto_nondominated_mask(vectors)
        for solution, keep in zip(pool, mask):
            if keep:
                archive.update(solution)
        return archive

    def update(self, solution: Solution) -> bool:
        """
        Offer a scored solution.

        Returns
        -------
        bool
            True if the solution was admitted. Members it dominates are evicted.
        """
        key = self.comparator.comparison_key(solution)
        compare = self.comparator.compare
        with self._lock:
            if key in self._keys:
                return False
            survivors = []
            for member in self._members:
                outcome = compare(member, solution)
                if outcome is Dominance.A_DOMINATES:
                    return False
                if outcome is not Dominance.B_DOMINATES:
                    survivors.append(member)
            if len(survivors) != len(self._members):
                self._members = survivors
                self._keys = {self.comparator.comparison_key(m) for m in survivors}
            self._members.append(solution)
            self._keys.add(key)
            return True

    def update_many(self, solutions: Iterable[Solution]) -> int:
        """Offer several solutions in order; returns how many were admitted."""
        return sum(1 for s in solutions if self.update(s))

    def merge(self, other: "ParetoArchive") -> int:
        return self.update_many(other.contents())

    def contents(self) -> list[Solution]:
        """Snapshot of the current members in insertion order."""
        with self._lock:
            return list(self._members)

    def feasible_contents(self) -> list[Solution]:
        return [s for s in self.contents() if s.feasible]

    def copy(self) -> "ParetoArchive":
        clone = ParetoArchive(self.comparator)
        with self._lock:
            clone._members = list(self._members)
            clone._keys = set(self._keys)
        return clone

    def __len__(self) -> int:
        with self._lock:
            return len(self._members)

    def __iter__(self) -> Iterator[Solution]:
        return iter(self.contents())

    def __repr__(self) -> str:
        members = self.contents()
        feasible = sum(1 for s in members if s.feasible)
        return f"ParetoArchive({len(members)} members, {feasible} feasible)"


__all__ = ["ParetoArchive"]
