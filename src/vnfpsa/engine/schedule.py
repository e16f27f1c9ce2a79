"""Geometric cooling schedule and per-level budgets."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Iterator

from vnfpsa.foundation.exceptions import ConfigurationError


def number_of_temperature_levels(tmax: float, tmin: float, rho: float) -> int:
    """``ceil(log(tmin / tmax) / log(rho))``: levels needed to cool from tmax below tmin."""
    if not tmin > 0.0:
        raise ConfigurationError("tmin must be positive.", parameter="tmin")
    if not tmin < tmax:
        raise ConfigurationError(f"tmin ({tmin}) must be smaller than tmax ({tmax}).", parameter="tmin")
    if not 0.0 < rho < 1.0:
        raise ConfigurationError(f"rho must lie in (0, 1), got {rho}.", parameter="rho")
    return max(1, math.ceil(math.log(tmin / tmax) / math.log(rho)))


@dataclass(frozen=True)
class Level:
    index: int
    temperature: float
    budget: int | None
    deadline: float | None

    def exhausted(self, evaluated: int, now: float | None = None) -> bool:
        """True once this level's neighbour budget or wall-clock share is used up."""
        if self.deadline is not None:
            return (time.monotonic() if now is None else now) >= self.deadline
        return evaluated >= (self.budget or 0)


class TemperatureScheduler:
    """
    Yields the temperature levels ``t_k = tmax * rho**k`` for ``k < L``.

    With ``runtime > 0`` every level ``k`` ends at
    ``start + runtime * (k + 1) / L`` instead of after ``m`` neighbours per member.
    """

    def __init__(
        self,
        tmax: float,
        tmin: float,
        rho: float,
        neighbours: int,
        runtime: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tmax = float(tmax)
        self.tmin = float(tmin)
        self.rho = float(rho)
        self.neighbours = int(neighbours)
        self.runtime = float(runtime)
        self.number_of_levels = number_of_temperature_levels(self.tmax, self.tmin, self.rho)
        self._clock = clock
        self.started_at: float | None = None

    @property
    def timed(self) -> bool:
        return self.runtime > 0.0

    def start(self) -> float:
        self.started_at = self._clock()
        return self.started_at

    def temperature(self, k: int) -> float:
        return self.tmax * self.rho**k

    def deadline(self, k: int) -> float | None:
        if not self.timed:
            return None
        if self.started_at is None:
            self.start()
        return self.started_at + self.runtime * (k + 1) / self.number_of_levels  # type: ignore[operator]

    def level(self, k: int) -> Level:
        return Level(
            index=k,
            temperature=self.temperature(k),
            budget=None if self.timed else self.neighbours,
            deadline=self.deadline(k),
        )

    def __iter__(self) -> Iterator[Level]:
        for k in range(self.number_of_levels):
            if self.temperature(k) < self.tmin:
                break
            yield self.level(k)

    def __len__(self) -> int:
        return self.number_of_levels


__all__ = ["Level", "TemperatureScheduler", "number_of_temperature_levels"]
