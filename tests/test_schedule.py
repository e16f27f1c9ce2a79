from __future__ import annotations

import pytest

from vnfpsa.engine.schedule import TemperatureScheduler, number_of_temperature_levels
from vnfpsa.foundation.exceptions import ConfigurationError


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.parametrize(
    "tmax, tmin, rho, expected",
    [(50.0, 1.0, 0.75, 14), (50.0, 1.0, 0.85, 25), (10.0, 1.0, 0.5, 4)],
)
def test_number_of_levels(tmax, tmin, rho, expected):
    assert number_of_temperature_levels(tmax, tmin, rho) == expected


@pytest.mark.parametrize(
    "tmax, tmin, rho, parameter",
    [(1.0, 1.0, 0.5, "tmin"), (1.0, 2.0, 0.5, "tmin"), (5.0, 0.0, 0.5, "tmin"), (5.0, 1.0, 1.0, "rho"), (5.0, 1.0, 0.0, "rho")],
)
def test_invalid_schedule_names_the_parameter(tmax, tmin, rho, parameter):
    with pytest.raises(ConfigurationError) as info:
        number_of_temperature_levels(tmax, tmin, rho)
    assert info.value.parameter == parameter


def test_scheduler_built_directly_rejects_bad_cooling():
    with pytest.raises(ConfigurationError) as info:
        TemperatureScheduler(50.0, 1.0, 1.5, neighbours=10)
    assert info.value.parameter == "rho"


def test_levels_follow_geometric_cooling():
    scheduler = TemperatureScheduler(50.0, 1.0, 0.75, neighbours=500)
    levels = list(scheduler)
    assert len(levels) == len(scheduler) == 14
    assert levels[0].temperature == pytest.approx(50.0)
    assert levels[1].temperature == pytest.approx(37.5)
    for prev, cur in zip(levels, levels[1:]):
        assert cur.temperature == pytest.approx(prev.temperature * 0.75)
    assert all(level.budget == 500 and level.deadline is None for level in levels)


def test_budget_exhaustion():
    level = TemperatureScheduler(50.0, 1.0, 0.75, neighbours=3).level(0)
    assert not level.exhausted(2)
    assert level.exhausted(3)


def test_runtime_deadlines_split_evenly():
    clock = FakeClock()
    scheduler = TemperatureScheduler(50.0, 1.0, 0.75, neighbours=0, runtime=14.0, clock=clock)
    assert scheduler.timed
    scheduler.start()
    first, second = scheduler.level(0), scheduler.level(1)
    assert first.budget is None
    assert first.deadline == pytest.approx(101.0)
    assert second.deadline == pytest.approx(102.0)
    assert scheduler.deadline(13) == pytest.approx(114.0)
    assert not first.exhausted(10_000, now=100.5)
    assert first.exhausted(0, now=101.0)
