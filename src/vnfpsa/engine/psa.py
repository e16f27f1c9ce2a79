"""Pareto simulated annealing for VNF placement.

A population of ``s`` members walks the placement space in parallel. At each
temperature level every member evaluates neighbours of its current solution
and moves to them according to the dominance-based acceptance rule. All
scored neighbours are offered to the Pareto archive, which is the result.

References:
    P. Czyzak and A. Jaszkiewicz, "Pareto simulated annealing - a metaheuristic
    technique for multiple-objective combinatorial optimization," Journal of
    Multi-Criteria Decision Analysis, vol. 7, no. 1, 1998.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Sequence

import numpy as np

from vnfpsa.engine.acceptance import AcceptanceCriterion, AcceptanceProbabilities, LevelCounters, clamp_probability
from vnfpsa.engine.archive import ParetoArchive
from vnfpsa.engine.config.psa import CompiledFormulas, PSAConfig, PSAConfigData
from vnfpsa.engine.config.settings import resolve_settings
from vnfpsa.engine.dominance import DominanceComparator
from vnfpsa.engine.evaluator import ObjectiveEvaluator
from vnfpsa.engine.initialization import InitialSolutionBuilder, PrepMode
from vnfpsa.engine.neighbourhood import NeighborhoodGenerator
from vnfpsa.engine.population import SolutionPopulation
from vnfpsa.engine.schedule import Level, TemperatureScheduler
from vnfpsa.engine.state import PSAState
from vnfpsa.foundation.formulas import FormulaContext
from vnfpsa.foundation.observer import PSAObserver, RunContext
from vnfpsa.model.problem import ProblemInstance
from vnfpsa.model.solution import Solution

_SEED_BOUND = np.iinfo(np.int64).max


def _logger() -> logging.Logger:
    return logging.getLogger(__name__)


@dataclass
class _LevelPlan:
    """Probabilities a member uses during one level."""

    acceptance: AcceptanceProbabilities
    p_reassign_vnf: float
    p_new_instance: float


@dataclass
class _MemberResult:
    solution: Solution
    counters: LevelCounters
    admitted: list[Solution] = field(default_factory=list)


class PSA:
    """Pareto simulated annealing engine.

    Parameters
    ----------
    config : PSAConfigData
        Validated configuration, e.g. from ``PSAConfig.default()`` or ``load_config``.
    observers : Sequence[PSAObserver], optional
        Receivers of lifecycle events. Events are dispatched from the calling
        thread, never from worker threads.

    Examples
    --------
    >>> config = PSAConfig().population_size(8).neighbours(500).temperature(50, 1, 0.75).fixed()
    >>> archive = PSA(config).run(problem)
    >>> for solution in archive:
    ...     solution.values["MEAN_DELAY_INDEX"]
    """

    def __init__(self, config: PSAConfigData, observers: Sequence[PSAObserver] = ()) -> None:
        self.config = config
        self.observers = list(observers)
        self.stats: dict[str, Any] = {}
        self._state: PSAState | None = None
        self._comparator = DominanceComparator()
        self._formulas: CompiledFormulas = config.formulas
        self._acceptance = AcceptanceCriterion(
            self._formulas.accept_worse,
            self._formulas.accept_incomparable,
            config.max_worse,
            config.max_incomp,
        )
        self._neighbourhood: NeighborhoodGenerator | None = None

    # -------------------------------------------------------------------------
    # Main run method
    # -------------------------------------------------------------------------

    def run(
        self,
        problem: ProblemInstance,
        *,
        references: Sequence[Solution] = (),
        seed: int | None = None,
    ) -> ParetoArchive:
        """Run the search and return the final Pareto archive.

        Parameters
        ----------
        problem : ProblemInstance
            Problem to solve.
        references : Sequence[Solution], optional
            Previous placements for the migration metrics. Defaults to the
            configured existing placement, if any.
        seed : int, optional
            Overrides the configured seed.

        Returns
        -------
        ParetoArchive
            Non-dominated solutions found.
        """
        cfg = self.config
        settings = resolve_settings(cfg, problem)
        seed = cfg.seed if seed is None else seed
        rng = np.random.default_rng(seed)
        refs = tuple(references)
        if not refs and settings.existing is not None:
            refs = (settings.existing,)

        evaluator = ObjectiveEvaluator(problem, settings.objective, settings.unfeasible, refs)
        self._neighbourhood = NeighborhoodGenerator(problem, evaluator, settings.weights)
        scheduler = TemperatureScheduler(cfg.tmax, cfg.tmin, cfg.rho, cfg.neighbours, cfg.runtime)
        started = scheduler.start()
        _logger().info(
            "PSA start: %d requests, %d nodes, s=%d, m=%d, runtime=%.1fs, L=%d, prep=%s",
            len(problem.requests),
            len(problem.topology),
            cfg.population_size,
            cfg.neighbours,
            cfg.runtime,
            scheduler.number_of_levels,
            settings.prep_mode.value,
        )

        builder = InitialSolutionBuilder(problem, evaluator, rng, settings.weights)
        initial = builder.build(
            settings.prep_mode,
            cfg.population_size,
            existing=settings.existing,
            short_run=lambda: self._short_run(problem, refs, rng),
        )
        state = PSAState(
            population=SolutionPopulation(initial),
            archive=ParetoArchive.from_solutions(initial, self._comparator),
            counters=[],
            rng=rng,
            started_at=started,
        )
        self._state = state
        state.counters = self._initial_counters(state)

        ctx = RunContext(
            problem=problem,
            config=cfg,
            number_of_levels=scheduler.number_of_levels,
            population_size=cfg.population_size,
            seed=seed,
        )
        for obs in self.observers:
            obs.on_start(ctx)

        with ThreadPoolExecutor(max_workers=cfg.workers, thread_name_prefix="vnfpsa") as pool:
            for level in scheduler:
                self._run_level(state, level, pool)

        elapsed = time.monotonic() - started
        self.stats = state.summary(elapsed)
        _logger().info(
            "PSA done: %d levels, %d neighbours, archive %d (%d feasible) in %.2fs",
            state.levels_completed,
            state.neighbours_evaluated,
            self.stats["archive_size"],
            self.stats["feasible_in_archive"],
            elapsed,
        )
        for obs in self.observers:
            obs.on_end(state.archive.copy(), dict(self.stats))
        return state.archive

    # -------------------------------------------------------------------------
    # Level logic
    # -------------------------------------------------------------------------

    def _run_level(self, state: PSAState, level: Level, pool: ThreadPoolExecutor) -> None:
        state.level = level.index
        state.temperature = level.temperature
        for obs in self.observers:
            obs.on_level_start(level.index, level.temperature, state.archive.copy(), state.population.snapshot())

        plans = [self._plan(level, counters) for counters in state.counters]
        seeds = state.rng.integers(0, _SEED_BOUND, size=len(state.population))
        futures = [
            pool.submit(
                self._walk,
                state.population[k],
                level,
                plans[k],
                state.archive.copy(),
                np.random.default_rng(int(seeds[k])),
            )
            for k in range(len(state.population))
        ]
        # barrier: next level's probabilities need every member's counters
        results = [f.result() for f in futures]

        admitted: list[Solution] = []
        for k, result in enumerate(results):
            state.population.replace(k, result.solution)
            state.counters[k] = result.counters
            admitted.extend(s for s in result.admitted if state.archive.update(s))
        for obs in self.observers:
            for solution in admitted:
                obs.on_new_frontier_solution(level.index, level.temperature, solution)

        neighbours, accepted = state.level_totals()
        state.neighbours_evaluated += neighbours
        state.accepted += accepted
        state.levels_completed += 1
        stats = {
            "level": level.index,
            "temperature": level.temperature,
            "neighbours": neighbours,
            "accepted": accepted,
            "acceptance_ratio": accepted / neighbours if neighbours else 0.0,
            "better": sum(c.better for c in state.counters),
            "incomparable": sum(c.incomp for c in state.counters),
            "p_reassign_vnf": plans[0].p_reassign_vnf,
            "p_new_instance": plans[0].p_new_instance,
            "accept_worse": plans[0].acceptance.worse,
            "accept_incomparable": plans[0].acceptance.incomparable,
            "archive_size": len(state.archive),
            "elapsed_seconds": time.monotonic() - state.started_at,
        }
        state.history.append(stats)
        _logger().debug(
            "Level %d t=%.4g: archive %d, acceptance %.3f, pReassignVnf %.3f",
            level.index,
            level.temperature,
            stats["archive_size"],
            stats["acceptance_ratio"],
            stats["p_reassign_vnf"],
        )
        for obs in self.observers:
            obs.on_level_end(level.index, level.temperature, state.archive.copy(), state.population.snapshot(), stats)

    def _plan(self, level: Level, counters: LevelCounters) -> _LevelPlan:
        cfg = self.config
        ctx = FormulaContext(
            t=level.temperature,
            i=level.index,
            n=counters.n,
            better=counters.better,
            incomp=counters.incomp,
            number_of_temperature_levels=self._formulas.number_of_levels,
            tmax=cfg.tmax,
            tmin=cfg.tmin,
            rho=cfg.rho,
        )
        p_reassign = clamp_probability(self._formulas.p_reassign_vnf(ctx))
        ctx_new = replace(ctx, extra={"p_reassign_vnf": p_reassign})
        return _LevelPlan(
            acceptance=self._acceptance.probabilities(ctx),
            p_reassign_vnf=p_reassign,
            p_new_instance=clamp_probability(self._formulas.p_new_instance(ctx_new)),
        )

    def _walk(
        self,
        parent: Solution,
        level: Level,
        plan: _LevelPlan,
        frontier: ParetoArchive,
        rng: np.random.Generator,
    ) -> _MemberResult:
        """One member's walk through a level; runs on a worker thread."""
        assert self._neighbourhood is not None
        result = _MemberResult(solution=parent, counters=LevelCounters())
        counters = result.counters
        while not level.exhausted(counters.n):
            neighbour = self._neighbourhood.generate(result.solution, plan.p_reassign_vnf, plan.p_new_instance, rng)
            outcome = self._comparator.compare(neighbour, result.solution)
            counters.record(outcome)
            if frontier.update(neighbour):
                result.admitted.append(neighbour)
            if self._acceptance.accept(outcome, plan.acceptance, rng):
                result.solution = neighbour
                counters.accepted += 1
        return result

    # -------------------------------------------------------------------------
    # Setup helpers
    # -------------------------------------------------------------------------

    def _initial_counters(self, state: PSAState) -> list[LevelCounters]:
        """Counters for the first level, from a short calibration walk when enabled."""
        cfg = self.config
        seeded = LevelCounters.seeded(cfg.neighbours)
        if cfg.calibrate:
            budget = min(cfg.neighbours, 100) if cfg.neighbours > 0 else 100
            level = Level(index=0, temperature=cfg.tmax, budget=budget, deadline=None)
            result = self._walk(state.population[0], level, self._plan(level, seeded), ParetoArchive(), state.rng)
            seeded = LevelCounters(better=result.counters.better, incomp=result.counters.incomp, n=result.counters.n)
            _logger().debug("Calibration: better=%d incomp=%d n=%d", seeded.better, seeded.incomp, seeded.n)
        return [LevelCounters(better=seeded.better, incomp=seeded.incomp, n=seeded.n) for _ in range(cfg.population_size)]

    def _short_run(
        self, problem: ProblemInstance, references: Sequence[Solution], rng: np.random.Generator
    ) -> list[Solution]:
        """Abbreviated search whose frontier seeds the population."""
        cfg = self.config
        size = max(1, cfg.population_size // 4)
        nested = (
            PSAConfig.from_data(cfg)
            .population_size(size)
            .neighbours(max(1, cfg.neighbours // 4) if cfg.neighbours > 0 else 0)
            .rho(cfg.rho**2)
            .runtime(cfg.runtime / 4.0)
            .prep_mode(PrepMode.RAND)
            .workers(min(cfg.workers, size))
            .seed(int(rng.integers(0, _SEED_BOUND)))
            .fixed()
        )
        _logger().debug("SHORT_PSA seeding: s=%d m=%d rho=%.4g", size, nested.neighbours, nested.rho)
        return PSA(nested).run(problem, references=references).contents()


def run(
    config: PSAConfigData,
    problem: ProblemInstance,
    *,
    observers: Sequence[PSAObserver] = (),
    references: Sequence[Solution] = (),
    seed: int | None = None,
) -> ParetoArchive:
    """Run Pareto simulated annealing on ``problem`` and return the final archive."""
    return PSA(config, observers=observers).run(problem, references=references, seed=seed)


__all__ = ["PSA", "run"]
