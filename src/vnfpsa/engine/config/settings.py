"""
Resolution of a configuration against a concrete problem.

Metric names in the selectors depend on the VNF library's resource names, so
they can only be resolved once the problem is known. This happens once,
before the search starts; unknown names are configuration errors.
"""

from __future__ import annotations

from dataclasses import dataclass

from vnfpsa.engine.initialization import PrepMode, existing_solution
from vnfpsa.engine.routing import WeightSettings
from vnfpsa.foundation.metrics import VectorSelector, parse_selector
from vnfpsa.model.problem import ProblemInstance
from vnfpsa.model.solution import Solution

from .psa import CompiledFormulas, PSAConfigData


@dataclass(frozen=True)
class ResolvedSettings:
    config: PSAConfigData
    objective: VectorSelector
    unfeasible: VectorSelector
    formulas: CompiledFormulas
    weights: WeightSettings
    prep_mode: PrepMode
    existing: Solution | None


def resolve_settings(config: PSAConfigData, problem: ProblemInstance) -> ResolvedSettings:
    """Resolve selectors and the existing placement of ``config`` for ``problem``."""
    objective = parse_selector(config.objective_vector, problem.schema, parameter="objective_vector")
    unfeasible = parse_selector(config.unfeasible_vector, problem.schema, parameter="unfeasible_vector")
    existing = None
    if config.existing_placement is not None:
        existing = existing_solution(problem, config.existing_placement)
    return ResolvedSettings(
        config=config,
        objective=objective,
        unfeasible=unfeasible,
        formulas=config.formulas,
        weights=WeightSettings(
            use_weights=config.use_weights,
            delay=config.use_delay_in_weights,
            hops=config.use_hops_in_weights,
        ),
        prep_mode=PrepMode.parse(config.prep_mode),
        existing=existing,
    )


__all__ = ["ResolvedSettings", "resolve_settings"]
