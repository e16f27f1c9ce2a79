"""PSA configuration."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from vnfpsa.engine.initialization import PrepMode
from vnfpsa.engine.schedule import number_of_temperature_levels
from vnfpsa.foundation.exceptions import ConfigurationError
from vnfpsa.foundation.formulas import Formula, FormulaLike, compile_formula, evaluate_constants
from vnfpsa.foundation.metrics import DEFAULT_OBJECTIVE_VECTOR, DEFAULT_UNFEASIBLE_VECTOR

from .base import _SerializableConfig, _require_fields

DEFAULT_CONSTANTS: Dict[str, FormulaLike] = {
    "pmin": 0.2,
    "pmax": 0.8,
    "i1": "0.2 * L",
    "i2": "0.8 * L",
    "factor_worse": 1.1,
    "factor_incomp": 1.2,
}
DEFAULT_P_REASSIGN_VNF = "max(pmin, min(pmax, (i2 - i) / (i2 - i1) * (pmax - pmin) + pmin))"
DEFAULT_P_NEW_INSTANCE = "p_reassign_vnf / 2"
DEFAULT_ACCEPT_WORSE = "t / tmax * factor_worse * (better / n)"
DEFAULT_ACCEPT_INCOMPARABLE = "t / tmax * factor_incomp * (better / incomp)"

FORMULA_FIELDS: Tuple[str, ...] = ("p_reassign_vnf", "p_new_instance", "accept_worse", "accept_incomparable")


@dataclass(frozen=True)
class CompiledFormulas:
    """Formulas and constants ready for evaluation inside the search loop."""

    p_reassign_vnf: Formula
    p_new_instance: Formula
    accept_worse: Formula
    accept_incomparable: Formula
    constants: Dict[str, float]
    number_of_levels: int


@dataclass(frozen=True)
class PSAConfigData(_SerializableConfig):
    population_size: int
    neighbours: int
    tmax: float
    tmin: float
    rho: float
    runtime: float
    prep_mode: str
    existing_placement: Optional[Dict[str, Tuple[Tuple[str, Optional[str]], ...]]]
    constants: Dict[str, FormulaLike]
    p_reassign_vnf: FormulaLike
    p_new_instance: FormulaLike
    accept_worse: FormulaLike
    accept_incomparable: FormulaLike
    max_worse: float
    max_incomp: float
    objective_vector: Tuple[Any, ...]
    unfeasible_vector: Tuple[Any, ...]
    use_weights: bool
    use_delay_in_weights: bool
    use_hops_in_weights: bool
    seed: Optional[int]
    workers: int
    calibrate: bool
    formulas: CompiledFormulas = field(compare=False, repr=False)

    @property
    def number_of_levels(self) -> int:
        return self.formulas.number_of_levels

    @property
    def timed(self) -> bool:
        return self.runtime > 0.0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for f in fields(self):
            if f.name == "formulas":
                continue
            value = getattr(self, f.name)
            if f.name in FORMULA_FIELDS and callable(value):
                value = getattr(value, "__name__", repr(value))
            elif f.name in ("objective_vector", "unfeasible_vector"):
                value = [list(v) if isinstance(v, (list, tuple)) else str(v) for v in value]
            elif f.name == "existing_placement" and value is not None:
                value = {k: [list(step) for step in steps] for k, steps in value.items()}
            elif f.name == "constants":
                value = dict(value)
            data[f.name] = value
        return data


def compile_formulas(
    tmax: float,
    tmin: float,
    rho: float,
    constants: Mapping[str, FormulaLike],
    expressions: Mapping[str, FormulaLike],
) -> CompiledFormulas:
    """Resolve constants against the static run parameters and compile every formula once."""
    levels = number_of_temperature_levels(tmax, tmin, rho)
    static = {"tmax": tmax, "tmin": tmin, "rho": rho, "number_of_temperature_levels": float(levels)}
    resolved = evaluate_constants(constants, static)
    return CompiledFormulas(
        p_reassign_vnf=compile_formula("p_reassign_vnf", expressions["p_reassign_vnf"], resolved),
        p_new_instance=compile_formula(
            "p_new_instance", expressions["p_new_instance"], resolved, extras=frozenset({"p_reassign_vnf"})
        ),
        accept_worse=compile_formula("accept_worse", expressions["accept_worse"], resolved),
        accept_incomparable=compile_formula("accept_incomparable", expressions["accept_incomparable"], resolved),
        constants=resolved,
        number_of_levels=levels,
    )


class PSAConfig:
    """
    Declarative configuration holder for Pareto simulated annealing.

    Examples:
        cfg = PSAConfig.default()
        cfg = PSAConfig().population_size(8).neighbours(500).temperature(50.0, 1.0, 0.75).fixed()
    """

    def __init__(self) -> None:
        self._cfg: Dict[str, Any] = {}

    @classmethod
    def default(cls, population_size: int = 8, neighbours: int = 500, runtime: float = 0.0) -> PSAConfigData:
        """Stock parameterisation: s=8, m=500, tmax=50, tmin=1, rho=0.75, LEAST_DELAY seeding."""
        return (
            cls()
            .population_size(population_size)
            .neighbours(neighbours)
            .temperature(50.0, 1.0, 0.75)
            .runtime(runtime)
            .prep_mode(PrepMode.LEAST_DELAY)
            .fixed()
        )

    @classmethod
    def from_data(cls, data: PSAConfigData) -> "PSAConfig":
        """Builder pre-filled with the values of ``data``, e.g. to derive a variant."""
        builder = cls()
        for f in fields(data):
            if f.name != "formulas":
                builder._cfg[f.name] = getattr(data, f.name)
        return builder

    def population_size(self, value: int) -> "PSAConfig":
        self._cfg["population_size"] = value
        return self

    def neighbours(self, value: int) -> "PSAConfig":
        self._cfg["neighbours"] = value
        return self

    def temperature(self, tmax: float, tmin: float, rho: float) -> "PSAConfig":
        self._cfg["tmax"] = tmax
        self._cfg["tmin"] = tmin
        self._cfg["rho"] = rho
        return self

    def tmax(self, value: float) -> "PSAConfig":
        self._cfg["tmax"] = value
        return self

    def tmin(self, value: float) -> "PSAConfig":
        self._cfg["tmin"] = value
        return self

    def rho(self, value: float) -> "PSAConfig":
        self._cfg["rho"] = value
        return self

    def runtime(self, seconds: float) -> "PSAConfig":
        self._cfg["runtime"] = seconds
        return self

    def prep_mode(self, value: PrepMode | str) -> "PSAConfig":
        self._cfg["prep_mode"] = value
        return self

    def existing_placement(self, placement: Mapping[str, Sequence[Sequence[Any]]] | None) -> "PSAConfig":
        self._cfg["existing_placement"] = placement
        return self

    def constants(self, replace: bool = False, **values: FormulaLike) -> "PSAConfig":
        """Add (or with ``replace=True`` replace all) named formula constants."""
        current = {} if replace else dict(self._cfg.get("constants", DEFAULT_CONSTANTS))
        current.update(values)
        self._cfg["constants"] = current
        return self

    def p_reassign_vnf(self, formula: FormulaLike) -> "PSAConfig":
        self._cfg["p_reassign_vnf"] = formula
        return self

    def p_new_instance(self, formula: FormulaLike) -> "PSAConfig":
        self._cfg["p_new_instance"] = formula
        return self

    def accept_worse(self, formula: FormulaLike, *, ceiling: float | None = None) -> "PSAConfig":
        self._cfg["accept_worse"] = formula
        if ceiling is not None:
            self._cfg["max_worse"] = ceiling
        return self

    def accept_incomparable(self, formula: FormulaLike, *, ceiling: float | None = None) -> "PSAConfig":
        self._cfg["accept_incomparable"] = formula
        if ceiling is not None:
            self._cfg["max_incomp"] = ceiling
        return self

    def objective_vector(self, *entries: Any) -> "PSAConfig":
        self._cfg["objective_vector"] = entries
        return self

    def unfeasible_vector(self, *entries: Any) -> "PSAConfig":
        self._cfg["unfeasible_vector"] = entries
        return self

    def weights(self, enabled: bool = True, *, delay: bool = True, hops: bool = True) -> "PSAConfig":
        self._cfg["use_weights"] = bool(enabled)
        self._cfg["use_delay_in_weights"] = bool(delay)
        self._cfg["use_hops_in_weights"] = bool(hops)
        return self

    def seed(self, value: int | None) -> "PSAConfig":
        self._cfg["seed"] = value
        return self

    def workers(self, value: int) -> "PSAConfig":
        self._cfg["workers"] = value
        return self

    def calibrate(self, enabled: bool = True) -> "PSAConfig":
        self._cfg["calibrate"] = bool(enabled)
        return self

    def fixed(self) -> PSAConfigData:
        _require_fields(self._cfg, ("population_size", "tmax", "tmin", "rho"), "PSAConfig")
        cfg = self._cfg
        s = _as_int(cfg["population_size"], "population_size")
        m = _as_int(cfg.get("neighbours", 0), "neighbours")
        tmax = _as_float(cfg["tmax"], "tmax")
        tmin = _as_float(cfg["tmin"], "tmin")
        rho = _as_float(cfg["rho"], "rho")
        runtime = _as_float(cfg.get("runtime", 0.0), "runtime")
        if s <= 0:
            raise ConfigurationError("population_size must be a positive integer.", parameter="population_size")
        if m < 0:
            raise ConfigurationError("neighbours must not be negative.", parameter="neighbours")
        if m == 0 and runtime <= 0.0:
            raise ConfigurationError(
                "No search budget: neighbours is 0 and runtime is not positive.",
                "Set neighbours > 0 or a positive runtime in seconds.",
                parameter="neighbours",
            )
        if tmin <= 0.0:
            raise ConfigurationError("tmin must be positive.", parameter="tmin")
        if tmin >= tmax:
            raise ConfigurationError(f"tmin ({tmin}) must be smaller than tmax ({tmax}).", parameter="tmin")
        if not 0.0 < rho < 1.0:
            raise ConfigurationError(f"rho must lie in (0, 1), got {rho}.", parameter="rho")

        prep_mode = PrepMode.parse(cfg.get("prep_mode", PrepMode.LEAST_DELAY))
        placement = cfg.get("existing_placement")
        if prep_mode is PrepMode.EXISTING and not placement:
            raise ConfigurationError(
                "prep_mode EXISTING requires an existing placement.",
                "Pass existing_placement: a mapping of request id to its (node, vnf) steps.",
                parameter="existing_placement",
            )
        if placement is not None:
            placement = _normalize_placement(placement)

        max_worse = _as_float(cfg.get("max_worse", 0.25), "max_worse")
        max_incomp = _as_float(cfg.get("max_incomp", 0.5), "max_incomp")
        for name, ceiling in (("max_worse", max_worse), ("max_incomp", max_incomp)):
            if not 0.0 <= ceiling <= 1.0:
                raise ConfigurationError(f"{name} must lie in [0, 1], got {ceiling}.", parameter=name)

        workers = cfg.get("workers") or min(s, os.cpu_count() or 1)
        workers = _as_int(workers, "workers")
        if workers <= 0:
            raise ConfigurationError("workers must be a positive integer.", parameter="workers")

        constants = dict(cfg.get("constants", DEFAULT_CONSTANTS))
        expressions = {
            "p_reassign_vnf": cfg.get("p_reassign_vnf", DEFAULT_P_REASSIGN_VNF),
            "p_new_instance": cfg.get("p_new_instance", DEFAULT_P_NEW_INSTANCE),
            "accept_worse": cfg.get("accept_worse", DEFAULT_ACCEPT_WORSE),
            "accept_incomparable": cfg.get("accept_incomparable", DEFAULT_ACCEPT_INCOMPARABLE),
        }
        formulas = compile_formulas(tmax, tmin, rho, constants, expressions)

        return PSAConfigData(
            population_size=s,
            neighbours=m,
            tmax=tmax,
            tmin=tmin,
            rho=rho,
            runtime=runtime,
            prep_mode=prep_mode.value,
            existing_placement=placement,
            constants=constants,
            max_worse=max_worse,
            max_incomp=max_incomp,
            objective_vector=_selector(cfg, "objective_vector", DEFAULT_OBJECTIVE_VECTOR),
            unfeasible_vector=_selector(cfg, "unfeasible_vector", DEFAULT_UNFEASIBLE_VECTOR),
            use_weights=bool(cfg.get("use_weights", True)),
            use_delay_in_weights=bool(cfg.get("use_delay_in_weights", True)),
            use_hops_in_weights=bool(cfg.get("use_hops_in_weights", True)),
            seed=None if cfg.get("seed") is None else _as_int(cfg["seed"], "seed"),
            workers=workers,
            calibrate=bool(cfg.get("calibrate", True)),
            formulas=formulas,
            **expressions,
        )


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}.", parameter=name)
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}.", parameter=name) from None
    if not math.isfinite(as_float) or as_float != int(as_float):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}.", parameter=name)
    return int(as_float)


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}.", parameter=name)
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number, got {value!r}.", parameter=name) from None
    if math.isnan(result):
        raise ConfigurationError(f"{name} must be a number, got NaN.", parameter=name)
    return result


def _selector(cfg: Dict[str, Any], name: str, default: Tuple[Any, ...]) -> Tuple[Any, ...]:
    if name not in cfg:
        return tuple(default)
    entries = cfg[name]
    if isinstance(entries, (str, bytes)) or not isinstance(entries, Sequence) or len(entries) == 0:
        raise ConfigurationError(f"'{name}' must be a non-empty list of metric selectors.", parameter=name)
    return tuple(entries)


def _normalize_placement(placement: Mapping[str, Sequence[Sequence[Any]]]) -> Dict[str, Tuple[Tuple[str, Optional[str]], ...]]:
    if not isinstance(placement, Mapping):
        raise ConfigurationError(
            "existing_placement must map request ids to lists of [node, vnf] steps.",
            parameter="existing_placement",
        )
    normalized = {}
    for request_id, steps in placement.items():
        built = []
        for step in steps:
            if isinstance(step, str):
                built.append((step, None))
            elif isinstance(step, Sequence) and 1 <= len(step) <= 2:
                vnf = step[1] if len(step) == 2 else None
                built.append((str(step[0]), None if vnf is None else str(vnf)))
            else:
                raise ConfigurationError(
                    f"Malformed step {step!r} for request '{request_id}'.", parameter="existing_placement"
                )
        normalized[str(request_id)] = tuple(built)
    return normalized


__all__ = [
    "CompiledFormulas",
    "DEFAULT_ACCEPT_INCOMPARABLE",
    "DEFAULT_ACCEPT_WORSE",
    "DEFAULT_CONSTANTS",
    "DEFAULT_P_NEW_INSTANCE",
    "DEFAULT_P_REASSIGN_VNF",
    "PSAConfig",
    "PSAConfigData",
    "compile_formulas",
]
