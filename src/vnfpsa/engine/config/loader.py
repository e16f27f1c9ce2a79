"""
Config loading utilities for files and plain mappings.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from vnfpsa.foundation.exceptions import ConfigurationError

from .psa import PSAConfig, PSAConfigData

# camelCase spellings accepted next to the canonical snake_case keys
_ALIASES = {
    "s": "population_size",
    "m": "neighbours",
    "neighbors": "neighbours",
    "prepMode": "prep_mode",
    "existingPlacement": "existing_placement",
    "pReassignVnf": "p_reassign_vnf",
    "pNewInstance": "p_new_instance",
    "acceptWorse": "accept_worse",
    "acceptIncomparable": "accept_incomparable",
    "maxWorse": "max_worse",
    "maxIncomp": "max_incomp",
    "objectiveVector": "objective_vector",
    "unfeasibleVector": "unfeasible_vector",
    "useWeights": "use_weights",
    "useDelayInWeights": "use_delay_in_weights",
    "useHopsInWeights": "use_hops_in_weights",
}
_KNOWN = frozenset(
    {
        "population_size",
        "neighbours",
        "tmax",
        "tmin",
        "rho",
        "runtime",
        "prep_mode",
        "existing_placement",
        "constants",
        "p_reassign_vnf",
        "p_new_instance",
        "accept_worse",
        "accept_incomparable",
        "max_worse",
        "max_incomp",
        "objective_vector",
        "unfeasible_vector",
        "use_weights",
        "use_delay_in_weights",
        "use_hops_in_weights",
        "seed",
        "workers",
        "calibrate",
    }
)


def read_config_file(path: str | Path) -> Dict[str, Any]:
    """
    Load a YAML or JSON configuration file into a mapping.
    """
    spec_path = Path(path).expanduser().resolve()
    if not spec_path.exists():
        raise FileNotFoundError(f"Config file '{spec_path}' does not exist.")
    suffix = spec_path.suffix.lower()
    with spec_path.open("r", encoding="utf-8") as fh:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(fh) or {}
        else:
            data = json.load(fh)
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Config file '{spec_path}' must contain a mapping at the top level.")
    return dict(data)


def config_from_dict(mapping: Mapping[str, Any]) -> PSAConfigData:
    """Build a validated configuration from a plain mapping (e.g. parsed YAML)."""
    cfg: Dict[str, Any] = {}
    for raw_key, value in mapping.items():
        key = _ALIASES.get(str(raw_key), str(raw_key))
        if key not in _KNOWN:
            raise ConfigurationError(
                f"Unknown configuration key '{raw_key}'.",
                f"Known keys: {', '.join(sorted(_KNOWN))}",
                parameter=str(raw_key),
            )
        if key in cfg:
            raise ConfigurationError(f"Configuration key '{key}' given twice.", parameter=key)
        cfg[key] = value

    builder = PSAConfig()
    if "constants" in cfg:
        constants = cfg.pop("constants")
        if not isinstance(constants, Mapping):
            raise ConfigurationError("constants must be a mapping of names to values.", parameter="constants")
        builder.constants(**{str(k): v for k, v in constants.items()})
    for key in ("objective_vector", "unfeasible_vector"):
        if key in cfg:
            entries = cfg.pop(key)
            if isinstance(entries, (str, bytes)) or not isinstance(entries, (list, tuple)):
                raise ConfigurationError(f"'{key}' must be a list of metric selectors.", parameter=key)
            getattr(builder, key)(*(tuple(e) if isinstance(e, list) else e for e in entries))
    builder._cfg.update(cfg)
    return builder.fixed()


def load_config(path: str | Path) -> PSAConfigData:
    """Read and validate a YAML or JSON PSA configuration file."""
    return config_from_dict(read_config_file(path))


__all__ = ["config_from_dict", "load_config", "read_config_file"]
