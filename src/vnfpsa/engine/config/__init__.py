"""Search configuration: frozen data, builder, file loading and per-problem resolution."""

from .loader import config_from_dict, load_config, read_config_file
from .psa import CompiledFormulas, PSAConfig, PSAConfigData, compile_formulas
from .settings import ResolvedSettings, resolve_settings

__all__ = [
    "CompiledFormulas",
    "PSAConfig",
    "PSAConfigData",
    "ResolvedSettings",
    "compile_formulas",
    "config_from_dict",
    "load_config",
    "read_config_file",
    "resolve_settings",
]
