"""vnfpsa: multi-objective VNF placement with Pareto simulated annealing."""

from .engine.archive import ParetoArchive
from .engine.config import PSAConfig, PSAConfigData, config_from_dict, load_config
from .engine.initialization import PrepMode
from .engine.psa import PSA, run
from .foundation.exceptions import (
    ConfigurationError,
    InvalidPlacementError,
    ProblemError,
    VNFPSAError,
)
from .foundation.logging import configure_vnfpsa_logging
from .foundation.metrics import Metric, ValueVector
from .foundation.observer import LoggingObserver, NoOpObserver, PSAObserver, RunContext
from .model.problem import ProblemInstance
from .model.request import Request
from .model.solution import Route, Solution
from .model.topology import Link, Node, Topology
from .model.vnf import VNF, VnfLibrary

__all__ = [
    "run",
    "PSA",
    "PSAConfig",
    "PSAConfigData",
    "PrepMode",
    "config_from_dict",
    "load_config",
    "ParetoArchive",
    "Metric",
    "ValueVector",
    "Node",
    "Link",
    "Topology",
    "VNF",
    "VnfLibrary",
    "Request",
    "ProblemInstance",
    "Route",
    "Solution",
    "PSAObserver",
    "NoOpObserver",
    "LoggingObserver",
    "RunContext",
    "configure_vnfpsa_logging",
    "VNFPSAError",
    "ConfigurationError",
    "ProblemError",
    "InvalidPlacementError",
]
