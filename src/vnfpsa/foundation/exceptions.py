"""
vnfpsa exception hierarchy.

Hard (control) errors stop a run before it starts: malformed problem input or a
contradictory configuration. Soft (data) errors such as resource or delay
violations are never raised; they are recorded in a solution's value vector.

Example:
    try:
        archive = run(config, problem)
    except VNFPSAError as e:
        logger.error("Search failed: %s", e.message)
        logger.error("Suggestion: %s", e.suggestion)
"""

from __future__ import annotations

from typing import Any


class VNFPSAError(Exception):
    """
    Base exception for all vnfpsa errors.

    Attributes:
        message: Human-readable error description
        suggestion: Optional suggestion for fixing the error
        details: Optional dict with additional context
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message with suggestion."""
        msg = self.message
        if self.suggestion:
            msg += f"\n\nSuggestion: {self.suggestion}"
        return msg


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(VNFPSAError):
    """Raised when configuration is invalid, incomplete or contradictory."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
        *,
        parameter: str | None = None,
    ) -> None:
        details = dict(details or {})
        if parameter is not None:
            details.setdefault("parameter", parameter)
        super().__init__(message, suggestion, details)

    @property
    def parameter(self) -> str | None:
        return self.details.get("parameter")


class MissingConfigError(ConfigurationError):
    """Raised when required configuration is missing."""

    def __init__(self, field: str, config_class: str | None = None) -> None:
        message = f"Missing required configuration: '{field}'."
        suggestion = f"Add '{field}' to your configuration"
        if config_class:
            suggestion += f" or use {config_class}.default() for sensible defaults"
        super().__init__(message, suggestion, {"field": field}, parameter=field)


class InvalidPrepModeError(ConfigurationError):
    """Raised when an unknown initial-solution strategy is specified."""

    def __init__(self, mode: str, available: list[str]) -> None:
        message = f"Unknown prep_mode '{mode}'."
        suggestion = f"Available modes: {', '.join(available)}"
        super().__init__(message, suggestion, {"mode": mode, "available": available}, parameter="prep_mode")


class UnknownMetricError(ConfigurationError):
    """Raised when a vector selector references a metric that does not exist."""

    def __init__(self, name: str, available: list[str], parameter: str = "objective_vector") -> None:
        message = f"Unknown metric '{name}' in {parameter}."
        examples = ", ".join(available[:6])
        suggestion = f"Known metrics include: {examples}. Resource totals are named TOTAL_USED_RESOURCE_<NAME>."
        super().__init__(message, suggestion, {"metric": name, "available": available}, parameter=parameter)


class FormulaError(ConfigurationError):
    """Raised when a runtime formula cannot be compiled."""

    def __init__(self, name: str, expression: str, reason: str) -> None:
        message = f"Invalid formula for '{name}': {reason}"
        suggestion = "Formulas may use arithmetic, comparisons, conditionals and min/max/abs/sqrt/log/exp/ceil/floor."
        super().__init__(message, suggestion, {"expression": expression}, parameter=name)


# =============================================================================
# Problem Errors
# =============================================================================


class ProblemError(VNFPSAError):
    """Base class for malformed problem input (topology, library, requests)."""

    pass


class InvalidTopologyError(ProblemError):
    """Raised when nodes or links are inconsistent."""

    pass


class InvalidRequestError(ProblemError):
    """Raised when a request references unknown nodes or VNFs, or cannot be routed."""

    def __init__(self, request_id: str, reason: str) -> None:
        message = f"Invalid request '{request_id}': {reason}"
        super().__init__(message, None, {"request": request_id})


class InvalidPlacementError(ProblemError):
    """Raised when an existing placement does not describe a valid route for every request."""

    def __init__(self, reason: str, request_id: str | None = None) -> None:
        prefix = f"Invalid placement for request '{request_id}'" if request_id is not None else "Invalid placement"
        super().__init__(f"{prefix}: {reason}", None, {"request": request_id})


__all__ = [
    "VNFPSAError",
    "ConfigurationError",
    "MissingConfigError",
    "InvalidPrepModeError",
    "UnknownMetricError",
    "FormulaError",
    "ProblemError",
    "InvalidTopologyError",
    "InvalidRequestError",
    "InvalidPlacementError",
]
