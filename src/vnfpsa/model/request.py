from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Request:
    """A service request: route ``bandwidth`` from ingress to egress through ``chain`` in order."""

    id: str
    ingress: str
    egress: str
    bandwidth: float
    expected_delay: float = float("inf")
    chain: tuple[str, ...] = ()


__all__ = ["Request"]
