from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

import numpy as np

from vnfpsa.foundation.exceptions import ProblemError


@dataclass(frozen=True)
class VNF:
    """
    A VNF type.

    One instance consumes ``resources`` on its node and serves at most
    ``processing_capacity`` of bandwidth; more load means more instances.
    ``max_instances`` of -1 means unlimited.
    """

    name: str
    resources: tuple[float, ...]
    processing_capacity: float
    delay: float = 0.0
    max_instances: int = -1
    flow_migration_penalty: float = 0.0


@dataclass(frozen=True)
class VnfLibrary:
    """Catalog of VNF types plus the named resource schema they consume."""

    resources: tuple[str, ...]
    vnfs: tuple[VNF, ...]
    pair_latencies: Mapping[tuple[str, str], float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        names = [v.name for v in self.vnfs]
        if len(set(names)) != len(names):
            raise ProblemError("VNF names must be unique.", details={"vnfs": names})
        for vnf in self.vnfs:
            if len(vnf.resources) != len(self.resources):
                raise ProblemError(
                    f"VNF '{vnf.name}' declares {len(vnf.resources)} resource demands, "
                    f"library has {len(self.resources)} resources.",
                )
            if vnf.processing_capacity <= 0:
                raise ProblemError(f"VNF '{vnf.name}' needs a positive processing capacity.")
        for a, b in self.pair_latencies:
            if a not in names or b not in names:
                raise ProblemError(f"Pair latency {a}->{b} references an unknown VNF.")
        object.__setattr__(self, "_by_name", {v.name: i for i, v in enumerate(self.vnfs)})
        object.__setattr__(self, "demands", np.array([v.resources for v in self.vnfs], dtype=float))

    @classmethod
    def create(
        cls,
        resources: Sequence[str],
        vnfs: Iterable[VNF],
        pair_latencies: Mapping[tuple[str, str], float] | None = None,
    ) -> "VnfLibrary":
        return cls(tuple(resources), tuple(vnfs), dict(pair_latencies or {}))

    def __len__(self) -> int:
        return len(self.vnfs)

    def index(self, name: str) -> int:
        try:
            return self._by_name[name]  # type: ignore[attr-defined]
        except KeyError:
            raise ProblemError(f"Unknown VNF '{name}'.", details={"vnf": name}) from None

    def pair_latency(self, a: int, b: int) -> float | None:
        """Maximum delay allowed between consecutive chain VNFs ``a`` and ``b``."""
        if not self.pair_latencies:
            return None
        return self.pair_latencies.get((self.vnfs[a].name, self.vnfs[b].name))


__all__ = ["VNF", "VnfLibrary"]
