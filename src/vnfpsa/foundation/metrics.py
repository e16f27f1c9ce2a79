"""
Metric schema, value vectors and vector selectors.

Every scored solution carries one fixed-size ``float`` array holding all
metrics. The fixed metrics are an ``IntEnum`` whose values are their array
positions; per-resource usage totals follow them, one slot per resource of the
VNF library. Selectors pick (and optionally sum) entries of that array into the
vector actually compared by the dominance check. Names are resolved to indices
once, before the search starts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterator, Mapping, Sequence

import numpy as np

from vnfpsa.foundation.exceptions import ConfigurationError, UnknownMetricError


class Metric(IntEnum):
    UNFEASIBLE = 0
    NUMBER_OF_VNF_REPLACEMENTS = 1
    TOTAL_FLOW_MIGRATION_PENALTY = 2
    MEAN_DELAY_INDEX = 3
    MEDIAN_DELAY_INDEX = 4
    TOTAL_DELAY = 5
    MAX_DELAY_INDEX = 6
    MEAN_HOPS_INDEX = 7
    MEDIAN_HOPS_INDEX = 8
    NUMBER_OF_HOPS = 9
    MAX_HOPS_INDEX = 10
    MEAN_INVERSE_LOAD_INDEX = 11
    MEDIAN_INVERSE_LOAD_INDEX = 12
    NUMBER_OF_VNF_INSTANCES = 13
    TOTAL_ROOTED_VNF_LOADS = 14
    NUMBER_OF_DELAY_VIOLATIONS = 15
    NUMBER_OF_RESOURCE_VIOLATIONS = 16
    NUMBER_OF_EXCESSIVE_VNFS = 17
    NUMBER_OF_CONGESTED_LINKS = 18
    TOTAL_OVERLOADED_VNF_CAPACITY = 19
    TOTAL_ROOTED_EXCESSIVE_VNF_CAPACITY = 20


VIOLATION_METRICS: tuple[Metric, ...] = (
    Metric.NUMBER_OF_DELAY_VIOLATIONS,
    Metric.NUMBER_OF_RESOURCE_VIOLATIONS,
    Metric.NUMBER_OF_EXCESSIVE_VNFS,
    Metric.NUMBER_OF_CONGESTED_LINKS,
)

RESOURCE_PREFIX = "TOTAL_USED_RESOURCE_"
_INDEXED_RESOURCE = re.compile(r"^TOTAL_USED_RESOURCES\[(\d+)\]$")


class MetricSchema:
    """Fixed metrics plus one usage total per library resource."""

    def __init__(self, resource_names: Sequence[str]) -> None:
        self.resource_names = tuple(str(name).upper() for name in resource_names)
        if len(set(self.resource_names)) != len(self.resource_names):
            raise ConfigurationError(
                "Resource names must be unique (case-insensitive).",
                details={"resources": list(resource_names)},
                parameter="resources",
            )
        self.names: tuple[str, ...] = tuple(m.name for m in Metric) + tuple(
            f"{RESOURCE_PREFIX}{name}" for name in self.resource_names
        )
        self._index = {name: i for i, name in enumerate(self.names)}

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def resource_slot(self, k: int) -> int:
        """Array position of the usage total of the ``k``-th resource."""
        return len(Metric) + k

    def resolve(self, name: str, *, parameter: str = "objective_vector") -> int:
        """Map a metric name to its array position, or raise ``UnknownMetricError``."""
        key = str(name).strip().upper()
        if key in self._index:
            return self._index[key]
        match = _INDEXED_RESOURCE.match(key)
        if match and int(match.group(1)) < len(self.resource_names):
            return self.resource_slot(int(match.group(1)))
        raise UnknownMetricError(str(name), list(self.names), parameter=parameter)

    def empty(self) -> np.ndarray:
        return np.zeros(len(self.names), dtype=float)


class ValueVector:
    """Read-only view of a solution's metric array keyed by metric name."""

    __slots__ = ("schema", "values")

    def __init__(self, schema: MetricSchema, values: np.ndarray) -> None:
        if values.shape != (len(schema),):
            raise ValueError(f"expected {len(schema)} metric values, got shape {values.shape}")
        values.setflags(write=False)
        self.schema = schema
        self.values = values

    def __getitem__(self, key: Metric | str | int) -> float:
        if isinstance(key, str):
            return float(self.values[self.schema.resolve(key, parameter="metric")])
        return float(self.values[int(key)])

    def __len__(self) -> int:
        return len(self.values)

    @property
    def feasible(self) -> bool:
        return self.values[Metric.UNFEASIBLE] == 0.0

    def violations(self) -> float:
        return float(sum(self.values[m] for m in VIOLATION_METRICS))

    def as_dict(self) -> dict[str, float]:
        return {name: float(v) for name, v in zip(self.schema.names, self.values)}

    def __repr__(self) -> str:
        shown = ", ".join(f"{k}={v:g}" for k, v in self.as_dict().items() if v)
        return f"ValueVector({shown})"


@dataclass(frozen=True)
class VectorSelector:
    """
    Ordered selection of metric sums.

    Each component is a tuple of array positions whose values are added up.
    """

    components: tuple[tuple[int, ...], ...]
    labels: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.components)

    def select(self, values: np.ndarray) -> np.ndarray:
        out = np.empty(len(self.components), dtype=float)
        for k, idx in enumerate(self.components):
            if len(idx) == 1:
                out[k] = values[idx[0]]
            else:
                out[k] = float(np.sum(values[list(idx)]))
        out.setflags(write=False)
        return out


SelectorEntry = Any  # str | Sequence[str]

DEFAULT_OBJECTIVE_VECTOR: tuple[SelectorEntry, ...] = (
    "MEAN_DELAY_INDEX",
    "TOTAL_USED_RESOURCE_CPU",
    "NUMBER_OF_VNF_INSTANCES",
)
DEFAULT_UNFEASIBLE_VECTOR: tuple[SelectorEntry, ...] = (
    "MEAN_DELAY_INDEX",
    "MEAN_HOPS_INDEX",
    "MEAN_INVERSE_LOAD_INDEX",
    "NUMBER_OF_DELAY_VIOLATIONS + NUMBER_OF_RESOURCE_VIOLATIONS + NUMBER_OF_CONGESTED_LINKS",
    "TOTAL_OVERLOADED_VNF_CAPACITY",
    "TOTAL_ROOTED_EXCESSIVE_VNF_CAPACITY",
)


def _entry_names(entry: SelectorEntry, parameter: str) -> list[str]:
    if isinstance(entry, Metric):
        return [entry.name]
    if isinstance(entry, str):
        names = [part.strip() for part in entry.split("+")]
    elif isinstance(entry, Sequence):
        names = []
        for item in entry:
            names.extend(_entry_names(item, parameter))
    elif isinstance(entry, Mapping) and "sum" in entry:
        return _entry_names(entry["sum"], parameter)
    else:
        raise ConfigurationError(
            f"Selector entries must be metric names or lists of names, got {entry!r}.",
            parameter=parameter,
        )
    if not names or any(not n for n in names):
        raise ConfigurationError(f"Empty metric name in selector entry {entry!r}.", parameter=parameter)
    return names


def parse_selector(
    entries: Sequence[SelectorEntry],
    schema: MetricSchema,
    *,
    parameter: str = "objective_vector",
) -> VectorSelector:
    """Resolve a declarative selector list against ``schema``."""
    if isinstance(entries, (str, bytes)) or not isinstance(entries, Sequence) or len(entries) == 0:
        raise ConfigurationError(f"'{parameter}' must be a non-empty list of metric selectors.", parameter=parameter)
    components = []
    labels = []
    for entry in entries:
        names = _entry_names(entry, parameter)
        components.append(tuple(schema.resolve(n, parameter=parameter) for n in names))
        labels.append(" + ".join(n.upper() for n in names))
    return VectorSelector(components=tuple(components), labels=tuple(labels))


__all__ = [
    "DEFAULT_OBJECTIVE_VECTOR",
    "DEFAULT_UNFEASIBLE_VECTOR",
    "Metric",
    "MetricSchema",
    "RESOURCE_PREFIX",
    "VIOLATION_METRICS",
    "ValueVector",
    "VectorSelector",
    "parse_selector",
]
