"""Kinematic bin edges and bin lookup."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence, Tuple

import numpy as np

from ..core.types import Array

DEFAULT_PT_EDGES: Tuple[float, ...] = (20, 30, 40, 50, 60, 75, 90, 110, 140, 200, 500)
DEFAULT_ETA_EDGES: Tuple[float, ...] = (0, 0.6, 1.2, 1.8, 2.5)


def _validate_edges(edges: Sequence[float]) -> Array:
    arr = np.asarray(edges, dtype=np.float64)
    if arr.ndim != 1 or arr.size < 2:
        raise ValueError(f"need at least two bin edges, got {list(edges)}")
    if np.any(np.diff(arr) <= 0):
        raise ValueError(f"bin edges must be strictly increasing, got {list(edges)}")
    return arr


def categorize(value: float, edges: Sequence[float]) -> int:
    """Return ``i`` such that ``edges[i] <= value < edges[i + 1]``.

    Values at or above the last edge land in the last bin and values below
    the first edge land in bin 0.
    """

    n_bins = len(edges) - 1
    for category in range(n_bins):
        if edges[category] <= value < edges[category + 1]:
            return category
    if value >= edges[-1]:
        return n_bins - 1
    return 0


def categorize_many(values: Array, edges: Sequence[float]) -> Array:
    """Vectorised :func:`categorize` for an array of values."""

    arr = np.asarray(edges, dtype=np.float64)
    values = np.asarray(values, dtype=np.float64)
    idx = np.searchsorted(arr, values, side="right") - 1
    idx = np.clip(idx, 0, arr.size - 2)
    # NaN compares false against every edge, which lands in bin 0
    return np.where(np.isnan(values), 0, idx).astype(np.int64)


@dataclass(frozen=True)
class Binning:
    """Bin edges of one variable.

    Args:
        variable: Name of the record field that is binned.
        edges: Strictly increasing bin edges.
        absolute: Bin ``|value|`` instead of ``value`` (used for eta).
    """

    variable: str
    edges: Tuple[float, ...]
    absolute: bool = False
    _array: Array = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        arr = _validate_edges(self.edges)
        object.__setattr__(self, "edges", tuple(float(edge) for edge in arr))
        arr.setflags(write=False)
        object.__setattr__(self, "_array", arr)

    @classmethod
    def pt(cls, edges: Sequence[float] = DEFAULT_PT_EDGES, variable: str = "pt") -> "Binning":
        return cls(variable, tuple(edges))

    @classmethod
    def eta(cls, edges: Sequence[float] = DEFAULT_ETA_EDGES, variable: str = "eta") -> "Binning":
        return cls(variable, tuple(edges), absolute=True)

    @property
    def n_bins(self) -> int:
        return len(self.edges) - 1

    @property
    def array(self) -> Array:
        return self._array

    def index_of(self, value: float) -> int:
        if self.absolute:
            value = abs(value)
        return categorize(value, self.edges)

    def indices_of(self, values: Array) -> Array:
        values = np.asarray(values, dtype=np.float64)
        if self.absolute:
            values = np.abs(values)
        return categorize_many(values, self.edges)


__all__ = [
    "Binning",
    "DEFAULT_ETA_EDGES",
    "DEFAULT_PT_EDGES",
    "categorize",
    "categorize_many",
]
