"""Typed row-record access over tabular jet data."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Protocol, Sequence

import numpy as np
import pandas as pd

from ..core.types import Array

logger = logging.getLogger(__name__)

NUMERIC_TYPES: Dict[str, type] = {
    "double": np.float64,
    "float": np.float32,
    "int": np.int32,
}

BRANCH_ROLES = ("input", "output", "control")


class UnknownFieldError(KeyError):
    """Raised when a field is read that was never bound on the source."""


def _as_int_column(raw: np.ndarray) -> np.ndarray:
    values = raw.astype(np.float64)
    if not np.all(np.isfinite(values)):
        raise ValueError("column holds NaN or infinite values")
    return values.astype(np.int32)


@dataclass(frozen=True)
class Numeric:
    """A scalar together with the storage kind it was read from."""

    kind: str
    value: float | int

    def as_double(self) -> float:
        return float(self.value)

    def as_int(self) -> int:
        # truncates towards zero like a C cast
        return int(self.value)


class RecordSource(Protocol):
    """Row cursor with typed scalar access, as consumed by the estimator."""

    def select_row(self, index: int) -> None:
        ...

    def field_as_double(self, name: str) -> float:
        ...

    def field_as_int(self, name: str) -> int:
        ...

    def num_entries(self) -> int:
        ...


class FrameDataset:
    """Record source backed by a :class:`pandas.DataFrame`.

    Columns become readable once bound with one of the ``set_*_branch``
    methods. Binding stores the column with the dtype of the declared type, so
    a ``float`` branch reads back with single precision. Input and output
    branches additionally define, in binding order, the vectors returned by
    :meth:`input` and :meth:`output`.
    """

    def __init__(self, frame: pd.DataFrame, name: str = "frame") -> None:
        self.name = name
        self._frame = frame.reset_index(drop=True)
        self._columns: Dict[str, np.ndarray] = {}
        self._kinds: Dict[str, str] = {}
        self._input_vars: List[str] = []
        self._output_vars: List[str] = []
        self._control_vars: List[str] = []
        self._cursor: int | None = None

    @classmethod
    def from_csv(cls, path: str | Path, **read_kwargs) -> "FrameDataset":
        path = Path(path)
        return cls(pd.read_csv(path, **read_kwargs), name=path.stem)

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame

    # ------------------------------------------------------------------
    # Binding

    def _bind(self, name: str, type_name: str, role: str) -> bool:
        dtype = NUMERIC_TYPES.get(type_name)
        if dtype is None:
            logger.error("type %r not recognized for branch %r", type_name, name)
            return False
        if name not in self._frame.columns:
            logger.error("branch %r not found in %s", name, self.name)
            return False
        raw = self._frame[name].to_numpy()
        try:
            values = raw.astype(dtype) if dtype is not np.int32 else _as_int_column(raw)
        except (TypeError, ValueError) as exc:
            logger.error("branch %r cannot be read as %s: %s", name, type_name, exc)
            return False
        self._columns[name] = values
        self._kinds[name] = type_name
        registry = {
            "input": self._input_vars,
            "output": self._output_vars,
            "control": self._control_vars,
        }[role]
        if name not in registry:
            registry.append(name)
        return True

    def set_input_branch(self, name: str, type_name: str) -> bool:
        return self._bind(name, type_name, "input")

    def set_output_branch(self, name: str, type_name: str) -> bool:
        return self._bind(name, type_name, "output")

    def set_control_branch(self, name: str, type_name: str) -> bool:
        return self._bind(name, type_name, "control")

    def bind_branches(self, branches: Mapping[str, str], role: str = "control") -> Dict[str, bool]:
        """Bind every ``name -> type`` pair and report each outcome."""

        if role not in BRANCH_ROLES:
            raise ValueError(f"Unknown branch role {role!r}; expected one of {BRANCH_ROLES}")
        status = {name: self._bind(name, type_name, role) for name, type_name in branches.items()}
        failed = [name for name, ok in status.items() if not ok]
        if failed:
            logger.warning("%d of %d %s branches failed to bind: %s", len(failed), len(status), role, failed)
        return status

    def get_input_vars(self) -> List[str]:
        return list(self._input_vars)

    def get_output_vars(self) -> List[str]:
        return list(self._output_vars)

    # ------------------------------------------------------------------
    # Row access

    def num_entries(self) -> int:
        return int(len(self._frame))

    def __len__(self) -> int:
        return self.num_entries()

    def select_row(self, index: int) -> None:
        if not 0 <= index < self.num_entries():
            raise IndexError(f"row {index} out of range for {self.num_entries()} entries")
        self._cursor = int(index)

    at = select_row

    def field(self, name: str) -> Numeric:
        if name not in self._columns:
            raise UnknownFieldError(f"field {name!r} was never bound on {self.name}")
        if self._cursor is None:
            raise RuntimeError("no row selected; call select_row first")
        return Numeric(self._kinds[name], self._columns[name][self._cursor].item())

    def field_as_double(self, name: str) -> float:
        return self.field(name).as_double()

    def field_as_int(self, name: str) -> int:
        return self.field(name).as_int()

    get_value = field_as_double

    def _vector(self, names: Sequence[str]) -> Array:
        return np.array([self.field_as_double(name) for name in names], dtype=np.float64)

    def input(self) -> Array:
        return self._vector(self._input_vars)

    def output(self) -> Array:
        return self._vector(self._output_vars)

    def get_performance_map(self, variable_names: Sequence[str]) -> Dict[str, float]:
        return {name: self.field_as_double(name) for name in variable_names}

    # ------------------------------------------------------------------
    # Bulk access

    def column(self, name: str) -> Array:
        """Return the bound column ``name`` as stored."""

        if name not in self._columns:
            raise UnknownFieldError(f"field {name!r} was never bound on {self.name}")
        return self._columns[name]

    def matrix(self, role: str) -> Array:
        """Stack the input or output branches into an ``(n_rows, n_vars)`` array."""

        names = {"input": self._input_vars, "output": self._output_vars}.get(role)
        if names is None:
            raise ValueError(f"matrix role must be 'input' or 'output', got {role!r}")
        if not names:
            return np.zeros((self.num_entries(), 0), dtype=np.float64)
        return np.column_stack([self.column(name).astype(np.float64) for name in names])


__all__ = [
    "BRANCH_ROLES",
    "FrameDataset",
    "NUMERIC_TYPES",
    "Numeric",
    "RecordSource",
    "UnknownFieldError",
]
