"""Frozen correction surfaces and their persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Dict, Mapping

import numpy as np
import pandas as pd

from ..core.types import Array
from .binning import Binning


class Flavor(IntEnum):
    """Mutually exclusive jet flavour classes."""

    LIGHT = 0
    CHARM = 1
    BOTTOM = 2

    @property
    def label(self) -> str:
        return self.name.lower()


def _frozen(values: Array, shape: tuple[int, int], name: str) -> Array:
    arr = np.array(values, dtype=np.float64)
    if arr.shape != shape:
        raise ValueError(f"{name} correction has shape {arr.shape}, expected {shape}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class CorrectionTable:
    """Per-bin charm and bottom correction factors with their binning.

    Light jets are the reference population and always weigh 1.0. The arrays
    are indexed ``[pt_bin, eta_bin]`` and are read-only.
    """

    pt_binning: Binning
    eta_binning: Binning
    charm: Array
    bottom: Array
    cdf: bool = True
    relative: bool = True
    counts: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        shape = (self.pt_binning.n_bins, self.eta_binning.n_bins)
        object.__setattr__(self, "charm", _frozen(self.charm, shape, "charm"))
        object.__setattr__(self, "bottom", _frozen(self.bottom, shape, "bottom"))
        object.__setattr__(self, "counts", dict(self.counts))

    @property
    def shape(self) -> tuple[int, int]:
        return (self.pt_binning.n_bins, self.eta_binning.n_bins)

    def lookup(self, flavor: Flavor, pt_bin: int, eta_bin: int) -> float:
        flavor = Flavor(flavor)
        if flavor is Flavor.LIGHT:
            return 1.0
        table = self.bottom if flavor is Flavor.BOTTOM else self.charm
        return float(table[pt_bin, eta_bin])

    def factor(self, flavor: Flavor, pt: float, eta: float) -> float:
        """Return the weight of a jet with the given flavour and kinematics."""

        return self.lookup(flavor, self.pt_binning.index_of(pt), self.eta_binning.index_of(eta))

    def to_frame(self) -> pd.DataFrame:
        """Long-format view with one row per (flavour, pt bin, eta bin)."""

        rows = []
        pt_edges = self.pt_binning.edges
        eta_edges = self.eta_binning.edges
        for name, table in (("charm", self.charm), ("bottom", self.bottom)):
            for i in range(table.shape[0]):
                for j in range(table.shape[1]):
                    rows.append(
                        {
                            "flavor": name,
                            "pt_bin": i,
                            "eta_bin": j,
                            "pt_low": pt_edges[i],
                            "pt_high": pt_edges[i + 1],
                            "eta_low": eta_edges[j],
                            "eta_high": eta_edges[j + 1],
                            "correction": float(table[i, j]),
                        }
                    )
        return pd.DataFrame(rows)

    def save(self, path: str | Path) -> Path:
        """Write edges and corrections together to a compressed ``.npz``."""

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload: Dict[str, Array] = {
            "pt_edges": self.pt_binning.array,
            "eta_edges": self.eta_binning.array,
            "variables": np.asarray([self.pt_binning.variable, self.eta_binning.variable]),
            "charm": self.charm,
            "bottom": self.bottom,
            "method": np.asarray([self.cdf, self.relative]),
            "count_names": np.asarray(sorted(self.counts), dtype=str),
            "count_values": np.asarray(
                [self.counts[name] for name in sorted(self.counts)], dtype=np.float64
            ),
        }
        with path.open("wb") as handle:
            np.savez_compressed(handle, **payload)
        return path

    @classmethod
    def load(cls, path: str | Path) -> "CorrectionTable":
        with np.load(Path(path), allow_pickle=False) as data:
            pt_var, eta_var = (str(item) for item in data["variables"])
            cdf, relative = (bool(item) for item in data["method"])
            counts = {
                str(name): float(value)
                for name, value in zip(data["count_names"], data["count_values"])
            }
            return cls(
                pt_binning=Binning.pt(data["pt_edges"].tolist(), variable=pt_var),
                eta_binning=Binning.eta(data["eta_edges"].tolist(), variable=eta_var),
                charm=data["charm"],
                bottom=data["bottom"],
                cdf=cdf,
                relative=relative,
                counts=counts,
            )


__all__ = ["CorrectionTable", "Flavor"]
