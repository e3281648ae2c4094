"""Binned flavour-population corrections estimated from a record source."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping

import numpy as np

from ..core.types import Array
from ..data.records import FrameDataset, RecordSource
from .binning import Binning
from .table import CorrectionTable, Flavor

logger = logging.getLogger(__name__)

TARGET_FRACTIONS: Mapping[Flavor, float] = {
    Flavor.LIGHT: 0.5,
    Flavor.CHARM: 0.2,
    Flavor.BOTTOM: 0.5,
}
DIRECT_RATIO_SCALE: Mapping[Flavor, float] = {Flavor.CHARM: 5.0, Flavor.BOTTOM: 1.0}
MAX_DIRECT_CORRECTION = 20.0


@dataclass(frozen=True)
class FlavorFields:
    """Names of the record fields read by the estimator."""

    pt: str = "pt"
    eta: str = "eta"
    light: str = "light"
    charm: str = "charm"
    bottom: str = "bottom"
    truth_label: str = "truth_label"

    def branches(self) -> Dict[str, str]:
        return {
            self.pt: "double",
            self.eta: "double",
            self.light: "int",
            self.charm: "int",
            self.bottom: "int",
            self.truth_label: "int",
        }


@dataclass(frozen=True)
class QualityCut:
    """Kinematic and truth-label selection applied before histogramming.

    A jet passes when ``|eta| < max_abs_eta``, ``min_pt < pt < max_pt`` and
    its truth label is below ``label_ceiling`` (``None`` disables the label
    requirement).
    """

    max_abs_eta: float = 2.5
    min_pt: float = 20.0
    max_pt: float = 1000.0
    label_ceiling: int | None = 15

    def accepts(self, pt: float, eta: float, label: int) -> bool:
        if not abs(eta) < self.max_abs_eta:
            return False
        if not self.min_pt < pt < self.max_pt:
            return False
        return self.label_ceiling is None or label < self.label_ceiling


@dataclass
class FlavorHistograms:
    """Jet counts per flavour in ``(pt_bin, eta_bin)`` cells.

    Histograms of disjoint record ranges can be combined with :meth:`merge`.
    """

    light: Array
    charm: Array
    bottom: Array
    scanned: int = 0
    rejected: int = 0
    unclassified: int = 0

    @classmethod
    def empty(cls, shape: tuple[int, int]) -> "FlavorHistograms":
        return cls(np.zeros(shape), np.zeros(shape), np.zeros(shape))

    def __getitem__(self, flavor: Flavor) -> Array:
        return {
            Flavor.LIGHT: self.light,
            Flavor.CHARM: self.charm,
            Flavor.BOTTOM: self.bottom,
        }[Flavor(flavor)]

    def fill(self, flavor: Flavor, pt_bin: int, eta_bin: int, weight: float = 1.0) -> None:
        self[flavor][pt_bin, eta_bin] += weight

    def merge(self, other: "FlavorHistograms") -> "FlavorHistograms":
        if other.light.shape != self.light.shape:
            raise ValueError(f"cannot merge histograms of shape {other.light.shape} into {self.light.shape}")
        return FlavorHistograms(
            self.light + other.light,
            self.charm + other.charm,
            self.bottom + other.bottom,
            scanned=self.scanned + other.scanned,
            rejected=self.rejected + other.rejected,
            unclassified=self.unclassified + other.unclassified,
        )

    def totals(self) -> Dict[str, float]:
        return {flavor.label: float(self[flavor].sum()) for flavor in Flavor}


def cumulative_fraction(hist: Array) -> Array:
    """Empirical 2D CDF: prefix sums along eta then pT, divided by the total."""

    cumulative = np.cumsum(np.cumsum(hist, axis=1), axis=0)
    total = float(hist.sum())
    if total <= 0:
        return np.zeros_like(cumulative, dtype=np.float64)
    return cumulative / total


def cdf_correction(hist: Array, target: float) -> Array:
    """``target / CDF`` per cell; cells with an empty CDF get 1.0."""

    cdf = cumulative_fraction(hist)
    out = np.ones_like(cdf, dtype=np.float64)
    np.divide(target, cdf, out=out, where=cdf > 0)
    return out


def direct_ratio_correction(
    light: Array, counts: Array, scale: float, cap: float = MAX_DIRECT_CORRECTION
) -> Array:
    """``min(max(light, 1) / (scale * max(counts, 1)), cap)`` per cell.

    Empty cells are floored to one count on both sides, which pulls sparse
    bins towards a weight of 1.
    """

    ratio = np.maximum(light, 1.0) / (scale * np.maximum(counts, 1.0))
    return np.minimum(ratio, cap)


def derive_corrections(
    histograms: FlavorHistograms, *, cdf: bool = True, relative: bool = True
) -> tuple[Array, Array]:
    """Return the ``(charm, bottom)`` correction arrays for ``histograms``."""

    if cdf:
        corrections = {
            flavor: cdf_correction(histograms[flavor], TARGET_FRACTIONS[flavor])
            for flavor in Flavor
        }
        if relative:
            light = corrections[Flavor.LIGHT]
            for flavor in (Flavor.CHARM, Flavor.BOTTOM):
                corrections[flavor] = corrections[flavor] / light
        return corrections[Flavor.CHARM], corrections[Flavor.BOTTOM]

    light = histograms.light
    charm = direct_ratio_correction(light, histograms.charm, DIRECT_RATIO_SCALE[Flavor.CHARM])
    bottom = direct_ratio_correction(light, histograms.bottom, DIRECT_RATIO_SCALE[Flavor.BOTTOM])
    return charm, bottom


class ReweightingEstimator:
    """Estimate and serve per-bin flavour corrections for a record source.

    The estimator scans a subsample of ``source`` once, fills one histogram
    per flavour and freezes the derived corrections into a
    :class:`CorrectionTable`. Afterwards :meth:`get_physics_reweighting`
    returns the weight of the record currently selected on a source.
    """

    def __init__(
        self,
        source: RecordSource,
        pt_binning: Binning | None = None,
        eta_binning: Binning | None = None,
        fields: FlavorFields | None = None,
        cut: QualityCut | None = None,
        sample_fraction: float = 0.1,
    ) -> None:
        if not 0.0 < sample_fraction <= 1.0:
            raise ValueError(f"sample_fraction must lie in (0, 1], got {sample_fraction}")
        self.source = source
        self.fields = fields or FlavorFields()
        self.pt_binning = pt_binning or Binning.pt(variable=self.fields.pt)
        self.eta_binning = eta_binning or Binning.eta(variable=self.fields.eta)
        self.cut = cut or QualityCut()
        self.sample_fraction = float(sample_fraction)
        self._table: CorrectionTable | None = None
        self._histograms: FlavorHistograms | None = None

    @property
    def table(self) -> CorrectionTable:
        if self._table is None:
            raise RuntimeError("determine_reweighting must run before corrections are read")
        return self._table

    @property
    def histograms(self) -> FlavorHistograms | None:
        return self._histograms

    @property
    def stride(self) -> int:
        return max(1, int(round(1.0 / self.sample_fraction)))

    def bind(self, source=None) -> Dict[str, bool]:
        """Bind every field the estimator reads as a control branch."""

        source = source if source is not None else self.source
        return source.bind_branches(self.fields.branches(), role="control")

    def classify(self, record: RecordSource) -> Flavor | None:
        fields = self.fields
        if record.field_as_int(fields.light) == 1:
            return Flavor.LIGHT
        if record.field_as_int(fields.charm) == 1:
            return Flavor.CHARM
        if record.field_as_int(fields.bottom) == 1:
            return Flavor.BOTTOM
        return None

    def accumulate(self) -> FlavorHistograms:
        """Fill the flavour histograms from every ``stride``-th record."""

        source = self.source
        fields = self.fields
        shape = (self.pt_binning.n_bins, self.eta_binning.n_bins)
        hists = FlavorHistograms.empty(shape)
        for index in range(0, source.num_entries(), self.stride):
            source.select_row(index)
            hists.scanned += 1
            pt = source.field_as_double(fields.pt)
            eta = source.field_as_double(fields.eta)
            label = source.field_as_int(fields.truth_label)
            if not self.cut.accepts(pt, eta, label):
                hists.rejected += 1
                continue
            flavor = self.classify(source)
            if flavor is None:
                hists.unclassified += 1
                continue
            hists.fill(flavor, self.pt_binning.index_of(pt), self.eta_binning.index_of(eta))
        return hists

    def determine_reweighting(self, cdf: bool = True, relative: bool = True) -> CorrectionTable:
        hists = self.accumulate()
        logger.info(
            "reweighting scan: %d records read, %d failed the quality cut, %d without flavour; counts %s",
            hists.scanned,
            hists.rejected,
            hists.unclassified,
            hists.totals(),
        )
        charm, bottom = derive_corrections(hists, cdf=cdf, relative=relative)
        self._histograms = hists
        self._table = CorrectionTable(
            pt_binning=self.pt_binning,
            eta_binning=self.eta_binning,
            charm=charm,
            bottom=bottom,
            cdf=cdf,
            relative=relative,
            counts=hists.totals(),
        )
        logger.info("bottom correction:\n%s", np.array2string(self._table.bottom, precision=3))
        logger.info("charm correction:\n%s", np.array2string(self._table.charm, precision=3))
        return self._table

    def get_physics_reweighting(self, record: RecordSource | None = None) -> float:
        """Weight of the currently selected record of ``record`` (default: the source).

        Light jets weigh exactly 1.0, as do records without a flavour flag.
        """

        table = self.table
        record = record if record is not None else self.source
        flavor = self.classify(record)
        if flavor is None or flavor is Flavor.LIGHT:
            return 1.0
        pt = record.field_as_double(self.fields.pt)
        eta = record.field_as_double(self.fields.eta)
        return table.factor(flavor, pt, eta)

    def physics_weights(self, source: FrameDataset | None = None) -> Array:
        """Per-row :meth:`get_physics_reweighting` over every row of ``source``."""

        table = self.table
        source = source if source is not None else self.source
        fields = self.fields
        light = source.column(fields.light) == 1
        charm = ~light & (source.column(fields.charm) == 1)
        bottom = ~light & ~charm & (source.column(fields.bottom) == 1)
        pt_bins = self.pt_binning.indices_of(source.column(fields.pt))
        eta_bins = self.eta_binning.indices_of(source.column(fields.eta))
        weights = np.ones(source.num_entries(), dtype=np.float64)
        weights[charm] = table.charm[pt_bins[charm], eta_bins[charm]]
        weights[bottom] = table.bottom[pt_bins[bottom], eta_bins[bottom]]
        return weights


__all__ = [
    "DIRECT_RATIO_SCALE",
    "FlavorFields",
    "FlavorHistograms",
    "MAX_DIRECT_CORRECTION",
    "QualityCut",
    "ReweightingEstimator",
    "TARGET_FRACTIONS",
    "cdf_correction",
    "cumulative_fraction",
    "derive_corrections",
    "direct_ratio_correction",
]
