"""Flavour-population reweighting across kinematic bins."""

from .binning import DEFAULT_ETA_EDGES, DEFAULT_PT_EDGES, Binning, categorize
from .estimator import FlavorFields, FlavorHistograms, QualityCut, ReweightingEstimator
from .table import CorrectionTable, Flavor

__all__ = [
    "Binning",
    "CorrectionTable",
    "DEFAULT_ETA_EDGES",
    "DEFAULT_PT_EDGES",
    "Flavor",
    "FlavorFields",
    "FlavorHistograms",
    "QualityCut",
    "ReweightingEstimator",
    "categorize",
]
