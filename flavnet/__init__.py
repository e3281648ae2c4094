"""flavnet public API."""

from .core import activations, corruption, types  # noqa: F401
from .core.architecture import Architecture
from .core.layer import Layer
from .core.types import NetworkType, TrainingMode
from .data.records import FrameDataset, UnknownFieldError
from .reweighting import Binning, CorrectionTable, Flavor, ReweightingEstimator, categorize
from .training.pipelines import load_preset, presets, run_pipeline
from .training.trainer import Trainer

__all__ = [
    "Architecture",
    "Binning",
    "CorrectionTable",
    "Flavor",
    "FrameDataset",
    "Layer",
    "NetworkType",
    "ReweightingEstimator",
    "Trainer",
    "TrainingMode",
    "UnknownFieldError",
    "activations",
    "categorize",
    "corruption",
    "load_preset",
    "presets",
    "run_pipeline",
    "types",
]
