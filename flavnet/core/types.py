"""Core typing contracts for flavnet."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

import numpy as np

Array = np.ndarray


class NetworkType(str, Enum):
    """How the outputs of a network are interpreted downstream."""

    REGRESSION = "regression"
    CLASSIFICATION = "classification"
    AUTOENCODER = "autoencoder"

    @classmethod
    def parse(cls, value: "NetworkType | str") -> "NetworkType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            choices = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown network type {value!r}. Choose from: {choices}") from exc


class TrainingMode(str, Enum):
    """Training regime of an :class:`~flavnet.core.architecture.Architecture`."""

    STANDARD = "standard"
    DENOISING = "denoising"


@dataclass(frozen=True)
class ModelDescription:
    """Description of the feed-forward network architecture."""

    structure: List[int]
    net_type: NetworkType
    activation: str


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :meth:`flavnet.training.trainer.Trainer.run`."""

    steps: int
    epochs: int
    final_metrics: Dict[str, float]
    metrics_path: str = ""
    manifest_path: str = ""
    corrections_path: str = ""
    network_path: str = ""
