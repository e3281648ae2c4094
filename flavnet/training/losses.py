"""Per-sample losses returning both the scalar loss and dL/dy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable

import numpy as np

from ..core.types import Array, NetworkType

LossFn = Callable[[Array, Array], tuple[float, Array]]


@dataclass(frozen=True)
class Loss:
    """Loss wrapper returning both the scalar loss and dL/dy."""

    name: str
    fn: LossFn

    def __call__(self, predictions: Array, targets: Array) -> tuple[float, Array]:
        return self.fn(np.asarray(predictions, dtype=np.float64), np.asarray(targets, dtype=np.float64))


class LossRegistry:
    """Central registry for loss functions."""

    def __init__(self) -> None:
        self._registry: Dict[str, Loss] = {}

    def register(self, name: str, fn: LossFn) -> None:
        self._registry[name] = Loss(name, fn)

    def names(self) -> Iterable[str]:
        return sorted(self._registry)

    def resolve(self, name: str, *, net_type: NetworkType | str) -> Loss:
        """Look up ``name``; ``"auto"`` picks bce for classification, mse otherwise.

        bce assumes probabilities from a sigmoid output layer.
        """

        if name == "auto":
            net_type = NetworkType.parse(net_type)
            name = "bce" if net_type is NetworkType.CLASSIFICATION else "mse"
        if name not in self._registry:
            available = ", ".join(self.names())
            raise KeyError(f"Unknown loss {name!r}. Available losses: {available}")
        return self._registry[name]


REGISTRY = LossRegistry()


def _mse(pred: Array, target: Array) -> tuple[float, Array]:
    diff = pred - target
    loss = float(np.mean(np.square(diff)))
    return loss, diff


def _mae(pred: Array, target: Array) -> tuple[float, Array]:
    diff = pred - target
    return float(np.mean(np.abs(diff))), np.sign(diff)


def _huber(pred: Array, target: Array, delta: float = 1.0) -> tuple[float, Array]:
    diff = pred - target
    abs_diff = np.abs(diff)
    quadratic = np.minimum(abs_diff, delta)
    linear = abs_diff - quadratic
    loss = float(np.mean(0.5 * quadratic**2 + delta * linear))
    grad = np.where(abs_diff <= delta, diff, delta * np.sign(diff))
    return loss, grad


def _bce(prob: Array, target: Array) -> tuple[float, Array]:
    # predictions are probabilities from a sigmoid output layer
    eps = 1e-7
    p = np.clip(prob, eps, 1.0 - eps)
    loss = float(-np.mean(target * np.log(p) + (1.0 - target) * np.log(1.0 - p)))
    grad = (p - target) / (p * (1.0 - p))
    return loss, grad


REGISTRY.register("mse", _mse)
REGISTRY.register("mae", _mae)
REGISTRY.register("huber", _huber)
REGISTRY.register("bce", _bce)

__all__ = ["Loss", "LossRegistry", "REGISTRY"]
