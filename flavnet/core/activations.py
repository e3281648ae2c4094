"""Activation strategies for flavnet layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable

import numpy as np

from .types import Array

ActivationFn = Callable[[Array], Array]


def sigmoid(x: Array) -> Array:
    """Return the logistic sigmoid of ``x``.

    Written through ``tanh`` so large magnitudes saturate to 0 or 1 without
    overflowing ``exp``.
    """

    x = np.asarray(x, dtype=np.float64)
    return 0.5 * (1.0 + np.tanh(0.5 * x))


def sigmoid_deriv(z: Array) -> Array:
    s = sigmoid(z)
    return s * (1.0 - s)


def tanh(x: Array) -> Array:
    return np.tanh(np.asarray(x, dtype=np.float64))


def tanh_deriv(z: Array) -> Array:
    return 1.0 - np.tanh(np.asarray(z, dtype=np.float64)) ** 2


def relu(x: Array) -> Array:
    """Return the ReLU activation."""

    return np.maximum(np.asarray(x, dtype=np.float64), 0.0)


def relu_deriv(z: Array) -> Array:
    return (np.asarray(z) > 0).astype(np.float64)


def linear(x: Array) -> Array:
    return np.asarray(x, dtype=np.float64)


def linear_deriv(z: Array) -> Array:
    return np.ones_like(np.asarray(z, dtype=np.float64))


@dataclass(frozen=True)
class Activation:
    """Element-wise non-linearity paired with its derivative.

    ``derivative`` is evaluated at the pre-activation value, i.e. the summed
    input ``W @ x + b`` of a layer.
    """

    name: str
    fn: ActivationFn
    deriv: ActivationFn

    def activate(self, x: Array) -> Array:
        return self.fn(x)

    def derivative(self, z: Array) -> Array:
        return self.deriv(z)


class ActivationRegistry:
    """Name lookup for the built-in activation strategies."""

    def __init__(self) -> None:
        self._registry: Dict[str, Activation] = {}

    def register(self, name: str, fn: ActivationFn, deriv: ActivationFn) -> None:
        self._registry[name] = Activation(name, fn, deriv)

    def names(self) -> Iterable[str]:
        return sorted(self._registry)

    def get(self, name: "str | Activation") -> Activation:
        if isinstance(name, Activation):
            return name
        key = str(name).lower()
        if key not in self._registry:
            available = ", ".join(self.names())
            raise KeyError(f"Unknown activation {name!r}. Available activations: {available}")
        return self._registry[key]


REGISTRY = ActivationRegistry()
REGISTRY.register("sigmoid", sigmoid, sigmoid_deriv)
REGISTRY.register("tanh", tanh, tanh_deriv)
REGISTRY.register("relu", relu, relu_deriv)
REGISTRY.register("linear", linear, linear_deriv)


def get(name: "str | Activation") -> Activation:
    """Resolve ``name`` to an :class:`Activation` (instances pass through)."""

    return REGISTRY.get(name)


__all__ = [
    "Activation",
    "ActivationRegistry",
    "REGISTRY",
    "get",
    "sigmoid",
    "tanh",
    "relu",
    "linear",
]
