"""Fully-connected layer with cached activations and momentum buffers."""

from __future__ import annotations

from typing import Mapping

import numpy as np

from .activations import Activation
from .types import Array


class Layer:
    """One affine map followed by an element-wise non-linearity.

    ``W`` has shape ``(out_dim, in_dim)`` and ``b`` shape ``(out_dim,)``.
    ``forward`` caches the input and pre-activation needed by ``backward``;
    ``evaluate`` computes the same output without touching the caches.
    """

    def __init__(
        self,
        in_dim: int,
        out_dim: int,
        activation: Activation,
        rng: np.random.Generator,
        scale: float = 0.1,
    ) -> None:
        if in_dim <= 0 or out_dim <= 0:
            raise ValueError(f"Layer dimensions must be positive, got {in_dim}x{out_dim}")
        self.activation = activation
        self.W = rng.normal(0.0, scale, size=(out_dim, in_dim))
        self.b = np.zeros(out_dim, dtype=np.float64)
        self._vW = np.zeros_like(self.W)
        self._vb = np.zeros_like(self.b)
        self.last_input: Array | None = None
        self.last_summed: Array | None = None
        self.last_output: Array | None = None

    @property
    def in_dim(self) -> int:
        return int(self.W.shape[1])

    @property
    def out_dim(self) -> int:
        return int(self.W.shape[0])

    def _check_input(self, x: Array) -> Array:
        x = np.asarray(x, dtype=np.float64)
        if x.shape != (self.in_dim,):
            raise ValueError(f"Layer expects input of shape ({self.in_dim},), got {x.shape}")
        return x

    def evaluate(self, x: Array) -> Array:
        x = self._check_input(x)
        return self.activation.activate(self.W @ x + self.b)

    def forward(self, x: Array) -> Array:
        x = self._check_input(x)
        z = self.W @ x + self.b
        out = self.activation.activate(z)
        self.last_input = x
        self.last_summed = z
        self.last_output = out
        return out

    def backward(self, error: Array, learning_rate: float, momentum: float) -> Array:
        """Apply one gradient step and return the error for the layer below.

        ``error`` is the derivative of the loss with respect to this layer's
        output. The upstream error uses the weights from before the update.
        """

        if self.last_input is None or self.last_summed is None:
            raise RuntimeError("backward called before forward")
        error = np.asarray(error, dtype=np.float64)
        if error.shape != (self.out_dim,):
            raise ValueError(f"Layer expects error of shape ({self.out_dim},), got {error.shape}")

        delta = error * self.activation.derivative(self.last_summed)
        upstream = self.W.T @ delta

        self._vW = momentum * self._vW + learning_rate * np.outer(delta, self.last_input)
        self._vb = momentum * self._vb + learning_rate * delta
        self.W -= self._vW
        self.b -= self._vb
        return upstream

    def reset_momentum(self) -> None:
        self._vW = np.zeros_like(self.W)
        self._vb = np.zeros_like(self.b)

    def state_dict(self) -> Mapping[str, Array]:
        return {"W": self.W.copy(), "b": self.b.copy()}

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        W = np.asarray(state["W"], dtype=np.float64)
        b = np.asarray(state["b"], dtype=np.float64)
        if W.shape != self.W.shape or b.shape != self.b.shape:
            raise ValueError(
                f"State shapes {W.shape}/{b.shape} do not match layer "
                f"{self.W.shape}/{self.b.shape}"
            )
        self.W = W.copy()
        self.b = b.copy()
        self.reset_momentum()


__all__ = ["Layer"]
