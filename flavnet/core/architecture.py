"""Layer stack, backpropagation and the denoising-autoencoder loop."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Mapping, Sequence

import numpy as np

from . import activations as _activations
from . import corruption as _corruption
from .layer import Layer
from .types import Array, ModelDescription, NetworkType, TrainingMode

logger = logging.getLogger(__name__)

Reporter = Callable[[int, Mapping[str, float]], None]


class Architecture:
    """Small fully-connected network trained by stochastic backpropagation.

    ``structure`` lists the layer sizes, e.g. ``[n_in, n_hidden, n_out]``;
    ``len(structure) - 1`` layers are built and all of them share the same
    activation strategy. ``net_type`` only affects how callers interpret the
    outputs; the arithmetic is identical for every type.
    """

    def __init__(
        self,
        structure: Sequence[int],
        net_type: NetworkType | str = NetworkType.CLASSIFICATION,
        activation: str | _activations.Activation = "sigmoid",
        *,
        learning: float = 0.01,
        momentum: float = 0.0,
        seed: int = 0,
        init_scale: float = 0.1,
    ) -> None:
        structure = [int(size) for size in structure]
        if len(structure) < 2:
            raise ValueError(f"structure needs at least two layer sizes, got {structure}")
        if any(size <= 0 for size in structure):
            raise ValueError(f"structure entries must be positive, got {structure}")

        self._structure = structure
        self.net_type = NetworkType.parse(net_type)
        self.activation = _activations.get(activation)
        self.seed = seed
        self._rng = np.random.default_rng(seed)
        self._noise_rng = np.random.default_rng(seed + 1)
        self.layers: List[Layer] = [
            Layer(in_dim, out_dim, self.activation, self._rng, scale=init_scale)
            for in_dim, out_dim in zip(structure[:-1], structure[1:])
        ]
        self._eta = 0.0
        self._lambda = 0.0
        self.set_learning(learning)
        self.set_momentum(momentum)
        self._mode = TrainingMode.STANDARD
        self._corruption = "mask"
        self._corruption_level = 0.25
        self._reconstruction_error: List[float] = []

    # ------------------------------------------------------------------
    # Introspection

    @property
    def structure(self) -> List[int]:
        return list(self._structure)

    @property
    def learning_rate(self) -> float:
        return self._eta

    @property
    def momentum(self) -> float:
        return self._lambda

    @property
    def mode(self) -> TrainingMode:
        return self._mode

    @property
    def is_denoising(self) -> bool:
        return self._mode is TrainingMode.DENOISING

    @property
    def reconstruction_error(self) -> tuple[float, ...]:
        return tuple(self._reconstruction_error)

    def describe(self) -> ModelDescription:
        return ModelDescription(
            structure=self.structure,
            net_type=self.net_type,
            activation=self.activation.name,
        )

    def parameter_count(self) -> int:
        return int(sum(layer.W.size + layer.b.size for layer in self.layers))

    # ------------------------------------------------------------------
    # Hyper-parameters

    def set_learning(self, x: float) -> None:
        if x < 0:
            raise ValueError(f"learning rate must be non-negative, got {x}")
        self._eta = float(x)

    def set_momentum(self, x: float) -> None:
        if x < 0:
            raise ValueError(f"momentum must be non-negative, got {x}")
        self._lambda = float(x)

    def anneal(self, x: float) -> None:
        """Multiply the learning rate by ``x`` (``0 < x <= 1``)."""

        if not 0.0 < x <= 1.0:
            raise ValueError(f"anneal factor must lie in (0, 1], got {x}")
        self._eta *= float(x)

    def make_denoising(self, corruption: str = "mask", level: float = 0.25) -> None:
        """Switch to denoising training.

        There is no way back to standard mode; calling this again only
        replaces the corruption settings.
        """

        _corruption.validate(corruption, level)
        self._mode = TrainingMode.DENOISING
        self._corruption = corruption
        self._corruption_level = float(level)

    # ------------------------------------------------------------------
    # Evaluation and training

    def _check_event(self, event: Array) -> Array:
        event = np.asarray(event, dtype=np.float64)
        if event.shape != (self._structure[0],):
            raise ValueError(
                f"Network expects an event of length {self._structure[0]}, got shape {event.shape}"
            )
        return event

    def test(self, event: Array) -> Array:
        """Forward ``event`` through every layer without mutating the network."""

        x = self._check_event(event)
        for layer in self.layers:
            x = layer.evaluate(x)
        return x

    def _forward(self, event: Array) -> Array:
        x = event
        for layer in self.layers:
            x = layer.forward(x)
        return x

    def backpropagate(self, error: Array, event: Array, weight: float = 1.0) -> None:
        """Run one training step on ``event``.

        ``error`` is dL/d(output) for this event (prediction minus target for
        squared error) and is scaled by the per-sample ``weight`` before it
        is propagated.
        """

        event = self._check_event(event)
        error = np.asarray(error, dtype=np.float64)
        if error.shape != (self._structure[-1],):
            raise ValueError(
                f"Network expects an error of length {self._structure[-1]}, got shape {error.shape}"
            )
        self._forward(event)
        delta = error * float(weight)
        for layer in reversed(self.layers):
            delta = layer.backward(delta, self._eta, self._lambda)

    def encode(
        self,
        inputs: Sequence[Array],
        learning: float,
        weights: Sequence[float],
        verbose: bool = False,
        epochs: int = 5,
        reporter: Reporter | None = None,
    ) -> List[float]:
        """Train the network to reproduce ``inputs``.

        In denoising mode every input is corrupted before it is fed forward,
        while the reconstruction error is always measured against the
        original input. Returns the mean squared reconstruction error of each
        epoch; the same values are appended to :attr:`reconstruction_error`.
        """

        if self._structure[0] != self._structure[-1]:
            raise ValueError(
                f"encode requires matching input/output sizes, got structure {self._structure}"
            )
        if len(inputs) != len(weights):
            raise ValueError(
                f"encode got {len(inputs)} inputs but {len(weights)} sample weights"
            )
        if epochs < 1:
            raise ValueError(f"epochs must be positive, got {epochs}")

        samples = [self._check_event(x) for x in inputs]
        self.set_learning(learning)
        history: List[float] = []
        for epoch in range(1, epochs + 1):
            total = 0.0
            for original, weight in zip(samples, weights):
                fed = original
                if self.is_denoising:
                    fed = _corruption.corrupt(
                        original, self._corruption, self._corruption_level, self._noise_rng
                    )
                reconstruction = self.test(fed)
                error = reconstruction - original
                total += float(np.mean(np.square(error)))
                self.backpropagate(error, fed, weight)
            epoch_error = total / len(samples) if samples else 0.0
            history.append(epoch_error)
            self._reconstruction_error.append(epoch_error)
            if verbose:
                metrics = {"reconstruction_error": epoch_error, "learning_rate": self._eta}
                if reporter is not None:
                    reporter(epoch, metrics)
                else:
                    logger.info("encode epoch %d/%d: reconstruction error %.6g", epoch, epochs, epoch_error)
        return history

    # ------------------------------------------------------------------
    # Persistence

    def state_dict(self) -> Mapping[str, Array]:
        state: dict[str, Array] = {}
        for idx, layer in enumerate(self.layers):
            state[f"W{idx}"] = layer.W.copy()
            state[f"b{idx}"] = layer.b.copy()
        return state

    def load_state_dict(self, state: Mapping[str, Array]) -> None:
        for idx, layer in enumerate(self.layers):
            for key in (f"W{idx}", f"b{idx}"):
                if key not in state:
                    raise KeyError(f"Missing parameter {key} in state dict")
            layer.load_state_dict({"W": state[f"W{idx}"], "b": state[f"b{idx}"]})

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = dict(self.state_dict())
        payload["structure"] = np.asarray(self._structure, dtype=np.int64)
        payload["settings"] = np.asarray(
            [self.net_type.value, self.activation.name, self._mode.value, self._corruption]
        )
        payload["hyper"] = np.asarray(
            [self._eta, self._lambda, self._corruption_level], dtype=np.float64
        )
        payload["seed"] = np.asarray(self.seed, dtype=np.int64)
        with path.open("wb") as handle:
            np.savez_compressed(handle, **payload)
        return path

    @classmethod
    def load(cls, path: str | Path) -> "Architecture":
        """Rebuild a network saved by :meth:`save` (built-in activations only)."""

        with np.load(Path(path), allow_pickle=False) as data:
            state = {key: data[key] for key in data.files}
        net_type, activation, mode, corruption = (str(item) for item in state.pop("settings"))
        eta, momentum, level = (float(item) for item in state.pop("hyper"))
        network = cls(
            state.pop("structure").tolist(),
            net_type,
            activation,
            learning=eta,
            momentum=momentum,
            seed=int(state.pop("seed")),
        )
        network.load_state_dict(state)
        if mode == TrainingMode.DENOISING.value:
            network.make_denoising(corruption, level)
        return network


__all__ = ["Architecture"]
