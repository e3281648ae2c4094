"""Deterministic per-sample training loops around :class:`Architecture`."""

from __future__ import annotations

import random
from pathlib import Path
from typing import Mapping, Sequence

import numpy as np

from ..core.architecture import Architecture
from ..core.types import Array, RunResult
from .losses import REGISTRY as LOSS_REGISTRY
from .metrics import compute_metrics, default_metrics


class Trainer:
    """Drive stochastic backpropagation over weighted samples.

    Every sample triggers one :meth:`Architecture.backpropagate` call with
    its importance weight. Epoch metrics are computed from the predictions
    made just before each update and are emitted to callbacks exposing
    ``on_epoch(epoch, metrics)``.
    """

    def __init__(
        self,
        network: Architecture,
        loss: str = "auto",
        callbacks: Sequence[object] | None = None,
    ) -> None:
        self.network = network
        self.loss = LOSS_REGISTRY.resolve(loss, net_type=network.net_type)
        if self.loss.name == "bce" and network.activation.name != "sigmoid":
            raise ValueError(
                f"bce expects sigmoid outputs, got a {network.activation.name!r} network; "
                "pick another loss or activation"
            )
        self.callbacks = list(callbacks or [])

    def run(
        self,
        inputs: Array,
        targets: Array,
        weights: Array | None = None,
        *,
        epochs: int,
        seed: int = 0,
        learning: float | None = None,
        momentum: float | None = None,
        anneal: float = 1.0,
        val: tuple[Array, Array] | tuple[Array, Array, Array] | None = None,
        metric_names: Sequence[str] | str = "default",
        split_loggers: Mapping[str, Sequence[object]] | None = None,
        early_stopping_patience: int | None = None,
        checkpoint_dir: str | Path | None = None,
        shuffle: bool = True,
    ) -> RunResult:
        inputs = np.asarray(inputs, dtype=np.float64)
        targets = np.asarray(targets, dtype=np.float64)
        if targets.ndim == 1:
            targets = targets.reshape(-1, 1)
        if inputs.shape[0] != targets.shape[0]:
            raise ValueError(
                f"got {inputs.shape[0]} input rows but {targets.shape[0]} target rows"
            )
        if weights is None:
            weights = np.ones(inputs.shape[0], dtype=np.float64)
        weights = np.asarray(weights, dtype=np.float64)
        if weights.shape != (inputs.shape[0],):
            raise ValueError(
                f"got {inputs.shape[0]} samples but weights of shape {weights.shape}"
            )
        if epochs < 1:
            raise ValueError(f"epochs must be positive, got {epochs}")

        if isinstance(metric_names, str):
            if metric_names in {"default", ""}:
                metric_names = default_metrics(self.network.net_type)
            else:
                metric_names = [m.strip() for m in metric_names.split(",") if m.strip()]
        metric_names = list(metric_names)

        if learning is not None:
            self.network.set_learning(learning)
        if momentum is not None:
            self.network.set_momentum(momentum)

        self._set_seed(seed)
        rng = np.random.default_rng(seed)
        split_loggers = split_loggers or {}
        checkpoint_dir = Path(checkpoint_dir) if checkpoint_dir is not None else None
        if checkpoint_dir is not None:
            checkpoint_dir.mkdir(parents=True, exist_ok=True)

        best_loss = float("inf")
        epochs_no_improve = 0
        total_steps = 0
        epochs_run = 0
        final: Mapping[str, float] = {}

        for epoch in range(1, epochs + 1):
            order = rng.permutation(inputs.shape[0]) if shuffle else np.arange(inputs.shape[0])
            train_metrics = self._train_epoch(inputs, targets, weights, order, metric_names)
            train_metrics["learning_rate"] = self.network.learning_rate
            total_steps += int(order.size)
            epochs_run = epoch
            self._emit_epoch("train", epoch, train_metrics, split_loggers)

            val_metrics = None
            if val is not None:
                val_metrics = self.evaluate(*val, metric_names=metric_names)
                self._emit_epoch("val", epoch, val_metrics, split_loggers)

            final = val_metrics or train_metrics
            current_loss = float(final.get("loss", 0.0))
            if current_loss < best_loss - 1e-9:
                best_loss = current_loss
                epochs_no_improve = 0
                if checkpoint_dir is not None:
                    self.network.save(checkpoint_dir / "best.npz")
            else:
                epochs_no_improve += 1
                if early_stopping_patience and epochs_no_improve >= early_stopping_patience:
                    break

            if anneal != 1.0:
                self.network.anneal(anneal)

        if checkpoint_dir is not None:
            self.network.save(checkpoint_dir / "last.npz")
        return RunResult(
            steps=total_steps,
            epochs=epochs_run,
            final_metrics={k: float(v) for k, v in final.items()},
        )

    def evaluate(
        self,
        inputs: Array,
        targets: Array,
        weights: Array | None = None,
        *,
        metric_names: Sequence[str] | None = None,
    ) -> dict[str, float]:
        """Loss and metrics of the current network; parameters are untouched."""

        inputs = np.asarray(inputs, dtype=np.float64)
        targets = np.asarray(targets, dtype=np.float64)
        if targets.ndim == 1:
            targets = targets.reshape(-1, 1)
        names = list(metric_names) if metric_names is not None else default_metrics(self.network.net_type)
        predictions = np.stack([self.network.test(x) for x in inputs])
        losses = np.asarray([self.loss(p, t)[0] for p, t in zip(predictions, targets)])
        metrics = {"loss": self._mean_loss(losses, weights)}
        metrics.update(compute_metrics(names, predictions, targets, weights=weights))
        return metrics

    # ------------------------------------------------------------------
    # Internal helpers

    def _train_epoch(
        self,
        inputs: Array,
        targets: Array,
        weights: Array,
        order: Array,
        metric_names: Sequence[str],
    ) -> dict[str, float]:
        predictions = np.empty((order.size, targets.shape[1]), dtype=np.float64)
        losses = np.empty(order.size, dtype=np.float64)
        for step, idx in enumerate(order):
            event = inputs[idx]
            prediction = self.network.test(event)
            loss_value, grad = self.loss(prediction, targets[idx])
            self.network.backpropagate(grad, event, float(weights[idx]))
            predictions[step] = prediction
            losses[step] = loss_value
        ordered_targets = targets[order]
        ordered_weights = weights[order]
        metrics = {"loss": self._mean_loss(losses, ordered_weights)}
        metrics.update(
            compute_metrics(metric_names, predictions, ordered_targets, weights=ordered_weights)
        )
        return metrics

    @staticmethod
    def _mean_loss(losses: Array, weights: Array | None) -> float:
        if weights is None or float(np.sum(weights)) <= 0:
            return float(np.mean(losses)) if losses.size else 0.0
        return float(np.average(losses, weights=weights))

    def _emit_epoch(
        self,
        split: str,
        epoch: int,
        metrics: Mapping[str, float],
        loggers: Mapping[str, Sequence[object]],
    ) -> None:
        for callback in self.callbacks:
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
        for callback in loggers.get(split, []):
            if hasattr(callback, "on_epoch"):
                callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(epoch, metrics)

    @staticmethod
    def _set_seed(seed: int) -> None:
        random.seed(seed)
        np.random.seed(seed)


__all__ = ["Trainer"]
