"""Metric helpers for the trainer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

import numpy as np
from sklearn.metrics import roc_auc_score

from ..core.types import Array, NetworkType


@dataclass(frozen=True)
class MetricResult:
    name: str
    value: float


def default_metrics(net_type: NetworkType | str) -> List[str]:
    net_type = NetworkType.parse(net_type)
    if net_type is NetworkType.REGRESSION:
        return ["mae", "rmse", "r2"]
    if net_type is NetworkType.CLASSIFICATION:
        return ["accuracy", "precision", "recall", "f1", "auc"]
    return ["mae", "rmse"]


def _weighted_mean(values: Array, weights: Array | None) -> float:
    if weights is None:
        return float(np.mean(values))
    return float(np.average(values, weights=weights))


def compute_metric(
    name: str,
    predictions: Array,
    targets: Array,
    *,
    weights: Array | None = None,
    threshold: float = 0.5,
) -> MetricResult:
    """Compute ``name`` over ``(n_samples, n_outputs)`` predictions.

    Classification metrics treat predictions as probabilities of the positive
    class; ``weights`` are per-sample importance weights.
    """

    key = name.lower()
    if weights is not None and float(np.sum(weights)) <= 0:
        weights = None
    preds = np.asarray(predictions, dtype=np.float64)
    targs = np.asarray(targets, dtype=np.float64)
    per_sample_abs = np.abs(preds - targs).reshape(preds.shape[0], -1).mean(axis=1)
    per_sample_sq = np.square(preds - targs).reshape(preds.shape[0], -1).mean(axis=1)
    if key == "mae":
        value = _weighted_mean(per_sample_abs, weights)
    elif key == "rmse":
        value = float(np.sqrt(_weighted_mean(per_sample_sq, weights)))
    elif key == "r2":
        mean = np.mean(targs, axis=0, keepdims=True)
        ss_res = float(np.sum((targs - preds) ** 2))
        ss_tot = float(np.sum((targs - mean) ** 2))
        value = 1.0 if ss_tot == 0 else float(1 - ss_res / (ss_tot + 1e-9))
    elif key == "accuracy":
        pred_idx = (preds >= threshold).astype(int)
        targ_idx = (targs >= 0.5).astype(int)
        correct = (pred_idx == targ_idx).reshape(preds.shape[0], -1).mean(axis=1)
        value = _weighted_mean(correct, weights)
    elif key in {"precision", "recall", "f1"}:
        pred_idx = (preds >= threshold).astype(int).ravel()
        targ_idx = (targs >= 0.5).astype(int).ravel()
        tp = float(np.sum((pred_idx == 1) & (targ_idx == 1)))
        fp = float(np.sum((pred_idx == 1) & (targ_idx == 0)))
        fn = float(np.sum((pred_idx == 0) & (targ_idx == 1)))
        precision = tp / (tp + fp + 1e-9)
        recall = tp / (tp + fn + 1e-9)
        if key == "precision":
            value = float(precision)
        elif key == "recall":
            value = float(recall)
        else:
            value = float(2 * precision * recall / (precision + recall + 1e-9))
    elif key == "auc":
        labels = (targs[:, 0] >= 0.5).astype(int)
        if np.unique(labels).size < 2:
            value = 0.5
        else:
            value = float(roc_auc_score(labels, preds[:, 0], sample_weight=weights))
    else:
        raise KeyError(f"Unknown metric: {name}")
    return MetricResult(name=key, value=value)


def compute_metrics(
    names: Iterable[str],
    predictions: Array,
    targets: Array,
    *,
    weights: Array | None = None,
) -> Mapping[str, float]:
    results: Dict[str, float] = {}
    for name in names:
        metric = compute_metric(name, predictions, targets, weights=weights)
        results[metric.name] = metric.value
    return results


__all__ = ["MetricResult", "compute_metric", "compute_metrics", "default_metrics"]
