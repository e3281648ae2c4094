"""Input corruption used by denoising-autoencoder training."""

from __future__ import annotations

import numpy as np

from .types import Array

CORRUPTIONS = ("mask", "gaussian")


def mask_noise(x: Array, level: float, rng: np.random.Generator) -> Array:
    """Zero each feature of ``x`` independently with probability ``level``."""

    keep = rng.uniform(size=x.shape) >= level
    return np.where(keep, x, 0.0)


def gaussian_noise(x: Array, level: float, rng: np.random.Generator) -> Array:
    """Add zero-mean gaussian noise with standard deviation ``level``."""

    return x + rng.normal(0.0, level, size=x.shape)


def corrupt(x: Array, kind: str, level: float, rng: np.random.Generator) -> Array:
    """Return a corrupted copy of ``x``; ``x`` itself is left untouched."""

    x = np.asarray(x, dtype=np.float64)
    if kind == "mask":
        return mask_noise(x, level, rng)
    if kind == "gaussian":
        return gaussian_noise(x, level, rng)
    raise ValueError(f"Unknown corruption {kind!r}; expected one of {CORRUPTIONS}")


def validate(kind: str, level: float) -> None:
    if kind not in CORRUPTIONS:
        raise ValueError(f"Unknown corruption {kind!r}; expected one of {CORRUPTIONS}")
    if kind == "mask" and not 0.0 <= level < 1.0:
        raise ValueError("mask corruption level must lie in [0, 1)")
    if kind == "gaussian" and level < 0.0:
        raise ValueError("gaussian corruption level must be non-negative")


__all__ = ["CORRUPTIONS", "corrupt", "gaussian_noise", "mask_noise", "validate"]
