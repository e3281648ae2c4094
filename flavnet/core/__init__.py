"""Core numerical primitives for flavnet."""

from . import activations, corruption, types
from .architecture import Architecture
from .layer import Layer

__all__ = ["Architecture", "Layer", "activations", "corruption", "types"]
