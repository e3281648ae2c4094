"""Record sources and synthetic jet data."""

from .records import (
    FrameDataset,
    Numeric,
    RecordSource,
    UnknownFieldError,
)
from .synthetic import make_jet_frame

__all__ = [
    "FrameDataset",
    "Numeric",
    "RecordSource",
    "UnknownFieldError",
    "make_jet_frame",
]
