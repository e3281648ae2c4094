"""Reporting utilities for flavnet."""

from .artifacts import write_manifest
from .metrics import CsvSink, JsonlSink, MetricsCapture
from .plots import PlotAdapter, plot_corrections

__all__ = ["CsvSink", "JsonlSink", "MetricsCapture", "PlotAdapter", "plot_corrections", "write_manifest"]
