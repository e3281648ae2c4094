"""Headless-safe plotting of training curves and correction surfaces."""

from __future__ import annotations

from pathlib import Path
from typing import List, Mapping, Tuple

from ..reweighting.table import CorrectionTable


def _pyplot():
    import matplotlib

    matplotlib.use("Agg", force=True)
    import matplotlib.pyplot as plt  # imported lazily for headless safety

    return plt


class PlotAdapter:
    """Collect a metric per epoch and optionally draw it on ``close``."""

    def __init__(self, run_dir: str | Path, enable_plots: bool = False, metric: str = "loss"):
        self.enable_plots = enable_plots
        self.metric = metric
        self.run_dir = Path(run_dir)
        self._history: List[Tuple[int, float]] = []
        if self.enable_plots:
            self.run_dir.mkdir(parents=True, exist_ok=True)

    def on_epoch(self, epoch: int, metrics: Mapping[str, float]) -> None:
        if not self.enable_plots or self.metric not in metrics:
            return
        self._history.append((epoch, float(metrics[self.metric])))

    __call__ = on_epoch

    def close(self) -> Path | None:
        if not self.enable_plots or not self._history:
            return None
        plt = _pyplot()
        epochs, values = zip(*self._history)
        fig, ax = plt.subplots()
        ax.plot(epochs, values, marker="o")
        ax.set_xlabel("Epoch")
        ax.set_ylabel(self.metric)
        ax.set_title("Training curve")
        plot_path = self.run_dir / f"{self.metric}.png"
        fig.savefig(plot_path)
        plt.close(fig)
        return plot_path


def plot_corrections(table: CorrectionTable, path: str | Path) -> Path:
    """Draw the charm and bottom correction surfaces side by side."""

    plt = _pyplot()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig, axes = plt.subplots(1, 2, figsize=(10, 4))
    eta_edges = table.eta_binning.edges
    for ax, (name, values) in zip(axes, (("charm", table.charm), ("bottom", table.bottom))):
        mesh = ax.imshow(values, origin="lower", aspect="auto", cmap="viridis")
        ax.set_title(f"{name} correction")
        ax.set_xlabel(f"|{table.eta_binning.variable}| bin")
        ax.set_ylabel(f"{table.pt_binning.variable} bin")
        ax.set_xticks(range(len(eta_edges) - 1))
        fig.colorbar(mesh, ax=ax)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path


__all__ = ["PlotAdapter", "plot_corrections"]
