"""Config-driven assembly of record source, reweighting and training."""

from __future__ import annotations

import json
import time
from copy import deepcopy
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

import numpy as np
from sklearn.preprocessing import MinMaxScaler, StandardScaler

from ..core.architecture import Architecture
from ..core.types import Array, NetworkType, RunResult
from ..data.records import FrameDataset
from ..data.synthetic import INPUT_BRANCHES, make_jet_frame
from ..reporting.artifacts import write_manifest
from ..reporting.metrics import CsvSink, JsonlSink, MetricsCapture
from ..reporting.plots import PlotAdapter, plot_corrections
from ..reweighting.binning import DEFAULT_ETA_EDGES, DEFAULT_PT_EDGES, Binning
from ..reweighting.estimator import FlavorFields, QualityCut, ReweightingEstimator
from ..reweighting.table import CorrectionTable
from .trainer import Trainer

_REGRESSION_INPUTS = {k: v for k, v in INPUT_BRANCHES.items() if k != "jf_efrac"}

_PRESETS: Dict[str, Mapping[str, object]] = {
    "synthetic-classifier": {
        "data": {
            "name": "synthetic",
            "options": {"n": 1500, "seed": 0},
            "inputs": dict(INPUT_BRANCHES),
            "outputs": {"bottom": "int"},
            "scaling": "standard",
        },
        "model": {"hidden": [8], "type": "classification", "activation": "sigmoid", "seed": 3},
        "train": {
            "epochs": 5,
            "lr": 0.05,
            "momentum": 0.5,
            "anneal": 0.9,
            "seed": 7,
            "val_fraction": 0.2,
            "run_dir": "runs/synthetic-classifier",
            "enable_plots": False,
        },
        "reweighting": {"enabled": True, "cdf": False, "relative": True, "sample_fraction": 0.1},
    },
    "synthetic-regression": {
        "data": {
            "name": "synthetic",
            "options": {"n": 1000, "seed": 1},
            "inputs": _REGRESSION_INPUTS,
            "outputs": {"jf_efrac": "float"},
            "scaling": "standard",
        },
        "model": {"hidden": [6], "type": "regression", "activation": "sigmoid", "seed": 5},
        "train": {
            "epochs": 4,
            "lr": 0.05,
            "momentum": 0.0,
            "anneal": 1.0,
            "seed": 11,
            "val_fraction": 0.2,
            "run_dir": "runs/synthetic-regression",
            "enable_plots": False,
        },
        "reweighting": {"enabled": False},
    },
    "synthetic-denoising": {
        "data": {
            "name": "synthetic",
            "options": {"n": 600, "seed": 2},
            "inputs": dict(INPUT_BRANCHES),
            "outputs": {},
            "scaling": "minmax",
        },
        "model": {
            "hidden": [3],
            "type": "autoencoder",
            "activation": "sigmoid",
            "seed": 13,
            "denoising": {"corruption": "mask", "level": 0.2},
        },
        "train": {
            "epochs": 5,
            "lr": 0.1,
            "momentum": 0.0,
            "seed": 17,
            "run_dir": "runs/synthetic-denoising",
            "enable_plots": False,
        },
        "reweighting": {"enabled": True, "cdf": True, "relative": True, "sample_fraction": 0.5},
    },
}

_SCALERS = {"standard": StandardScaler, "minmax": MinMaxScaler}


def _read_config_file(path: Path) -> Mapping[str, object]:
    text = path.read_text()
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        import yaml

        data = yaml.safe_load(text) or {}
    elif suffix == ".json":
        data = json.loads(text or "{}")
    else:
        raise ValueError(f"Unsupported config file type: {path.suffix}")
    if not isinstance(data, Mapping):
        raise TypeError(f"Config {path.name} must decode to a mapping")
    return data


def load_config(path: str | Path) -> Mapping[str, object]:
    """Read a JSON or YAML config file."""

    return _read_config_file(Path(path))


def merge_config(base: Mapping[str, object], override: Mapping[str, object]) -> Dict[str, object]:
    merged = deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_config(merged[key], value)  # type: ignore[arg-type]
        else:
            merged[key] = deepcopy(value)
    return merged


def presets() -> Mapping[str, Mapping[str, object]]:
    return {name: deepcopy(cfg) for name, cfg in _PRESETS.items()}


def load_preset(name: str) -> Mapping[str, object]:
    try:
        return deepcopy(_PRESETS[name])
    except KeyError as exc:
        available = ", ".join(sorted(_PRESETS))
        raise KeyError(f"Unknown preset {name!r}. Available presets: {available}") from exc


def run_pipeline(config: Mapping[str, object]) -> RunResult:
    missing = {"data", "model", "train"} - set(config)
    if missing:
        raise KeyError(f"Config is missing required sections: {', '.join(sorted(missing))}")
    data_cfg = dict(config["data"])
    model_cfg = dict(config["model"])
    train_cfg = dict(config["train"])
    reweight_cfg = dict(config.get("reweighting", {}))

    net_type = NetworkType.parse(model_cfg.get("type", "classification"))
    source, provenance = build_source(data_cfg)
    _bind_branches(source, data_cfg, net_type)

    table: CorrectionTable | None = None
    estimator: ReweightingEstimator | None = None
    if reweight_cfg.get("enabled", False):
        estimator = build_estimator(source, reweight_cfg)
        table = estimator.determine_reweighting(
            cdf=bool(reweight_cfg.get("cdf", True)),
            relative=bool(reweight_cfg.get("relative", True)),
        )

    inputs, targets, weights = collect_samples(source, estimator, autoencoder=net_type is NetworkType.AUTOENCODER)
    inputs = _scale(inputs, str(data_cfg.get("scaling", "none")))
    if net_type is NetworkType.AUTOENCODER:
        targets = inputs

    structure = _build_structure(inputs.shape[1], targets.shape[1], model_cfg)
    seed = int(train_cfg.get("seed", 0))
    network = Architecture(
        structure,
        net_type,
        str(model_cfg.get("activation", "sigmoid")),
        learning=float(train_cfg.get("lr", 0.01)),
        momentum=float(train_cfg.get("momentum", 0.0)),
        seed=int(model_cfg.get("seed", seed)),
    )

    run_dir = _resolve_run_dir(train_cfg, provenance["name"], net_type.value)
    run_dir.mkdir(parents=True, exist_ok=True)
    description = network.describe()
    _print_startup_summary(
        dataset_name=str(provenance["name"]),
        rows=int(inputs.shape[0]),
        structure=description.structure,
        net_type=description.net_type.value,
        activation=description.activation,
        reweighting=table is not None,
        param_count=network.parameter_count(),
    )

    enable_plots = bool(train_cfg.get("enable_plots", False))
    train_jsonl = JsonlSink(run_dir / "metrics_train.jsonl", split="train", seed=seed)
    train_csv = CsvSink(run_dir / "metrics_train.csv", split="train")
    capture = MetricsCapture()
    epochs = int(train_cfg.get("epochs", 1))

    if net_type is NetworkType.AUTOENCODER:
        denoise_cfg = model_cfg.get("denoising")
        if denoise_cfg:
            network.make_denoising(
                str(denoise_cfg.get("corruption", "mask")), float(denoise_cfg.get("level", 0.25))
            )
        plotter = PlotAdapter(run_dir, enable_plots=enable_plots, metric="reconstruction_error")
        reporters = [train_jsonl, train_csv, capture, plotter]

        def _report(epoch: int, metrics: Mapping[str, float]) -> None:
            for sink in reporters:
                sink.on_epoch(epoch, metrics)

        network.encode(
            list(inputs),
            float(train_cfg.get("lr", 0.01)),
            weights.tolist(),
            verbose=True,
            epochs=epochs,
            reporter=_report,
        )
        result = RunResult(steps=epochs * inputs.shape[0], epochs=epochs, final_metrics=dict(capture.last))
    else:
        plotter = PlotAdapter(run_dir, enable_plots=enable_plots, metric="loss")
        train_idx, val_idx = _split_indices(inputs.shape[0], float(train_cfg.get("val_fraction", 0.0)), seed)
        val = None
        split_loggers: Dict[str, List[object]] = {"train": [train_jsonl, train_csv, capture, plotter]}
        if val_idx.size:
            val = (inputs[val_idx], targets[val_idx], weights[val_idx])
            split_loggers["val"] = [
                JsonlSink(run_dir / "metrics_val.jsonl", split="val", seed=seed),
                CsvSink(run_dir / "metrics_val.csv", split="val"),
            ]
        trainer = Trainer(network, loss=str(train_cfg.get("loss", "auto")))
        patience = train_cfg.get("early_stopping_patience")
        result = trainer.run(
            inputs[train_idx],
            targets[train_idx],
            weights[train_idx],
            epochs=epochs,
            seed=seed,
            anneal=float(train_cfg.get("anneal", 1.0)),
            val=val,
            metric_names=train_cfg.get("metrics", "default"),
            split_loggers=split_loggers,
            early_stopping_patience=int(patience) if patience is not None else None,
            checkpoint_dir=run_dir,
        )
    plotter.close()

    corrections_path = ""
    if table is not None:
        corrections_path = str(table.save(run_dir / "corrections.npz"))
        if enable_plots:
            plot_corrections(table, run_dir / "corrections.png")
    network_path = network.save(run_dir / "network.npz")

    resolved = json.loads(json.dumps(config))
    resolved.setdefault("model", {})["structure"] = structure
    manifest = write_manifest(
        run_dir / "manifest.json",
        config=resolved,
        dataset=provenance,
        network={
            "structure": structure,
            "type": net_type.value,
            "activation": network.activation.name,
            "mode": network.mode.value,
            "final_learning_rate": network.learning_rate,
            "parameters": network.parameter_count(),
        },
        corrections=table,
    )
    (run_dir / "config.json").write_text(json.dumps(resolved, indent=2))
    metrics_alias = run_dir / "metrics.jsonl"
    metrics_alias.write_text(train_jsonl.path.read_text())
    (run_dir / "metrics.csv").write_text(train_csv.path.read_text())

    return RunResult(
        steps=result.steps,
        epochs=result.epochs,
        final_metrics=result.final_metrics,
        metrics_path=str(train_jsonl.path),
        manifest_path=manifest,
        corrections_path=corrections_path,
        network_path=str(network_path),
    )


def build_source(data_cfg: Mapping[str, object]) -> tuple[FrameDataset, Dict[str, object]]:
    name = str(data_cfg.get("name", "synthetic"))
    options = dict(data_cfg.get("options", {}))
    if name == "synthetic":
        n = int(options.get("n", 1000))
        seed = int(options.get("seed", 0))
        source = FrameDataset(make_jet_frame(n=n, seed=seed), name="synthetic")
        return source, {"name": "synthetic", "rows": n, "seed": seed}
    if name == "csv":
        csv_path = options.get("csv_path")
        if not csv_path:
            raise KeyError("csv data requires `csv_path` in data.options")
        source = FrameDataset.from_csv(Path(str(csv_path)))
        return source, {"name": "csv", "path": str(csv_path), "rows": source.num_entries()}
    raise ValueError(f"Unknown data source: {name}")


def _bind_branches(source: FrameDataset, data_cfg: Mapping[str, object], net_type: NetworkType) -> None:
    inputs = dict(data_cfg.get("inputs", {}))
    outputs = dict(data_cfg.get("outputs", {}))
    if not inputs:
        raise ValueError("data.inputs must name at least one input branch")
    if not outputs and net_type is not NetworkType.AUTOENCODER:
        raise ValueError("data.outputs must name at least one output branch")
    status = {}
    status.update(source.bind_branches(inputs, role="input"))
    status.update(source.bind_branches(outputs, role="output"))
    status.update(source.bind_branches(dict(data_cfg.get("controls", {})), role="control"))
    failed = sorted(name for name, ok in status.items() if not ok)
    if failed:
        raise ValueError(f"Could not bind branches: {', '.join(failed)}")


def build_estimator(source: FrameDataset, reweight_cfg: Mapping[str, object]) -> ReweightingEstimator:
    fields = FlavorFields(**dict(reweight_cfg.get("fields", {})))
    cut = QualityCut(**dict(reweight_cfg.get("cut", {})))
    estimator = ReweightingEstimator(
        source,
        pt_binning=Binning.pt(reweight_cfg.get("pt_edges", DEFAULT_PT_EDGES), variable=fields.pt),
        eta_binning=Binning.eta(reweight_cfg.get("eta_edges", DEFAULT_ETA_EDGES), variable=fields.eta),
        fields=fields,
        cut=cut,
        sample_fraction=float(reweight_cfg.get("sample_fraction", 0.1)),
    )
    status = estimator.bind()
    failed = sorted(name for name, ok in status.items() if not ok)
    if failed:
        raise ValueError(f"Could not bind reweighting fields: {', '.join(failed)}")
    return estimator


def collect_samples(
    source: FrameDataset,
    estimator: ReweightingEstimator | None = None,
    *,
    autoencoder: bool = False,
) -> tuple[Array, Array, Array]:
    """Read ``(inputs, targets, weights)`` for every row of ``source``."""

    inputs = source.matrix("input")
    targets = inputs if autoencoder else source.matrix("output")
    if estimator is None:
        weights = np.ones(source.num_entries(), dtype=np.float64)
    else:
        weights = estimator.physics_weights(source)
    return inputs, targets, weights


def _scale(inputs: Array, scaling: str) -> Array:
    if scaling == "none":
        return inputs
    scaler = _SCALERS.get(scaling)
    if scaler is None:
        raise ValueError(f"Unknown scaling {scaling!r}; expected one of none, {', '.join(_SCALERS)}")
    return scaler().fit_transform(inputs)


def _split_indices(n: int, val_fraction: float, seed: int) -> tuple[Array, Array]:
    if not 0.0 <= val_fraction < 1.0:
        raise ValueError(f"val_fraction must lie in [0, 1), got {val_fraction}")
    order = np.random.default_rng(seed).permutation(n)
    n_val = int(round(n * val_fraction))
    return np.sort(order[n_val:]), np.sort(order[:n_val])


def _build_structure(d_in: int, d_out: int, model_cfg: Mapping[str, object]) -> List[int]:
    if "structure" in model_cfg:
        structure = [int(size) for size in model_cfg["structure"]]  # type: ignore[union-attr]
        if structure[0] != d_in or structure[-1] != d_out:
            raise ValueError(
                f"Configured structure {structure} does not match data ({d_in} in, {d_out} out)"
            )
        return structure
    hidden: Sequence[int] = model_cfg.get("hidden", [])  # type: ignore[assignment]
    return [d_in, *(int(h) for h in hidden), d_out]


def _resolve_run_dir(train_cfg: Mapping[str, object], dataset: str, net_type: str) -> Path:
    if "run_dir" in train_cfg:
        return Path(str(train_cfg["run_dir"]))
    timestamp = time.strftime("%Y%m%d-%H%M%S")
    return Path("runs") / timestamp / dataset / net_type


def _print_startup_summary(
    *,
    dataset_name: str,
    rows: int,
    structure: Sequence[int],
    net_type: str,
    activation: str,
    reweighting: bool,
    param_count: int,
) -> None:
    print("=== flavnet run ===")
    print(f"Dataset       : {dataset_name} ({rows} rows)")
    print(f"Structure     : {list(structure)}")
    print(f"Network type  : {net_type}")
    print(f"Activation    : {activation}")
    print(f"Reweighting   : {'on' if reweighting else 'off'}")
    print(f"Parameters    : {param_count}")
    print("===================")


__all__ = [
    "build_estimator",
    "build_source",
    "collect_samples",
    "load_config",
    "load_preset",
    "merge_config",
    "presets",
    "run_pipeline",
]
