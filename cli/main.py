"""Command line entry point for flavnet training runs."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Iterable

from flavnet.training import pipelines


def _format_result(result) -> str:
    payload = {
        "steps": result.steps,
        "epochs": result.epochs,
        "metrics": result.metrics_path,
        "manifest": result.manifest_path,
        "network": result.network_path,
    }
    if result.corrections_path:
        payload["corrections"] = result.corrections_path
    return json.dumps(payload, sort_keys=True)


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    preset_names = sorted(pipelines.presets().keys())
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--preset",
        choices=preset_names,
        default="synthetic-classifier",
        help="Preset configuration to execute",
    )
    parser.add_argument("--config", type=Path, help="Optional JSON/YAML config override")
    parser.add_argument("--csv-path", help="Train on a CSV file instead of synthetic jets")
    parser.add_argument("--seed", type=int, help="Seed used for splits and training")
    parser.add_argument("--epochs", type=int, help="Override the number of epochs")
    parser.add_argument("--run-dir", type=Path, help="Directory receiving run artifacts")
    parser.add_argument(
        "--reweighting",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Force flavour reweighting on or off",
    )
    parser.add_argument("--enable-plots", action="store_true", help="Write PNG plots")
    parser.add_argument(
        "--list-presets", action="store_true", help="List available presets and exit"
    )
    parser.add_argument(
        "--dump-config", type=Path, help="Dump the resolved config to a JSON file"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    return parser.parse_args(argv)


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    if args.list_presets:
        for name in sorted(pipelines.presets().keys()):
            print(name)
        raise SystemExit(0)

    config = dict(pipelines.load_preset(args.preset))
    if args.config:
        override = pipelines.load_config(args.config)
        if {"data", "model", "train"} <= set(override.keys()):
            config = json.loads(json.dumps(override))
        else:
            config = pipelines.merge_config(config, override)

    if args.csv_path:
        config["data"] = pipelines.merge_config(
            config["data"], {"name": "csv", "options": {"csv_path": args.csv_path}}
        )
    train_cfg = config.setdefault("train", {})
    if args.seed is not None:
        train_cfg["seed"] = int(args.seed)
    if args.epochs is not None:
        train_cfg["epochs"] = int(args.epochs)
    if args.run_dir is not None:
        train_cfg["run_dir"] = str(args.run_dir)
    if args.enable_plots:
        train_cfg["enable_plots"] = True
    if args.reweighting is not None:
        config.setdefault("reweighting", {})["enabled"] = bool(args.reweighting)

    if args.dump_config:
        args.dump_config.parent.mkdir(parents=True, exist_ok=True)
        args.dump_config.write_text(json.dumps(config, indent=2))

    result = pipelines.run_pipeline(config)
    print(_format_result(result))


if __name__ == "__main__":
    main()
