"""Run artifact helpers."""

from __future__ import annotations

import json
import platform
import subprocess
import time
from pathlib import Path
from typing import Mapping

from ..reweighting.table import CorrectionTable


def git_sha() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def describe_corrections(table: CorrectionTable | None) -> Mapping[str, object]:
    if table is None:
        return {"enabled": False}
    return {
        "enabled": True,
        "cdf": table.cdf,
        "relative": table.relative,
        "pt_variable": table.pt_binning.variable,
        "pt_edges": list(table.pt_binning.edges),
        "eta_variable": table.eta_binning.variable,
        "eta_edges": list(table.eta_binning.edges),
        "counts": dict(table.counts),
        "max_charm": float(table.charm.max()),
        "max_bottom": float(table.bottom.max()),
    }


def write_manifest(
    path: str | Path,
    *,
    config: Mapping[str, object],
    dataset: Mapping[str, object],
    network: Mapping[str, object],
    corrections: CorrectionTable | None = None,
) -> str:
    """Write a manifest JSON file capturing reproducibility metadata."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    manifest = {
        "git_sha": git_sha(),
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "config": config,
        "dataset": dict(dataset),
        "network": dict(network),
        "reweighting": describe_corrections(corrections),
        "environment": {"python": platform.python_version()},
    }
    path.write_text(json.dumps(manifest, indent=2))
    return str(path)


__all__ = ["describe_corrections", "git_sha", "write_manifest"]
