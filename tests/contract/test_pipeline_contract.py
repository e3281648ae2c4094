import json
from pathlib import Path

import numpy as np
import pytest

from flavnet.core.architecture import Architecture
from flavnet.data.synthetic import make_jet_frame
from flavnet.reweighting.table import CorrectionTable
from flavnet.training import pipelines


def _preset(name, run_dir, epochs=2):
    config = pipelines.load_preset(name)
    config["train"]["run_dir"] = str(run_dir)
    config["train"]["epochs"] = epochs
    return config


def test_classifier_pipeline_produces_artifacts(tmp_path):
    run_dir = tmp_path / "classifier"
    result = pipelines.run_pipeline(_preset("synthetic-classifier", run_dir))

    for name in [
        "metrics.jsonl",
        "metrics.csv",
        "metrics_val.jsonl",
        "manifest.json",
        "config.json",
        "network.npz",
        "corrections.npz",
        "best.npz",
        "last.npz",
    ]:
        assert (run_dir / name).exists(), name

    lines = Path(result.metrics_path).read_text().strip().splitlines()
    assert len(lines) == 2
    record = json.loads(lines[-1])
    assert record["split"] == "train"
    assert {"loss", "accuracy", "auc", "learning_rate"} <= set(record)

    manifest = json.loads(Path(result.manifest_path).read_text())
    assert manifest["network"]["structure"] == [5, 8, 1]
    assert manifest["reweighting"]["enabled"] is True
    assert manifest["reweighting"]["cdf"] is False
    assert manifest["reweighting"]["max_bottom"] <= 20.0

    table = CorrectionTable.load(result.corrections_path)
    assert table.shape == (10, 4)
    network = Architecture.load(result.network_path)
    assert network.structure == [5, 8, 1]
    assert result.epochs == 2


def test_pipeline_metrics_are_deterministic(tmp_path):
    first = pipelines.run_pipeline(_preset("synthetic-classifier", tmp_path / "run_a"))
    second = pipelines.run_pipeline(_preset("synthetic-classifier", tmp_path / "run_b"))

    assert Path(first.metrics_path).read_bytes() == Path(second.metrics_path).read_bytes()
    a = Architecture.load(first.network_path)
    b = Architecture.load(second.network_path)
    for key, value in a.state_dict().items():
        assert np.array_equal(value, b.state_dict()[key])


def test_denoising_pipeline_trains_through_encode(tmp_path):
    result = pipelines.run_pipeline(_preset("synthetic-denoising", tmp_path / "dae", epochs=3))

    assert "reconstruction_error" in result.final_metrics
    assert result.steps == 3 * 600
    lines = Path(result.metrics_path).read_text().strip().splitlines()
    assert [json.loads(line)["epoch"] for line in lines] == [1, 2, 3]

    manifest = json.loads(Path(result.manifest_path).read_text())
    assert manifest["network"]["mode"] == "denoising"
    assert manifest["network"]["structure"] == [5, 3, 5]
    assert manifest["reweighting"]["cdf"] is True
    assert Architecture.load(result.network_path).is_denoising


def test_regression_pipeline_without_reweighting(tmp_path):
    result = pipelines.run_pipeline(_preset("synthetic-regression", tmp_path / "reg"))

    assert result.corrections_path == ""
    assert not (tmp_path / "reg" / "corrections.npz").exists()
    manifest = json.loads(Path(result.manifest_path).read_text())
    assert manifest["reweighting"] == {"enabled": False}
    assert {"mae", "rmse", "r2", "loss"} <= set(result.final_metrics)


def test_csv_source(tmp_path):
    csv_path = tmp_path / "jets.csv"
    make_jet_frame(n=300, seed=6).to_csv(csv_path, index=False)
    config = _preset("synthetic-classifier", tmp_path / "csv", epochs=1)
    config["data"]["name"] = "csv"
    config["data"]["options"] = {"csv_path": str(csv_path)}

    result = pipelines.run_pipeline(config)

    manifest = json.loads(Path(result.manifest_path).read_text())
    assert manifest["dataset"] == {"name": "csv", "path": str(csv_path), "rows": 300}


def test_unbindable_branch_is_fatal(tmp_path):
    config = _preset("synthetic-regression", tmp_path / "bad")
    config["data"]["outputs"] = {"missing_branch": "double"}
    with pytest.raises(ValueError, match="missing_branch"):
        pipelines.run_pipeline(config)


def test_missing_sections_and_presets():
    with pytest.raises(KeyError):
        pipelines.run_pipeline({"data": {}, "model": {}})
    with pytest.raises(KeyError, match="Available presets"):
        pipelines.load_preset("does-not-exist")
    assert set(pipelines.presets()) == {
        "synthetic-classifier",
        "synthetic-regression",
        "synthetic-denoising",
    }


def test_yaml_override_merges_into_preset(tmp_path):
    path = tmp_path / "override.yaml"
    path.write_text("train:\n  epochs: 7\nreweighting:\n  cdf: true\n")

    merged = pipelines.merge_config(pipelines.load_preset("synthetic-classifier"), pipelines.load_config(path))

    assert merged["train"]["epochs"] == 7
    assert merged["train"]["lr"] == 0.05
    assert merged["reweighting"]["cdf"] is True
    assert merged["reweighting"]["enabled"] is True
    unsupported = tmp_path / "override.toml"
    unsupported.write_text("[train]\nepochs = 7\n")
    with pytest.raises(ValueError):
        pipelines.load_config(unsupported)
