import json
from pathlib import Path

import pytest

from cli.main import main


def test_cli_lists_presets(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--list-presets"])
    assert excinfo.value.code == 0
    names = capsys.readouterr().out.split()
    assert "synthetic-classifier" in names
    assert "synthetic-denoising" in names


def test_cli_runs_preset_into_run_dir(tmp_path, capsys):
    run_dir = tmp_path / "run"
    dump = tmp_path / "resolved.json"
    main(
        [
            "--preset",
            "synthetic-regression",
            "--epochs",
            "1",
            "--seed",
            "3",
            "--run-dir",
            str(run_dir),
            "--dump-config",
            str(dump),
        ]
    )

    assert (run_dir / "metrics.jsonl").exists()
    assert (run_dir / "manifest.json").exists()
    resolved = json.loads(dump.read_text())
    assert resolved["train"]["epochs"] == 1
    assert resolved["train"]["seed"] == 3

    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert payload["epochs"] == 1
    assert "corrections" not in payload
    assert Path(payload["network"]).exists()


def test_cli_can_enable_reweighting(tmp_path, capsys):
    run_dir = tmp_path / "rw"
    main(
        [
            "--preset",
            "synthetic-regression",
            "--epochs",
            "1",
            "--run-dir",
            str(run_dir),
            "--reweighting",
        ]
    )
    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert Path(payload["corrections"]).exists()


def test_cli_config_override(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    override = tmp_path / "override.json"
    override.write_text(json.dumps({"train": {"epochs": 1, "run_dir": "runs/override"}}))
    main(["--preset", "synthetic-classifier", "--config", str(override)])
    assert (tmp_path / "runs" / "override" / "manifest.json").exists()
