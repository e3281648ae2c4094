import logging

import numpy as np
import pandas as pd
import pytest

from flavnet.data.records import FrameDataset, Numeric, UnknownFieldError
from flavnet.data.synthetic import INPUT_BRANCHES, make_jet_frame


def _dataset():
    frame = pd.DataFrame(
        {
            "a": [1.5, 2.25, -0.5],
            "b": [0.1, 0.2, 0.3],
            "n": [3, 4, 5],
            "d": [-2.7, 2.7, 0.0],
            "s": ["x", "y", "z"],
        }
    )
    return FrameDataset(frame, name="fixture")


def test_bound_fields_read_with_declared_precision():
    ds = _dataset()
    assert ds.set_input_branch("a", "double")
    assert ds.set_input_branch("b", "float")
    ds.select_row(0)
    assert ds.field_as_double("a") == 1.5
    assert ds.field_as_double("b") == pytest.approx(0.1, rel=1e-6)
    assert ds.field_as_double("b") != 0.1
    assert ds.field("b").kind == "float"


def test_int_reads_truncate_towards_zero():
    ds = _dataset()
    assert ds.set_control_branch("n", "int")
    assert ds.set_control_branch("d", "double")
    ds.select_row(1)
    assert ds.field_as_int("n") == 4
    assert ds.field_as_int("d") == 2
    ds.select_row(0)
    assert ds.field_as_int("d") == -2
    assert Numeric("double", -2.7).as_int() == -2


def test_binding_failures_are_logged_not_raised(caplog):
    ds = _dataset()
    with caplog.at_level(logging.ERROR, logger="flavnet.data.records"):
        assert not ds.set_input_branch("s", "string")
        assert not ds.set_input_branch("missing", "double")
    messages = [record.getMessage() for record in caplog.records]
    assert any("not recognized" in message for message in messages)
    assert any("not found" in message for message in messages)

    ds.select_row(0)
    with pytest.raises(UnknownFieldError):
        ds.field_as_double("s")
    assert ds.get_input_vars() == []


def test_bind_branches_reports_each_branch():
    ds = _dataset()
    status = ds.bind_branches({"a": "double", "nope": "double", "n": "int"}, role="input")
    assert status == {"a": True, "nope": False, "n": True}
    assert ds.get_input_vars() == ["a", "n"]
    with pytest.raises(ValueError):
        ds.bind_branches({"a": "double"}, role="weights")


def test_row_cursor_is_required_and_range_checked():
    ds = _dataset()
    ds.set_input_branch("a", "double")
    with pytest.raises(RuntimeError):
        ds.field_as_double("a")
    with pytest.raises(IndexError):
        ds.select_row(3)
    with pytest.raises(IndexError):
        ds.select_row(-1)
    ds.at(2)
    assert ds.get_value("a") == -0.5


def test_input_and_output_vectors_follow_binding_order():
    ds = _dataset()
    ds.set_input_branch("n", "int")
    ds.set_input_branch("a", "double")
    ds.set_output_branch("b", "double")
    ds.select_row(1)
    assert ds.input().tolist() == [4.0, 2.25]
    assert ds.output().tolist() == [0.2]
    assert ds.get_output_vars() == ["b"]
    assert ds.get_performance_map(["a", "n"]) == {"a": 2.25, "n": 4.0}
    assert ds.matrix("input").shape == (3, 2)
    assert ds.matrix("output")[:, 0].tolist() == [0.1, 0.2, 0.3]
    assert len(ds) == ds.num_entries() == 3


def test_csv_round_trip(tmp_path):
    frame = make_jet_frame(n=50, seed=4)
    path = tmp_path / "jets.csv"
    frame.to_csv(path, index=False)

    ds = FrameDataset.from_csv(path)
    status = ds.bind_branches(INPUT_BRANCHES, role="input")

    assert ds.name == "jets"
    assert all(status.values())
    assert np.allclose(ds.column("log_pt"), frame["log_pt"].to_numpy())
    assert ds.column("sv_mass").dtype == np.float32


def test_synthetic_frame_flags_are_exclusive():
    frame = make_jet_frame(n=500, seed=0)
    flags = frame[["light", "charm", "bottom"]].sum(axis=1)
    assert flags.max() == 1
    assert set(frame.loc[flags == 0, "truth_label"]) == {15}
    assert make_jet_frame(n=20, seed=3).equals(make_jet_frame(n=20, seed=3))


def test_unconvertible_column_fails_only_its_own_binding(caplog):
    ds = _dataset()
    with caplog.at_level(logging.ERROR, logger="flavnet.data.records"):
        status = ds.bind_branches({"s": "double", "a": "double"}, role="input")
    assert status == {"s": False, "a": True}
    assert ds.get_input_vars() == ["a"]
    assert any("cannot be read as double" in record.getMessage() for record in caplog.records)


@pytest.mark.parametrize("bad", [np.nan, np.inf])
def test_int_binding_rejects_non_finite_values(bad):
    ds = FrameDataset(pd.DataFrame({"n": [1.0, bad], "m": [1.0, 2.0]}))
    assert not ds.set_control_branch("n", "int")
    assert ds.set_control_branch("m", "int")
    ds.select_row(1)
    assert ds.field_as_int("m") == 2
    with pytest.raises(UnknownFieldError):
        ds.field_as_int("n")
