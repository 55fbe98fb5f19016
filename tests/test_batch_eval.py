"""Tests for batch evaluation over scenario CSVs."""

from __future__ import annotations

from pathlib import Path

import polars as pl
import pytest

from formulify.batch import ERROR_COLUMN, RESULT_COLUMN, evaluate_batch, load_scenarios, run_batch
from formulify.formulas.errors import CyclicDependencyError
from formulify.logging.sink import EventSink
from formulify.project import scaffold_project
from formulify.workspace import Workspace

DEMO = {"a": "a", "b": "b", "c": "a + b", "d": "1 + c - a * 2"}


@pytest.fixture
def scenarios_csv(tmp_path: Path) -> Path:
    path = tmp_path / "scenarios.csv"
    path.write_text("a,b\n1,2\n3,4\n5,\n")
    return path


class TestLoadScenarios:
    def test_columns_and_rows(self, scenarios_csv: Path) -> None:
        df = load_scenarios(scenarios_csv)
        assert df.columns == ["a", "b"]
        assert df.height == 3
        assert df["b"][2] is None


class TestEvaluateBatch:
    def test_results_per_row(self) -> None:
        df = pl.DataFrame({"a": [1.0, 3.0], "b": [2.0, 4.0]})
        out = evaluate_batch("d", df, DEMO)
        assert out[RESULT_COLUMN].to_list() == [2.0, 2.0]
        assert out[ERROR_COLUMN].to_list() == [None, None]

    def test_input_columns_kept(self) -> None:
        df = pl.DataFrame({"a": [1.0], "b": [1.0], "note": [7]})
        out = evaluate_batch("c", df, DEMO)
        assert out.columns == ["a", "b", "note", RESULT_COLUMN, ERROR_COLUMN]
        assert out.schema[RESULT_COLUMN] == pl.Float64

    def test_failing_row_does_not_abort(self, scenarios_csv: Path) -> None:
        out = evaluate_batch("d", load_scenarios(scenarios_csv), DEMO)
        assert out[RESULT_COLUMN].to_list()[:2] == [2.0, 2.0]
        assert out[RESULT_COLUMN][2] is None
        assert out[ERROR_COLUMN][2] == 'No value supplied for variable "b".'

    def test_non_numeric_value(self) -> None:
        df = pl.DataFrame({"a": ["x"], "b": ["1"]})
        out = evaluate_batch("c", df, DEMO)
        assert out[RESULT_COLUMN][0] is None
        assert "non-numeric" in out[ERROR_COLUMN][0]

    def test_unknown_formula(self) -> None:
        df = pl.DataFrame({"a": [1.0]})
        out = evaluate_batch("zz", df, DEMO)
        assert "not found" in out[ERROR_COLUMN][0]

    def test_empty_frame(self) -> None:
        out = evaluate_batch("d", pl.DataFrame({"a": [], "b": []}), DEMO)
        assert out.height == 0
        assert RESULT_COLUMN in out.columns


class TestRunBatch:
    def test_summary_and_events(self, tmp_path: Path, scenarios_csv: Path) -> None:
        ws = Workspace(scaffold_project(tmp_path / "proj"))
        summary = run_batch(ws, "d", load_scenarios(scenarios_csv))

        assert summary["total"] == 3
        assert summary["ok"] == 2
        assert summary["failed"] == 1
        assert isinstance(summary["results"], pl.DataFrame)

        events = EventSink(ws.project_dir).read_eval_log(summary["batch_id"])
        assert [e["event_type"] for e in events] == ["batch_started", "batch_completed"]
        assert events[1]["context"]["failed"] == 1

    def test_validates_up_front(self, tmp_path: Path) -> None:
        (tmp_path / "formulas.yaml").write_text("formulas:\n  x: '1'\n  a: b\n  b: a\n")
        ws = Workspace(tmp_path)
        with pytest.raises(CyclicDependencyError):
            run_batch(ws, "x", pl.DataFrame({"q": [1.0]}))

    def test_failed_validation_closes_batch_log(self, tmp_path: Path) -> None:
        (tmp_path / "formulas.yaml").write_text("formulas:\n  x: '1'\n  a: b\n  b: a\n")
        ws = Workspace(tmp_path)
        with pytest.raises(CyclicDependencyError):
            run_batch(ws, "x", pl.DataFrame({"q": [1.0, 2.0]}))

        sink = EventSink(tmp_path)
        failed = sink.read_global(event_type="batch_failed")
        assert len(failed) == 1
        assert failed[0]["level"] == "error"
        assert failed[0]["error_code"] == "cyclic_dependency"
        assert failed[0]["context"]["total"] == 2

        batch_id = failed[0]["context"]["eval_id"]
        events = sink.read_eval_log(batch_id)
        assert [e["event_type"] for e in events] == ["batch_started", "batch_failed"]
