"""Tests for sourcesim.result_store — DuckDB persistence of analysis runs."""
from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from sourcesim.analysis import FileWarning
from sourcesim.engine import DistanceReport, DistanceResult
from sourcesim.result_store import SCHEMA_VERSION, ResultStore, SchemaVersionError, generate_run_id
from sourcesim.substring_index import RareFragment


def _report() -> DistanceReport:
    return DistanceReport(
        measure="ncd:zlib",
        submission_ids=("alice", "bob", "carol"),
        results=(
            DistanceResult("alice", "bob", 0.05),
            DistanceResult("alice", "carol", 0.7),
            DistanceResult("bob", "carol", 0.72),
        ),
        complete=True,
    )


class TestResultStore:
    def test_new_db_has_schema_version(self, tmp_path: Path) -> None:
        with ResultStore(tmp_path / "results.duckdb") as store:
            assert store.schema_version == SCHEMA_VERSION
            assert store.list_runs() == []

    def test_save_and_load(self, tmp_path: Path) -> None:
        fragment = RareFragment(
            text="1 2 3 4 ",
            submission_ids=("alice", "bob"),
            occurrences=(("alice", 0), ("bob", 4)),
            node=7,
        )
        warning = FileWarning("carol", "Broken.java", "Broken.java:1: unterminated string literal")
        with ResultStore(tmp_path / "results.duckdb") as store:
            run_id = store.save_run(
                _report(),
                tokenizer="java",
                config={"compressor": "zlib", "workers": 2},
                fragments=[fragment],
                warnings=[warning],
                run_id="run_test",
            )
            assert run_id == "run_test"

            runs = store.list_runs()
            assert len(runs) == 1
            assert runs[0].measure == "ncd:zlib"
            assert runs[0].tokenizer == "java"
            assert runs[0].submission_count == 3
            assert runs[0].complete is True
            assert runs[0].config == {"compressor": "zlib", "workers": 2}

            assert store.load_distances(run_id) == list(_report().results)
            assert store.load_fragments(run_id) == [{
                "text": "1 2 3 4 ",
                "submission_ids": ["alice", "bob"],
                "occurrences": [("alice", 0), ("bob", 4)],
            }]
            assert store.load_warnings(run_id) == [warning]

    def test_reopen_keeps_runs(self, tmp_path: Path) -> None:
        db_path = tmp_path / "results.duckdb"
        with ResultStore(db_path) as store:
            first = store.save_run(_report(), tokenizer="java", config={})
        with ResultStore(db_path) as store:
            second = store.save_run(_report(), tokenizer="java", config={})
            assert {r.run_id for r in store.list_runs()} == {first, second}
            assert store.load_distances("missing") == []

    def test_duplicate_run_id_rolls_back(self, tmp_path: Path) -> None:
        with ResultStore(tmp_path / "results.duckdb") as store:
            store.save_run(_report(), tokenizer="java", config={}, run_id="dup")
            with pytest.raises(duckdb.Error):
                store.save_run(_report(), tokenizer="c", config={}, run_id="dup")
            assert [r.tokenizer for r in store.list_runs()] == ["java"]
            assert len(store.load_distances("dup")) == 3

    def test_schema_mismatch(self, tmp_path: Path) -> None:
        db_path = tmp_path / "results.duckdb"
        ResultStore(db_path).close()
        conn = duckdb.connect(str(db_path))
        conn.execute("UPDATE _schema_version SET version = '0.1.0' WHERE table_name = 'results'")
        conn.close()
        with pytest.raises(SchemaVersionError, match="0.1.0"):
            ResultStore(db_path)


class TestRunId:
    def test_format(self) -> None:
        run_id = generate_run_id("nightly")
        assert run_id.startswith("nightly_")
        assert run_id != generate_run_id("nightly")
