"""Tests for sourcesim.io_utils."""
from __future__ import annotations

from pathlib import Path

import numpy as np
import orjson

from sourcesim.io_utils import (
    dumps_json,
    load_json,
    load_jsonl,
    read_submission_tree,
    save_json,
    save_jsonl,
    to_native,
)


class TestJson:
    def test_numpy_values(self) -> None:
        payload = {"m": np.eye(2), "d": np.float64(0.25), "n": np.int64(3), "ok": np.bool_(True)}
        data = orjson.loads(dumps_json(payload))
        assert data == {"m": [[1.0, 0.0], [0.0, 1.0]], "d": 0.25, "n": 3, "ok": True}

    def test_tuples_become_lists(self) -> None:
        assert to_native({"ids": ("a", "b")}) == {"ids": ["a", "b"]}

    def test_compact(self) -> None:
        assert dumps_json({"b": 1, "a": 2}, pretty=False) == b'{"a":2,"b":1}'

    def test_save_load(self, tmp_path: Path) -> None:
        path = tmp_path / "out" / "x.json"
        save_json({"x": [1, 2]}, path)
        assert load_json(path) == {"x": [1, 2]}


class TestJsonl:
    def test_round_trip_skips_blank_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "rows.jsonl"
        save_jsonl([{"a": 1}, {"a": np.int32(2)}], path)
        path.write_bytes(path.read_bytes() + b"\n\n")
        assert load_jsonl(path) == [{"a": 1}, {"a": 2}]


class TestReadSubmissionTree:
    def test_layout(self, tmp_path: Path) -> None:
        (tmp_path / "bob" / "src").mkdir(parents=True)
        (tmp_path / "bob" / "src" / "B.java").write_bytes(b"class B {}")
        (tmp_path / "bob" / "A.java").write_bytes(b"class A {}")
        (tmp_path / "alice").mkdir()
        (tmp_path / "alice" / "Main.java").write_bytes(b"class Main {}")
        (tmp_path / ".git").mkdir()
        (tmp_path / ".git" / "HEAD").write_bytes(b"ref")
        (tmp_path / "README.txt").write_bytes(b"not a submission")

        tree = read_submission_tree(tmp_path)
        assert list(tree) == ["alice", "bob"]
        assert list(tree["bob"]) == ["A.java", "src/B.java"]
        assert tree["alice"]["Main.java"] == b"class Main {}"
