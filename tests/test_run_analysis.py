"""Tests for scripts/run_analysis.py."""
from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import duckdb

PROGRAM = """\
public class Main {
    public static void main(String[] args) {
        int total = 0;
        for (int i = 0; i < args.length; i++) {
            total += Integer.parseInt(args[i]);
        }
        System.out.println(total);
    }
}
"""

RENAMED = PROGRAM.replace("total", "acc").replace("args", "input")

OTHER = """\
public class Greeter {
    private final String name;

    public Greeter(String name) { this.name = name; }

    public String greet() {
        return "Hello, " + name + "!";
    }
}
"""


def _write_tree(root: Path) -> None:
    files = {
        "alice/Main.java": PROGRAM,
        "bob/src/Main.java": RENAMED,
        "bob/MainTest.java": "class MainTest { void t() {} }\n",
        "carol/Greeter.java": OTHER,
        "carol/Broken.java": "class Broken { /* never closed\n",
        ".git/HEAD": "ref: refs/heads/main\n",
    }
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)


def _run(*args: str) -> subprocess.CompletedProcess[str]:
    root = Path(__file__).resolve().parents[1]
    env = os.environ.copy()
    env["PYTHONPATH"] = str(root / "src")
    return subprocess.run(
        [sys.executable, str(root / "scripts" / "run_analysis.py"), *args],
        cwd=str(root),
        env=env,
        capture_output=True,
        text=True,
    )


def test_run_analysis_reports_closest_pair(tmp_path: Path) -> None:
    corpus = tmp_path / "submissions"
    _write_tree(corpus)
    db_path = tmp_path / "results.duckdb"

    proc = _run(
        str(corpus),
        "--workers", "2",
        "--filter", "NOT", "Test",
        "--db", str(db_path),
    )
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)

    assert payload["tokenizer"] == "java"
    assert payload["complete"] is True
    assert payload["submissions"] == ["alice", "bob", "carol"]
    assert payload["excluded"] == {}
    assert payload["closest_pairs"][0]["a"] == "alice"
    assert payload["closest_pairs"][0]["b"] == "bob"
    assert [w["path"] for w in payload["warnings"]] == ["Broken.java"]
    assert any(f["submissions"] == ["alice", "bob"] for f in payload["rare_fragments"])

    conn = duckdb.connect(str(db_path))
    try:
        runs = conn.execute("SELECT run_id, tokenizer FROM runs").fetchall()
        assert runs == [(payload["run_id"], "java")]
        count = conn.execute("SELECT COUNT(*) FROM distances").fetchone()
        assert count is not None and count[0] == 3
    finally:
        conn.close()


def test_run_analysis_rejects_bad_config(tmp_path: Path) -> None:
    corpus = tmp_path / "submissions"
    _write_tree(corpus)
    proc = _run(str(corpus), "--compressor", "gzip")
    assert proc.returncode == 2
    assert "gzip" in proc.stderr
    assert proc.stdout == ""


def test_run_analysis_skips_fragments(tmp_path: Path) -> None:
    corpus = tmp_path / "submissions"
    _write_tree(corpus)
    proc = _run(str(corpus), "--no-fragments", "--top", "1", "--measure", "token_histogram")
    assert proc.returncode == 0, proc.stderr
    payload = json.loads(proc.stdout)
    assert payload["measure"] == "token_histogram"
    assert payload["rare_fragments"] == []
    assert len(payload["closest_pairs"]) == 1
    assert payload["run_id"] is None
