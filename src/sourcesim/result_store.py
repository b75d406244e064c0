"""DuckDB store for analysis runs.

Tables:
    runs            — one row per analysis run (config, tokenizer, status)
    distances       — pairwise distances (FK to runs)
    fragments       — rare shared fragments (FK to runs)
    file_warnings   — files skipped during tokenization (FK to runs)
    _schema_version — schema version tracking
"""
from __future__ import annotations

import importlib
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

import orjson

from sourcesim.analysis import FileWarning
from sourcesim.engine import DistanceReport, DistanceResult
from sourcesim.substring_index import RareFragment

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")

SCHEMA_VERSION = "1.0.0"

_SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS _schema_version (
    table_name VARCHAR PRIMARY KEY,
    version VARCHAR NOT NULL
);

CREATE TABLE IF NOT EXISTS runs (
    run_id VARCHAR PRIMARY KEY,
    created_at VARCHAR NOT NULL,
    measure VARCHAR NOT NULL,
    tokenizer VARCHAR NOT NULL,
    submission_count INTEGER NOT NULL,
    complete BOOLEAN NOT NULL,
    config_json VARCHAR NOT NULL
);

CREATE TABLE IF NOT EXISTS distances (
    run_id VARCHAR NOT NULL,
    a VARCHAR NOT NULL,
    b VARCHAR NOT NULL,
    distance DOUBLE NOT NULL,
    PRIMARY KEY (run_id, a, b)
);

CREATE TABLE IF NOT EXISTS fragments (
    run_id VARCHAR NOT NULL,
    fragment_no INTEGER NOT NULL,
    text VARCHAR NOT NULL,
    submission_ids VARCHAR NOT NULL,
    occurrences VARCHAR NOT NULL,
    PRIMARY KEY (run_id, fragment_no)
);

CREATE TABLE IF NOT EXISTS file_warnings (
    run_id VARCHAR NOT NULL,
    submission_id VARCHAR NOT NULL,
    path VARCHAR NOT NULL,
    message VARCHAR NOT NULL
)
"""


class SchemaVersionError(RuntimeError):
    """Raised when a results DB schema version does not match expected."""


def generate_run_id(prefix: str = "run") -> str:
    ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}_{ts}_{uuid4().hex[:8]}"


@dataclass(frozen=True, slots=True)
class RunRecord:
    run_id: str
    created_at: str
    measure: str
    tokenizer: str
    submission_count: int
    complete: bool
    config: dict[str, Any]


class ResultStore:
    """Read/write interface to a results DuckDB file."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Any = _duckdb_mod.connect(str(self._db_path))
        try:
            self._create_schema()
        except Exception:
            self._conn.close()
            raise

    def _create_schema(self) -> None:
        for stmt in _SCHEMA_DDL.split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)
        row = self._conn.execute(
            "SELECT version FROM _schema_version WHERE table_name = 'results'"
        ).fetchone()
        if row is None:
            self._conn.execute(
                "INSERT INTO _schema_version VALUES ('results', ?)", [SCHEMA_VERSION]
            )
        elif str(row[0]) != SCHEMA_VERSION:
            raise SchemaVersionError(
                f"Schema version mismatch in {self._db_path}: "
                f"expected {SCHEMA_VERSION}, got {row[0]}"
            )

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> ResultStore:
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()

    @property
    def schema_version(self) -> str:
        row = self._conn.execute(
            "SELECT version FROM _schema_version WHERE table_name = 'results'"
        ).fetchone()
        return str(row[0]) if row else "unknown"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_run(
        self,
        report: DistanceReport,
        *,
        tokenizer: str,
        config: dict[str, Any],
        fragments: Iterable[RareFragment] = (),
        warnings: Iterable[FileWarning] = (),
        run_id: str | None = None,
    ) -> str:
        """Write one analysis run in a single transaction; return its id."""
        run_id = run_id or generate_run_id()
        self._conn.execute("BEGIN TRANSACTION")
        try:
            self._conn.execute(
                "INSERT INTO runs VALUES (?, ?, ?, ?, ?, ?, ?)",
                [
                    run_id,
                    datetime.now(UTC).isoformat(),
                    report.measure,
                    tokenizer,
                    len(report.submission_ids),
                    report.complete,
                    orjson.dumps(config, option=orjson.OPT_SORT_KEYS).decode("utf-8"),
                ],
            )
            if report.results:
                self._conn.executemany(
                    "INSERT INTO distances VALUES (?, ?, ?, ?)",
                    [[run_id, r.a, r.b, r.distance] for r in report.results],
                )
            frag_rows = [
                [
                    run_id,
                    i,
                    f.text,
                    orjson.dumps(list(f.submission_ids)).decode("utf-8"),
                    orjson.dumps([list(o) for o in f.occurrences]).decode("utf-8"),
                ]
                for i, f in enumerate(fragments)
            ]
            if frag_rows:
                self._conn.executemany("INSERT INTO fragments VALUES (?, ?, ?, ?, ?)", frag_rows)
            warn_rows = [[run_id, w.submission_id, w.path, w.message] for w in warnings]
            if warn_rows:
                self._conn.executemany("INSERT INTO file_warnings VALUES (?, ?, ?, ?)", warn_rows)
            self._conn.execute("COMMIT")
        except Exception:
            self._conn.execute("ROLLBACK")
            raise
        return run_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_runs(self) -> list[RunRecord]:
        rows = self._conn.execute(
            "SELECT run_id, created_at, measure, tokenizer, submission_count, complete, "
            "config_json FROM runs ORDER BY created_at, run_id"
        ).fetchall()
        return [
            RunRecord(
                run_id=str(r[0]),
                created_at=str(r[1]),
                measure=str(r[2]),
                tokenizer=str(r[3]),
                submission_count=int(r[4]),
                complete=bool(r[5]),
                config=orjson.loads(r[6]),
            )
            for r in rows
        ]

    def load_distances(self, run_id: str) -> list[DistanceResult]:
        """Distances of one run, ascending by (distance, a, b)."""
        rows = self._conn.execute(
            "SELECT a, b, distance FROM distances WHERE run_id = ? ORDER BY distance, a, b",
            [run_id],
        ).fetchall()
        return [DistanceResult(a=str(a), b=str(b), distance=float(d)) for a, b, d in rows]

    def load_fragments(self, run_id: str) -> list[dict[str, Any]]:
        rows = self._conn.execute(
            "SELECT text, submission_ids, occurrences FROM fragments "
            "WHERE run_id = ? ORDER BY fragment_no",
            [run_id],
        ).fetchall()
        return [
            {
                "text": str(text),
                "submission_ids": orjson.loads(sids),
                "occurrences": [tuple(o) for o in orjson.loads(occ)],
            }
            for text, sids, occ in rows
        ]

    def load_warnings(self, run_id: str) -> list[FileWarning]:
        rows = self._conn.execute(
            "SELECT submission_id, path, message FROM file_warnings "
            "WHERE run_id = ? ORDER BY submission_id, path",
            [run_id],
        ).fetchall()
        return [FileWarning(str(s), str(p), str(m)) for s, p, m in rows]
