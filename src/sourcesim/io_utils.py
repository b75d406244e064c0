"""JSON / JSONL helpers (orjson) and source-tree loading.

Values pass through ``to_native`` before encoding so numpy scalars and
arrays from distance matrices serialize as plain numbers and lists.
"""
from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any, cast

import numpy as np
import orjson


def to_native(obj: Any) -> Any:
    """Recursively convert numpy values and tuples to JSON-native types."""
    if isinstance(obj, dict):
        return {to_native(k): to_native(v) for k, v in cast(dict[Any, Any], obj).items()}
    if isinstance(obj, (list, tuple)):
        return [to_native(v) for v in cast(Iterable[Any], obj)]
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    return obj


def dumps_json(obj: Any, *, pretty: bool = True) -> bytes:
    opts = orjson.OPT_SORT_KEYS
    if pretty:
        opts |= orjson.OPT_INDENT_2
    return orjson.dumps(to_native(obj), option=opts)


def load_json(path: Path) -> Any:
    return orjson.loads(path.read_bytes())


def save_json(obj: Any, path: Path, *, pretty: bool = True) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dumps_json(obj, pretty=pretty))


def load_jsonl(path: Path) -> list[dict[str, Any]]:
    """Load a JSON Lines file. Blank lines are skipped."""
    records: list[dict[str, Any]] = []
    for line in path.read_bytes().split(b"\n"):
        line = line.strip()
        if line:
            records.append(orjson.loads(line))
    return records


def save_jsonl(records: Iterable[dict[str, Any]], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [orjson.dumps(to_native(r), option=orjson.OPT_SORT_KEYS) for r in records]
    path.write_bytes(b"".join(line + b"\n" for line in lines))


def read_submission_tree(root: Path) -> dict[str, dict[str, bytes]]:
    """Read ``root/<submission>/**`` into ``{submission_id: {relpath: bytes}}``.

    Each immediate subdirectory of *root* is one submission; files are
    listed in sorted relative-path order.
    """
    tree: dict[str, dict[str, bytes]] = {}
    for sub_dir in sorted(p for p in root.iterdir() if p.is_dir() and not p.name.startswith(".")):
        files: dict[str, bytes] = {}
        for path in sorted(p for p in sub_dir.rglob("*") if p.is_file()):
            files[path.relative_to(sub_dir).as_posix()] = path.read_bytes()
        tree[sub_dir.name] = files
    return tree
