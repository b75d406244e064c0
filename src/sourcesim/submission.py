"""Submission and source-file records shared by every analysis stage.

A submission is one participant's ordered set of source files. Records are
immutable once loaded; filtering produces new records rather than mutating.
"""
from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SourceFile:
    """One source file: relative path plus decoded text."""

    path: str
    content: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def extension(self) -> str:
        """Lowercased suffix without the dot (``""`` when there is none)."""
        suffix = PurePosixPath(self.path).suffix
        return suffix[1:].lower() if suffix else ""

    @property
    def is_hidden(self) -> bool:
        """True when the file or any directory above it is a dotfile."""
        return any(part.startswith(".") for part in PurePosixPath(self.path).parts)


@dataclass(frozen=True, slots=True)
class Submission:
    """A participant's files, in load order."""

    submission_id: str
    files: tuple[SourceFile, ...]

    def __post_init__(self) -> None:
        if not self.submission_id:
            raise ValueError("submission_id cannot be empty")

    @property
    def content_hash(self) -> str:
        """SHA-1 over the concatenated file contents, in order."""
        digest = hashlib.sha1()
        for f in self.files:
            digest.update(f.content.encode("utf-8"))
        return digest.hexdigest()

    def with_files(self, files: Iterable[SourceFile]) -> Submission:
        return Submission(submission_id=self.submission_id, files=tuple(files))


def decode_source(raw: bytes) -> str:
    """Decode file bytes as UTF-8, falling back to Latin-1 for legacy files."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def submission_from_mapping(
    submission_id: str,
    files: Mapping[str, str | bytes],
) -> Submission:
    """Build a Submission from ``{path: content}`` (insertion order kept)."""
    return Submission(
        submission_id=submission_id,
        files=tuple(
            SourceFile(
                path=path,
                content=decode_source(content) if isinstance(content, bytes) else content,
            )
            for path, content in files.items()
        ),
    )


def drop_exact_duplicates(
    submissions: Iterable[Submission],
) -> tuple[list[Submission], dict[str, str]]:
    """Keep the first submission of each content hash.

    Returns:
        (kept, duplicates) where *duplicates* maps each dropped submission id
        to the id of the kept submission with identical content.
    """
    kept: list[Submission] = []
    first_by_hash: dict[str, str] = {}
    duplicates: dict[str, str] = {}
    for sub in submissions:
        h = sub.content_hash
        original = first_by_hash.get(h)
        if original is None:
            first_by_hash[h] = sub.submission_id
            kept.append(sub)
            continue
        duplicates[sub.submission_id] = original
        log.warning(
            "Exact duplicate %s: %s has the same content as %s",
            h[:12], sub.submission_id, original,
        )
    return kept, duplicates
