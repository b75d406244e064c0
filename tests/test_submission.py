"""Tests for sourcesim.submission — records, decoding and duplicate detection."""
from __future__ import annotations

import logging

import pytest

from sourcesim.submission import (
    SourceFile,
    Submission,
    decode_source,
    drop_exact_duplicates,
    submission_from_mapping,
)


class TestSourceFile:
    def test_name_and_extension(self) -> None:
        f = SourceFile("src/pkg/Main.JAVA", "")
        assert f.name == "Main.JAVA"
        assert f.extension == "java"

    def test_no_extension(self) -> None:
        assert SourceFile("Makefile", "").extension == ""

    def test_hidden(self) -> None:
        assert SourceFile(".gitignore", "").is_hidden
        assert SourceFile("src/.idea/workspace.xml", "").is_hidden
        assert not SourceFile("src/Main.java", "").is_hidden


class TestSubmission:
    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValueError):
            Submission("", ())

    def test_content_hash_ignores_id(self) -> None:
        a = Submission("a", (SourceFile("x.py", "print(1)"),))
        b = Submission("b", (SourceFile("y.py", "print(1)"),))
        assert a.content_hash == b.content_hash

    def test_with_files_keeps_id(self) -> None:
        a = Submission("a", (SourceFile("x.py", "1"), SourceFile("y.py", "2")))
        b = a.with_files(f for f in a.files if f.path == "y.py")
        assert b.submission_id == "a"
        assert [f.path for f in b.files] == ["y.py"]
        assert len(a.files) == 2


class TestDecoding:
    def test_utf8(self) -> None:
        assert decode_source("año".encode()) == "año"

    def test_latin1_fallback(self) -> None:
        assert decode_source(b"caf\xe9") == "café"

    def test_from_mapping_keeps_order(self) -> None:
        sub = submission_from_mapping("s", {"b.py": b"x", "a.py": "y"})
        assert [f.path for f in sub.files] == ["b.py", "a.py"]
        assert [f.content for f in sub.files] == ["x", "y"]


class TestDuplicates:
    def test_first_is_kept(self, caplog: pytest.LogCaptureFixture) -> None:
        s1 = submission_from_mapping("s1", {"a.py": "x = 1"})
        s2 = submission_from_mapping("s2", {"a.py": "x = 1"})
        s3 = submission_from_mapping("s3", {"a.py": "x = 2"})
        with caplog.at_level(logging.WARNING):
            kept, dups = drop_exact_duplicates([s1, s2, s3])
        assert [s.submission_id for s in kept] == ["s1", "s3"]
        assert dups == {"s2": "s1"}
        assert "s2" in caplog.text
