"""Tests for sourcesim.substring_index — PATRICIA trie and rare fragments."""
from __future__ import annotations

import pytest

from sourcesim.substring_index import ROOT, StaleIndexError, SubstringIndex


def _stats_snapshot(idx: SubstringIndex) -> list[tuple[int, int]]:
    return [(s.total, s.unique_count) for s in (idx.stats(n) for n in range(len(idx)))]


# ───────────────────────────── insertion / find ─────────────────────────────


class TestInsertFind:
    def test_every_long_substring_is_located(self) -> None:
        idx = SubstringIndex(min_length=3)
        text = "abracadabra"
        idx.insert(text, "X")
        for i in range(len(text)):
            for j in range(i + 3, len(text) + 1):
                node = idx.find(text[i:j])
                assert node is not None
                assert ("X", i) in idx.locations(node)

    def test_missing(self) -> None:
        idx = SubstringIndex(min_length=3)
        idx.insert("abracadabra", "X")
        assert idx.find("zzz") is None
        assert idx.find("abx") is None
        assert idx.find("abracadabraa") is None

    def test_empty_string_is_root(self) -> None:
        idx = SubstringIndex()
        idx.insert("hello world", "X")
        assert idx.find("") == ROOT

    def test_find_inside_edge(self) -> None:
        idx = SubstringIndex(min_length=1)
        idx.insert("abcdef", "X")
        node = idx.find("abc")
        assert node is not None
        assert idx.string_of(node).startswith("abc")

    def test_string_of_split_node(self) -> None:
        idx = SubstringIndex(min_length=3)
        idx.insert("abcXYZ", "A")
        idx.insert("abcQRS", "B")
        node = idx.find("abc")
        assert node is not None
        assert idx.string_of(node) == "abc"
        assert idx.locations(node) == [("A", 0), ("B", 0)]

    def test_max_substring_length(self) -> None:
        idx = SubstringIndex(min_length=3)
        idx.insert("abcdefgh", "X", max_substring_length=4)
        assert idx.find("abcd") is not None
        assert idx.find("abcde") is None

    def test_short_strings_not_recorded(self) -> None:
        idx = SubstringIndex(min_length=5)
        idx.insert("abc", "X")
        idx.update_stats()
        assert idx.stats(ROOT).total == 0

    def test_invalid_arguments(self) -> None:
        with pytest.raises(ValueError):
            SubstringIndex(min_length=0)
        with pytest.raises(ValueError):
            SubstringIndex().insert("abc", "X", max_substring_length=0)


# ───────────────────────────── statistics ───────────────────────────────────


class TestStats:
    def test_root_counts(self) -> None:
        idx = SubstringIndex(min_length=3)
        idx.insert("abracadabra", "X")
        idx.update_stats()
        # one occurrence per start offset with at least three chars left
        assert idx.stats(ROOT).total == 9
        assert idx.stats(ROOT).unique_count == 1

    def test_unique_count_across_submissions(self) -> None:
        idx = SubstringIndex(min_length=3)
        idx.insert("shared-one", "A")
        idx.insert("shared-two", "B")
        idx.insert("other", "C")
        node = idx.find("shared")
        assert node is not None
        assert idx.stats(node).unique_count == 2
        assert idx.stats(ROOT).unique_count == 3

    def test_update_stats_is_idempotent(self) -> None:
        idx = SubstringIndex(min_length=2)
        idx.insert("mississippi", "A")
        idx.insert("missouri", "B")
        idx.update_stats()
        first = _stats_snapshot(idx)
        idx.update_stats()
        assert _stats_snapshot(idx) == first

    def test_stale_read_raises(self) -> None:
        idx = SubstringIndex()
        idx.insert("hello world", "A")
        assert idx.stale
        with pytest.raises(StaleIndexError):
            idx.stats(ROOT)
        idx.update_stats()
        assert not idx.stale
        idx.insert("hello there", "B")
        with pytest.raises(StaleIndexError):
            idx.stats(ROOT)

    def test_queries_recompute(self) -> None:
        idx = SubstringIndex()
        idx.insert("hello world", "A")
        idx.insert("hello there", "B")
        idx.find("hello")
        assert not idx.stale
        assert idx.stats(ROOT).unique_count == 2

    def test_clear_locations_keeps_structure(self) -> None:
        idx = SubstringIndex(min_length=3)
        idx.insert("abracadabra", "X")
        size = len(idx)
        idx.clear_locations()
        assert idx.stale
        idx.update_stats()
        assert len(idx) == size
        assert idx.stats(ROOT).total == 0
        assert idx.find("cad") is not None


# ───────────────────────────── rare fragments ───────────────────────────────


class TestFindRare:
    def _corpus(self) -> SubstringIndex:
        idx = SubstringIndex(min_length=5)
        idx.insert("xxxxHELLOyyyy", "A")
        idx.insert("zzzzHELLOwwww", "B")
        idx.insert("qqqqqqqqqqqq", "C")
        return idx

    def test_shared_fragment_is_found(self) -> None:
        idx = self._corpus()
        strings = {idx.string_of(n) for n in idx.find_rare(2, 2)}
        assert "HELLO" in strings
        assert not any("q" in s for s in strings)

    def test_root_excluded(self) -> None:
        idx = self._corpus()
        assert ROOT not in idx.find_rare(0, 100)

    def test_rare_fragments_are_maximal(self) -> None:
        idx = self._corpus()
        frags = idx.rare_fragments(2, 2)
        assert [f.text for f in frags] == ["HELLO"]
        assert frags[0].submission_ids == ("A", "B")
        assert frags[0].occurrences == (("A", 4), ("B", 4))
        assert frags[0].length == 5

    def test_suffixes_of_kept_fragment_are_dropped(self) -> None:
        idx = SubstringIndex(min_length=5)
        idx.insert("PQRSTUVW", "A")
        idx.insert("PQRSTUVW", "B")
        frags = idx.rare_fragments(2, 2)
        assert [f.text for f in frags] == ["PQRSTUVW"]

    def test_fragment_shared_by_everyone_is_not_rare(self) -> None:
        idx = SubstringIndex(min_length=5)
        for sid in ("A", "B", "C"):
            idx.insert(f"{sid}-boilerplate-{sid}", sid)
        assert all(f.submission_ids != ("A", "B", "C") for f in idx.rare_fragments(2, 2))
        assert any("boilerplate" in f.text for f in idx.rare_fragments(3, 3))
