"""Tests for sourcesim.offset_map — source <-> normalized offset translation."""
from __future__ import annotations

import pytest

from sourcesim.offset_map import Mapping, OffsetMapper, OffsetRangeError, collapse_whitespace


class TestConstruction:
    def test_double_space(self) -> None:
        m = OffsetMapper("a  b", "  ", " ")
        assert m.dest == "a b"
        assert m.mappings == (Mapping(source_start=1, source_end=3, dest_start=1, dest_end=2),)

    def test_equal_length_replacement_needs_no_mapping(self) -> None:
        m = OffsetMapper("abc", "b", "x")
        assert m.dest == "axc"
        assert m.mappings == ()
        assert m.map(2) == 2

    def test_group_references(self) -> None:
        m = OffsetMapper("x=1;y=22", r"(\w)=(\d+)", r"\2")
        assert m.dest == "1;22"

    def test_collapse_whitespace(self) -> None:
        assert collapse_whitespace("a \n\t b").dest == "a b"


class TestMap:
    def test_bounds(self) -> None:
        m = OffsetMapper("a  b", "  ", " ")
        assert m.map(0) == 0
        assert m.map(4) == 3

    def test_inside_segment_bias(self) -> None:
        m = OffsetMapper("a  b", "  ", " ")
        assert m.map(2) == 1
        assert m.map(2, bias_low=False) == 2

    def test_multiple_segments(self) -> None:
        m = OffsetMapper("a  b   c", r"\s+", " ")
        assert m.dest == "a b c"
        assert m.map(3) == 2
        assert m.map(7) == 4
        assert m.map(8) == 5

    def test_deletion(self) -> None:
        m = OffsetMapper("a/*x*/b", r"/\*.*?\*/", "")
        assert m.dest == "ab"
        assert m.map(6) == 1
        assert m.map(3) == 1

    @pytest.mark.parametrize("offset", [-1, 5])
    def test_out_of_range(self, offset: int) -> None:
        m = OffsetMapper("a  b", "  ", " ")
        with pytest.raises(OffsetRangeError):
            m.map(offset)

    def test_range_error_is_index_error(self) -> None:
        with pytest.raises(IndexError):
            OffsetMapper("", "x", "").map(1)


class TestRmap:
    def test_left_inverse_outside_mapped_regions(self) -> None:
        m = OffsetMapper("a  b", "  ", " ")
        for offset in (0, 1, 3, 4):
            assert m.rmap(m.map(offset)) == offset

    def test_left_inverse_multiple_segments(self) -> None:
        m = OffsetMapper("a  b   c", r"\s+", " ")
        for offset in (0, 1, 3, 4, 7, 8):
            assert m.rmap(m.map(offset)) == offset

    def test_deleted_span_bias(self) -> None:
        m = OffsetMapper("a/*x*/b", r"/\*.*?\*/", "")
        assert m.rmap(1) == 1
        assert m.rmap(1, bias_low=False) == 6

    def test_out_of_range_uses_dest_length(self) -> None:
        m = OffsetMapper("a  b", "  ", " ")
        assert m.rmap(3) == 4
        with pytest.raises(OffsetRangeError):
            m.rmap(4)

    def test_spans(self) -> None:
        m = OffsetMapper("a  b", "  ", " ")
        assert m.map_span(0, 4) == (0, 3)
        assert m.rmap_span(1, 2) == (1, 3)
