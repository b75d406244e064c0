"""Offset translation between a text and its regex-normalized form."""

from __future__ import annotations

import re
from dataclasses import dataclass


class OffsetRangeError(IndexError):
    """Offset outside ``0..len(text)`` of the text it refers to."""


@dataclass(frozen=True, slots=True)
class Mapping:
    """A replaced span whose length changed during normalization."""

    source_start: int
    source_end: int
    dest_start: int
    dest_end: int


class OffsetMapper:
    """Normalize *source* by replacing every match of *pattern*.

    Matches are found left to right without overlap; *replacement* may use
    group references (``\\1``). One ``Mapping`` is kept per match whose
    replacement has a different length; equal-length replacements do not
    shift offsets and need none.
    """

    def __init__(self, source: str, pattern: str | re.Pattern[str], replacement: str = "") -> None:
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        parts: list[str] = []
        mappings: list[Mapping] = []
        last = 0
        dest_len = 0
        for m in regex.finditer(source):
            kept = source[last:m.start()]
            parts.append(kept)
            dest_len += len(kept)
            rep = m.expand(replacement)
            parts.append(rep)
            if len(rep) != m.end() - m.start():
                mappings.append(Mapping(
                    source_start=m.start(),
                    source_end=m.end(),
                    dest_start=dest_len,
                    dest_end=dest_len + len(rep),
                ))
            dest_len += len(rep)
            last = m.end()
        parts.append(source[last:])
        self.source = source
        self.dest = "".join(parts)
        self.mappings: tuple[Mapping, ...] = tuple(mappings)

    def map(self, offset: int, bias_low: bool = True) -> int:
        """Translate a *source* offset into a *dest* offset.

        An offset inside a replaced span maps to the start of its
        replacement (``bias_low``) or to the end.
        """
        if not 0 <= offset <= len(self.source):
            raise OffsetRangeError(
                f"offset {offset} outside source bounds 0..{len(self.source)}"
            )
        shift = 0
        for m in self.mappings:
            if offset < m.source_start:
                break
            if offset < m.source_end or offset == m.source_start == m.source_end:
                return m.dest_start if bias_low else m.dest_end
            shift = m.dest_end - m.source_end
        return offset + shift

    def rmap(self, offset: int, bias_low: bool = True) -> int:
        """Translate a *dest* offset back into a *source* offset."""
        if not 0 <= offset <= len(self.dest):
            raise OffsetRangeError(
                f"offset {offset} outside dest bounds 0..{len(self.dest)}"
            )
        shift = 0
        for m in self.mappings:
            if offset < m.dest_start:
                break
            if offset < m.dest_end or offset == m.dest_start == m.dest_end:
                return m.source_start if bias_low else m.source_end
            shift = m.source_end - m.dest_end
        return offset + shift

    def map_span(self, start: int, end: int) -> tuple[int, int]:
        """Widest *dest* span covering source ``[start, end)``."""
        return self.map(start, bias_low=True), self.map(end, bias_low=False)

    def rmap_span(self, start: int, end: int) -> tuple[int, int]:
        """Widest *source* span covering dest ``[start, end)``."""
        return self.rmap(start, bias_low=True), self.rmap(end, bias_low=False)

    def __len__(self) -> int:
        return len(self.mappings)


def collapse_whitespace(text: str) -> OffsetMapper:
    """Mapper for the common ``\\s+ -> " "`` normalization."""
    return OffsetMapper(text, r"\s+", " ")
