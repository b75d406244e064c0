"""Core types for the tokenizer contract."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


_BASE32_DIGITS = "0123456789abcdefghijklmnopqrstuv"


def to_base32(value: int) -> str:
    """Render a non-negative symbol code in base 32 (digits ``0-9a-v``)."""
    if value < 0:
        raise ValueError(f"symbol codes must be >= 0, got {value}")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 32)
        digits.append(_BASE32_DIGITS[rem])
    return "".join(reversed(digits))


class TokenizationError(ValueError):
    """Raised when source text falls outside a tokenizer's grammar.

    This is a data error: callers skip the offending file and keep going.
    """

    def __init__(self, source_name: str, message: str, line: int | None = None) -> None:
        self.source_name = source_name
        self.line = line
        self.reason = message
        where = source_name or "<source>"
        if line is not None:
            where = f"{where}:{line}"
        super().__init__(f"{where}: {message}")


@dataclass(frozen=True, slots=True)
class CanonicalStream:
    """Formatting-insensitive symbol stream for one source or submission.

    ``codes`` is the symbol sequence; ``text`` is its string rendering, the
    form consumed by compressors and the substring index.
    """

    codes: tuple[int, ...]
    text: str

    @classmethod
    def from_codes(cls, codes: Iterable[int]) -> CanonicalStream:
        """Render each code in base 32 followed by a single space."""
        frozen = tuple(codes)
        return cls(codes=frozen, text="".join(f"{to_base32(c)} " for c in frozen))

    @classmethod
    def concat(cls, streams: Iterable[CanonicalStream], separator: str = "") -> CanonicalStream:
        parts = list(streams)
        codes: list[int] = []
        for s in parts:
            codes.extend(s.codes)
        return cls(codes=tuple(codes), text=separator.join(s.text for s in parts))

    def __len__(self) -> int:
        return len(self.codes)


EMPTY_STREAM = CanonicalStream(codes=(), text="")


@runtime_checkable
class Tokenizer(Protocol):
    """Capability: source text -> canonical symbol stream."""

    name: str

    def tokenize(self, source: str, source_name: str = "") -> CanonicalStream:
        """Tokenize *source*; raise TokenizationError on malformed input."""
        ...

    def comments(self, source: str, source_name: str = "") -> str:
        """Comment text of *source*, one comment per line (``""`` if none)."""
        ...
