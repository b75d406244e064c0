"""Verbatim passthrough tokenizer used when no language claims a corpus."""

from __future__ import annotations

import re

from sourcesim.tokenizers.types import CanonicalStream

_WHITESPACE_RE = re.compile(r"\s+")


class NullTokenizer:
    """Collapse whitespace runs to one space and keep everything else."""

    name = "null"

    def tokenize(self, source: str, source_name: str = "") -> CanonicalStream:
        text = _WHITESPACE_RE.sub(" ", source)
        return CanonicalStream(codes=tuple(ord(ch) for ch in text), text=text)

    def comments(self, source: str, source_name: str = "") -> str:
        return ""

    def __repr__(self) -> str:
        return "NullTokenizer()"
