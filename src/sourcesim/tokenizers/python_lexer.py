"""Python tokenizer built on the standard library ``tokenize`` module.

Keywords, operators and block structure (NEWLINE/INDENT/DEDENT) keep
distinct codes; names, numbers and strings (f-strings included) collapse to
one placeholder code each; comments and blank-line tokens are dropped.
"""

from __future__ import annotations

import io
import keyword
import token
import tokenize
from collections.abc import Iterator

from sourcesim.tokenizers.types import CanonicalStream, TokenizationError

KEYWORD_BASE = 256
_KEYWORD_CODES: dict[str, int] = {
    kw: KEYWORD_BASE + i for i, kw in enumerate(keyword.kwlist)
}

_SKIPPED = frozenset({
    tokenize.COMMENT,
    tokenize.NL,
    tokenize.ENCODING,
    tokenize.ENDMARKER,
    token.TYPE_COMMENT,
})

_FSTRING_START = getattr(token, "FSTRING_START", None)
_FSTRING_END = getattr(token, "FSTRING_END", None)


def _error_line(exc: BaseException) -> int | None:
    if isinstance(exc, SyntaxError):
        return exc.lineno
    if len(exc.args) > 1 and isinstance(exc.args[1], tuple) and exc.args[1]:
        return int(exc.args[1][0])
    return None


def _generate(source: str, source_name: str) -> Iterator[tokenize.TokenInfo]:
    try:
        yield from tokenize.generate_tokens(io.StringIO(source).readline)
    except (tokenize.TokenError, SyntaxError) as exc:
        raise TokenizationError(source_name, str(exc.args[0]), _error_line(exc)) from exc


class PythonTokenizer:
    """Structure-preserving, identifier-insensitive Python tokenizer."""

    name = "python"

    def tokenize(self, source: str, source_name: str = "") -> CanonicalStream:
        codes: list[int] = []
        fstring_depth = 0
        for tok in _generate(source, source_name):
            kind = tok.type
            if _FSTRING_START is not None and kind == _FSTRING_START:
                if fstring_depth == 0:
                    codes.append(token.STRING)
                fstring_depth += 1
                continue
            if _FSTRING_END is not None and kind == _FSTRING_END:
                fstring_depth -= 1
                continue
            if fstring_depth or kind in _SKIPPED:
                continue
            if kind == tokenize.ERRORTOKEN:
                if tok.string.isspace():
                    continue
                raise TokenizationError(
                    source_name, f"unexpected character {tok.string!r}", tok.start[0],
                )
            if kind == tokenize.NAME:
                codes.append(_KEYWORD_CODES.get(tok.string, token.NAME))
            elif kind == tokenize.OP:
                codes.append(tok.exact_type)
            else:
                codes.append(kind)
        return CanonicalStream.from_codes(codes)

    def comments(self, source: str, source_name: str = "") -> str:
        """``#`` comment bodies, one per line."""
        bodies = (
            tok.string[1:].strip()
            for tok in _generate(source, source_name)
            if tok.type == tokenize.COMMENT
        )
        return "\n".join(b for b in bodies if b)

    def __repr__(self) -> str:
        return "PythonTokenizer()"
