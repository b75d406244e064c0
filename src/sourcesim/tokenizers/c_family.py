"""Regex lexer for brace-delimited languages (Java, C/C++, JavaScript).

The token table is scanned in order and the first pattern that matches at
the current position wins. Comments and whitespace are dropped; identifiers
and literals collapse to placeholder codes; keywords and operators keep
their own codes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sourcesim.tokenizers.types import CanonicalStream, TokenizationError

# ---------------------------------------------------------------------------
# Symbol codes
# ---------------------------------------------------------------------------

IDENT_CODE = 1
NUMBER_CODE = 2
STRING_CODE = 3
CHAR_CODE = 4
OPERATOR_BASE = 32
KEYWORD_BASE = 256

# Longest first, so that alternation picks ">>>=" before ">>" before ">".
OPERATORS: tuple[str, ...] = (
    ">>>=", "===", "!==", "<<=", ">>=", ">>>", "...", "**=", "->*",
    "->", "::", "++", "--", "&&", "||", "==", "!=", "<=", ">=", "+=", "-=",
    "*=", "/=", "%=", "&=", "|=", "^=", "<<", ">>", "=>", "??", "?.", "**",
    ".*", "##",
    "+", "-", "*", "/", "%", "=", "<", ">", "!", "&", "|", "^", "~", "?",
    ":", ";", ",", ".", "(", ")", "[", "]", "{", "}", "@", "#",
)
_OPERATOR_CODES: dict[str, int] = {op: OPERATOR_BASE + i for i, op in enumerate(OPERATORS)}

JAVA_KEYWORDS: frozenset[str] = frozenset({
    "abstract", "assert", "boolean", "break", "byte", "case", "catch", "char",
    "class", "const", "continue", "default", "do", "double", "else", "enum",
    "extends", "final", "finally", "float", "for", "goto", "if", "implements",
    "import", "instanceof", "int", "interface", "long", "native", "new",
    "package", "private", "protected", "public", "return", "short", "static",
    "strictfp", "super", "switch", "synchronized", "this", "throw", "throws",
    "transient", "try", "void", "volatile", "while", "var", "record", "yield",
    "true", "false", "null",
})

C_KEYWORDS: frozenset[str] = frozenset({
    "auto", "break", "case", "char", "const", "continue", "default", "do",
    "double", "else", "enum", "extern", "float", "for", "goto", "if", "inline",
    "int", "long", "register", "restrict", "return", "short", "signed",
    "sizeof", "static", "struct", "switch", "typedef", "union", "unsigned",
    "void", "volatile", "while", "bool", "catch", "class", "const_cast",
    "delete", "dynamic_cast", "explicit", "false", "friend", "mutable",
    "namespace", "new", "nullptr", "operator", "private", "protected",
    "public", "reinterpret_cast", "static_cast", "template", "this", "throw",
    "true", "try", "typename", "using", "virtual", "include", "define",
    "ifdef", "ifndef", "endif", "pragma",
})

JAVASCRIPT_KEYWORDS: frozenset[str] = frozenset({
    "async", "await", "break", "case", "catch", "class", "const", "continue",
    "debugger", "default", "delete", "do", "else", "export", "extends",
    "false", "finally", "for", "function", "if", "import", "in",
    "instanceof", "let", "new", "null", "of", "return", "static", "super",
    "switch", "this", "throw", "true", "try", "typeof", "undefined", "var",
    "void", "while", "with", "yield",
})


# ---------------------------------------------------------------------------
# Token table
# ---------------------------------------------------------------------------

_NUMBER = (
    r"(?:0[xX][0-9a-fA-F_]+|0[bB][01_]+|(?:\d[\d_]*(?:\.[\d_]*)?|\.\d[\d_]*)"
    r"(?:[eE][+-]?\d+)?)[a-zA-Z]*"
)

# Order matters (first match wins). Kinds ending in "_OPEN" are unterminated
# constructs and raise.
_BASE_PATTERNS: list[tuple[str, str]] = [
    ("WHITESPACE", r"\s+|\\\r?\n"),
    ("LINE_COMMENT", r"//[^\n]*"),
    ("BLOCK_COMMENT", r"/\*.*?\*/"),
    ("COMMENT_OPEN", r"/\*"),
    ("STRING", r'"(?:\\.|[^"\\\n])*"'),
    ("STRING_OPEN", r'"'),
    ("CHAR", r"'(?:\\.|[^'\\\n])*'"),
    ("CHAR_OPEN", r"'"),
    ("NUMBER", _NUMBER),
    ("IDENT", r"(?:[^\W\d]|\$)(?:\w|\$)*"),
    ("OPERATOR", "|".join(re.escape(op) for op in OPERATORS)),
]

_JAVA_EXTRA: list[tuple[str, str]] = [
    ("STRING", r'"""[\s\S]*?"""'),
    ("STRING_OPEN", r'"""'),
]

# Single quotes delimit strings in JavaScript, so they share STRING_CODE.
# REGEX is only tried where an operand may start (see _regex_allowed).
_JAVASCRIPT_EXTRA: list[tuple[str, str]] = [
    ("STRING", r"`(?:\\[\s\S]|[^`\\])*`"),
    ("STRING_OPEN", r"`"),
    ("STRING", r"'(?:\\.|[^'\\\n])*'"),
    ("STRING_OPEN", r"'"),
    ("REGEX", r"/(?![*/])(?:\\.|\[(?:\\.|[^\]\\\n])*\]|[^/\\\[\n])+/[A-Za-z]*"),
]

_OPEN_MESSAGES: dict[str, str] = {
    "COMMENT_OPEN": "unterminated block comment",
    "STRING_OPEN": "unterminated string literal",
    "CHAR_OPEN": "unterminated character literal",
}

_COMMENT_KINDS = frozenset({"LINE_COMMENT", "BLOCK_COMMENT"})

# Tokens after which "/" is division, not the start of a regex literal.
_OPERAND_END_OPERATORS = frozenset({")", "]", "}", "++", "--"})
_VALUE_KEYWORDS = frozenset({"this", "super", "true", "false", "null", "undefined"})


@dataclass(frozen=True, slots=True)
class LexToken:
    """A single lexical token."""

    kind: str
    value: str
    pos: int


def _compile(extra: list[tuple[str, str]]) -> list[tuple[str, re.Pattern[str]]]:
    # Language-specific patterns go before the base table so they win.
    return [(kind, re.compile(pat, re.DOTALL)) for kind, pat in [*extra, *_BASE_PATTERNS]]


def _comment_body(tok: LexToken) -> str:
    body = tok.value[2:-2] if tok.kind == "BLOCK_COMMENT" else tok.value[2:]
    return body.strip()


class CFamilyTokenizer:
    """Tokenizer for one brace-delimited language."""

    def __init__(
        self,
        name: str,
        keywords: frozenset[str],
        extra_patterns: list[tuple[str, str]] | None = None,
    ) -> None:
        self.name = name
        self._keyword_codes = {kw: KEYWORD_BASE + i for i, kw in enumerate(sorted(keywords))}
        self._patterns = _compile(extra_patterns or [])

    def _regex_allowed(self, prev: LexToken | None) -> bool:
        if prev is None:
            return True
        if prev.kind == "OPERATOR":
            return prev.value not in _OPERAND_END_OPERATORS
        if prev.kind == "IDENT":
            return prev.value in self._keyword_codes and prev.value not in _VALUE_KEYWORDS
        return False

    def _scan(self, source: str, source_name: str) -> list[LexToken]:
        """All tokens except whitespace, comments included."""
        tokens: list[LexToken] = []
        prev: LexToken | None = None
        pos = 0
        while pos < len(source):
            for kind, pattern in self._patterns:
                if kind == "REGEX" and not self._regex_allowed(prev):
                    continue
                m = pattern.match(source, pos)
                if m:
                    break
            else:
                raise TokenizationError(
                    source_name,
                    f"unexpected character {source[pos]!r}",
                    source.count("\n", 0, pos) + 1,
                )
            if kind in _OPEN_MESSAGES:
                raise TokenizationError(
                    source_name, _OPEN_MESSAGES[kind], source.count("\n", 0, pos) + 1,
                )
            if kind != "WHITESPACE":
                tok = LexToken(kind=kind, value=m.group(), pos=pos)
                tokens.append(tok)
                if kind not in _COMMENT_KINDS:
                    prev = tok
            pos = m.end()
        return tokens

    def lex(self, source: str, source_name: str = "") -> list[LexToken]:
        """Split *source* into significant tokens (comments and blanks dropped)."""
        return [t for t in self._scan(source, source_name) if t.kind not in _COMMENT_KINDS]

    def comments(self, source: str, source_name: str = "") -> str:
        """Comment bodies without their delimiters, one per line."""
        bodies = (_comment_body(t) for t in self._scan(source, source_name) if t.kind in _COMMENT_KINDS)
        return "\n".join(b for b in bodies if b)

    def code_for(self, tok: LexToken) -> int:
        if tok.kind == "IDENT":
            return self._keyword_codes.get(tok.value, IDENT_CODE)
        if tok.kind == "OPERATOR":
            return _OPERATOR_CODES[tok.value]
        if tok.kind == "NUMBER":
            return NUMBER_CODE
        if tok.kind == "CHAR":
            return CHAR_CODE
        return STRING_CODE

    def tokenize(self, source: str, source_name: str = "") -> CanonicalStream:
        return CanonicalStream.from_codes(
            self.code_for(tok) for tok in self.lex(source, source_name)
        )

    def __repr__(self) -> str:
        return f"CFamilyTokenizer({self.name!r})"


def java_tokenizer() -> CFamilyTokenizer:
    return CFamilyTokenizer("java", JAVA_KEYWORDS, _JAVA_EXTRA)


def c_tokenizer() -> CFamilyTokenizer:
    return CFamilyTokenizer("c", C_KEYWORDS)


def javascript_tokenizer() -> CFamilyTokenizer:
    return CFamilyTokenizer("javascript", JAVASCRIPT_KEYWORDS, _JAVASCRIPT_EXTRA)
