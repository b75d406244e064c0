"""Tokenizer contract, built-in tokenizers and the language registry."""

from sourcesim.tokenizers.c_family import (
    CFamilyTokenizer,
    c_tokenizer,
    java_tokenizer,
    javascript_tokenizer,
)
from sourcesim.tokenizers.null import NullTokenizer
from sourcesim.tokenizers.python_lexer import PythonTokenizer
from sourcesim.tokenizers.registry import (
    NULL_LANGUAGE,
    TokenizerRegistry,
    default_registry,
)
from sourcesim.tokenizers.types import (
    EMPTY_STREAM,
    CanonicalStream,
    TokenizationError,
    Tokenizer,
    to_base32,
)

__all__ = [
    "CFamilyTokenizer",
    "CanonicalStream",
    "EMPTY_STREAM",
    "NULL_LANGUAGE",
    "NullTokenizer",
    "PythonTokenizer",
    "TokenizationError",
    "Tokenizer",
    "TokenizerRegistry",
    "c_tokenizer",
    "default_registry",
    "java_tokenizer",
    "javascript_tokenizer",
    "to_base32",
]
