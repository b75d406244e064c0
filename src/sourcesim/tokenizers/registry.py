"""Static language -> tokenizer table and per-corpus tokenizer selection."""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath

from sourcesim.submission import Submission
from sourcesim.tokenizers.c_family import c_tokenizer, java_tokenizer, javascript_tokenizer
from sourcesim.tokenizers.null import NullTokenizer
from sourcesim.tokenizers.python_lexer import PythonTokenizer
from sourcesim.tokenizers.types import Tokenizer

log = logging.getLogger(__name__)

NULL_LANGUAGE = "null"


@dataclass(frozen=True, slots=True)
class RegistryEntry:
    language: str
    extension_re: re.Pattern[str]
    tokenizer: Tokenizer


class TokenizerRegistry:
    """Ordered ``(language, extension regex, tokenizer)`` table.

    Lookups evaluate entries in registration order; the first regex that
    fully matches the lowercased extension wins.
    """

    def __init__(self) -> None:
        self._entries: list[RegistryEntry] = []
        self._null = NullTokenizer()

    def register(self, language: str, extension_pattern: str, tokenizer: Tokenizer) -> None:
        if language == NULL_LANGUAGE:
            raise ValueError(f"language name {NULL_LANGUAGE!r} is reserved")
        if any(e.language == language for e in self._entries):
            raise ValueError(f"language {language!r} is already registered")
        self._entries.append(RegistryEntry(
            language=language,
            extension_re=re.compile(extension_pattern),
            tokenizer=tokenizer,
        ))

    @property
    def languages(self) -> list[str]:
        return [e.language for e in self._entries]

    @property
    def null_tokenizer(self) -> Tokenizer:
        return self._null

    def get(self, language: str) -> Tokenizer | None:
        """Tokenizer registered under *language* (``"null"`` included)."""
        if language == NULL_LANGUAGE:
            return self._null
        for entry in self._entries:
            if entry.language == language:
                return entry.tokenizer
        return None

    def language_for(self, filename: str) -> str | None:
        suffix = PurePosixPath(filename).suffix
        ext = suffix[1:].lower() if suffix else ""
        for entry in self._entries:
            if entry.extension_re.fullmatch(ext):
                return entry.language
        return None

    def tokenizer_for(self, filename: str) -> Tokenizer | None:
        language = self.language_for(filename)
        return self.get(language) if language is not None else None

    def count_votes(self, submissions: Iterable[Submission]) -> Counter[str]:
        """One vote per file; unmatched extensions vote for ``"null"``."""
        votes: Counter[str] = Counter()
        for sub in submissions:
            for f in sub.files:
                votes[self.language_for(f.path) or NULL_LANGUAGE] += 1
        return votes

    def choose(self, submissions: Iterable[Submission]) -> Tokenizer:
        """Pick one tokenizer for the whole corpus by majority vote.

        Candidates are ranked ``null`` first, then registration order; a
        later candidate must have strictly more votes to take over, so ties
        go to the earlier one.
        """
        votes = self.count_votes(submissions)
        best = NULL_LANGUAGE
        for language in self.languages:
            if votes[language] > votes[best]:
                best = language
        log.info(
            "Tokenizer %s chosen (%d of %d files; votes=%s)",
            best, votes[best], sum(votes.values()), dict(votes),
        )
        if best == NULL_LANGUAGE:
            return self._null
        return next(e.tokenizer for e in self._entries if e.language == best)


def default_registry() -> TokenizerRegistry:
    registry = TokenizerRegistry()
    registry.register("java", r"java", java_tokenizer())
    registry.register("c", r"c|cpp|cxx|cc|h|hpp", c_tokenizer())
    registry.register("python", r"py", PythonTokenizer())
    registry.register("javascript", r"js|mjs|cjs", javascript_tokenizer())
    return registry
