"""One analysis run over a corpus of submissions.

Stages, in order:

1. ``load`` — drop hidden files, apply the file filter, drop empty and
   exact-duplicate submissions.
2. ``choose_tokenizer`` — one tokenizer for the whole corpus.
3. ``tokenize`` — every file independently on the worker pool; files that
   fail to tokenize are skipped with a ``FileWarning``.
4. ``run`` — pairwise distances for a measure.
5. ``build_index`` / ``rare_fragments`` — shared rare substrings, as a
   ``FragmentReport`` flagged incomplete after a cancellation.

Only configuration problems raise; data problems are logged and recorded.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, replace

from sourcesim.compression import get_compressor
from sourcesim.config import AnalysisConfig, ConfigurationError
from sourcesim.engine import CancelToken, DistanceReport, Measure, compute_distances, make_executor
from sourcesim.file_filters import FilterNode, FilterSyntaxError, parse_filter, select_files
from sourcesim.measures import TokenizedSubmission, build_measure
from sourcesim.submission import SourceFile, Submission, drop_exact_duplicates
from sourcesim.substring_index import RareFragment, SubstringIndex
from sourcesim.tokenizers import (
    CanonicalStream,
    TokenizationError,
    Tokenizer,
    TokenizerRegistry,
    default_registry,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FileWarning:
    """A file skipped because it could not be tokenized."""

    submission_id: str
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class FragmentReport:
    """Rare fragments for one frequency range.

    ``complete`` is False when tokenization or indexing was cancelled, so
    the index covers only part of the corpus.
    """

    fragments: tuple[RareFragment, ...]
    min_freq: int
    max_freq: int
    complete: bool


@dataclass(frozen=True, slots=True)
class _FileOutcome:
    submission_id: str
    path: str
    stream: CanonicalStream | None
    comments: str
    error: str | None


def _tokenize_file(tokenizer: Tokenizer, submission_id: str, file: SourceFile) -> _FileOutcome:
    try:
        stream = tokenizer.tokenize(file.content, file.path)
        comments = tokenizer.comments(file.content, file.path)
    except TokenizationError as exc:
        return _FileOutcome(submission_id, file.path, None, "", str(exc))
    return _FileOutcome(submission_id, file.path, stream, comments, None)


class Analysis:
    """Stateful driver for one corpus; stages may be called individually."""

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        *,
        registry: TokenizerRegistry | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.registry = registry or default_registry()
        self.cancel = cancel or CancelToken()
        self.compressor = get_compressor(self.config.compressor)
        self.file_filter: FilterNode | None = None
        if self.config.filter_tokens:
            try:
                self.file_filter = parse_filter(self.config.filter_tokens)
            except FilterSyntaxError as exc:
                raise ConfigurationError(f"Bad file filter: {exc}") from exc

        self.submissions: list[Submission] = []
        self.excluded: dict[str, str] = {}  # submission_id -> reason
        self.duplicates: dict[str, str] = {}  # duplicate id -> kept id
        self.tokenizer: Tokenizer | None = None
        self.tokenized: list[TokenizedSubmission] = []
        self.tokenization_done = False
        self.tokenization_complete = False
        self.warnings: list[FileWarning] = []
        self.reports: dict[str, DistanceReport] = {}
        self.index: SubstringIndex | None = None
        self.index_complete = False

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def load(self, submissions: Iterable[Submission]) -> list[Submission]:
        selected: list[Submission] = []
        for sub in submissions:
            visible = sub.with_files(f for f in sub.files if not f.is_hidden)
            filtered = select_files(visible, self.file_filter)
            if not filtered.files:
                log.warning("Submission %s has no files left after filtering", sub.submission_id)
                self.excluded[sub.submission_id] = "no files selected"
                continue
            selected.append(filtered)

        kept, duplicates = drop_exact_duplicates(selected)
        for dup, original in duplicates.items():
            self.excluded[dup] = f"exact duplicate of {original}"
        self.duplicates.update(duplicates)
        self.submissions = kept
        log.info(
            "Loaded %d submissions (%d excluded, %d files)",
            len(kept), len(self.excluded), sum(len(s.files) for s in kept),
        )
        return kept

    def choose_tokenizer(self) -> Tokenizer:
        if self.config.language is not None:
            tokenizer = self.registry.get(self.config.language)
            if tokenizer is None:
                raise ConfigurationError(
                    f"Unknown language {self.config.language!r} "
                    f"(registered: {self.registry.languages})"
                )
            log.info("Tokenizer %s pinned by configuration", tokenizer.name)
        else:
            tokenizer = self.registry.choose(self.submissions)
        self.tokenizer = tokenizer
        return tokenizer

    def tokenize(self) -> list[TokenizedSubmission]:
        """Tokenize every file once; later stages reuse the result.

        Calling this again re-tokenizes from scratch and replaces the
        previous warnings.
        """
        tokenizer = self.tokenizer or self.choose_tokenizer()
        t0 = time.perf_counter()
        jobs = [(sub.submission_id, f) for sub in self.submissions for f in sub.files]
        with make_executor(self.config.executor, self.config.workers) as pool:
            futures = [pool.submit(_tokenize_file, tokenizer, sid, f) for sid, f in jobs]
            outcomes: list[_FileOutcome] = []
            for (sid, f), fut in zip(jobs, futures):
                if self.cancel.cancelled:
                    for pending in futures:
                        pending.cancel()
                    break
                try:
                    outcomes.append(fut.result())
                except Exception as exc:
                    outcomes.append(_FileOutcome(sid, f.path, None, "", f"tokenizer crashed: {exc!r}"))
        cancelled = self.cancel.cancelled and len(outcomes) < len(jobs)
        if cancelled:
            log.warning("Tokenization cancelled after %d/%d files", len(outcomes), len(jobs))

        self.warnings = []
        streams: dict[str, list[CanonicalStream]] = {s.submission_id: [] for s in self.submissions}
        comments: dict[str, list[str]] = {s.submission_id: [] for s in self.submissions}
        for out in outcomes:
            if out.stream is None:
                log.warning("Skipping %s in %s: %s", out.path, out.submission_id, out.error)
                self.warnings.append(FileWarning(out.submission_id, out.path, out.error or ""))
                continue
            streams[out.submission_id].append(out.stream)
            comments[out.submission_id].append(out.comments)

        tokenized: list[TokenizedSubmission] = []
        for sub in self.submissions:
            got = streams[sub.submission_id]
            if not got:
                reason = "tokenization cancelled" if cancelled else "no tokenizable files"
                log.warning("Submission %s excluded: %s", sub.submission_id, reason)
                self.excluded[sub.submission_id] = reason
                continue
            tokenized.append(TokenizedSubmission(sub, tuple(got), tuple(comments[sub.submission_id])))
        self.tokenized = tokenized
        self.tokenization_done = True
        self.tokenization_complete = not cancelled
        log.info(
            "Tokenized %d files with %s in %.1fs (%d warnings)",
            len(outcomes), tokenizer.name, time.perf_counter() - t0, len(self.warnings),
        )
        return tokenized

    def _measure(self, name: str) -> Measure:
        return build_measure(
            name,
            self.compressor,
            separator=self.config.separator,
            ignore_whitespace=self.config.ignore_whitespace,
        )

    def run(self, measure: Measure | str | None = None) -> DistanceReport:
        """Pairwise distances; with ``outlier_importance`` set, adjusted ones."""
        if isinstance(measure, str) or measure is None:
            measure = self._measure(measure or self.config.measure)
        if not self.tokenization_done:
            self.tokenize()
        report = compute_distances(
            self.tokenized,
            measure,
            workers=self.config.workers,
            executor=self.config.executor,
            cancel=self.cancel,
        )
        if not self.tokenization_complete and report.complete:
            report = replace(report, complete=False)
        self.reports[report.measure] = report
        if self.config.outlier_importance > 0 and report.complete:
            report = report.with_outlier_adjustment(self.config.outlier_importance)
            self.reports[report.measure] = report
        return report

    def build_index(self) -> SubstringIndex:
        """Index every tokenized submission; stops early when cancelled."""
        if not self.tokenization_done:
            self.tokenize()
        t0 = time.perf_counter()
        complete = self.tokenization_complete
        index = SubstringIndex(min_length=self.config.min_fragment_length)
        inserted = 0
        for item in self.tokenized:
            if self.cancel.cancelled:
                complete = False
                log.warning("Indexing cancelled after %d/%d submissions", inserted, len(self.tokenized))
                break
            index.insert(
                item.text(self.config.separator),
                item.submission_id,
                self.config.max_substring_length,
            )
            inserted += 1
        index.update_stats()
        log.info(
            "Substring index: %d submissions, %d nodes in %.1fs%s",
            inserted, len(index), time.perf_counter() - t0,
            "" if complete else " (incomplete)",
        )
        self.index = index
        self.index_complete = complete
        return index

    def rare_fragments(
        self,
        min_freq: int | None = None,
        max_freq: int | None = None,
    ) -> FragmentReport:
        index = self.index if self.index is not None else self.build_index()
        min_freq = self.config.rare_min if min_freq is None else min_freq
        max_freq = self.config.rare_max if max_freq is None else max_freq
        return FragmentReport(
            fragments=tuple(index.rare_fragments(min_freq, max_freq)),
            min_freq=min_freq,
            max_freq=max_freq,
            complete=self.index_complete,
        )
