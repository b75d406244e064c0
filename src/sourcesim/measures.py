"""Pairwise distance measures.

Every measure splits its work into a per-submission ``prepare`` step (run
once, e.g. to compress each submission alone) and a pairwise ``distance``
step. Prepared values and measures are plain picklable objects so either
step can run in a worker process.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

import numpy as np

from sourcesim.compression import Compressor
from sourcesim.config import ConfigurationError
from sourcesim.offset_map import collapse_whitespace
from sourcesim.submission import Submission
from sourcesim.tokenizers.types import CanonicalStream

# Empirical scale for histogram distances, which rarely exceed 1/3.
HISTOGRAM_SCALE = 3.0


@dataclass(frozen=True, slots=True)
class TokenizedSubmission:
    """A submission plus one canonical stream per successfully tokenized file.

    ``comments`` holds the comment text of the same files, in the same order.
    """

    submission: Submission
    streams: tuple[CanonicalStream, ...]
    comments: tuple[str, ...] = ()

    @property
    def submission_id(self) -> str:
        return self.submission.submission_id

    def text(self, separator: str = "") -> str:
        return separator.join(s.text for s in self.streams)

    @property
    def codes(self) -> list[int]:
        return [c for s in self.streams for c in s.codes]


@dataclass(frozen=True, slots=True)
class CompressedItem:
    submission_id: str
    data: bytes
    size: int


@dataclass(frozen=True, slots=True)
class HistogramItem:
    submission_id: str
    frequencies: dict[int, float]


def ncd(a: int, b: int, joint: int) -> float:
    """Normalized compression distance from three compressed sizes.

    ``(joint - min) / max``, clamped to [0, 1]; 0 when both inputs are empty.
    """
    low = min(a, b)
    high = a + b - low
    if high == 0:
        return 0.0
    return min(1.0, max(0.0, (joint - low) / high))


class _CompressionMeasure:
    """Shared NCD pair step; subclasses decide which bytes get compressed."""

    prefix = ""

    def __init__(self, compressor: Compressor) -> None:
        self.compressor = compressor

    @property
    def key(self) -> str:
        return f"{self.prefix}:{self.compressor.name}"

    def _item(self, submission_id: str, text: str) -> CompressedItem:
        data = text.encode("utf-8")
        return CompressedItem(submission_id, data, self.compressor.compressed_size(data))

    def distance(self, x: CompressedItem, y: CompressedItem) -> float:
        if x is y or x.submission_id == y.submission_id:
            return 0.0
        # Joint input in id order so d(A, B) == d(B, A).
        first, second = (x, y) if x.submission_id < y.submission_id else (y, x)
        joint = self.compressor.compressed_size(first.data + second.data)
        return ncd(x.size, y.size, joint)


class NcdMeasure(_CompressionMeasure):
    """NCD over concatenated canonical token streams."""

    prefix = "ncd"

    def __init__(self, compressor: Compressor, separator: str = "") -> None:
        super().__init__(compressor)
        self.separator = separator

    def prepare(self, item: TokenizedSubmission) -> CompressedItem:
        return self._item(item.submission_id, item.text(self.separator))


class RawNcdMeasure(_CompressionMeasure):
    """NCD over untokenized file contents."""

    prefix = "raw_ncd"

    def __init__(
        self,
        compressor: Compressor,
        separator: str = "",
        ignore_whitespace: bool = True,
    ) -> None:
        super().__init__(compressor)
        self.separator = separator
        self.ignore_whitespace = ignore_whitespace

    def prepare(self, item: TokenizedSubmission) -> CompressedItem:
        contents = [f.content for f in item.submission.files]
        if self.ignore_whitespace:
            contents = [collapse_whitespace(c).dest for c in contents]
        return self._item(item.submission_id, self.separator.join(contents))


class CommentNcdMeasure(_CompressionMeasure):
    """NCD over comment text only.

    A pair where either side has no comments scores 1: absent comments are
    not evidence of shared ones.
    """

    prefix = "comment_ncd"

    def prepare(self, item: TokenizedSubmission) -> CompressedItem:
        return self._item(item.submission_id, "\n".join(c for c in item.comments if c))

    def distance(self, x: CompressedItem, y: CompressedItem) -> float:
        if x is y or x.submission_id == y.submission_id:
            return 0.0
        if not x.data or not y.data:
            return 1.0
        return super().distance(x, y)


class TokenHistogramMeasure:
    """Euclidean distance between normalized token-frequency vectors."""

    key = "token_histogram"

    def prepare(self, item: TokenizedSubmission) -> HistogramItem:
        counts = Counter(item.codes)
        total = sum(counts.values())
        freqs = {code: n / total for code, n in counts.items()} if total else {}
        return HistogramItem(item.submission_id, freqs)

    def distance(self, x: HistogramItem, y: HistogramItem) -> float:
        if x is y or x.submission_id == y.submission_id:
            return 0.0
        codes = sorted(x.frequencies.keys() | y.frequencies.keys())
        if not codes:
            return 0.0
        vx = np.array([x.frequencies.get(c, 0.0) for c in codes])
        vy = np.array([y.frequencies.get(c, 0.0) for c in codes])
        d = float(np.linalg.norm(vx - vy)) * HISTOGRAM_SCALE
        return min(1.0, d)


# ---------------------------------------------------------------------------
# Outlier adjustment
# ---------------------------------------------------------------------------

def outlier_adjust(matrix: np.ndarray, importance: float) -> np.ndarray:
    """Pull together pairs that stand out from both members' distributions.

    For each row, the mean and the standard deviation of the values below
    the mean are computed. A pair (a, b) whose distance lies many such
    deviations below both row means is scaled down by up to a factor of
    ``1 - importance``; pairs that do not stand out keep their distance.
    ``importance`` 0 returns the input unchanged.
    """
    m = np.asarray(matrix, dtype=float)
    if importance == 0 or m.size == 0:
        return m.copy()
    means = m.mean(axis=1)
    below = m < means[:, None]
    diff = np.where(below, m - means[:, None], 0.0)
    counts = below.sum(axis=1)
    side_std = np.sqrt(np.divide(
        (diff ** 2).sum(axis=1), counts,
        out=np.zeros_like(means), where=counts > 0,
    ))
    gap = np.maximum(means[:, None] - m, 0.0)
    devs = np.divide(gap, side_std[:, None], out=np.zeros_like(m), where=side_std[:, None] > 0)
    dispersion = np.power(2.0, -(devs * devs.T))
    return (dispersion * importance + (1.0 - importance)) * m


def build_measure(
    name: str,
    compressor: Compressor,
    *,
    separator: str = "",
    ignore_whitespace: bool = True,
) -> NcdMeasure | RawNcdMeasure | CommentNcdMeasure | TokenHistogramMeasure:
    if name == "ncd":
        return NcdMeasure(compressor, separator)
    if name == "raw_ncd":
        return RawNcdMeasure(compressor, separator, ignore_whitespace)
    if name == "comment_ncd":
        return CommentNcdMeasure(compressor)
    if name == "token_histogram":
        return TokenHistogramMeasure()
    raise ConfigurationError(f"Unknown measure {name!r}")
