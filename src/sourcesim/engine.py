"""Parallel all-pairs distance computation.

Each unordered pair is an independent task on a fixed ``concurrent.futures``
pool. Per-submission preparation (e.g. compressing each submission alone)
runs once, before any pair. Cancellation is cooperative: a ``CancelToken``
is checked between tasks, pending tasks are dropped, and the report comes
back marked incomplete with whatever pairs finished.
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import Any, Protocol

import numpy as np

from sourcesim.measures import TokenizedSubmission, outlier_adjust

log = logging.getLogger(__name__)

_PROGRESS_EVERY = 500


class Measure(Protocol):
    key: str

    def prepare(self, item: TokenizedSubmission) -> Any: ...

    def distance(self, x: Any, y: Any) -> float: ...


class CancelToken:
    """Thread-safe cancellation flag shared by a caller and one run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class DistanceResult:
    """Distance between submissions ``a`` and ``b`` (``a < b``)."""

    a: str
    b: str
    distance: float

    def __post_init__(self) -> None:
        if not self.a < self.b:
            raise ValueError(f"DistanceResult ids must be ordered: {self.a!r} >= {self.b!r}")

    @classmethod
    def of(cls, x: str, y: str, distance: float) -> DistanceResult:
        a, b = (x, y) if x < y else (y, x)
        return cls(a=a, b=b, distance=distance)

    @property
    def sort_key(self) -> tuple[float, str, str]:
        return (self.distance, self.a, self.b)


@dataclass(frozen=True, slots=True)
class PairError:
    a: str
    b: str
    message: str


@dataclass(frozen=True, slots=True)
class DistanceReport:
    """All computed pairs for one measure, ascending by (distance, a, b).

    ``complete`` is False when the run was cancelled or a pair failed; the
    results then cover only the pairs that finished.
    """

    measure: str
    submission_ids: tuple[str, ...]
    results: tuple[DistanceResult, ...]
    complete: bool
    errors: tuple[PairError, ...] = ()

    @property
    def expected_pairs(self) -> int:
        n = len(self.submission_ids)
        return n * (n - 1) // 2

    def matrix(self) -> np.ndarray:
        """Symmetric distance matrix in ``submission_ids`` order.

        The diagonal is 0; pairs that were not computed are NaN.
        """
        n = len(self.submission_ids)
        index = {sid: i for i, sid in enumerate(self.submission_ids)}
        m = np.full((n, n), np.nan)
        np.fill_diagonal(m, 0.0)
        for r in self.results:
            i, j = index[r.a], index[r.b]
            m[i, j] = m[j, i] = r.distance
        return m

    def distance(self, x: str, y: str) -> float | None:
        if x == y:
            return 0.0
        a, b = (x, y) if x < y else (y, x)
        for r in self.results:
            if r.a == a and r.b == b:
                return r.distance
        return None

    def top(self, n: int) -> list[DistanceResult]:
        return list(self.results[:n])

    def with_outlier_adjustment(self, importance: float) -> DistanceReport:
        """Rescale distances with ``outlier_adjust``; needs a complete report."""
        if not self.complete:
            raise ValueError("outlier adjustment needs a complete report")
        if importance == 0:
            return self
        adjusted = outlier_adjust(self.matrix(), importance)
        index = {sid: i for i, sid in enumerate(self.submission_ids)}
        results = [
            replace(r, distance=float(adjusted[index[r.a], index[r.b]]))
            for r in self.results
        ]
        return replace(
            self,
            measure=f"{self.measure}+outliers{importance:g}",
            results=tuple(sorted(results, key=lambda r: r.sort_key)),
        )


# ---------------------------------------------------------------------------
# Computation
# ---------------------------------------------------------------------------

def make_executor(kind: str, workers: int) -> Executor:
    if kind == "process":
        return ProcessPoolExecutor(max_workers=workers)
    return ThreadPoolExecutor(max_workers=workers)


def _pair_task(measure: Measure, x: Any, y: Any) -> float:
    return measure.distance(x, y)


def compute_distances(
    items: Sequence[TokenizedSubmission],
    measure: Measure,
    *,
    workers: int = 4,
    executor: str = "thread",
    cancel: CancelToken | None = None,
) -> DistanceReport:
    """Compute every unordered pair's distance under *measure*."""
    ordered = sorted(items, key=lambda it: it.submission_id)
    ids = tuple(it.submission_id for it in ordered)
    if len(set(ids)) != len(ids):
        raise ValueError("submission ids must be unique")
    cancel = cancel or CancelToken()
    if cancel.cancelled:
        log.warning("Run cancelled before start (%s)", measure.key)
        return DistanceReport(measure=measure.key, submission_ids=ids, results=(), complete=False)

    results: list[DistanceResult] = []
    errors: list[PairError] = []
    cancelled = False
    t0 = time.perf_counter()

    with make_executor(executor, workers) as pool:
        prepared = list(pool.map(measure.prepare, ordered))

        futures: dict[Future[float], tuple[str, str]] = {}
        for i in range(len(ordered)):
            for j in range(i + 1, len(ordered)):
                fut = pool.submit(_pair_task, measure, prepared[i], prepared[j])
                futures[fut] = (ids[i], ids[j])
        total = len(futures)
        log.info(
            "Computing %d pairs for %d submissions (%s, %d %s workers)",
            total, len(ids), measure.key, workers, executor,
        )

        for done_count, fut in enumerate(as_completed(futures), 1):
            a, b = futures[fut]
            if fut.cancelled():
                continue
            try:
                results.append(DistanceResult(a=a, b=b, distance=fut.result()))
            except Exception as exc:
                log.warning("Pair %s / %s failed: %s", a, b, exc)
                errors.append(PairError(a=a, b=b, message=str(exc)))
            if done_count % _PROGRESS_EVERY == 0:
                log.info("Progress: %d/%d pairs (%.1fs)", done_count, total, time.perf_counter() - t0)
            if cancel.cancelled and not cancelled:
                cancelled = True
                dropped = sum(f.cancel() for f in futures)
                log.warning("Run cancelled; %d pending pairs dropped", dropped)

    results.sort(key=lambda r: r.sort_key)
    complete = not cancelled and not errors and len(results) == total
    log.info(
        "%s: %d/%d pairs in %.1fs%s",
        measure.key, len(results), total, time.perf_counter() - t0,
        "" if complete else " (incomplete)",
    )
    return DistanceReport(
        measure=measure.key,
        submission_ids=ids,
        results=tuple(results),
        complete=complete,
        errors=tuple(errors),
    )
