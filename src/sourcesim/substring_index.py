"""PATRICIA trie over all bounded-length substrings of a set of documents.

Each inserted document contributes every substring starting at each of its
offsets (optionally truncated). Nodes live in a flat arena and refer to
each other by integer index; an edge label is a ``(doc, start, end)`` span
into one exemplar document. Occurrence lists hang off the node where an
inserted string ends, and ``update_stats`` rolls them up so that every
node knows how many occurrences and how many distinct submissions lie
below it. Rare fragments are nodes shared by few submissions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

DEFAULT_MIN_LENGTH = 5
ROOT = 0


class StaleIndexError(RuntimeError):
    """Node statistics read after a mutation without ``update_stats()``."""


@dataclass(slots=True)
class _Node:
    doc: int  # index into the exemplar document list (-1 for the root)
    start: int
    end: int
    parent: int
    depth: int  # length of the string spelled from the root to ``end``
    children: dict[str, int] = field(default_factory=dict)
    locations: dict[str, list[int]] = field(default_factory=dict)
    total: int = 0
    unique_count: int = 0


@dataclass(frozen=True, slots=True)
class NodeStats:
    total: int
    unique_count: int


@dataclass(frozen=True, slots=True)
class RareFragment:
    """A substring shared by a bounded number of submissions."""

    text: str
    submission_ids: tuple[str, ...]
    occurrences: tuple[tuple[str, int], ...]  # (submission_id, offset)
    node: int

    @property
    def length(self) -> int:
        return len(self.text)


def _common_prefix(a: str, a_start: int, a_end: int, b: str, b_start: int, b_end: int) -> int:
    n = min(a_end - a_start, b_end - b_start)
    k = 0
    while k < n and a[a_start + k] == b[b_start + k]:
        k += 1
    return k


class SubstringIndex:
    """Substring-frequency index with per-submission occurrence lists.

    Occurrences shorter than ``min_length`` characters are not recorded:
    short incidental matches are not evidence of copying.
    """

    def __init__(self, min_length: int = DEFAULT_MIN_LENGTH) -> None:
        if min_length < 1:
            raise ValueError(f"min_length must be >= 1, got {min_length}")
        self.min_length = min_length
        self._docs: list[str] = []
        self._nodes: list[_Node] = [_Node(doc=-1, start=0, end=0, parent=-1, depth=0)]
        self._stale = False

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(
        self,
        text: str,
        submission_id: str,
        max_substring_length: int | None = None,
    ) -> None:
        """Insert every substring of *text* starting at each offset.

        With *max_substring_length* set, the string inserted at offset ``i``
        is ``text[i:i + max_substring_length]``; otherwise the whole suffix.
        """
        if max_substring_length is not None and max_substring_length < 1:
            raise ValueError("max_substring_length must be >= 1")
        doc = len(self._docs)
        self._docs.append(text)
        n = len(text)
        for i in range(n):
            end = n if max_substring_length is None else min(n, i + max_substring_length)
            terminal = self._insert_one(doc, i, end)
            if end - i >= self.min_length:
                self._nodes[terminal].locations.setdefault(submission_id, []).append(i)
        self._stale = True
        log.debug(
            "Indexed %s (%d chars); trie has %d nodes",
            submission_id, n, len(self._nodes),
        )

    def _insert_one(self, doc: int, pos: int, end: int) -> int:
        """Walk/split edges for ``docs[doc][pos:end]``; return the terminal node."""
        text = self._docs[doc]
        node = ROOT
        while pos < end:
            child = self._nodes[node].children.get(text[pos])
            if child is None:
                return self._new_node(doc, pos, end, parent=node)
            c = self._nodes[child]
            label_len = c.end - c.start
            k = _common_prefix(self._docs[c.doc], c.start, c.end, text, pos, end)
            if k == label_len:
                node = child
                pos += k
                continue
            mid = self._split(child, k)
            pos += k
            if pos == end:
                return mid
            return self._new_node(doc, pos, end, parent=mid)
        return node

    def _new_node(self, doc: int, start: int, end: int, parent: int) -> int:
        idx = len(self._nodes)
        p = self._nodes[parent]
        self._nodes.append(_Node(
            doc=doc, start=start, end=end, parent=parent, depth=p.depth + end - start,
        ))
        p.children[self._docs[doc][start]] = idx
        return idx

    def _split(self, child: int, k: int) -> int:
        """Cut *child*'s edge after *k* chars; return the new middle node."""
        c = self._nodes[child]
        label = self._docs[c.doc]
        idx = len(self._nodes)
        parent = self._nodes[c.parent]
        mid = _Node(
            doc=c.doc,
            start=c.start,
            end=c.start + k,
            parent=c.parent,
            depth=parent.depth + k,
        )
        mid.children[label[c.start + k]] = child
        self._nodes.append(mid)
        parent.children[label[c.start]] = idx
        c.start += k
        c.parent = idx
        return idx

    def clear_locations(self) -> None:
        """Drop every occurrence list, keeping the trie structure."""
        for node in self._nodes:
            node.locations.clear()
        self._stale = True

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @property
    def stale(self) -> bool:
        return self._stale

    def update_stats(self) -> None:
        """Recompute ``total`` and ``unique_count`` for every node, bottom-up."""
        if not self._stale:
            return
        order: list[int] = []
        stack = [ROOT]
        while stack:
            n = stack.pop()
            order.append(n)
            stack.extend(self._nodes[n].children.values())

        pending: dict[int, set[str]] = {}
        for n in reversed(order):
            node = self._nodes[n]
            child_sets = [pending.pop(c) for c in node.children.values()]
            if child_sets:
                acc = max(child_sets, key=len)
                for s in child_sets:
                    if s is not acc:
                        acc |= s
            else:
                acc = set()
            acc.update(node.locations)
            node.total = sum(len(v) for v in node.locations.values()) + sum(
                self._nodes[c].total for c in node.children.values()
            )
            node.unique_count = len(acc)
            pending[n] = acc
        self._stale = False

    def stats(self, node: int) -> NodeStats:
        """Rollup counters of *node*; raises StaleIndexError if out of date."""
        if self._stale:
            raise StaleIndexError("index modified since last update_stats()")
        n = self._nodes[node]
        return NodeStats(total=n.total, unique_count=n.unique_count)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def find(self, s: str) -> int | None:
        """Node whose path spells *s*, or whose edge *s* ends inside."""
        self.update_stats()
        node = ROOT
        pos = 0
        while pos < len(s):
            child = self._nodes[node].children.get(s[pos])
            if child is None:
                return None
            c = self._nodes[child]
            k = _common_prefix(self._docs[c.doc], c.start, c.end, s, pos, len(s))
            if pos + k == len(s):
                return child
            if k < c.end - c.start:
                return None
            node = child
            pos += k
        return node

    def string_of(self, node: int) -> str:
        """The string spelled from the root through *node*'s whole label."""
        parts: list[str] = []
        while node != ROOT:
            n = self._nodes[node]
            parts.append(self._docs[n.doc][n.start:n.end])
            node = n.parent
        return "".join(reversed(parts))

    def depth(self, node: int) -> int:
        return self._nodes[node].depth

    def children(self, node: int) -> list[int]:
        """Child nodes ordered by their first character."""
        kids = self._nodes[node].children
        return [kids[ch] for ch in sorted(kids)]

    def locations(self, node: int) -> list[tuple[str, int]]:
        """All ``(submission_id, offset)`` occurrences in *node*'s subtree."""
        out: list[tuple[str, int]] = []
        for n in self._walk(node):
            for sid, offsets in self._nodes[n].locations.items():
                out.extend((sid, off) for off in offsets)
        out.sort()
        return out

    def _walk(self, start: int = ROOT) -> Iterator[int]:
        """Pre-order traversal, children in character order."""
        stack = [start]
        while stack:
            n = stack.pop()
            yield n
            stack.extend(reversed(self.children(n)))

    def find_rare(self, min_freq: int, max_freq: int) -> list[int]:
        """Nodes (root excluded) shared by ``min_freq..max_freq`` submissions."""
        self.update_stats()
        return [
            n for n in self._walk()
            if n != ROOT and min_freq <= self._nodes[n].unique_count <= max_freq
        ]

    def rare_fragments(
        self,
        min_freq: int,
        max_freq: int,
        min_length: int | None = None,
    ) -> list[RareFragment]:
        """Maximal rare fragments, longest first.

        A node is dropped when one of its children is shared by the same
        submissions (the longer string says more). A fragment is also dropped
        when each of its occurrences lies inside an occurrence of a longer
        kept fragment.
        """
        min_length = self.min_length if min_length is None else min_length
        candidates: list[int] = []
        for n in self.find_rare(min_freq, max_freq):
            node = self._nodes[n]
            if node.depth < min_length:
                continue
            if any(self._nodes[c].unique_count == node.unique_count for c in node.children.values()):
                continue
            candidates.append(n)
        candidates.sort(key=lambda n: (-self._nodes[n].depth, n))

        kept: list[RareFragment] = []
        spans: dict[str, list[tuple[int, int]]] = {}
        for n in candidates:
            length = self._nodes[n].depth
            occurrences = self.locations(n)
            if occurrences and all(
                any(s <= off and off + length <= e for s, e in spans.get(sid, ()))
                for sid, off in occurrences
            ):
                continue
            for sid, off in occurrences:
                spans.setdefault(sid, []).append((off, off + length))
            kept.append(RareFragment(
                text=self.string_of(n),
                submission_ids=tuple(sorted({sid for sid, _ in occurrences})),
                occurrences=tuple(occurrences),
                node=n,
            ))
        log.debug(
            "%d rare fragments (freq %d..%d) from %d candidates",
            len(kept), min_freq, max_freq, len(candidates),
        )
        return kept
