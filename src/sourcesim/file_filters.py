"""Boolean file-selection expressions.

Two node types form a single tagged-variant tree:

* **PatternFilter** (leaf) — one regex predicate on a file's name, path,
  extension or (whitespace-collapsed) content.
* **CompositeFilter** (compound) — ``all`` / ``any`` / ``none`` of children.

Functions:

* ``parse_filter`` — stack-based token mini-language (``AND``/``OR``/``NOT``/``END``).
* ``accepts`` / ``select_files`` — evaluation against files and submissions.
* ``filter_to_json`` / ``filter_from_json`` — JSON round-trip.
* ``describe_filter`` — one-line human-readable rendering.
* ``validate_filter`` — guardrails (depth, node count, empty ``any``).
"""
from __future__ import annotations

import re
import shlex
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from sourcesim.submission import SourceFile, Submission


class FilterSyntaxError(ValueError):
    """Malformed filter expression (unbalanced tokens, bad prefix or regex)."""


# ---------------------------------------------------------------------------
# AST node types
# ---------------------------------------------------------------------------

TARGETS: tuple[str, ...] = ("name", "path", "extension", "content")
MODES: tuple[str, ...] = ("contains", "matches", "ends_with")
OPERATORS: tuple[str, ...] = ("all", "any", "none")

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class PatternFilter:
    """Leaf: one regex predicate against a file attribute."""

    target: str  # "name" | "path" | "extension" | "content"
    pattern: str
    mode: str = "contains"  # "contains" | "matches" | "ends_with"
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.target not in TARGETS:
            raise FilterSyntaxError(f"Unknown filter target: {self.target!r}")
        if self.mode not in MODES:
            raise FilterSyntaxError(f"Unknown match mode: {self.mode!r}")
        source = f"(?:{self.pattern})$" if self.mode == "ends_with" else self.pattern
        try:
            regex = re.compile(source)
        except re.error as exc:
            raise FilterSyntaxError(f"Invalid regex {self.pattern!r}: {exc}") from exc
        object.__setattr__(self, "_regex", regex)

    def accepts(self, file: SourceFile) -> bool:
        subject = _subject(self.target, file)
        if self.mode == "matches":
            return self._regex.fullmatch(subject) is not None
        return self._regex.search(subject) is not None


@dataclass(frozen=True, slots=True)
class CompositeFilter:
    """Compound: all/any/none of children (PatternFilter | CompositeFilter)."""

    operator: str  # "all" | "any" | "none"
    children: tuple[PatternFilter | CompositeFilter, ...] = ()

    def __post_init__(self) -> None:
        if self.operator not in OPERATORS:
            raise FilterSyntaxError(f"Invalid filter operator: {self.operator!r}")

    def accepts(self, file: SourceFile) -> bool:
        if self.operator == "all":
            return all(c.accepts(file) for c in self.children)
        if self.operator == "any":
            return any(c.accepts(file) for c in self.children)
        return not any(c.accepts(file) for c in self.children)


FilterNode = PatternFilter | CompositeFilter


def _subject(target: str, file: SourceFile) -> str:
    if target == "name":
        return file.name
    if target == "path":
        return file.path
    if target == "extension":
        return file.extension
    return _WHITESPACE_RE.sub(" ", file.content)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def accepts(node: FilterNode, file: SourceFile) -> bool:
    return node.accepts(file)


def select_files(submission: Submission, node: FilterNode | None) -> Submission:
    """Return a copy of *submission* holding only the files *node* accepts."""
    if node is None:
        return submission
    return submission.with_files(f for f in submission.files if node.accepts(f))


# ---------------------------------------------------------------------------
# Token mini-language
# ---------------------------------------------------------------------------

_OPERATOR_TOKENS: dict[str, str] = {"AND": "all", "OR": "any", "NOT": "none"}
_END_TOKEN = "END"
_PREFIX_TARGETS: dict[str, str] = {"c": "content", "p": "path", "e": "extension"}
_PREFIX_RE = re.compile(r"([a-z]):(.*)", re.DOTALL)


@dataclass(slots=True)
class _OpenComposite:
    operator: str
    children: list[FilterNode] = field(default_factory=list)

    def close(self) -> CompositeFilter:
        return CompositeFilter(operator=self.operator, children=tuple(self.children))


def parse_leaf(token: str) -> PatternFilter:
    """Parse ``c:<re>``, ``p:<re>``, ``e:<re>`` or a bare name regex."""
    m = _PREFIX_RE.fullmatch(token)
    if m is None:
        return PatternFilter(target="name", pattern=token)
    prefix, pattern = m.groups()
    target = _PREFIX_TARGETS.get(prefix)
    if target is None:
        raise FilterSyntaxError(f"Undefined predicate prefix {prefix + ':'!r} in {token!r}")
    return PatternFilter(target=target, pattern=pattern)


def _close_pending_nots(stack: list[_OpenComposite]) -> CompositeFilter | None:
    """Pop single-child ``none`` composites off *stack* into their parents.

    Returns the closed root when the cascade empties the stack.
    """
    while stack and stack[-1].operator == "none" and len(stack[-1].children) == 1:
        node = stack.pop().close()
        if not stack:
            return node
        stack[-1].children.append(node)
    return None


def parse_filter(tokens: Iterable[str] | str) -> FilterNode:
    """Build a filter tree from mini-language tokens.

    ``AND``/``OR``/``NOT`` open an ``all``/``any``/``none`` composite, ``END``
    closes the innermost one, anything else is a leaf added to the innermost
    open composite. A ``NOT`` holding exactly one child closes itself before
    the next leaf is added, so ``AND a NOT b c`` means ``a and not b and c``.
    A ``NOT`` that received its only child from a closed nested operator
    behaves the same; one that already holds two children stays open until
    an explicit ``END``.

    A string argument is split with shell quoting rules.

    Raises ``FilterSyntaxError`` on unbalanced or malformed input.
    """
    if isinstance(tokens, str):
        tokens = shlex.split(tokens)

    stack: list[_OpenComposite] = []
    result: CompositeFilter | None = None

    for token in tokens:
        if result is not None:
            raise FilterSyntaxError(f"Unexpected token {token!r} after end of expression")

        operator = _OPERATOR_TOKENS.get(token)
        if operator is not None:
            stack.append(_OpenComposite(operator))
            continue

        if token == _END_TOKEN:
            if not stack:
                raise FilterSyntaxError("END without a matching AND/OR/NOT")
            node = stack.pop().close()
            if stack:
                stack[-1].children.append(node)
            else:
                result = node
            continue

        leaf = parse_leaf(token)
        result = _close_pending_nots(stack)
        if not stack:
            if result is not None:
                raise FilterSyntaxError(
                    f"Unexpected token {token!r} after end of expression"
                )
            raise FilterSyntaxError(f"Predicate {token!r} outside any AND/OR/NOT")
        stack[-1].children.append(leaf)

    if result is not None:
        return result
    result = _close_pending_nots(stack)
    if result is not None:
        return result
    if not stack:
        raise FilterSyntaxError("Empty filter expression")
    if len(stack) > 1:
        unclosed = ", ".join(o.operator for o in stack[1:])
        raise FilterSyntaxError(f"Unclosed operators at end of input: {unclosed}")
    return stack[0].close()


# ---------------------------------------------------------------------------
# JSON serialization
# ---------------------------------------------------------------------------

def filter_to_json(node: FilterNode) -> dict[str, Any]:
    """Serialize a filter tree to a JSON-compatible dict.

    Leaf::

        {"target": "name", "mode": "contains", "pattern": "Test"}

    Composite::

        {"op": "all", "children": [...]}
    """
    if isinstance(node, PatternFilter):
        return {"target": node.target, "mode": node.mode, "pattern": node.pattern}
    return {
        "op": node.operator,
        "children": [filter_to_json(c) for c in node.children],
    }


def filter_from_json(data: Any, *, max_depth: int = 32) -> FilterNode:
    """Deserialize a JSON dict into a filter tree.

    Raises ``FilterSyntaxError`` on malformed input.
    """

    def _parse(node: Any, depth: int) -> FilterNode:
        if depth > max_depth:
            raise FilterSyntaxError(f"Filter depth {depth} exceeds maximum {max_depth}")
        if not isinstance(node, dict):
            raise FilterSyntaxError("Filter node must be an object")
        if "pattern" in node:
            return PatternFilter(
                target=str(node.get("target", "name")),
                pattern=str(node["pattern"]),
                mode=str(node.get("mode", "contains")),
            )
        if "op" in node:
            raw_children = node.get("children", [])
            if not isinstance(raw_children, list):
                raise FilterSyntaxError("Composite 'children' must be a list")
            return CompositeFilter(
                operator=str(node["op"]).lower(),
                children=tuple(_parse(c, depth + 1) for c in raw_children),
            )
        raise FilterSyntaxError(f"Unrecognised filter node shape: {sorted(node.keys())}")

    return _parse(data, 1)


def describe_filter(node: FilterNode) -> str:
    """Render ``node`` on one line, e.g. ``all(name~'Test', none(name~'Bad'))``."""
    if isinstance(node, PatternFilter):
        sym = {"contains": "~", "matches": "=~", "ends_with": "$~"}[node.mode]
        return f"{node.target}{sym}{node.pattern!r}"
    return f"{node.operator}({', '.join(describe_filter(c) for c in node.children)})"


# ---------------------------------------------------------------------------
# Validation / guardrails
# ---------------------------------------------------------------------------

MAX_FILTER_DEPTH = 8
MAX_FILTER_NODES = 64


@dataclass(frozen=True, slots=True)
class FilterValidationError:
    """Structured problem found by ``validate_filter``."""

    code: str  # "max_depth" | "max_nodes" | "empty_any"
    message: str
    path: str = ""  # dot-separated path into the tree (e.g. "children.0")


def validate_filter(
    node: FilterNode,
    *,
    max_depth: int = MAX_FILTER_DEPTH,
    max_nodes: int = MAX_FILTER_NODES,
) -> list[FilterValidationError]:
    """Return a (possibly empty) list of problems; never raises."""
    errors: list[FilterValidationError] = []
    count = _count_nodes(node)
    if count > max_nodes:
        errors.append(FilterValidationError(
            code="max_nodes",
            message=f"Filter has {count} nodes, maximum is {max_nodes}",
        ))
    depth = _measure_depth(node)
    if depth > max_depth:
        errors.append(FilterValidationError(
            code="max_depth",
            message=f"Filter depth is {depth}, maximum is {max_depth}",
        ))
    _check_empty_any(node, errors, "")
    return errors


def _count_nodes(node: FilterNode) -> int:
    if isinstance(node, PatternFilter):
        return 1
    return 1 + sum(_count_nodes(c) for c in node.children)


def _measure_depth(node: FilterNode) -> int:
    """A single leaf has depth 1."""
    if isinstance(node, PatternFilter) or not node.children:
        return 1
    return 1 + max(_measure_depth(c) for c in node.children)


def _check_empty_any(
    node: FilterNode,
    errors: list[FilterValidationError],
    path: str,
) -> None:
    if isinstance(node, PatternFilter):
        return
    if node.operator == "any" and not node.children:
        errors.append(FilterValidationError(
            code="empty_any",
            message="'any' composite has no children and rejects every file",
            path=path,
        ))
    for i, child in enumerate(node.children):
        child_path = f"{path}.children.{i}" if path else f"children.{i}"
        _check_empty_any(child, errors, child_path)
