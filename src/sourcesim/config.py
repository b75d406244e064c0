"""Analysis configuration: defaults, JSON loading and validation."""
from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sourcesim.io_utils import load_json


class ConfigurationError(ValueError):
    """Invalid or unresolvable configuration; aborts the run."""


DEFAULT_COMPRESSOR = "zlib"
DEFAULT_SEPARATOR = ""
DEFAULT_MIN_FRAGMENT_LENGTH = 5     # shorter shared substrings are not evidence
DEFAULT_MAX_SUBSTRING_LENGTH = 200  # bound on indexed substring length
DEFAULT_RARE_MIN = 2                # a fragment needs at least two owners
DEFAULT_RARE_MAX = 3
DEFAULT_EXECUTOR = "thread"
DEFAULT_MEASURE = "ncd"

EXECUTORS: tuple[str, ...] = ("thread", "process")
MEASURES: tuple[str, ...] = ("ncd", "raw_ncd", "comment_ncd", "token_histogram")


def default_workers() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True, slots=True)
class AnalysisConfig:
    """Settings held fixed for one analysis run."""

    compressor: str = DEFAULT_COMPRESSOR
    separator: str = DEFAULT_SEPARATOR
    measure: str = DEFAULT_MEASURE
    min_fragment_length: int = DEFAULT_MIN_FRAGMENT_LENGTH
    max_substring_length: int | None = DEFAULT_MAX_SUBSTRING_LENGTH
    rare_min: int = DEFAULT_RARE_MIN
    rare_max: int = DEFAULT_RARE_MAX
    workers: int = dataclasses.field(default_factory=default_workers)
    executor: str = DEFAULT_EXECUTOR
    language: str | None = None  # pin a tokenizer instead of voting
    filter_tokens: tuple[str, ...] = ()
    ignore_whitespace: bool = True  # raw_ncd only
    outlier_importance: float = 0.0

    def __post_init__(self) -> None:
        validate_config(self)


def validate_config(cfg: AnalysisConfig) -> None:
    """Raise ConfigurationError on the first invalid setting."""
    from sourcesim.compression import get_compressor

    get_compressor(cfg.compressor)
    if cfg.measure not in MEASURES:
        raise ConfigurationError(f"Unknown measure {cfg.measure!r} (expected one of {MEASURES})")
    if cfg.executor not in EXECUTORS:
        raise ConfigurationError(f"Unknown executor {cfg.executor!r} (expected one of {EXECUTORS})")
    if cfg.workers < 1:
        raise ConfigurationError(f"workers must be >= 1, got {cfg.workers}")
    if cfg.min_fragment_length < 1:
        raise ConfigurationError("min_fragment_length must be >= 1")
    if cfg.max_substring_length is not None and cfg.max_substring_length < cfg.min_fragment_length:
        raise ConfigurationError(
            f"max_substring_length ({cfg.max_substring_length}) is shorter than "
            f"min_fragment_length ({cfg.min_fragment_length})"
        )
    if not 1 <= cfg.rare_min <= cfg.rare_max:
        raise ConfigurationError(
            f"rare range must satisfy 1 <= min <= max, got {cfg.rare_min}..{cfg.rare_max}"
        )
    if cfg.outlier_importance < 0:
        raise ConfigurationError("outlier_importance must be >= 0")


_FIELD_NAMES = frozenset(f.name for f in dataclasses.fields(AnalysisConfig))


def config_from_dict(data: Any) -> AnalysisConfig:
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a JSON object")
    unknown = sorted(set(data) - _FIELD_NAMES)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {unknown}")
    values = dict(data)
    if "filter_tokens" in values:
        tokens = values["filter_tokens"]
        if not isinstance(tokens, list) or not all(isinstance(t, str) for t in tokens):
            raise ConfigurationError("filter_tokens must be a list of strings")
        values["filter_tokens"] = tuple(tokens)
    try:
        return AnalysisConfig(**values)
    except TypeError as exc:
        raise ConfigurationError(f"Bad configuration value: {exc}") from exc


def load_config(path: Path) -> AnalysisConfig:
    """Read an AnalysisConfig from a JSON file."""
    try:
        data = load_json(path)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {exc}") from exc
    return config_from_dict(data)


def config_to_dict(cfg: AnalysisConfig) -> dict[str, Any]:
    d = dataclasses.asdict(cfg)
    d["filter_tokens"] = list(cfg.filter_tokens)
    return d
