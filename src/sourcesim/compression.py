"""General-purpose byte compressors used to estimate information content.

Compressors are held fixed for one analysis run: sizes from different
algorithms are not comparable.
"""

from __future__ import annotations

import bz2
import lzma
import zlib
from collections.abc import Callable
from dataclasses import dataclass

from sourcesim.config import ConfigurationError


def _zlib(data: bytes) -> bytes:
    return zlib.compress(data, 9)


def _bz2(data: bytes) -> bytes:
    return bz2.compress(data, 9)


def _lzma(data: bytes) -> bytes:
    return lzma.compress(data, preset=9)


@dataclass(frozen=True, slots=True)
class Compressor:
    """A named, deterministic ``bytes -> bytes`` compressor."""

    name: str
    compress: Callable[[bytes], bytes]

    def compressed_size(self, data: bytes) -> int:
        return len(self.compress(data))


COMPRESSORS: dict[str, Compressor] = {
    "zlib": Compressor("zlib", _zlib),
    "bz2": Compressor("bz2", _bz2),
    "lzma": Compressor("lzma", _lzma),
}


def get_compressor(name: str) -> Compressor:
    try:
        return COMPRESSORS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown compressor {name!r} (expected one of {sorted(COMPRESSORS)})"
        ) from None
