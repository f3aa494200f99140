"""
Text Chunking for the upstream TTS API.

The speech API rejects inputs above a fixed size, so long texts are split
into consecutive pieces of at most ``max_graphemes`` user-perceived
characters. Boundaries always fall between extended grapheme clusters
(segmented with the ``regex`` module's ``\\X``), so a combining accent, an
emoji ZWJ sequence or a flag is never cut in half.

Guarantees:
    - "".join(c.text for c in chunks) == text
    - every chunk holds at most max_graphemes clusters
    - only the last chunk may hold fewer
    - empty input yields no chunks

Example:
    >>> result = chunk_text("Hello world", max_graphemes=4)
    >>> [c.text for c in result.chunks]
    ['Hell', 'o wo', 'rld']
    >>> [c.index for c in result.chunks]
    [1, 2, 3]
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List

import regex

from speech_studio.core.logging import get_logger, verbose
from speech_studio.utils.timeit import timeit

_LOG = get_logger("speech-studio.chunker")

_GRAPHEME = regex.compile(r"\X")


@dataclass(frozen=True)
class TextChunk:
    """
    One piece of the request text.

    Attributes:
        index: 1-based position within the request.
        text: A run of whole grapheme clusters.
    """
    index: int
    text: str


@dataclass
class ChunkResult:
    """
    Result of a chunking operation.

    Attributes:
        chunks: Ordered chunks ready for synthesis.
        timings_s: Timing measurements in seconds.
    """
    chunks: List[TextChunk]
    timings_s: Dict[str, float]


def count_graphemes(text: str) -> int:
    """Number of user-perceived characters in ``text``."""
    return len(_GRAPHEME.findall(text))


def chunk_text(text: str, max_graphemes: int = 4096) -> ChunkResult:
    """
    Split text into grapheme-bounded chunks.

    Args:
        text: Input text. It is not trimmed or normalized here.
        max_graphemes: Maximum grapheme clusters per chunk.

    Returns:
        ChunkResult with 1-based TextChunks.

    Raises:
        ValueError: If max_graphemes is not positive.
    """
    if max_graphemes <= 0:
        raise ValueError(f"max_graphemes must be positive, got {max_graphemes}")

    timings: Dict[str, float] = {}
    chunks: List[TextChunk] = []

    with timeit("chunk") as t:
        graphemes = _GRAPHEME.findall(text)
        for start in range(0, len(graphemes), max_graphemes):
            piece = "".join(graphemes[start:start + max_graphemes])
            chunks.append(TextChunk(index=len(chunks) + 1, text=piece))

    timings["chunk"] = t.seconds
    verbose(
        _LOG, "chunked",
        chunks=len(chunks),
        graphemes=len(graphemes),
        max_graphemes=max_graphemes,
        seconds=round(timings["chunk"], 4),
    )

    return ChunkResult(chunks=chunks, timings_s=timings)
