"""
Audio Merger.

Concatenates per-chunk audio buffers, in chunk order, into the single
deliverable artifact.

This is raw byte concatenation, not frame-aware re-muxing. Each chunk is
an independently decodable MP3 stream and MP3 decoders resynchronise on
frame headers, so the joined file plays through. Stray ID3 tags or
encoder delay between chunks are kept as-is.
"""
from __future__ import annotations

from typing import Iterable, Sequence

from speech_studio.core.logging import get_logger, verbose
from speech_studio.core.metrics import metrics
from speech_studio.tts.storage import ArtifactStore
from speech_studio.utils.timeit import timeit

_LOG = get_logger("speech-studio.merger")


def concat_audio(buffers: Iterable[bytes]) -> bytes:
    """Join buffers in the given order."""
    return b"".join(buffers)


def merge_audio(store: ArtifactStore, source_keys: Sequence[str], dest_key: str) -> str:
    """
    Read ``source_keys`` in order and persist their concatenation.

    The destination is written with overwrite=False; an existing merged
    artifact is never replaced.

    Returns:
        ``dest_key``.

    Raises:
        ArtifactExistsError: If ``dest_key`` is already present.
        StorageError: If a source cannot be read or the write fails.
    """
    with timeit("merge") as t:
        merged = concat_audio(store.get(key) for key in source_keys)
        store.put(dest_key, merged, overwrite=False)

    metrics.record_audio_bytes(len(merged))
    verbose(_LOG, "merged", sources=len(source_keys), bytes=len(merged), seconds=round(t.seconds, 4))
    return dest_key
