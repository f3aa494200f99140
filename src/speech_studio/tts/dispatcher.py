"""
Fan-out Dispatcher for chunk synthesis.

Runs the synthesis client over every chunk of one request concurrently
and stores each chunk's audio under its own key.

Execution Model:
    1. One task per chunk is submitted to a ThreadPoolExecutor
    2. A single join barrier waits for ALL tasks (no early exit)
    3. Outcomes are scanned in chunk-index order, never completion order
    4. The lowest failing index aborts the request with ChunkDispatchError

    Siblings of a failed task are not cancelled; they finish and their
    buffers stay on disk, but no partial result is returned and the merge
    step never runs.

Each task writes a uniquely named key, so tasks share nothing and no lock
is needed. The caller's request id is carried into the worker threads
through contextvars so per-chunk log lines stay correlated.

Usage:
    keys = dispatch_chunks(
        chunks,
        synthesize=lambda text: client.synthesize(text, voice="onyx"),
        store=store,
        key_for=lambda i: artifact_key(user_id, ts, chunk_audio_name(i)),
    )
"""
from __future__ import annotations

import contextvars
from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from speech_studio.core.logging import fail, get_logger, verbose
from speech_studio.core.metrics import metrics
from speech_studio.tts.chunker import TextChunk
from speech_studio.tts.storage import ArtifactStore
from speech_studio.utils.timeit import timeit

_LOG = get_logger("speech-studio.dispatcher")

SynthesizeFn = Callable[[str], bytes]
KeyFn = Callable[[int], str]


class ChunkDispatchError(Exception):
    """
    A chunk of the request could not be synthesized or stored.

    Attributes:
        index: 1-based index of the lowest failing chunk.
        reason: Failure description of that chunk.
        cause: The exception raised by that chunk's task.
    """

    def __init__(self, index: int, reason: str, cause: Optional[BaseException] = None):
        self.index = index
        self.reason = reason
        self.cause = cause
        super().__init__(f"chunk {index} failed: {reason}")


@dataclass(frozen=True)
class SynthesisOutcome:
    """Result of one chunk task: a stored key or a failure, tagged with the index."""
    index: int
    key: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _synthesize_chunk(chunk: TextChunk, synthesize: SynthesizeFn, store: ArtifactStore, key_for: KeyFn) -> str:
    with timeit("chunk") as t:
        audio = synthesize(chunk.text)
        key = key_for(chunk.index)
        store.put(key, audio)
    verbose(_LOG, "chunk_done", index=chunk.index, bytes=len(audio), seconds=round(t.seconds, 3))
    return key


def _collect(index: int, future: Future) -> SynthesisOutcome:
    error = future.exception()
    if error is not None:
        return SynthesisOutcome(index=index, error=error)
    return SynthesisOutcome(index=index, key=future.result())


def dispatch_chunks(
    chunks: Sequence[TextChunk],
    synthesize: SynthesizeFn,
    store: ArtifactStore,
    key_for: KeyFn,
    max_workers: Optional[int] = None,
) -> List[str]:
    """
    Synthesize and store every chunk, in parallel.

    Args:
        chunks: Chunks of one request, in index order.
        synthesize: Turns chunk text into audio bytes.
        store: Destination of each chunk's audio.
        key_for: Maps a 1-based chunk index to its store key.
        max_workers: Pool size; None or 0 means one worker per chunk.

    Returns:
        Store keys of the chunk buffers, in index order.

    Raises:
        ChunkDispatchError: For the lowest-indexed failing chunk, after all
            tasks have finished.
    """
    if not chunks:
        return []

    workers = max_workers or len(chunks)
    futures: List[tuple[int, Future]] = []

    with timeit("dispatch") as t:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="speech-chunk") as pool:
            for chunk in chunks:
                ctx = contextvars.copy_context()
                future = pool.submit(ctx.run, _synthesize_chunk, chunk, synthesize, store, key_for)
                futures.append((chunk.index, future))

            wait([f for _, f in futures], return_when=ALL_COMPLETED)

    outcomes = sorted((_collect(i, f) for i, f in futures), key=lambda o: o.index)
    for outcome in outcomes:
        metrics.record_chunk("ok" if outcome.ok else "failed")

    for outcome in outcomes:
        if not outcome.ok:
            reason = str(outcome.error) or type(outcome.error).__name__
            fail(
                _LOG, "dispatch_failed",
                index=outcome.index,
                failed=sum(1 for o in outcomes if not o.ok),
                chunks=len(outcomes),
                error=reason,
            )
            raise ChunkDispatchError(outcome.index, reason, cause=outcome.error) from outcome.error

    verbose(_LOG, "dispatched", chunks=len(outcomes), workers=workers, seconds=round(t.seconds, 3))
    return [o.key for o in outcomes if o.key is not None]
