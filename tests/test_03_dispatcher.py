"""Tests for parallel chunk dispatch and the merge gate."""
from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import pytest

from speech_studio.core.logging import get_request_id, set_request_id
from speech_studio.tts.chunker import TextChunk
from speech_studio.tts.client import SynthesisError
from speech_studio.tts.dispatcher import ChunkDispatchError, dispatch_chunks
from speech_studio.tts.storage import StorageError


def _key(index: int) -> str:
    return f"alice/2025-04-03-14:03/speech-chunk-{index}.mp3"


def _chunks(*texts: str):
    return [TextChunk(index=i + 1, text=t) for i, t in enumerate(texts)]


class TestSuccess:
    def test_keys_in_index_order_regardless_of_completion(self, memory_store):
        # Earlier chunks finish last
        delays = {"a": 0.15, "b": 0.05, "c": 0.0}

        def synthesize(text: str) -> bytes:
            time.sleep(delays[text])
            return text.upper().encode()

        keys = dispatch_chunks(_chunks("a", "b", "c"), synthesize, memory_store, _key)

        assert keys == [_key(1), _key(2), _key(3)]
        assert [memory_store.get(k) for k in keys] == [b"A", b"B", b"C"]

    def test_chunks_run_concurrently(self, memory_store):
        barrier = threading.Barrier(3, timeout=5)

        def synthesize(text: str) -> bytes:
            barrier.wait()  # deadlocks unless all three run at once
            return b"x"

        keys = dispatch_chunks(_chunks("a", "b", "c"), synthesize, memory_store, _key)
        assert len(keys) == 3

    def test_empty_input(self, memory_store):
        synthesize = MagicMock()
        assert dispatch_chunks([], synthesize, memory_store, _key) == []
        synthesize.assert_not_called()

    def test_bounded_pool(self, memory_store):
        active = {"now": 0, "peak": 0}
        lock = threading.Lock()

        def synthesize(text: str) -> bytes:
            with lock:
                active["now"] += 1
                active["peak"] = max(active["peak"], active["now"])
            time.sleep(0.02)
            with lock:
                active["now"] -= 1
            return b"x"

        dispatch_chunks(_chunks(*"abcdef"), synthesize, memory_store, _key, max_workers=2)
        assert active["peak"] <= 2

    def test_request_id_reaches_workers(self, memory_store):
        seen = []
        set_request_id("req-abc")

        def synthesize(text: str) -> bytes:
            seen.append(get_request_id())
            return b"x"

        try:
            dispatch_chunks(_chunks("a", "b"), synthesize, memory_store, _key)
        finally:
            set_request_id("-")
        assert seen == ["req-abc", "req-abc"]


class TestFailure:
    def test_failing_chunk_index_reported(self, memory_store):
        chunks = [TextChunk(index=i, text=f"t{i}") for i in range(1, 6)]

        def synthesize(text: str) -> bytes:
            if text == "t3":
                raise SynthesisError("TTS request failed (attempt #2): 500 - boom", attempt=2)
            return text.encode()

        with pytest.raises(ChunkDispatchError) as exc_info:
            dispatch_chunks(chunks, synthesize, memory_store, _key)

        assert exc_info.value.index == 3
        assert "attempt #2" in exc_info.value.reason
        assert isinstance(exc_info.value.cause, SynthesisError)

    def test_lowest_failing_index_wins(self, memory_store):
        chunks = [TextChunk(index=i, text=f"t{i}") for i in range(1, 6)]

        def synthesize(text: str) -> bytes:
            index = int(text[1:])
            if index in (2, 4):
                # Make the higher index fail first
                time.sleep(0.1 if index == 2 else 0.0)
                raise RuntimeError(f"failed {index}")
            return b"ok"

        with pytest.raises(ChunkDispatchError) as exc_info:
            dispatch_chunks(chunks, synthesize, memory_store, _key)
        assert exc_info.value.index == 2

    def test_all_tasks_finish_before_error(self, memory_store):
        finished = []

        def synthesize(text: str) -> bytes:
            if text == "t1":
                raise RuntimeError("first fails immediately")
            time.sleep(0.05)
            finished.append(text)
            return b"ok"

        chunks = [TextChunk(index=i, text=f"t{i}") for i in range(1, 4)]
        with pytest.raises(ChunkDispatchError):
            dispatch_chunks(chunks, synthesize, memory_store, _key)
        assert sorted(finished) == ["t2", "t3"]

    def test_storage_failure_is_a_chunk_failure(self):
        store = MagicMock()
        store.put.side_effect = StorageError("disk full")

        with pytest.raises(ChunkDispatchError) as exc_info:
            dispatch_chunks(_chunks("a"), lambda t: b"x", store, _key)
        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.cause, StorageError)

    def test_merger_never_invoked_on_failure(self, memory_store):
        merger = MagicMock()

        def synthesize(text: str) -> bytes:
            if text == "bad":
                raise RuntimeError("bad")
            return b"ok"

        def pipeline():
            keys = dispatch_chunks(_chunks("ok", "bad"), synthesize, memory_store, _key)
            merger(keys)

        with pytest.raises(ChunkDispatchError):
            pipeline()
        merger.assert_not_called()
