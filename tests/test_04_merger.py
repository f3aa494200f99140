"""Tests for audio concatenation."""
from __future__ import annotations

import pytest

from speech_studio.tts.merger import concat_audio, merge_audio
from speech_studio.tts.storage import ArtifactExistsError, ArtifactMissingError


def test_concat_in_given_order():
    assert concat_audio([b"AAA", b"BB", b"C"]) == b"AAABBC"


def test_concat_empty():
    assert concat_audio([]) == b""


class TestMergeAudio:
    def test_merges_sources_into_dest(self, memory_store):
        memory_store.put("u/ts/speech-chunk-1.mp3", b"AAA")
        memory_store.put("u/ts/speech-chunk-2.mp3", b"BB")
        memory_store.put("u/ts/speech-chunk-3.mp3", b"C")

        dest = merge_audio(
            memory_store,
            ["u/ts/speech-chunk-1.mp3", "u/ts/speech-chunk-2.mp3", "u/ts/speech-chunk-3.mp3"],
            "u/ts/final.mp3",
        )

        assert dest == "u/ts/final.mp3"
        assert memory_store.get(dest) == b"AAABBC"

    def test_refuses_to_overwrite(self, memory_store):
        memory_store.put("u/ts/speech-chunk-1.mp3", b"new")
        memory_store.put("u/ts/final.mp3", b"old")

        with pytest.raises(ArtifactExistsError):
            merge_audio(memory_store, ["u/ts/speech-chunk-1.mp3"], "u/ts/final.mp3")
        assert memory_store.get("u/ts/final.mp3") == b"old"

    def test_missing_source(self, memory_store):
        with pytest.raises(ArtifactMissingError):
            merge_audio(memory_store, ["u/ts/speech-chunk-1.mp3"], "u/ts/final.mp3")
        assert not memory_store.exists("u/ts/final.mp3")

    def test_file_store_leaves_no_temp_files(self, file_store):
        file_store.put("u/ts/speech-chunk-1.mp3", b"AAA")
        file_store.put("u/ts/speech-chunk-2.mp3", b"BB")

        merge_audio(file_store, ["u/ts/speech-chunk-1.mp3", "u/ts/speech-chunk-2.mp3"], "u/ts/final.mp3")

        names = sorted(p.name for p in (file_store.base_dir / "u" / "ts").iterdir())
        assert names == ["final.mp3", "speech-chunk-1.mp3", "speech-chunk-2.mp3"]
        assert (file_store.base_dir / "u" / "ts" / "final.mp3").read_bytes() == b"AAABB"
