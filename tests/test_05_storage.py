"""Tests for artifact stores, request timestamps and listing."""
from __future__ import annotations

import errno
from datetime import datetime
from unittest.mock import patch

import pytest

from speech_studio.tts.storage import (
    ArtifactEntry,
    ArtifactExistsError,
    ArtifactMissingError,
    FileArtifactStore,
    StorageError,
    chunk_audio_name,
    list_audio_artifacts,
    make_timestamp,
    parse_timestamp,
)


class TestTimestamps:
    def test_format(self):
        assert make_timestamp(datetime(2025, 4, 3, 14, 3, 59)) == "2025-04-03-14:03"

    def test_parse_roundtrip(self):
        assert parse_timestamp("2025-04-03-14:03") == datetime(2025, 4, 3, 14, 3)

    @pytest.mark.parametrize("name", [
        "not-a-date",
        "2025-4-3-14:03",        # not zero padded
        "2025-04-03-14:03:00",   # seconds
        "2025-04-03 14:03",
        "2025-13-01-00:00",
        "",
    ])
    def test_strict_parse_rejects(self, name):
        assert parse_timestamp(name) is None

    def test_lexicographic_equals_chronological(self):
        names = ["2025-04-03-14:03", "2024-12-31-23:59", "2025-04-01-09:00"]
        assert sorted(names) == sorted(names, key=parse_timestamp)

    def test_chunk_name(self):
        assert chunk_audio_name(7) == "speech-chunk-7.mp3"


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        from speech_studio.tts.storage import MemoryArtifactStore
        return MemoryArtifactStore()
    return FileArtifactStore(tmp_path / "user_files")


class TestStoreContract:
    def test_put_get_exists(self, store):
        store.put("u/2025-04-03-14:03/final.mp3", b"abc")
        assert store.exists("u/2025-04-03-14:03/final.mp3")
        assert store.get("u/2025-04-03-14:03/final.mp3") == b"abc"

    def test_get_missing(self, store):
        with pytest.raises(ArtifactMissingError):
            store.get("u/nothing/final.mp3")
        assert not store.exists("u/nothing/final.mp3")

    def test_no_overwrite(self, store):
        store.put("u/ts/final.mp3", b"first")
        with pytest.raises(ArtifactExistsError):
            store.put("u/ts/final.mp3", b"second", overwrite=False)
        assert store.get("u/ts/final.mp3") == b"first"

    def test_overwrite_allowed_by_default(self, store):
        store.put("u/ts/speech-chunk-1.mp3", b"first")
        store.put("u/ts/speech-chunk-1.mp3", b"second")
        assert store.get("u/ts/speech-chunk-1.mp3") == b"second"

    def test_list_dirs(self, store):
        store.put("u/a/final.mp3", b"1")
        store.put("u/b/speech-chunk-1.mp3", b"2")
        store.put("u/loose.txt", b"3")
        assert sorted(store.list_dirs("u")) == ["a", "b"]
        assert store.list_dirs("nobody") == []


class TestFileStore:
    @pytest.mark.parametrize("key", ["../escape/final.mp3", "u//final.mp3", "u/./final.mp3", "u\\x/final.mp3"])
    def test_rejects_unsafe_keys(self, file_store, key):
        with pytest.raises(StorageError):
            file_store.put(key, b"x")

    def test_location_is_a_path(self, file_store):
        assert file_store.location("u/ts/final.mp3") == str(file_store.base_dir / "u" / "ts" / "final.mp3")

    def test_ensure_dir(self, file_store):
        file_store.ensure_dir("u/2025-04-03-14:03")
        assert (file_store.base_dir / "u" / "2025-04-03-14:03").is_dir()


class TestWithoutHardLinks:
    """No-overwrite writes on filesystems that refuse link()."""

    @pytest.mark.parametrize("code", [errno.EPERM, errno.ENOTSUP])
    def test_falls_back_to_exclusive_create(self, file_store, code):
        with patch("speech_studio.tts.storage.os.link", side_effect=OSError(code, "no hard links")):
            file_store.put("u/ts/final.mp3", b"FIRST", overwrite=False)
            with pytest.raises(ArtifactExistsError):
                file_store.put("u/ts/final.mp3", b"SECOND", overwrite=False)

        assert file_store.get("u/ts/final.mp3") == b"FIRST"
        assert [p.name for p in (file_store.base_dir / "u" / "ts").iterdir()] == ["final.mp3"]

    def test_other_link_errors_are_storage_errors(self, file_store):
        with patch("speech_studio.tts.storage.os.link", side_effect=OSError(errno.EIO, "I/O error")):
            with pytest.raises(StorageError) as exc_info:
                file_store.put("u/ts/final.mp3", b"DATA", overwrite=False)

        assert not isinstance(exc_info.value, ArtifactExistsError)
        assert not file_store.exists("u/ts/final.mp3")


class TestListing:
    def test_sorted_ascending_and_garbage_skipped(self, file_store):
        file_store.put("alice/2025-04-03-14:03/final.mp3", b"later")
        file_store.put("alice/2025-04-01-09:00/final.mp3", b"earlier")
        file_store.put("alice/not-a-date/final.mp3", b"junk")

        entries = list_audio_artifacts(file_store, "alice")

        assert [e.dir_name for e in entries] == ["2025-04-01-09:00", "2025-04-03-14:03"]
        assert entries[0].timestamp == datetime(2025, 4, 1, 9, 0)
        assert entries[0].file_path.endswith("final.mp3")

    def test_dir_without_final_audio_skipped(self, memory_store):
        memory_store.put("alice/2025-04-01-09:00/speech-chunk-1.mp3", b"partial")
        memory_store.put("alice/2025-04-02-09:00/final.mp3", b"done")

        entries = list_audio_artifacts(memory_store, "alice")
        assert [e.dir_name for e in entries] == ["2025-04-02-09:00"]

    def test_missing_user_root(self, file_store):
        assert list_audio_artifacts(file_store, "nobody") == []

    def test_users_are_isolated(self, memory_store):
        memory_store.put("alice/2025-04-01-09:00/final.mp3", b"a")
        memory_store.put("bob/2025-04-02-09:00/final.mp3", b"b")
        assert [e.dir_name for e in list_audio_artifacts(memory_store, "bob")] == ["2025-04-02-09:00"]

    def test_entry_json_form(self):
        entry = ArtifactEntry(
            timestamp=datetime(2025, 4, 3, 14, 3),
            file_path="user_files/alice/2025-04-03-14:03/final.mp3",
            dir_name="2025-04-03-14:03",
        )
        assert entry.to_dict() == {
            "timestamp": "2025-04-03-14:03",
            "file_path": "user_files/alice/2025-04-03-14:03/final.mp3",
            "dir_name": "2025-04-03-14:03",
        }
