"""
Artifact Storage for generated speech and video.

Artifacts are addressed by slash-separated keys:

    {user_id}/{timestamp}/speech-chunk-1.mp3
    {user_id}/{timestamp}/speech-chunk-2.mp3
    {user_id}/{timestamp}/final.mp3
    {user_id}/{timestamp}/final.mp4

The timestamp directory is a RequestTimestamp (``%Y-%m-%d-%H:%M``, e.g.
``2025-04-03-14:03``). Zero-padded big-endian fields make lexicographic
order equal chronological order.

Stores:
    - FileArtifactStore: keys map to files under a base directory. Writes
      go to a temp file that is renamed into place, so readers never see a
      partially written artifact. No-overwrite writes hard-link the temp
      file into place; on filesystems without hard links (some SMB and
      FUSE mounts) they fall back to an exclusive create, which still
      never overwrites but lets a concurrent reader see a short file.
    - MemoryArtifactStore: a locked dict, for tests and embedding callers.

Listing and merging only use the ArtifactStore interface, so both stores
behave the same to the rest of the pipeline.

Usage:
    store = FileArtifactStore("./user_files")
    ts = make_timestamp()
    store.put(artifact_key("alice", ts, FINAL_AUDIO), mp3_bytes, overwrite=False)

    for entry in list_audio_artifacts(store, "alice"):
        print(entry.to_dict())
"""
from __future__ import annotations

import errno
import os
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from speech_studio.core.logging import debug, get_logger, verbose, warn
from speech_studio.utils.timeit import timeit

_LOG = get_logger("speech-studio.storage")

TIMESTAMP_FORMAT = "%Y-%m-%d-%H:%M"

FINAL_AUDIO = "final.mp3"
FINAL_VIDEO = "final.mp4"

# link() errors raised by filesystems without hard links
_NO_HARDLINK_ERRNOS = frozenset({errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP, errno.ENOSYS})


class StorageError(Exception):
    """Raised when the backing store cannot complete an operation."""


class ArtifactExistsError(StorageError):
    """Raised by put(overwrite=False) when the key is already taken."""


class ArtifactMissingError(StorageError):
    """Raised by get() for an unknown key."""


def chunk_audio_name(index: int) -> str:
    """File name of the audio buffer for 1-based chunk ``index``."""
    return f"speech-chunk-{index}.mp3"


def artifact_key(*parts: str) -> str:
    return "/".join(parts)


# ─────────────────────────────────────────────────────────────────────────────
# Request timestamps
# ─────────────────────────────────────────────────────────────────────────────

def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def make_timestamp(now: Optional[datetime] = None) -> str:
    """Directory name for a request made at ``now`` (local time by default)."""
    return format_timestamp(now or datetime.now())


def parse_timestamp(name: str) -> Optional[datetime]:
    """
    Parse a directory name as a RequestTimestamp.

    Parsing is strict: the name must parse AND re-format to the identical
    string, so ``2025-4-3-14:03`` or ``2025-04-03-14:03:00`` are rejected.

    Returns:
        The parsed datetime, or None if the name is not a timestamp.
    """
    try:
        parsed = datetime.strptime(name, TIMESTAMP_FORMAT)
    except ValueError:
        return None
    if format_timestamp(parsed) != name:
        return None
    return parsed


# ─────────────────────────────────────────────────────────────────────────────
# Store interface
# ─────────────────────────────────────────────────────────────────────────────

class ArtifactStore(ABC):
    """Key-value interface over persisted artifacts."""

    @abstractmethod
    def put(self, key: str, data: bytes, overwrite: bool = True) -> None:
        """
        Persist ``data`` under ``key``.

        Raises:
            ArtifactExistsError: If overwrite is False and key exists.
            StorageError: On backend failure.
        """

    @abstractmethod
    def get(self, key: str) -> bytes:
        """
        Raises:
            ArtifactMissingError: If key does not exist.
            StorageError: On backend failure.
        """

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def list_dirs(self, prefix: str) -> List[str]:
        """Names of the immediate sub-directories under ``prefix``; [] if absent."""

    def ensure_dir(self, prefix: str) -> None:
        """Create the directory for ``prefix`` if the backend needs one."""

    def location(self, key: str) -> str:
        """Human-readable location of ``key`` (a path for file stores)."""
        return key


def _publish_exclusive(tmp: Path, path: Path, data: bytes) -> None:
    """
    Place ``data`` at ``path`` only if ``path`` does not exist yet.

    Raises:
        FileExistsError: If ``path`` already exists.
    """
    try:
        # link() fails if the target exists, unlike rename()
        os.link(tmp, path)
        return
    except FileExistsError:
        raise
    except OSError as e:
        if e.errno not in _NO_HARDLINK_ERRNOS:
            raise
        debug(_LOG, "hardlink_unsupported", path=str(path), errno=e.errno)

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
    except OSError:
        path.unlink(missing_ok=True)
        raise


class FileArtifactStore(ArtifactStore):
    """
    Filesystem-backed store rooted at ``base_dir``.

    Keys are validated segment by segment: empty segments, ``.`` and ``..``
    are rejected so that no key can escape the base directory.
    """

    def __init__(self, base_dir: str | Path):
        self._base = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base

    def _path(self, key: str) -> Path:
        parts = key.split("/")
        for part in parts:
            if not part or part in (".", "..") or "\\" in part or "\x00" in part:
                raise StorageError(f"invalid artifact key: {key!r}")
        return self._base.joinpath(*parts)

    def put(self, key: str, data: bytes, overwrite: bool = True) -> None:
        path = self._path(key)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)

            with timeit("storage_write") as t:
                tmp.write_bytes(data)
                if overwrite:
                    tmp.replace(path)
                else:
                    _publish_exclusive(tmp, path, data)
        except FileExistsError as e:
            raise ArtifactExistsError(f"artifact already exists: {key}") from e
        except OSError as e:
            warn(_LOG, "storage_write_error", key=key, error=str(e))
            raise StorageError(f"failed to write {key}: {e}") from e
        finally:
            try:
                tmp.unlink(missing_ok=True)
            except OSError as e:
                debug(_LOG, "storage_tmp_cleanup_error", key=key, error=str(e))

        verbose(_LOG, "saved", key=key, bytes=len(data), seconds=round(t.seconds, 4))

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise ArtifactMissingError(f"artifact not found: {key}") from e
        except OSError as e:
            warn(_LOG, "storage_read_error", key=key, error=str(e))
            raise StorageError(f"failed to read {key}: {e}") from e

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def list_dirs(self, prefix: str) -> List[str]:
        root = self._path(prefix)
        if not root.is_dir():
            return []
        try:
            return [p.name for p in root.iterdir() if p.is_dir()]
        except OSError as e:
            warn(_LOG, "storage_list_error", prefix=prefix, error=str(e))
            raise StorageError(f"failed to list {prefix}: {e}") from e

    def ensure_dir(self, prefix: str) -> None:
        try:
            self._path(prefix).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"failed to create {prefix}: {e}") from e

    def location(self, key: str) -> str:
        return str(self._path(key))


class MemoryArtifactStore(ArtifactStore):
    """In-process store; directories exist implicitly once a key is put below them."""

    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, overwrite: bool = True) -> None:
        with self._lock:
            if not overwrite and key in self._data:
                raise ArtifactExistsError(f"artifact already exists: {key}")
            self._data[key] = bytes(data)

    def get(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._data[key]
            except KeyError:
                raise ArtifactMissingError(f"artifact not found: {key}") from None

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def list_dirs(self, prefix: str) -> List[str]:
        head = prefix.rstrip("/") + "/"
        names = set()
        with self._lock:
            for key in self._data:
                if not key.startswith(head):
                    continue
                rest = key[len(head):].split("/")
                if len(rest) > 1:
                    names.add(rest[0])
        return sorted(names)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


# ─────────────────────────────────────────────────────────────────────────────
# Listing
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ArtifactEntry:
    """
    One listed audio artifact.

    Attributes:
        timestamp: Parsed request time (minute granularity).
        file_path: Store location of the merged audio.
        dir_name: Timestamp directory name, usable in /api/files/{dir_name}/...
    """
    timestamp: datetime
    file_path: str
    dir_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "file_path": self.file_path,
            "dir_name": self.dir_name,
        }


def list_audio_artifacts(store: ArtifactStore, user_id: str) -> List[ArtifactEntry]:
    """
    List a user's merged audio artifacts, oldest first.

    Directories whose name is not a RequestTimestamp, or that hold no
    merged audio, are skipped. A user with no directory gets [].
    """
    entries: List[ArtifactEntry] = []
    for name in store.list_dirs(user_id):
        parsed = parse_timestamp(name)
        if parsed is None:
            debug(_LOG, "listing_skip", user=user_id, dir=name, reason="not_a_timestamp")
            continue
        key = artifact_key(user_id, name, FINAL_AUDIO)
        if not store.exists(key):
            debug(_LOG, "listing_skip", user=user_id, dir=name, reason="no_final_audio")
            continue
        entries.append(ArtifactEntry(timestamp=parsed, file_path=store.location(key), dir_name=name))

    entries.sort(key=lambda e: e.timestamp)
    return entries
