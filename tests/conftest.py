"""Shared fixtures: fake upstream API, stores and a settings factory."""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from speech_studio.core.config import Settings
from speech_studio.tts.client import SpeechClient
from speech_studio.tts.storage import FileArtifactStore, MemoryArtifactStore
from speech_studio.tts.video import VideoRenderer


class FakeClient:
    """Stands in for SpeechClient; returns ``audio:<text>`` bytes."""

    def __init__(self, fail_on: Optional[Callable[[str], bool]] = None, has_api_key: bool = True):
        self.fail_on = fail_on
        self.has_api_key = has_api_key
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def synthesize(self, text: str, voice: str) -> bytes:
        with self._lock:
            self.calls.append(text)
        if self.fail_on is not None and self.fail_on(text):
            from speech_studio.tts.client import SynthesisError
            raise SynthesisError("TTS request failed (attempt #2): 500 - boom", attempt=2)
        return f"audio:{text}|".encode("utf-8")


class StubRenderer(VideoRenderer):
    """Counts renders; the video is the audio wrapped in markers."""

    def __init__(self) -> None:
        self.calls = 0

    def render(self, audio_bytes: bytes) -> bytes:
        self.calls += 1
        return b"MP4[" + audio_bytes + b"]"


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    """Build Settings rooted in tmp_path; keyword sections merge over the base."""

    def _make(**sections: Dict) -> Settings:
        raw: Dict = {
            "tts": {"api_key": "sk-test", "voice": "onyx", "model": "tts-1"},
            "chunking": {"max_graphemes": 4096, "max_input_chars": 100000},
            "storage": {"base_dir": str(tmp_path / "user_files")},
            "video": {"cover_image": str(tmp_path / "cover.png")},
        }
        for name, values in sections.items():
            raw[name] = {**raw.get(name, {}), **values}
        return Settings(raw=raw)

    return _make


@pytest.fixture
def memory_store() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def file_store(tmp_path) -> FileArtifactStore:
    return FileArtifactStore(tmp_path / "user_files")


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def stub_renderer() -> StubRenderer:
    return StubRenderer()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 4, 3, 14, 3, 27))


def mock_speech_client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> SpeechClient:
    """SpeechClient whose HTTP traffic goes to ``handler``."""
    kwargs.setdefault("api_key", "sk-test")
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return SpeechClient(http_client=http, **kwargs)
