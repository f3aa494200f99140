"""
Tests for configuration validation and defaults.

Tests cover:
- ServiceConfig.from_settings() for every section
- ConfigValidationError on invalid values
- String log level coercion
- load_settings() with environment overrides
"""
from __future__ import annotations

import pytest

from speech_studio.core.config import (
    ConfigValidationError,
    Defaults,
    ServiceConfig,
    Settings,
    load_settings,
)


class TestDefaults:
    """Tests for Defaults class values."""

    def test_tts_defaults(self):
        """The upstream defaults match the hosted API."""
        assert Defaults.TTS_MODEL == "tts-1"
        assert Defaults.TTS_VOICE == "onyx"
        assert Defaults.TTS_MAX_ATTEMPTS == 2
        assert Defaults.TTS_BASE_URL == "https://api.openai.com/v1"

    def test_chunking_defaults(self):
        """Chunks default to the upstream 4096-character input limit."""
        assert Defaults.CHUNKING_MAX_GRAPHEMES == 4096

    def test_video_defaults(self):
        assert (Defaults.VIDEO_CODEC, Defaults.VIDEO_AUDIO_CODEC) == ("libx264", "aac")
        assert Defaults.VIDEO_AUDIO_BITRATE == "192k"
        assert Defaults.VIDEO_PIXEL_FORMAT == "yuv420p"


class TestFromSettings:
    """Tests for ServiceConfig.from_settings()."""

    def test_empty_settings_use_defaults(self):
        """Missing sections fall back to Defaults."""
        config = ServiceConfig.from_settings(Settings(raw={}))
        assert config.tts.api_key is None
        assert config.tts.voice == "onyx"
        assert config.chunking.max_graphemes == 4096
        assert config.dispatch.max_workers == 0
        assert config.storage.base_dir == "./user_files"
        assert config.auth.user_header == "X-User-Id"
        assert config.logging.level == 2

    def test_values_are_read(self):
        raw = {
            "tts": {"api_key": "sk-x", "voice": "alloy", "base_url": "http://localhost:9000/v1/", "max_attempts": 3},
            "chunking": {"max_graphemes": 100},
            "dispatch": {"max_workers": 4},
            "video": {"cover_image": "/srv/cover.png"},
        }
        config = ServiceConfig.from_settings(Settings(raw=raw))
        assert config.tts.api_key == "sk-x"
        assert config.tts.voice == "alloy"
        assert config.tts.base_url == "http://localhost:9000/v1"
        assert config.tts.max_attempts == 3
        assert config.chunking.max_graphemes == 100
        assert config.dispatch.max_workers == 4
        assert config.video.cover_image == "/srv/cover.png"

    @pytest.mark.parametrize("section,key,value", [
        ("chunking", "max_graphemes", 0),
        ("chunking", "max_graphemes", -5),
        ("chunking", "max_input_chars", 0),
        ("tts", "timeout_s", 0),
        ("tts", "max_attempts", 0),
        ("tts", "voice", "  "),
        ("dispatch", "max_workers", -1),
        ("storage", "base_dir", ""),
        ("auth", "user_header", ""),
        ("logging", "level", 7),
    ])
    def test_invalid_values_rejected(self, section, key, value):
        """Out-of-range values raise ConfigValidationError naming the key."""
        with pytest.raises(ConfigValidationError, match=f"{section}.{key}"):
            ServiceConfig.from_settings(Settings(raw={section: {key: value}}))

    @pytest.mark.parametrize("name,expected", [("DEBUG", 4), ("info", 2), ("verbose", 3), ("bogus", 2)])
    def test_string_log_level(self, name, expected):
        config = ServiceConfig.from_settings(Settings(raw={"logging": {"level": name}}))
        assert config.logging.level == expected


class TestLoadSettings:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_yaml_and_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "tts:\n  voice: echo\n  api_key: from-file\nstorage:\n  base_dir: ./from-file\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("OPENAI_API_KEY", "from-env")
        monkeypatch.setenv("SPEECH_STUDIO_STORAGE_DIR", "/data/speech")

        settings = load_settings(str(path))

        config = settings.get_service_config()
        assert config.tts.voice == "echo"
        assert config.storage.base_dir == "/data/speech"
        assert config.tts.api_key == "from-env"

    def test_empty_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("SPEECH_STUDIO_STORAGE_DIR", raising=False)
        path = tmp_path / "settings.yaml"
        path.write_text("", encoding="utf-8")
        settings = load_settings(str(path))
        assert settings.raw == {}
        assert settings.get_service_config().tts.model == "tts-1"

    def test_shipped_settings_are_valid(self, monkeypatch):
        """config/settings.yaml validates cleanly."""
        from pathlib import Path

        path = Path(__file__).resolve().parent.parent / "config" / "settings.yaml"
        config = load_settings(str(path)).get_service_config()
        assert config.tts.model == "tts-1"
        assert config.chunking.max_graphemes == 4096
