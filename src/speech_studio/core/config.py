"""
Configuration Management for speech-studio.

This module provides centralized configuration handling with:
    - Default values (Defaults class)
    - Dataclass-based configuration objects
    - YAML file loading with environment variable overrides
    - Validation with meaningful error messages

Configuration Hierarchy (highest priority first):
    1. Environment variables (OPENAI_API_KEY, SPEECH_STUDIO_STORAGE_DIR, ...)
    2. YAML config file (config/settings.yaml)
    3. Defaults class values

Example settings.yaml:
    tts:
      model: tts-1
      voice: onyx

    chunking:
      max_graphemes: 4096

    video:
      cover_image: assets/cover.png
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import os
import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is outside acceptable bounds."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - TTS: Upstream speech API
        - Chunking: Text splitting limits
        - Dispatch: Per-request fan-out
        - Storage: Artifact directory tree
        - Video: Encoder policy (fixed, never per request)
        - Auth: Identity header set by the upstream identity provider
        - Logging: Log level and formatting
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Upstream TTS API
    # ─────────────────────────────────────────────────────────────────────────
    TTS_BASE_URL = "https://api.openai.com/v1"
    TTS_MODEL = "tts-1"
    TTS_VOICE = "onyx"
    TTS_TIMEOUT_S = 60.0
    TTS_MAX_ATTEMPTS = 2            # One retry, no backoff

    # ─────────────────────────────────────────────────────────────────────────
    # Text Chunking
    # ─────────────────────────────────────────────────────────────────────────
    CHUNKING_MAX_GRAPHEMES = 4096   # Upstream per-request input limit
    CHUNKING_MAX_INPUT_CHARS = 100_000

    # ─────────────────────────────────────────────────────────────────────────
    # Fan-out
    # ─────────────────────────────────────────────────────────────────────────
    DISPATCH_MAX_WORKERS = 0        # 0 = one worker per chunk

    # ─────────────────────────────────────────────────────────────────────────
    # Storage
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BASE_DIR = "./user_files"

    # ─────────────────────────────────────────────────────────────────────────
    # Video rendering
    # ─────────────────────────────────────────────────────────────────────────
    VIDEO_FFMPEG_BIN = "ffmpeg"
    VIDEO_COVER_IMAGE = "assets/cover.png"
    VIDEO_CODEC = "libx264"
    VIDEO_AUDIO_CODEC = "aac"
    VIDEO_AUDIO_BITRATE = "192k"
    VIDEO_PIXEL_FORMAT = "yuv420p"

    # ─────────────────────────────────────────────────────────────────────────
    # Identity
    # ─────────────────────────────────────────────────────────────────────────
    AUTH_USER_HEADER = "X-User-Id"

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2               # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG


@dataclass
class TTSConfig:
    """Upstream speech API settings. ``api_key`` may be empty until synthesis is attempted."""
    api_key: Optional[str] = None
    base_url: str = Defaults.TTS_BASE_URL
    model: str = Defaults.TTS_MODEL
    voice: str = Defaults.TTS_VOICE
    timeout_s: float = Defaults.TTS_TIMEOUT_S
    max_attempts: int = Defaults.TTS_MAX_ATTEMPTS


@dataclass
class ChunkingConfig:
    """Text chunking limits, in grapheme clusters."""
    max_graphemes: int = Defaults.CHUNKING_MAX_GRAPHEMES
    max_input_chars: int = Defaults.CHUNKING_MAX_INPUT_CHARS


@dataclass
class DispatchConfig:
    """Fan-out settings. ``max_workers == 0`` runs every chunk at once."""
    max_workers: int = Defaults.DISPATCH_MAX_WORKERS


@dataclass
class StorageConfig:
    """Root of the ``{user_id}/{timestamp}/`` artifact tree."""
    base_dir: str = Defaults.STORAGE_BASE_DIR


@dataclass
class VideoConfig:
    """
    Encoder policy for static-image videos.

    These values are deployment constants: every request is rendered with
    the same cover image, codecs, bitrate and pixel format.
    """
    ffmpeg_bin: str = Defaults.VIDEO_FFMPEG_BIN
    cover_image: str = Defaults.VIDEO_COVER_IMAGE
    video_codec: str = Defaults.VIDEO_CODEC
    audio_codec: str = Defaults.VIDEO_AUDIO_CODEC
    audio_bitrate: str = Defaults.VIDEO_AUDIO_BITRATE
    pixel_format: str = Defaults.VIDEO_PIXEL_FORMAT


@dataclass
class AuthConfig:
    """Name of the header carrying the authenticated user id."""
    user_header: str = Defaults.AUTH_USER_HEADER


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Request lifecycle (default)
        3 = VERBOSE: Per-stage timing, per-chunk flow
        4 = DEBUG: Internal state, full tracing
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ServiceConfig:
    """
    Validated configuration for SpeechService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = ServiceConfig.from_settings(settings)
        print(config.chunking.max_graphemes)
    """
    tts: TTSConfig = field(default_factory=TTSConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ServiceConfig":
        """
        Create ServiceConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated ServiceConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Upstream TTS API
        # ─────────────────────────────────────────────────────────────────────
        tts_raw = raw.get("tts", {}) or {}
        api_key = tts_raw.get("api_key")
        tts = TTSConfig(
            api_key=str(api_key) if api_key else None,
            base_url=str(tts_raw.get("base_url", Defaults.TTS_BASE_URL)).rstrip("/"),
            model=str(tts_raw.get("model", Defaults.TTS_MODEL)),
            voice=str(tts_raw.get("voice", Defaults.TTS_VOICE)),
            timeout_s=float(tts_raw.get("timeout_s", Defaults.TTS_TIMEOUT_S)),
            max_attempts=int(tts_raw.get("max_attempts", Defaults.TTS_MAX_ATTEMPTS)),
        )
        cls._validate_positive("tts.timeout_s", tts.timeout_s)
        cls._validate_positive("tts.max_attempts", tts.max_attempts)
        cls._validate_not_empty("tts.voice", tts.voice)

        # ─────────────────────────────────────────────────────────────────────
        # Chunking
        # ─────────────────────────────────────────────────────────────────────
        chunking_raw = raw.get("chunking", {}) or {}
        chunking = ChunkingConfig(
            max_graphemes=int(chunking_raw.get("max_graphemes", Defaults.CHUNKING_MAX_GRAPHEMES)),
            max_input_chars=int(chunking_raw.get("max_input_chars", Defaults.CHUNKING_MAX_INPUT_CHARS)),
        )
        cls._validate_positive("chunking.max_graphemes", chunking.max_graphemes)
        cls._validate_positive("chunking.max_input_chars", chunking.max_input_chars)

        # ─────────────────────────────────────────────────────────────────────
        # Fan-out
        # ─────────────────────────────────────────────────────────────────────
        dispatch_raw = raw.get("dispatch", {}) or {}
        dispatch = DispatchConfig(
            max_workers=int(dispatch_raw.get("max_workers", Defaults.DISPATCH_MAX_WORKERS)),
        )
        cls._validate_non_negative("dispatch.max_workers", dispatch.max_workers)

        # ─────────────────────────────────────────────────────────────────────
        # Storage
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(
            base_dir=str(storage_raw.get("base_dir", Defaults.STORAGE_BASE_DIR)),
        )
        cls._validate_not_empty("storage.base_dir", storage.base_dir)

        # ─────────────────────────────────────────────────────────────────────
        # Video encoder policy
        # ─────────────────────────────────────────────────────────────────────
        video_raw = raw.get("video", {}) or {}
        video = VideoConfig(
            ffmpeg_bin=str(video_raw.get("ffmpeg_bin", Defaults.VIDEO_FFMPEG_BIN)),
            cover_image=str(video_raw.get("cover_image", Defaults.VIDEO_COVER_IMAGE)),
            video_codec=str(video_raw.get("video_codec", Defaults.VIDEO_CODEC)),
            audio_codec=str(video_raw.get("audio_codec", Defaults.VIDEO_AUDIO_CODEC)),
            audio_bitrate=str(video_raw.get("audio_bitrate", Defaults.VIDEO_AUDIO_BITRATE)),
            pixel_format=str(video_raw.get("pixel_format", Defaults.VIDEO_PIXEL_FORMAT)),
        )
        cls._validate_not_empty("video.ffmpeg_bin", video.ffmpeg_bin)

        # ─────────────────────────────────────────────────────────────────────
        # Identity
        # ─────────────────────────────────────────────────────────────────────
        auth_raw = raw.get("auth", {}) or {}
        auth = AuthConfig(
            user_header=str(auth_raw.get("user_header", Defaults.AUTH_USER_HEADER)),
        )
        cls._validate_not_empty("auth.user_header", auth.user_header)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)

        # String levels ("INFO", "DEBUG") are accepted alongside 1-4
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            tts=tts,
            chunking=chunking,
            dispatch=dispatch,
            storage=storage,
            video=video,
            auth=auth,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        """Validate that a value is positive (> 0)."""
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        """Validate that a value is non-negative (>= 0)."""
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        """Validate that a value is within [min_val, max_val]."""
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")

    @staticmethod
    def _validate_not_empty(name: str, value: str) -> None:
        if not value.strip():
            raise ConfigValidationError(f"{name} must not be empty")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    This is the raw settings object before validation. Use
    get_service_config() to get a validated ServiceConfig.
    """
    raw: Dict[str, Any]

    def get_service_config(self) -> ServiceConfig:
        """
        Get validated ServiceConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return ServiceConfig.from_settings(self)


def load_settings(path: str = "config/settings.yaml") -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides:
        - OPENAI_API_KEY: Override tts.api_key
        - SPEECH_STUDIO_STORAGE_DIR: Override storage.base_dir

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the settings file doesn't exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    with p.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        raw.setdefault("tts", {})["api_key"] = api_key

    storage_dir = os.getenv("SPEECH_STUDIO_STORAGE_DIR")
    if storage_dir:
        raw.setdefault("storage", {})["base_dir"] = storage_dir

    return Settings(raw=raw)
