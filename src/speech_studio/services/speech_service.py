"""
SpeechService - Request Orchestration.

The single place where one request's pipeline is assembled. Both the HTTP
routes and the CLI go through this service.

Architecture:
    Validate → Chunk → Dispatch (parallel synthesis + per-chunk store)
             → Merge → [Render video] → Response

Artifact Layout:
    {storage.base_dir}/{user_id}/{YYYY-MM-DD-HH:MM}/
        speech-chunk-1.mp3 ... speech-chunk-N.mp3
        final.mp3
        final.mp4   (created lazily on first video request)

    One request per user per minute: a second request in the same minute
    is rejected with ArtifactConflictError rather than overwriting the
    immutable final.mp3.

Error Handling:
    Component failures are mapped to ServiceError subclasses carrying an
    ErrorCode; the API layer turns the code into an HTTP status:
        - InvalidInputError      (INVALID_INPUT)       -> 400
        - UnauthorizedError      (UNAUTHORIZED)        -> 401
        - ArtifactNotFoundError  (NOT_FOUND)           -> 404
        - ArtifactConflictError  (CONFLICT)            -> 409
        - SynthesisFailedError   (SYNTHESIS_FAILED)    -> 500
        - ConfigurationError     (CONFIGURATION_ERROR) -> 500
        - StorageFailedError     (STORAGE_FAILED)      -> 500
        - RenderFailedError      (RENDER_FAILED)       -> 500

Example:
    >>> from speech_studio.core.config import load_settings
    >>> service = SpeechService(load_settings("config/settings.yaml"))
    >>> result = service.synthesize_audio("alice", "Hello there.", request_id="req-1")
    >>> result.dir_name
    '2025-04-03-14:03'
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from speech_studio.core.config import ServiceConfig, Settings
from speech_studio.core.logging import error, fail, get_logger, info, success, verbose
from speech_studio.tts.chunker import TextChunk, chunk_text
from speech_studio.tts.client import MissingAPIKeyError, SpeechClient, SynthesisError
from speech_studio.tts.dispatcher import ChunkDispatchError, dispatch_chunks
from speech_studio.tts.merger import merge_audio
from speech_studio.tts.storage import (
    FINAL_AUDIO,
    FINAL_VIDEO,
    ArtifactEntry,
    ArtifactExistsError,
    ArtifactMissingError,
    ArtifactStore,
    FileArtifactStore,
    StorageError,
    artifact_key,
    chunk_audio_name,
    list_audio_artifacts,
    make_timestamp,
)
from speech_studio.tts.video import FfmpegRenderer, RenderError, VideoRenderer, render_video_cached
from speech_studio.services.validators import (
    ValidationError,
    validate_dir_name,
    validate_text,
    validate_user_id,
)
from speech_studio.utils.timeit import timeit

_LOG = get_logger("speech-studio.service")


# =============================================================================
# Error Codes and Exceptions
# =============================================================================

class ErrorCode:
    """Standardized error codes for API responses."""
    INVALID_INPUT = "INVALID_INPUT"             # Bad request data
    UNAUTHORIZED = "UNAUTHORIZED"               # Missing or bad identity
    NOT_FOUND = "NOT_FOUND"                     # Unknown artifact
    CONFLICT = "CONFLICT"                       # Artifact already exists
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"       # Upstream failure after retry
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR" # Missing API key, bad config
    STORAGE_FAILED = "STORAGE_FAILED"           # Filesystem failure
    RENDER_FAILED = "RENDER_FAILED"             # ffmpeg failure
    INTERNAL_ERROR = "INTERNAL_ERROR"           # Unexpected error


class ServiceError(Exception):
    """
    Base exception for service errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode class.
        details: Optional dictionary with additional context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to standardized error response dict for API."""
        result: Dict[str, Any] = {
            "ok": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidInputError(ServiceError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class UnauthorizedError(ServiceError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.UNAUTHORIZED, details)


class ArtifactNotFoundError(ServiceError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.NOT_FOUND, details)


class ArtifactConflictError(ServiceError):
    """Raised when the merged artifact for this user and minute already exists."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CONFLICT, details)


class SynthesisFailedError(ServiceError):
    """Raised when a chunk failed; ``details["chunk"]`` names its index."""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, details)


class ConfigurationError(ServiceError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class StorageFailedError(ServiceError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.STORAGE_FAILED, details)


class RenderFailedError(ServiceError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.RENDER_FAILED, details)


# =============================================================================
# Results
# =============================================================================

@dataclass
class SpeechResult:
    """
    Result of a speech request.

    Attributes:
        audio_bytes: Merged audio (final.mp3).
        user_id: Owner of the artifact.
        dir_name: RequestTimestamp directory of the artifact.
        file_path: Store location of final.mp3.
        chunks: Number of chunks synthesized.
        total_seconds: Wall-clock processing time.
        request_id: Request ID for tracing.
        timings: Per-stage timing breakdown.
    """
    audio_bytes: bytes
    user_id: str
    dir_name: str
    file_path: str
    chunks: int
    total_seconds: float
    request_id: str
    timings: Dict[str, float] = field(default_factory=dict)


@dataclass
class ArtifactData:
    """Bytes of one stored artifact and where it lives."""
    data: bytes
    dir_name: str
    file_path: str


# =============================================================================
# Main Service Class
# =============================================================================

class SpeechService:
    """
    Orchestrates chunking, parallel synthesis, merging, listing and video
    rendering for one request at a time per user and minute.

    Collaborators are injectable for tests; by default they are built from
    the validated configuration:
        - client: SpeechClient (shared across worker threads)
        - store: FileArtifactStore rooted at storage.base_dir
        - renderer: FfmpegRenderer with the video encoder policy
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[SpeechClient] = None,
        store: Optional[ArtifactStore] = None,
        renderer: Optional[VideoRenderer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            settings: Application settings loaded from YAML/environment.
            client: Upstream speech client.
            store: Artifact store.
            renderer: Video renderer.
            clock: Returns "now" for timestamp directories (local time).

        Raises:
            ConfigValidationError: If the settings fail validation.
        """
        self._config = settings.get_service_config()

        tts = self._config.tts
        self._client = client or SpeechClient(
            api_key=tts.api_key,
            model=tts.model,
            base_url=tts.base_url,
            timeout_s=tts.timeout_s,
            max_attempts=tts.max_attempts,
        )
        self._store = store or FileArtifactStore(self._config.storage.base_dir)
        self._renderer = renderer or FfmpegRenderer.from_config(self._config.video)
        self._clock = clock or datetime.now

        # {user_id}/{timestamp} prefixes with a request in flight
        self._inflight: set[str] = set()
        self._inflight_lock = threading.Lock()

        self._text_preview_chars = self._config.logging.text_preview_chars

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def store(self) -> ArtifactStore:
        return self._store

    def _preview(self, text: str) -> str:
        n = self._text_preview_chars
        return text if len(text) <= n else text[:n] + "..."

    # =========================================================================
    # Validation helpers
    # =========================================================================

    def _check_user(self, user_id: Optional[str]) -> str:
        try:
            return validate_user_id(user_id)
        except ValidationError as e:
            raise UnauthorizedError(e.message, details={"reason": e.code}) from e

    def _check_text(self, text: Optional[str]) -> str:
        try:
            return validate_text(text, max_length=self._config.chunking.max_input_chars)
        except ValidationError as e:
            raise InvalidInputError(e.message, details={"reason": e.code}) from e

    def _check_dir(self, dir_name: str) -> str:
        try:
            return validate_dir_name(dir_name)
        except ValidationError as e:
            raise ArtifactNotFoundError(e.message, details={"reason": e.code}) from e

    def preview_chunks(self, text: Optional[str], max_graphemes: Optional[int] = None) -> List[TextChunk]:
        """
        Validate and chunk ``text`` without synthesizing it.

        Raises:
            InvalidInputError: On empty/oversized text or a non-positive
                chunk size.
        """
        text = self._check_text(text)
        try:
            return chunk_text(text, max_graphemes or self._config.chunking.max_graphemes).chunks
        except ValueError as e:
            raise InvalidInputError(str(e)) from e

    # =========================================================================
    # Speech
    # =========================================================================

    def synthesize_audio(
        self,
        user_id: Optional[str],
        text: Optional[str],
        request_id: str = "-",
        voice: Optional[str] = None,
    ) -> SpeechResult:
        """
        Turn ``text`` into one merged audio artifact for ``user_id``.

        Raises:
            UnauthorizedError, InvalidInputError, ConfigurationError,
            ArtifactConflictError, SynthesisFailedError, StorageFailedError.
        """
        with timeit("total") as total:
            user_id = self._check_user(user_id)
            chunks = self.preview_chunks(text)
            voice = voice or self._config.tts.voice

            if not self._client.has_api_key:
                fail(_LOG, "config_error", reason="missing_api_key")
                raise ConfigurationError("OPENAI_API_KEY is not configured")

            dir_name = make_timestamp(self._clock())
            prefix = artifact_key(user_id, dir_name)
            final_key = artifact_key(prefix, FINAL_AUDIO)

            info(
                _LOG, "request",
                user=user_id,
                dir=dir_name,
                chunks=len(chunks),
                voice=voice,
                text=self._preview(text or ""),
            )

            with self._claim(prefix, final_key):
                timings = self._run_pipeline(chunks, voice, prefix, final_key)

            try:
                audio = self._store.get(final_key)
            except StorageError as e:
                raise StorageFailedError(f"Failed to read merged audio: {e}") from e

        success(
            _LOG, "done",
            user=user_id,
            dir=dir_name,
            chunks=len(chunks),
            bytes=len(audio),
            seconds=round(total.seconds, 3),
        )
        return SpeechResult(
            audio_bytes=audio,
            user_id=user_id,
            dir_name=dir_name,
            file_path=self._store.location(final_key),
            chunks=len(chunks),
            total_seconds=total.seconds,
            request_id=request_id,
            timings=timings,
        )

    def _claim(self, prefix: str, final_key: str) -> "_InflightClaim":
        with self._inflight_lock:
            if prefix in self._inflight or self._store.exists(final_key):
                details = {"dir": prefix.rsplit("/", 1)[-1]}
                verbose(_LOG, "conflict", **details)
                raise ArtifactConflictError(
                    "An artifact for this minute already exists; retry in the next minute",
                    details=details,
                )
            self._inflight.add(prefix)
        return _InflightClaim(self, prefix)

    def _release(self, prefix: str) -> None:
        with self._inflight_lock:
            self._inflight.discard(prefix)

    def _run_pipeline(self, chunks: List[TextChunk], voice: str, prefix: str, final_key: str) -> Dict[str, float]:
        timings: Dict[str, float] = {}

        try:
            self._store.ensure_dir(prefix)
        except StorageError as e:
            raise StorageFailedError(f"Failed to create artifact directory: {e}") from e

        with timeit("dispatch") as t:
            try:
                keys = dispatch_chunks(
                    chunks,
                    synthesize=lambda chunk_text_: self._client.synthesize(chunk_text_, voice),
                    store=self._store,
                    key_for=lambda index: artifact_key(prefix, chunk_audio_name(index)),
                    max_workers=self._config.dispatch.max_workers or None,
                )
            except ChunkDispatchError as e:
                raise self._map_dispatch_error(e) from e
        timings["dispatch"] = t.seconds

        with timeit("merge") as t:
            try:
                merge_audio(self._store, keys, final_key)
            except ArtifactExistsError as e:
                raise ArtifactConflictError("An artifact for this minute already exists") from e
            except StorageError as e:
                raise StorageFailedError(f"Failed to merge audio: {e}") from e
        timings["merge"] = t.seconds

        verbose(_LOG, "stage", event="pipeline", **{k: round(v, 4) for k, v in timings.items()})
        return timings

    @staticmethod
    def _map_dispatch_error(e: ChunkDispatchError) -> ServiceError:
        details: Dict[str, Any] = {"chunk": e.index}
        if isinstance(e.cause, MissingAPIKeyError):
            return ConfigurationError(str(e.cause), details=details)
        if isinstance(e.cause, StorageError):
            return StorageFailedError(f"Failed to store chunk {e.index}: {e.reason}", details=details)
        if isinstance(e.cause, SynthesisError):
            details["attempt"] = e.cause.attempt
        else:
            error(_LOG, "chunk_unexpected_error", chunk=e.index, error=e.reason)
        return SynthesisFailedError(f"Synthesis failed for chunk {e.index}: {e.reason}", details=details)

    # =========================================================================
    # Video
    # =========================================================================

    def synthesize_video(
        self,
        user_id: Optional[str],
        text: Optional[str],
        request_id: str = "-",
        voice: Optional[str] = None,
    ) -> ArtifactData:
        """Synthesize ``text`` and render the merged audio as a video."""
        speech = self.synthesize_audio(user_id, text, request_id=request_id, voice=voice)
        return self._render(speech.user_id, speech.dir_name)

    def get_video(self, user_id: Optional[str], dir_name: str) -> ArtifactData:
        """Fetch the video of an existing artifact, rendering it on first use."""
        user_id = self._check_user(user_id)
        dir_name = self._check_dir(dir_name)
        return self._render(user_id, dir_name)

    def _render(self, user_id: str, dir_name: str) -> ArtifactData:
        audio_key = artifact_key(user_id, dir_name, FINAL_AUDIO)
        video_key = artifact_key(user_id, dir_name, FINAL_VIDEO)

        try:
            with timeit("render") as t:
                render_video_cached(self._store, audio_key, video_key, self._renderer)
            data = self._store.get(video_key)
        except ArtifactMissingError as e:
            raise ArtifactNotFoundError(f"No audio artifact in {dir_name}", details={"dir": dir_name}) from e
        except RenderError as e:
            raise RenderFailedError(str(e), details={"dir": dir_name}) from e
        except StorageError as e:
            raise StorageFailedError(f"Failed to store video: {e}") from e

        info(_LOG, "video", user=user_id, dir=dir_name, bytes=len(data), seconds=round(t.seconds, 3))
        return ArtifactData(data=data, dir_name=dir_name, file_path=self._store.location(video_key))

    # =========================================================================
    # Files
    # =========================================================================

    def list_artifacts(self, user_id: Optional[str]) -> List[ArtifactEntry]:
        """The user's merged audio artifacts, oldest first."""
        user_id = self._check_user(user_id)
        try:
            entries = list_audio_artifacts(self._store, user_id)
        except StorageError as e:
            raise StorageFailedError(f"Failed to list artifacts: {e}") from e
        verbose(_LOG, "listed", user=user_id, entries=len(entries))
        return entries

    def get_audio(self, user_id: Optional[str], dir_name: str) -> ArtifactData:
        """Fetch a stored merged audio artifact."""
        user_id = self._check_user(user_id)
        dir_name = self._check_dir(dir_name)
        key = artifact_key(user_id, dir_name, FINAL_AUDIO)
        try:
            data = self._store.get(key)
        except ArtifactMissingError as e:
            raise ArtifactNotFoundError(f"No audio artifact in {dir_name}", details={"dir": dir_name}) from e
        except StorageError as e:
            raise StorageFailedError(f"Failed to read audio: {e}") from e
        return ArtifactData(data=data, dir_name=dir_name, file_path=self._store.location(key))

    # =========================================================================
    # Health Check
    # =========================================================================

    def get_health_info(self) -> Dict[str, Any]:
        """Service status and the effective non-secret configuration."""
        with self._inflight_lock:
            inflight = len(self._inflight)
        return {
            "ok": True,
            "model": self._config.tts.model,
            "voice": self._config.tts.voice,
            "api_key_configured": self._client.has_api_key,
            "max_attempts": self._config.tts.max_attempts,
            "chunking": {
                "max_graphemes": self._config.chunking.max_graphemes,
                "max_input_chars": self._config.chunking.max_input_chars,
            },
            "dispatch": {"max_workers": self._config.dispatch.max_workers},
            "storage": {"base_dir": self._config.storage.base_dir},
            "video": {
                "cover_image": self._config.video.cover_image,
                "video_codec": self._config.video.video_codec,
                "audio_codec": self._config.video.audio_codec,
            },
            "inflight": inflight,
        }


class _InflightClaim:
    """Releases a claimed ``{user_id}/{timestamp}`` prefix on exit."""

    def __init__(self, service: SpeechService, prefix: str):
        self._service = service
        self._prefix = prefix

    def __enter__(self) -> "_InflightClaim":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._service._release(self._prefix)


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[SpeechService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> SpeechService:
    """
    Get or create the global SpeechService instance.

    Thread-safe lazy singleton.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = SpeechService(settings)
    return _service


def reset_service() -> None:
    """Reset the global service instance (for testing)."""
    global _service
    with _service_lock:
        _service = None
