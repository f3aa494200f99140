"""
Static-image Video Rendering.

Turns a merged audio artifact into an MP4 that shows a fixed cover image
for the length of the audio. Encoding is delegated to an ``ffmpeg``
process; the rest of the pipeline only sees the narrow
``VideoRenderer.render(audio_bytes) -> bytes`` capability, so tests can
swap in a stub renderer.

ffmpeg invocation (parameters come from the ``video`` config section):

    ffmpeg -y -loop 1 -i <cover> -i <audio> -shortest \\
        -c:v libx264 -c:a aac -b:a 192k -pix_fmt yuv420p <out>

Caching:
    render_video_cached() stores the result next to the audio artifact and
    reuses it while it exists, so the encoder runs at most once per
    artifact.
"""
from __future__ import annotations

import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from speech_studio.core.config import Defaults, VideoConfig
from speech_studio.core.logging import debug, fail, get_logger, info, verbose
from speech_studio.core.metrics import metrics
from speech_studio.tts.storage import ArtifactExistsError, ArtifactStore
from speech_studio.utils.timeit import timeit

_LOG = get_logger("speech-studio.video")

# Tail of ffmpeg's stderr kept in error logs
_STDERR_TAIL_CHARS = 2000


class RenderError(Exception):
    """Raised when a video cannot be produced."""


class VideoRenderer(ABC):
    @abstractmethod
    def render(self, audio_bytes: bytes) -> bytes:
        """Encode ``audio_bytes`` into a video container and return it."""


class FfmpegRenderer(VideoRenderer):
    """Renders with a local ffmpeg binary, working inside a temp directory."""

    def __init__(
        self,
        cover_image: str | Path = Defaults.VIDEO_COVER_IMAGE,
        ffmpeg_bin: str = Defaults.VIDEO_FFMPEG_BIN,
        video_codec: str = Defaults.VIDEO_CODEC,
        audio_codec: str = Defaults.VIDEO_AUDIO_CODEC,
        audio_bitrate: str = Defaults.VIDEO_AUDIO_BITRATE,
        pixel_format: str = Defaults.VIDEO_PIXEL_FORMAT,
    ):
        self.cover_image = Path(cover_image)
        self.ffmpeg_bin = ffmpeg_bin
        self.video_codec = video_codec
        self.audio_codec = audio_codec
        self.audio_bitrate = audio_bitrate
        self.pixel_format = pixel_format

    @classmethod
    def from_config(cls, config: VideoConfig) -> "FfmpegRenderer":
        return cls(
            cover_image=config.cover_image,
            ffmpeg_bin=config.ffmpeg_bin,
            video_codec=config.video_codec,
            audio_codec=config.audio_codec,
            audio_bitrate=config.audio_bitrate,
            pixel_format=config.pixel_format,
        )

    def build_command(self, audio_path: Path, output_path: Path) -> List[str]:
        return [
            self.ffmpeg_bin,
            "-y",
            "-loop", "1",
            "-i", str(self.cover_image),
            "-i", str(audio_path),
            "-shortest",
            "-c:v", self.video_codec,
            "-c:a", self.audio_codec,
            "-b:a", self.audio_bitrate,
            "-pix_fmt", self.pixel_format,
            str(output_path),
        ]

    def render(self, audio_bytes: bytes) -> bytes:
        """
        Raises:
            RenderError: If the cover image is missing, ffmpeg cannot be
                spawned, or ffmpeg exits with a non-zero status.
        """
        if not self.cover_image.is_file():
            fail(_LOG, "render_failed", reason="cover_missing", cover=str(self.cover_image))
            raise RenderError(f"cover image not found at {self.cover_image}")

        with tempfile.TemporaryDirectory(prefix="speech-video-") as tmp:
            audio_path = Path(tmp) / "input.mp3"
            output_path = Path(tmp) / "output.mp4"
            audio_path.write_bytes(audio_bytes)

            command = self.build_command(audio_path, output_path)
            debug(_LOG, "run_command", command=" ".join(command))

            with timeit("ffmpeg") as t:
                try:
                    proc = subprocess.run(
                        command,
                        check=False,
                        capture_output=True,
                        encoding="utf-8",
                        errors="replace",
                    )
                except OSError as e:
                    fail(_LOG, "render_failed", reason="spawn", error=str(e))
                    raise RenderError(f"failed to spawn ffmpeg: {e}") from e

            if proc.returncode != 0:
                fail(
                    _LOG, "render_failed",
                    reason="exit_status",
                    status=proc.returncode,
                    stderr=(proc.stderr or "")[-_STDERR_TAIL_CHARS:],
                )
                raise RenderError(f"ffmpeg exited with status {proc.returncode}")

            try:
                video = output_path.read_bytes()
            except OSError as e:
                raise RenderError(f"ffmpeg produced no output: {e}") from e

        verbose(_LOG, "rendered", audio_bytes=len(audio_bytes), video_bytes=len(video), seconds=round(t.seconds, 3))
        return video


def render_video_cached(store: ArtifactStore, audio_key: str, video_key: str, renderer: VideoRenderer) -> str:
    """
    Return ``video_key``, rendering it from ``audio_key`` only if absent.

    Raises:
        ArtifactMissingError: If the audio artifact does not exist.
        RenderError: If rendering fails.
        StorageError: On store failure.
    """
    if store.exists(video_key):
        metrics.record_video("hit")
        verbose(_LOG, "video_cache_hit", key=video_key)
        return video_key

    metrics.record_video("miss")
    audio = store.get(audio_key)
    video = renderer.render(audio)

    try:
        store.put(video_key, video, overwrite=False)
    except ArtifactExistsError:
        # Another request rendered the same artifact first; keep theirs
        debug(_LOG, "video_cache_race", key=video_key)
        return video_key

    info(_LOG, "video_cached", key=video_key, bytes=len(video))
    return video_key
