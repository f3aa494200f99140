"""
speech-studio: Text-to-Speech and Static-Video Backend.

Takes free-form text from an identified user, synthesizes it through the
OpenAI speech API, stores the merged MP3 per user and minute, and renders
it on demand into an MP4 with a fixed cover image.

Key Features:
    - Grapheme-safe chunking for arbitrarily long text
    - Parallel per-chunk synthesis with one retry per chunk
    - Immutable per-request artifacts, listed oldest first
    - Lazily rendered, cached video artifacts (ffmpeg)
    - Prometheus metrics and structured logging

Example Usage:
    >>> from speech_studio.core.config import load_settings
    >>> from speech_studio.services import SpeechService
    >>>
    >>> service = SpeechService(load_settings("config/settings.yaml"))
    >>> result = service.synthesize_audio("alice", "Hello there.")
    >>> with open("hello.mp3", "wb") as f:
    ...     f.write(result.audio_bytes)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
