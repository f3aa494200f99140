"""
Speech Synthesis Client.

Calls the upstream text-to-speech API (OpenAI ``POST /audio/speech``) for a
single chunk of text and returns the encoded audio bytes.

Retry Policy:
    At most ``max_attempts`` (default 2) attempts per chunk. Each of these
    counts as a failed attempt and triggers the retry:
        - transport failure (connect error, timeout, ...)
        - non-2xx response status
        - failure while reading the response body
    There is no backoff and no jitter; requests are short-lived and the
    budget is deliberately tiny. The final failure raises SynthesisError
    naming the attempt number and the cause.

    A missing API key is a precondition failure: MissingAPIKeyError is
    raised before any network traffic and is never retried.

Usage:
    client = SpeechClient(api_key=config.tts.api_key)
    mp3_bytes = client.synthesize("Hello there.", voice="onyx")

Testing:
    Pass an ``httpx.Client(transport=httpx.MockTransport(handler))`` as
    ``http_client`` to simulate the upstream without network access.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from speech_studio.core.config import Defaults
from speech_studio.core.logging import debug, fail, get_logger, verbose, warn
from speech_studio.core.metrics import metrics
from speech_studio.utils.timeit import timeit

_LOG = get_logger("speech-studio.client")


class MissingAPIKeyError(Exception):
    """Raised when synthesis is attempted without an API key."""


class SynthesisError(Exception):
    """
    Raised when every attempt for one chunk failed.

    Attributes:
        message: Description of the last failure, naming its attempt.
        attempt: Number of the attempt that failed last.
    """

    def __init__(self, message: str, attempt: int):
        self.message = message
        self.attempt = attempt
        super().__init__(message)


class _AttemptFailed(Exception):
    """One failed attempt; retried unless it was the last one."""


class SpeechClient:
    """
    Thread-safe client for the upstream speech endpoint.

    One instance is shared by all dispatcher worker threads of all
    requests; the underlying ``httpx.Client`` pools connections.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = Defaults.TTS_MODEL,
        base_url: str = Defaults.TTS_BASE_URL,
        timeout_s: float = Defaults.TTS_TIMEOUT_S,
        max_attempts: int = Defaults.TTS_MAX_ATTEMPTS,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            api_key: Bearer token for the upstream API. May be None; the
                error surfaces on the first synthesize() call.
            model: Upstream model name (e.g., "tts-1").
            base_url: API root, without trailing slash.
            timeout_s: Per-attempt timeout in seconds.
            max_attempts: Total attempts per chunk.
            http_client: Optional preconfigured client (tests, proxies).
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/audio/speech"
        self._max_attempts = max_attempts
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout_s)

    @property
    def model(self) -> str:
        return self._model

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "SpeechClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def synthesize(self, text: str, voice: str) -> bytes:
        """
        Synthesize one chunk of text.

        Args:
            text: Chunk text, already within the upstream size limit.
            voice: Upstream voice identifier (e.g., "onyx").

        Returns:
            Encoded audio bytes exactly as returned by the API.

        Raises:
            MissingAPIKeyError: If no API key is configured.
            SynthesisError: If all attempts failed.
        """
        if not self._api_key:
            raise MissingAPIKeyError("Missing OPENAI_API_KEY: no API key configured for speech synthesis")

        payload: Dict[str, Any] = {
            "model": self._model,
            "input": text,
            "voice": voice,
        }
        debug(_LOG, "synthesize", chars=len(text), voice=voice, model=self._model)

        for attempt in range(1, self._max_attempts + 1):
            try:
                with timeit("attempt") as t:
                    audio = self._attempt(payload, attempt)
            except _AttemptFailed as e:
                if attempt >= self._max_attempts:
                    metrics.record_attempt("failed")
                    fail(_LOG, "synthesis_failed", attempt=attempt, error=str(e))
                    raise SynthesisError(str(e), attempt=attempt) from e.__cause__
                metrics.record_attempt("retry")
                warn(_LOG, "synthesis_retry", attempt=attempt, error=str(e))
                continue

            metrics.record_attempt("ok")
            verbose(_LOG, "synthesized", attempt=attempt, bytes=len(audio), seconds=round(t.seconds, 3))
            return audio

        # Unreachable with max_attempts >= 1
        raise SynthesisError("Unexpected error: synthesis ran out of attempts", attempt=self._max_attempts)

    def _attempt(self, payload: Dict[str, Any], attempt: int) -> bytes:
        request = self._client.build_request(
            "POST",
            self._url,
            json=payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )

        try:
            response = self._client.send(request, stream=True)
        except httpx.RequestError as e:
            raise _AttemptFailed(f"Request error (attempt #{attempt}): {e}") from e

        try:
            if not response.is_success:
                try:
                    detail = response.read().decode("utf-8", errors="replace")
                except (httpx.HTTPError, httpx.StreamError):
                    detail = ""
                raise _AttemptFailed(
                    f"TTS request failed (attempt #{attempt}): {response.status_code} - {detail}"
                )

            try:
                return response.read()
            except (httpx.HTTPError, httpx.StreamError) as e:
                raise _AttemptFailed(f"Unable to read TTS response bytes (attempt #{attempt}): {e}") from e
        finally:
            response.close()
