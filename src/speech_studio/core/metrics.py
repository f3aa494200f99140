"""
Prometheus Metrics for speech-studio.

Metrics Exposed:
    speech_requests_total            - Requests by endpoint and status
    speech_request_duration_seconds  - Request latency by endpoint
    speech_chunks_total              - Chunks dispatched by outcome
    speech_synthesis_attempts_total  - Upstream attempts by outcome
    speech_audio_bytes_total         - Merged audio bytes produced
    speech_video_renders_total       - Video requests by cache outcome

All metrics live in a private CollectorRegistry so that importing the
package twice (tests, reloads) never collides with the default registry.

Usage:
    from speech_studio.core.metrics import metrics

    metrics.record_request("speech", "success", duration=3.2)
    metrics.record_attempt("retry")
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class SpeechMetrics:
    """
    Metrics collector shared by the service, client and routes.

    Prometheus metric objects are thread-safe, so dispatcher worker
    threads record attempts directly.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "speech_requests_total",
            "Total API requests",
            ["endpoint", "status"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "speech_request_duration_seconds",
            "API request duration in seconds",
            ["endpoint"],
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )
        self._chunks_total = Counter(
            "speech_chunks_total",
            "Text chunks dispatched to the upstream API",
            ["outcome"],
            registry=self._registry,
        )
        self._attempts_total = Counter(
            "speech_synthesis_attempts_total",
            "Upstream synthesis attempts",
            ["outcome"],
            registry=self._registry,
        )
        self._audio_bytes_total = Counter(
            "speech_audio_bytes_total",
            "Total merged audio bytes written",
            registry=self._registry,
        )
        self._video_renders = Counter(
            "speech_video_renders_total",
            "Video artifact requests",
            ["cache"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_request(self, endpoint: str, status: str, duration: float) -> None:
        """
        Record a completed API request.

        Args:
            endpoint: Route family ("speech", "video", "files", "file_video").
            status: "success" or an error code.
            duration: Wall-clock duration in seconds.
        """
        self._requests_total.labels(endpoint=endpoint, status=status).inc()
        self._request_duration.labels(endpoint=endpoint).observe(duration)

    def record_chunk(self, outcome: str) -> None:
        """outcome: "ok" or "failed"."""
        self._chunks_total.labels(outcome=outcome).inc()

    def record_attempt(self, outcome: str) -> None:
        """outcome: "ok", "retry" or "failed"."""
        self._attempts_total.labels(outcome=outcome).inc()

    def record_audio_bytes(self, count: int) -> None:
        if count > 0:
            self._audio_bytes_total.inc(count)

    def record_video(self, cache: str) -> None:
        """cache: "hit" or "miss"."""
        self._video_renders.labels(cache=cache).inc()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Return (body, content_type) for the /metrics endpoint."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


metrics = SpeechMetrics()
