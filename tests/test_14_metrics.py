"""Tests for Prometheus metrics and stage timing."""
from __future__ import annotations

import time

import pytest
from prometheus_client import CONTENT_TYPE_LATEST

from speech_studio.core.metrics import SpeechMetrics, metrics
from speech_studio.utils.timeit import timeit


def _sample(m: SpeechMetrics, name: str, labels=None) -> float:
    value = m.registry.get_sample_value(name, labels or {})
    return value or 0.0


class TestSpeechMetrics:
    """Each instance owns its registry, so counts start at zero."""

    def test_global_instance(self):
        assert isinstance(metrics, SpeechMetrics)

    def test_record_request(self):
        m = SpeechMetrics()
        m.record_request("speech", "success", duration=1.5)
        m.record_request("speech", "CONFLICT", duration=0.01)

        assert _sample(m, "speech_requests_total", {"endpoint": "speech", "status": "success"}) == 1
        assert _sample(m, "speech_requests_total", {"endpoint": "speech", "status": "CONFLICT"}) == 1
        assert _sample(m, "speech_request_duration_seconds_count", {"endpoint": "speech"}) == 2

    def test_chunks_and_attempts(self):
        m = SpeechMetrics()
        m.record_chunk("ok")
        m.record_chunk("ok")
        m.record_chunk("failed")
        m.record_attempt("retry")

        assert _sample(m, "speech_chunks_total", {"outcome": "ok"}) == 2
        assert _sample(m, "speech_chunks_total", {"outcome": "failed"}) == 1
        assert _sample(m, "speech_synthesis_attempts_total", {"outcome": "retry"}) == 1

    def test_audio_bytes_ignores_empty(self):
        m = SpeechMetrics()
        m.record_audio_bytes(0)
        m.record_audio_bytes(1024)
        assert _sample(m, "speech_audio_bytes_total") == 1024

    def test_video_cache(self):
        m = SpeechMetrics()
        m.record_video("miss")
        m.record_video("hit")
        m.record_video("hit")
        assert _sample(m, "speech_video_renders_total", {"cache": "hit"}) == 2

    def test_metrics_response(self):
        m = SpeechMetrics()
        m.record_request("files", "success", duration=0.1)
        body, content_type = m.get_metrics_response()
        assert content_type == CONTENT_TYPE_LATEST
        assert b"speech_requests_total" in body


class TestTimeit:
    def test_measures_block(self):
        with timeit("stage", meta={"chunks": 2}) as t:
            assert t.seconds == -1.0
            time.sleep(0.01)
        assert t.seconds >= 0.01
        assert t.timing.name == "stage"
        assert t.timing.meta == {"chunks": 2}

    def test_records_on_exception(self):
        t = timeit("failing")
        with pytest.raises(RuntimeError):
            with t:
                raise RuntimeError("boom")
        assert t.seconds >= 0.0
