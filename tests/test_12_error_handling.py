"""Tests for ServiceError and its subclasses."""
from __future__ import annotations

import pytest

from speech_studio.services.speech_service import (
    ArtifactConflictError,
    ArtifactNotFoundError,
    ConfigurationError,
    ErrorCode,
    InvalidInputError,
    RenderFailedError,
    ServiceError,
    StorageFailedError,
    SynthesisFailedError,
    UnauthorizedError,
)


class TestServiceError:
    def test_defaults(self):
        err = ServiceError("boom")
        assert err.code == ErrorCode.INTERNAL_ERROR
        assert err.details == {}
        assert str(err) == "boom"

    def test_to_dict_without_details(self):
        assert ServiceError("boom").to_dict() == {
            "ok": False,
            "error": "INTERNAL_ERROR",
            "message": "boom",
        }

    def test_to_dict_with_details(self):
        err = SynthesisFailedError("TTS request failed (attempt #2): 500 - oops", details={"chunk": 3, "attempt": 2})
        body = err.to_dict()
        assert body["error"] == "SYNTHESIS_FAILED"
        assert body["details"] == {"chunk": 3, "attempt": 2}


@pytest.mark.parametrize("cls,code", [
    (InvalidInputError, ErrorCode.INVALID_INPUT),
    (UnauthorizedError, ErrorCode.UNAUTHORIZED),
    (ArtifactNotFoundError, ErrorCode.NOT_FOUND),
    (ArtifactConflictError, ErrorCode.CONFLICT),
    (SynthesisFailedError, ErrorCode.SYNTHESIS_FAILED),
    (ConfigurationError, ErrorCode.CONFIGURATION_ERROR),
    (StorageFailedError, ErrorCode.STORAGE_FAILED),
    (RenderFailedError, ErrorCode.RENDER_FAILED),
])
def test_subclass_codes(cls, code):
    err = cls("message")
    assert isinstance(err, ServiceError)
    assert err.code == code
    assert err.to_dict()["error"] == code
