"""
Speech Studio API Routes.

Endpoints:
    POST /api/speech                  - Synthesize text, return merged MP3
    POST /api/video                   - Synthesize text, return static-image MP4
    GET  /api/files                   - List the user's audio artifacts
    GET  /api/files/{dir_name}/mp3    - Download a stored audio artifact
    GET  /api/files/{dir_name}/mp4    - Fetch (or render once) an artifact's video
    GET  /health                      - Health check
    GET  /metrics                     - Prometheus metrics

The user id comes from the header named by ``auth.user_header`` (default
``X-User-Id``), set by the upstream identity provider.

Error Handling:
    All errors are returned as JSON with standardized format:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>"
    }

    HTTP status codes are mapped from ServiceError codes:
        - INVALID_INPUT -> 400
        - UNAUTHORIZED -> 401
        - NOT_FOUND -> 404
        - CONFLICT -> 409
        - everything else -> 500

Example Usage:
    curl -X POST http://localhost:8000/api/speech \\
        -H "X-User-Id: alice" -H "Content-Type: application/json" \\
        -d '{"input": "Hello there."}' --output speech.mp3
"""
from __future__ import annotations

import time
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from speech_studio.api.dependencies import get_speech_service, get_user_id
from speech_studio.api.schemas import ArtifactEntryResponse, SpeechRequest
from speech_studio.core.logging import error, get_logger, set_request_id
from speech_studio.core.metrics import metrics
from speech_studio.services.speech_service import (
    ArtifactData,
    ErrorCode,
    ServiceError,
    SpeechService,
)

router = APIRouter()

_LOG = get_logger("speech-studio.api")

_STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.SYNTHESIS_FAILED: 500,
    ErrorCode.CONFIGURATION_ERROR: 500,
    ErrorCode.STORAGE_FAILED: 500,
    ErrorCode.RENDER_FAILED: 500,
}


def _new_request_id() -> str:
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


def _error_response(err: ServiceError, rid: str) -> JSONResponse:
    """Standardized JSON error response for a ServiceError."""
    return JSONResponse(
        status_code=_STATUS_MAP.get(err.code, 500),
        content=err.to_dict(),
        headers={"X-Request-Id": rid},
    )


def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Answer a ServiceError raised by a dependency, before any route body runs."""
    error(_LOG, "dependency_error", code=exc.code, path=request.url.path, message=exc.message)
    return _error_response(exc, _new_request_id())


def _internal_error(endpoint: str, rid: str) -> JSONResponse:
    # Log the traceback internally; the client only gets a generic message
    error(_LOG, "unhandled_error", exc_info=True, endpoint=endpoint)
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": rid,
        },
        headers={"X-Request-Id": rid},
    )


def _artifact_response(artifact: ArtifactData, media_type: str, rid: str) -> Response:
    headers = {
        "X-Request-Id": rid,
        "X-Artifact-Dir": artifact.dir_name,
        "X-Bytes": str(len(artifact.data)),
    }
    return Response(content=artifact.data, media_type=media_type, headers=headers)


@router.post("/api/speech", response_class=Response)
def create_speech(
    req: SpeechRequest,
    user_id: Optional[str] = Depends(get_user_id),
    service: SpeechService = Depends(get_speech_service),
):
    """
    Synthesize ``input`` and return the merged audio.

    The artifact is stored under ``{user_id}/{timestamp}/final.mp3``; its
    directory name is returned in ``X-Artifact-Dir``.
    """
    rid = _new_request_id()
    t0 = time.perf_counter()
    try:
        result = service.synthesize_audio(user_id, req.input, request_id=rid)
        metrics.record_request("speech", "success", time.perf_counter() - t0)
        artifact = ArtifactData(data=result.audio_bytes, dir_name=result.dir_name, file_path=result.file_path)
        response = _artifact_response(artifact, "audio/mpeg", rid)
        response.headers["X-Chunks"] = str(result.chunks)
        return response
    except ServiceError as e:
        metrics.record_request("speech", e.code, time.perf_counter() - t0)
        return _error_response(e, rid)
    except Exception:
        metrics.record_request("speech", ErrorCode.INTERNAL_ERROR, time.perf_counter() - t0)
        return _internal_error("speech", rid)


@router.post("/api/video", response_class=Response)
def create_video(
    req: SpeechRequest,
    user_id: Optional[str] = Depends(get_user_id),
    service: SpeechService = Depends(get_speech_service),
):
    """Synthesize ``input`` and return it as a static-image MP4."""
    rid = _new_request_id()
    t0 = time.perf_counter()
    try:
        artifact = service.synthesize_video(user_id, req.input, request_id=rid)
        metrics.record_request("video", "success", time.perf_counter() - t0)
        return _artifact_response(artifact, "video/mp4", rid)
    except ServiceError as e:
        metrics.record_request("video", e.code, time.perf_counter() - t0)
        return _error_response(e, rid)
    except Exception:
        metrics.record_request("video", ErrorCode.INTERNAL_ERROR, time.perf_counter() - t0)
        return _internal_error("video", rid)


@router.get("/api/files", response_model=List[ArtifactEntryResponse])
def list_files(
    user_id: Optional[str] = Depends(get_user_id),
    service: SpeechService = Depends(get_speech_service),
):
    """The user's merged audio artifacts, oldest first."""
    rid = _new_request_id()
    t0 = time.perf_counter()
    try:
        entries = service.list_artifacts(user_id)
        metrics.record_request("files", "success", time.perf_counter() - t0)
        return JSONResponse(
            content=[entry.to_dict() for entry in entries],
            headers={"X-Request-Id": rid},
        )
    except ServiceError as e:
        metrics.record_request("files", e.code, time.perf_counter() - t0)
        return _error_response(e, rid)
    except Exception:
        metrics.record_request("files", ErrorCode.INTERNAL_ERROR, time.perf_counter() - t0)
        return _internal_error("files", rid)


@router.get("/api/files/{dir_name}/mp3", response_class=Response)
def get_file_audio(
    dir_name: str,
    user_id: Optional[str] = Depends(get_user_id),
    service: SpeechService = Depends(get_speech_service),
):
    """Download the merged audio of a previous request."""
    rid = _new_request_id()
    t0 = time.perf_counter()
    try:
        artifact = service.get_audio(user_id, dir_name)
        metrics.record_request("file_audio", "success", time.perf_counter() - t0)
        return _artifact_response(artifact, "audio/mpeg", rid)
    except ServiceError as e:
        metrics.record_request("file_audio", e.code, time.perf_counter() - t0)
        return _error_response(e, rid)
    except Exception:
        metrics.record_request("file_audio", ErrorCode.INTERNAL_ERROR, time.perf_counter() - t0)
        return _internal_error("file_audio", rid)


@router.get("/api/files/{dir_name}/mp4", response_class=Response)
def get_file_video(
    dir_name: str,
    user_id: Optional[str] = Depends(get_user_id),
    service: SpeechService = Depends(get_speech_service),
):
    """
    Return the video of a previous request.

    The first call renders ``final.mp4`` next to ``final.mp3``; later calls
    serve the stored file without running the encoder.
    """
    rid = _new_request_id()
    t0 = time.perf_counter()
    try:
        artifact = service.get_video(user_id, dir_name)
        metrics.record_request("file_video", "success", time.perf_counter() - t0)
        return _artifact_response(artifact, "video/mp4", rid)
    except ServiceError as e:
        metrics.record_request("file_video", e.code, time.perf_counter() - t0)
        return _error_response(e, rid)
    except Exception:
        metrics.record_request("file_video", ErrorCode.INTERNAL_ERROR, time.perf_counter() - t0)
        return _internal_error("file_video", rid)


@router.get("/health")
def health(service: SpeechService = Depends(get_speech_service)):
    """Health check for load balancers and probes."""
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    """Prometheus metrics in text exposition format."""
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
