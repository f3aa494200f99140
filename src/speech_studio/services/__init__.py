"""
speech-studio Services Layer.

Business logic between the API/CLI and the speech pipeline.

Components:
    - speech_service.py: SpeechService (request orchestrator) and errors
    - validators.py: Input validation functions
"""
from .speech_service import (
    ArtifactConflictError,
    ArtifactData,
    ArtifactNotFoundError,
    ConfigurationError,
    ErrorCode,
    InvalidInputError,
    RenderFailedError,
    ServiceError,
    SpeechResult,
    SpeechService,
    StorageFailedError,
    SynthesisFailedError,
    UnauthorizedError,
)

__all__ = [
    "SpeechService",
    "SpeechResult",
    "ArtifactData",
    "ServiceError",
    "InvalidInputError",
    "UnauthorizedError",
    "ArtifactNotFoundError",
    "ArtifactConflictError",
    "SynthesisFailedError",
    "ConfigurationError",
    "StorageFailedError",
    "RenderFailedError",
    "ErrorCode",
]
