"""
Input Validation for the Speech Service.

Validation happens before any upstream call or filesystem write so that
bad requests fail fast with a clear message.

Validation Rules:
    - Text: Required after trimming, at most ``max_length`` characters
    - User ID: Required, one path segment, printable, at most 128 characters
    - Artifact dir: Must be a RequestTimestamp (``2025-04-03-14:03``)

Error Handling:
    All validators raise ValidationError with:
        - message: Human-readable error description
        - code: Machine-readable error code (e.g., "TEXT_TOO_LONG")

Usage:
    from speech_studio.services.validators import validate_text, ValidationError

    try:
        text = validate_text(body.input, max_length=100_000)
    except ValidationError as e:
        return error_response(e.code, e.message)
"""
from __future__ import annotations

from typing import Optional

from speech_studio.core.logging import get_logger, warn
from speech_studio.tts.storage import parse_timestamp

_LOG = get_logger("speech-studio.validators")

MAX_USER_ID_LENGTH = 128


class ValidationError(Exception):
    """
    Exception raised when input validation fails.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for programmatic handling.
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


def validate_text(text: Optional[str], max_length: int = 100_000) -> str:
    """
    Validate and trim the text to synthesize.

    Returns:
        The trimmed text.

    Raises:
        ValidationError: TEXT_REQUIRED or TEXT_TOO_LONG.
    """
    if not text or not text.strip():
        raise ValidationError("Text is required", "TEXT_REQUIRED")

    text = text.strip()

    if len(text) > max_length:
        raise ValidationError(
            f"Text exceeds maximum length ({len(text)} > {max_length})",
            "TEXT_TOO_LONG",
        )

    return text


def validate_user_id(user_id: Optional[str]) -> str:
    """
    Validate the user id supplied by the identity provider.

    The id becomes a directory name, so it must be a single safe path
    segment.

    Raises:
        ValidationError: USER_REQUIRED or USER_INVALID.
    """
    if not user_id or not user_id.strip():
        raise ValidationError("User id is required", "USER_REQUIRED")

    user_id = user_id.strip()

    if (
        len(user_id) > MAX_USER_ID_LENGTH
        or user_id in (".", "..")
        or any(c in user_id for c in "/\\\x00")
        or not user_id.isprintable()
    ):
        warn(_LOG, "invalid_user_id", length=len(user_id))
        raise ValidationError("User id is not a valid identifier", "USER_INVALID")

    return user_id


def validate_dir_name(dir_name: Optional[str]) -> str:
    """
    Validate an artifact directory name from a URL.

    Raises:
        ValidationError: DIR_INVALID if the name is not a RequestTimestamp.
    """
    if not dir_name or parse_timestamp(dir_name) is None:
        raise ValidationError(f"Not an artifact directory: {dir_name!r}", "DIR_INVALID")
    return dir_name
