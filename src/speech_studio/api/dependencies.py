"""
FastAPI Dependency Injection Providers.

Hierarchy:
    1. get_settings() - Loads and caches application configuration
    2. get_speech_service() - Creates/returns the singleton SpeechService
    3. get_user_id() - Reads the identity header named by auth.user_header

Identity is established by an upstream identity provider (reverse proxy,
gateway) that sets the user header; this service only reads it. A missing
header is reported by the service as UNAUTHORIZED.

Tests replace these with ``app.dependency_overrides``.
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request

from speech_studio.core.config import ConfigValidationError, Settings, load_settings
from speech_studio.services.speech_service import ConfigurationError, SpeechService, get_service


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The path defaults to ``config/settings.yaml`` and can be changed with
    SPEECH_STUDIO_SETTINGS. Settings are immutable once loaded.
    """
    return load_settings(os.getenv("SPEECH_STUDIO_SETTINGS", "config/settings.yaml"))


def get_speech_service() -> SpeechService:
    """
    Get the singleton SpeechService instance.

    Raises:
        ConfigurationError: If the settings file is missing or invalid.
    """
    try:
        return get_service(get_settings())
    except (FileNotFoundError, ConfigValidationError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def get_user_id(
    request: Request,
    service: SpeechService = Depends(get_speech_service),
) -> Optional[str]:
    """The authenticated user id, or None if the header is absent."""
    return request.headers.get(service.config.auth.user_header)
