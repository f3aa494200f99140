"""
FastAPI Application Entry Point.

Usage:
    # Run with uvicorn
    uvicorn speech_studio.main:app --host 0.0.0.0 --port 8000

    # Point at another settings file
    SPEECH_STUDIO_SETTINGS=/etc/speech-studio.yaml uvicorn speech_studio.main:app
"""

from __future__ import annotations

from fastapi import FastAPI

from speech_studio import __version__
from speech_studio.api.routes import router, service_error_handler
from speech_studio.core.logging import configure_logging, get_logger, info
from speech_studio.services.speech_service import ServiceError


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Settings are loaded lazily by the first request that needs the
    service, so building the app never touches the filesystem.
    """
    configure_logging()

    app = FastAPI(title="speech-studio", version=__version__)
    app.include_router(router)
    # Configuration failures surface while resolving dependencies
    app.add_exception_handler(ServiceError, service_error_handler)

    info(get_logger("speech-studio.main"), "app_created", version=__version__)
    return app


# Global application instance for ASGI servers
app = create_app()
