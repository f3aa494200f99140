"""
FastAPI REST API Layer for speech-studio.

    - routes.py: Speech, video, file and health endpoints
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
