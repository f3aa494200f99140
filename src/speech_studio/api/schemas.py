"""
API Request/Response Schemas.

Models:
    SpeechRequest: Body of POST /api/speech and POST /api/video
    ArtifactEntryResponse: One row of GET /api/files

Example Request:
    {"input": "The quick brown fox jumps over the lazy dog."}

Text limits (empty after trimming, maximum length) are enforced by the
service so that violations come back in the standard error format.
"""
from __future__ import annotations

from pydantic import BaseModel, Field


class SpeechRequest(BaseModel):
    """
    Text to turn into speech.

    Attributes:
        input: Free-form text of any length; it is split into chunks that
            fit the upstream API limit.
    """
    input: str = Field(..., description="Text to synthesize")


class ArtifactEntryResponse(BaseModel):
    """A stored merged audio artifact, listed oldest first."""
    timestamp: str = Field(..., description="Request time, e.g. 2025-04-03-14:03")
    file_path: str = Field(..., description="Server-side location of final.mp3")
    dir_name: str = Field(..., description="Directory name for /api/files/{dir_name}/...")
