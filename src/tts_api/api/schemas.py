"""
API Response Schemas.

Requests are GET with flat query parameters (``id``, ``token``, ``text``),
so only responses are modelled here.

Example Responses:
    GET /user
        {"id": 42, "account_status": 0, "character_count": 50, "character_limit": 5000}

    GET /tts/generate.opus
        {"data": ["<base64 frame>", ...], "sample_rate": 48000, "frame_ms": 20}

    GET /revoke
        {"token": "0A1B2C3D4E5F60718293A4B5"}

    Any error
        {"ok": false, "error": "QUOTA_EXCEEDED", "message": "Account quota exceeded.",
         "request_id": "abc123def456"}
"""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class UserResponse(BaseModel):
    id: int = Field(..., description="External account id")
    account_status: int = Field(..., description="Account status flag")
    character_count: int = Field(..., description="Characters consumed")
    character_limit: int = Field(..., description="Characters granted")


class OpusFramesResponse(BaseModel):
    """
    Opus frames for one synthesis.

    Attributes:
        data: Base64-encoded Opus packets in playback order. Each decodes
            to ``sample_rate * frame_ms / 1000`` samples.
        sample_rate: Decoder sample rate in Hz.
        frame_ms: Duration of each frame in milliseconds.
    """
    data: List[str] = Field(..., description="Base64-encoded Opus packets, in order")
    sample_rate: int = Field(..., description="Sample rate in Hz")
    frame_ms: int = Field(..., description="Frame duration in milliseconds")


class RevokeResponse(BaseModel):
    token: str = Field(..., description="Newly issued token; the old one no longer verifies")

