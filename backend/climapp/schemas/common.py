"""
Climapp Backend: Shared Response Schemas
=========================================

What:  Envelope and error models shared by every route module.
Who:   Referenced in route `responses=` maps for OpenAPI, and by the
       exception handlers in main.py for the error body layout.

Every response carries `success`. Error bodies are built by the handlers
directly as dicts; ErrorResponse documents their shape.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Plain acknowledgement for endpoints with nothing else to return."""

    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Example:
        {
            "success": false,
            "message": "Formato de áudio inválido. Use: wav, mp3, ogg, webm, flac",
            "error": "INVALID_AUDIO_FORMAT",
            "details": {"supported_formats": ["wav", "mp3", "ogg", "webm", "flac"]},
            "request_id": "550e8400-e29b-41d4-a716-446655440000",
            "timestamp": "2026-01-15T12:00:00+00:00"
        }
    """

    success: bool = Field(default=False)
    message: str = Field(description="Human-readable error description (Portuguese)")
    error: str = Field(description="Machine-readable error code")
    details: Optional[Any] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
    timestamp: datetime = Field(description="When the error was produced (UTC)")


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for the hosting platform's health probe.

    Upstream services are reported as configured / not_configured only; the
    probe never calls them (that would spend quota on every ping).
    """

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    environment: str
    database: str = Field(description="Database connectivity: connected, disconnected")
    services: Dict[str, str] = Field(description="Upstream credential status per service")
    uptime_seconds: float = Field(description="Seconds since service started")
