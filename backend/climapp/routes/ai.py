"""
Climapp Backend: AI Route Handlers
===================================

What:  POST /ai/process-audio (voice memo → materials and services) and
       GET /ai/status (configuration report).
How:   The route validates and decodes the body with validate_audio_request()
       before anything else, then hands the request to the AudioPipeline
       on app.state. Failures are typed ClimappErrors turned into JSON by the
       global handlers.
Who:   The technician's app, after recording a memo on site.

Request Flow:
    1. JSON body {audioData, audioFormat?, uid?, clientId?}
    2. validate_audio_request(): presence, format, size, base64
    3. AudioPipeline.process(): transcribe → extract → parse → filter
    4. 200 {success, message, data}
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from climapp.config import Settings
from climapp.dependencies import get_app_settings, get_audio_pipeline
from climapp.schemas.common import ErrorResponse
from climapp.schemas.extraction import (
    SUPPORTED_FORMATS,
    AIStatusData,
    AIStatusResponse,
    ProcessAudioRequest,
    ProcessAudioResponse,
)
from climapp.services.audio_pipeline import AudioPipeline, validate_audio_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"])


@router.post(
    "/process-audio",
    response_model=ProcessAudioResponse,
    responses={
        400: {"description": "Missing/invalid audio or format", "model": ErrorResponse},
        408: {"description": "Upstream timed out", "model": ErrorResponse},
        429: {"description": "Upstream quota exhausted", "model": ErrorResponse},
        503: {"description": "AI service unavailable or misconfigured", "model": ErrorResponse},
    },
    summary="Extract materials and services from a voice memo",
    description=(
        "Accepts a base64-encoded audio memo (wav, mp3, ogg, webm or flac) and returns "
        "the transcript plus the parts/materials and services mentioned, each with a "
        "confidence score. Only items at or above the configured confidence threshold "
        "are returned."
    ),
)
async def process_audio(
    payload: ProcessAudioRequest,
    pipeline: AudioPipeline = Depends(get_audio_pipeline),
    app_settings: Settings = Depends(get_app_settings),
) -> ProcessAudioResponse:
    """
    Error responses (handled by global exception handlers):
        HTTP 400: MISSING_AUDIO_DATA, INVALID_AUDIO_FORMAT, INVALID_AUDIO_PAYLOAD,
                  AUDIO_TOO_LARGE
        HTTP 408: UPSTREAM_TIMEOUT
        HTTP 429: UPSTREAM_RATE_LIMITED
        HTTP 503: SERVICE_NOT_CONFIGURED, UPSTREAM_AUTH_FAILED,
                  AI_SERVICE_UNAVAILABLE, MALFORMED_AI_RESPONSE
    """
    request = validate_audio_request(payload, app_settings)
    data = await pipeline.process(request)
    return ProcessAudioResponse(data=data)


@router.get(
    "/status",
    response_model=AIStatusResponse,
    summary="AI pipeline configuration",
    description="Reports whether the configured pipeline variant has its credentials. No network call.",
)
async def ai_status(
    pipeline: AudioPipeline = Depends(get_audio_pipeline),
    app_settings: Settings = Depends(get_app_settings),
) -> AIStatusResponse:
    configured = pipeline.is_configured
    return AIStatusResponse(
        data=AIStatusData(
            api_configured=configured,
            status="ready" if configured else "not_configured",
            pipeline_variant=pipeline.variant.value,
            models=pipeline.model_ids,
            missing_settings=pipeline.missing_settings,
            supported_formats=SUPPORTED_FORMATS,
            confidence_threshold=app_settings.confidence_threshold,
            timestamp=datetime.now(timezone.utc),
        )
    )
