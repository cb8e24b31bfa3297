"""
Climapp Backend: Deepgram Speech-to-Text Adapter
=================================================

What:  Transcribes a voice memo with Deepgram's pre-recorded /listen endpoint.
How:   One POST with the raw audio bytes as body, language fixed to pt-BR,
       smart_format on (punctuation, numerals). The request is bounded by
       UPSTREAM_TIMEOUT_SECONDS and wrapped in the shared retry helper.
Who:   AudioPipeline, two-call variant only.

Response shape used (everything else is ignored):
    {
      "metadata": {"duration": 12.4, ...},
      "results": {"channels": [{"alternatives": [{"transcript": "..."}]}]}
    }
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from climapp.config import Settings
from climapp.exceptions import ConfigurationError, UpstreamServiceError
from climapp.middleware.request_id import get_request_id
from climapp.schemas.extraction import AudioFormat, Transcript
from climapp.services.ai_base import SpeechToTextAdapter
from climapp.services.upstream import (
    call_with_retry,
    raise_for_upstream_status,
    translate_transport_error,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "deepgram"


class DeepgramTranscriptionService(SpeechToTextAdapter):
    """Speech-to-text through Deepgram's REST API."""

    def __init__(
        self,
        app_settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = app_settings
        self.model_name = app_settings.deepgram_model
        # Tests inject httpx.MockTransport here
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.settings.deepgram_configured

    async def transcribe(self, audio: bytes, audio_format: AudioFormat) -> Transcript:
        """
        Transcribe one memo.

        Raises:
            ConfigurationError: DEEPGRAM_API_KEY not set
            AuthenticationError / RateLimitError / PayloadError /
            UpstreamTimeoutError / UpstreamServiceError: see ai_base
        """
        if not self.is_configured:
            raise ConfigurationError(service=SERVICE_NAME, setting="DEEPGRAM_API_KEY")

        return await call_with_retry(
            lambda: self._post_audio(audio, audio_format),
            self.settings,
            "deepgram transcription",
        )

    async def _post_audio(self, audio: bytes, audio_format: AudioFormat) -> Transcript:
        request_id = get_request_id()
        timeout = self.settings.upstream_timeout_seconds
        start_time = time.time()

        logger.info(
            "[%s] Sending %d bytes of %s audio to Deepgram (model=%s)",
            request_id,
            len(audio),
            audio_format.value,
            self.model_name,
        )

        try:
            async with httpx.AsyncClient(
                base_url=self.settings.deepgram_base_url,
                timeout=timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    "/listen",
                    params={
                        "model": self.model_name,
                        "language": self.settings.transcription_language,
                        "smart_format": "true",
                    },
                    headers={
                        "Authorization": f"Token {self.settings.deepgram_api_key}",
                        "Content-Type": audio_format.mime_type,
                    },
                    content=audio,
                )
        except httpx.HTTPError as e:
            logger.warning(
                "[%s] Deepgram call failed after %.0fms: %s",
                request_id,
                (time.time() - start_time) * 1000,
                type(e).__name__,
            )
            raise translate_transport_error(e, SERVICE_NAME, timeout) from e

        raise_for_upstream_status(response, SERVICE_NAME)
        transcript = self._parse_response(response)

        logger.info(
            "[%s] Deepgram transcription completed in %.0fms, %d chars",
            request_id,
            (time.time() - start_time) * 1000,
            len(transcript.text),
        )
        return transcript

    def _parse_response(self, response: httpx.Response) -> Transcript:
        try:
            body: Dict[str, Any] = response.json()
            alternative = body["results"]["channels"][0]["alternatives"][0]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamServiceError(
                message="Resposta inesperada do serviço de transcrição",
                context={"service": SERVICE_NAME, "error": str(e)},
            ) from e

        duration = (body.get("metadata") or {}).get("duration")
        return Transcript(
            text=(alternative.get("transcript") or "").strip(),
            model=self.model_name,
            duration_seconds=float(duration) if duration is not None else None,
        )
