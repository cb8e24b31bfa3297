"""
Climapp Backend: Voice-Memo Extraction Pipeline
================================================

What:  Audio in, validated structured JSON out.
How:   validate_audio_request() → [transcribe] → extract → parse → filter
       → assemble_response(). The variant comes from AI_PIPELINE_VARIANT:

         two_call     Deepgram transcript, then text-only Gemini extraction
         single_call  Gemini receives the audio inline and returns both the
                      transcript and the extraction

Who:   routes/ai.py. One AudioPipeline is built in create_app() and stored
       on app.state; routes reach it through the get_audio_pipeline
       dependency.

Validation runs in the route before process() is called, so a bad request
never reaches an upstream service. The two calls of the two-call variant run
sequentially: extraction needs the transcript.
"""

import base64
import binascii
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from climapp.config import PipelineVariant, Settings
from climapp.exceptions import ConfigurationError, PayloadError, ValidationError
from climapp.middleware.request_id import get_request_id
from climapp.schemas.extraction import (
    SUPPORTED_FORMATS,
    AudioExtractionRequest,
    AudioFormat,
    ExtractedItem,
    ExtractionMetadata,
    ModelCompletion,
    ParsedExtraction,
    ParseOutcome,
    ProcessAudioData,
    ProcessAudioRequest,
)
from climapp.services.ai_base import SpeechToTextAdapter, StructuredExtractionAdapter
from climapp.services.confidence_filter import filter_by_confidence
from climapp.services.extraction_parser import parse_model_output

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_FORMAT = AudioFormat.WAV


# ══════════════════════════════════════════════════════════════════════════
# Request validation
# ══════════════════════════════════════════════════════════════════════════


def validate_audio_request(
    payload: ProcessAudioRequest, app_settings: Settings
) -> AudioExtractionRequest:
    """
    Validate and decode a process-audio body.

    Checks, in order:
        1. audioData present and non-blank         → 400 MISSING_AUDIO_DATA
        2. audioFormat (wav when absent, any case) → 400 INVALID_AUDIO_FORMAT
        3. encoded size within MAX_AUDIO_BYTES     → 400 AUDIO_TOO_LARGE
        4. valid base64                            → 400 INVALID_AUDIO_PAYLOAD
        5. decoded audio non-empty                 → 400 MISSING_AUDIO_DATA

    A `data:audio/...;base64,` prefix (as produced by browser recorders) is
    accepted and stripped.
    """
    raw_data = payload.audioData
    if not isinstance(raw_data, str) or not raw_data.strip():
        raise ValidationError(
            message="Dados de áudio são obrigatórios",
            code="MISSING_AUDIO_DATA",
            field="audioData",
        )

    requested_format = DEFAULT_AUDIO_FORMAT.value
    if payload.audioFormat is not None:
        requested_format = payload.audioFormat.strip().lower()
    if requested_format not in SUPPORTED_FORMATS:
        raise ValidationError(
            message=f"Formato de áudio inválido. Use: {', '.join(SUPPORTED_FORMATS)}",
            code="INVALID_AUDIO_FORMAT",
            field="audioFormat",
            details={"supported_formats": SUPPORTED_FORMATS},
            context={"received": requested_format[:20]},
        )
    audio_format = AudioFormat(requested_format)

    encoded = raw_data.strip()
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    encoded = "".join(encoded.split())

    # base64 expands by 4/3; reject before decoding a huge body
    estimated_size = (len(encoded) * 3) // 4
    if estimated_size > app_settings.max_audio_bytes:
        raise ValidationError(
            message="Áudio muito grande. Grave um áudio mais curto.",
            code="AUDIO_TOO_LARGE",
            field="audioData",
            details={"max_bytes": app_settings.max_audio_bytes},
            context={"estimated_bytes": estimated_size},
        )

    try:
        audio = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadError(
            message="Dados de áudio não estão em base64 válido",
            context={"error": str(e)},
        ) from e

    if not audio:
        raise ValidationError(
            message="Dados de áudio vazios",
            code="MISSING_AUDIO_DATA",
            field="audioData",
        )

    return AudioExtractionRequest(
        audio=audio,
        audio_format=audio_format,
        uid=payload.uid,
        client_id=payload.clientId,
    )


# ══════════════════════════════════════════════════════════════════════════
# Response assembly
# ══════════════════════════════════════════════════════════════════════════


def assemble_response(
    transcricao: Optional[str],
    pecas_materiais: List[ExtractedItem],
    servicos: List[ExtractedItem],
    metadata: ExtractionMetadata,
) -> ProcessAudioData:
    """Pure aggregation of the pipeline outputs; no value is transformed."""
    return ProcessAudioData(
        transcricao=transcricao,
        pecas_materiais=pecas_materiais,
        servicos=servicos,
        metadata=metadata,
    )


# ══════════════════════════════════════════════════════════════════════════
# Pipeline
# ══════════════════════════════════════════════════════════════════════════


class AudioPipeline:
    """Runs one validated request through the configured variant."""

    def __init__(
        self,
        app_settings: Settings,
        transcriber: SpeechToTextAdapter,
        extractor: StructuredExtractionAdapter,
    ):
        self.settings = app_settings
        self.transcriber = transcriber
        self.extractor = extractor

    @property
    def variant(self) -> PipelineVariant:
        return self.settings.ai_pipeline_variant

    @property
    def model_ids(self) -> Dict[str, str]:
        models = {"extraction": self.extractor.model_name}
        if self.variant == PipelineVariant.TWO_CALL:
            models["transcription"] = self.transcriber.model_name
        return models

    @property
    def missing_settings(self) -> List[str]:
        missing = []
        if self.variant == PipelineVariant.TWO_CALL and not self.transcriber.is_configured:
            missing.append("DEEPGRAM_API_KEY")
        if not self.extractor.is_configured:
            missing.append("GEMINI_API_KEY")
        return missing

    @property
    def is_configured(self) -> bool:
        return not self.missing_settings

    def ensure_configured(self) -> None:
        """Fail before any upstream call when a required key is missing."""
        missing = self.missing_settings
        if missing:
            service = "deepgram" if missing[0] == "DEEPGRAM_API_KEY" else "gemini"
            raise ConfigurationError(service=service, setting=missing[0])

    async def process(self, request: AudioExtractionRequest) -> ProcessAudioData:
        """
        Transcribe (two-call), extract, parse and filter one memo.

        Raises:
            ConfigurationError: a key the variant needs is not set
            ParseError: the model output had no usable JSON object
            (adapter errors): see services/ai_base.py
        """
        self.ensure_configured()
        request_id = get_request_id()
        start_time = time.time()

        logger.info(
            "[%s] Processing %d bytes of %s audio (variant=%s, uid=%s, client=%s)",
            request_id,
            request.size_bytes,
            request.audio_format.value,
            self.variant.value,
            request.uid or "-",
            request.client_id or "-",
        )

        completion: Optional[ModelCompletion] = None
        models = self.model_ids
        if self.variant == PipelineVariant.TWO_CALL:
            transcript = await self.transcriber.transcribe(request.audio, request.audio_format)
            transcricao: Optional[str] = transcript.text
            if transcript.text.strip():
                completion = await self.extractor.extract_from_transcript(transcript.text)
                parsed = parse_model_output(completion.text)
            else:
                # Silence: nothing to extract from
                logger.info("[%s] Empty transcript, skipping extraction", request_id)
                parsed = ParsedExtraction(parse_outcome=ParseOutcome.CLEAN)
                models.pop("extraction")
        else:
            completion = await self.extractor.extract_from_audio(
                request.audio, request.audio_format
            )
            parsed = parse_model_output(completion.text)
            transcricao = parsed.transcricao

        threshold = self.settings.confidence_threshold
        pecas, discarded_pecas = filter_by_confidence(parsed.pecas_materiais, threshold)
        servicos, discarded_servicos = filter_by_confidence(parsed.servicos, threshold)

        metadata = ExtractionMetadata(
            models=models,
            processed_at=datetime.now(timezone.utc),
            audio_format=request.audio_format,
            confidence_threshold=threshold,
            pipeline_variant=self.variant.value,
            parse_outcome=parsed.parse_outcome,
            discarded_items=discarded_pecas + discarded_servicos,
            token_usage=completion.token_usage if completion else None,
            extraction_skipped=completion is None,
        )

        logger.info(
            "[%s] Audio processed in %.0fms: %d materials, %d services kept, "
            "%d discarded, parse=%s",
            request_id,
            (time.time() - start_time) * 1000,
            len(pecas),
            len(servicos),
            metadata.discarded_items,
            parsed.parse_outcome.value,
        )

        return assemble_response(transcricao, pecas, servicos, metadata)
