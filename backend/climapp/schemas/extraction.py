"""
Climapp Backend: Voice-Memo Extraction Schemas
===============================================

What:  Data types flowing through the audio → structured data pipeline, plus
       the request/response contract of POST /ai/process-audio.
Who:   The pipeline services (transcription, extraction, filter, assembler)
       and routes/ai.py.

Pipeline types, in flow order:
    ProcessAudioRequest      raw JSON body (loose: validated by the pipeline)
    AudioExtractionRequest   decoded bytes + AudioFormat
    Transcript               speech-to-text output (two-call variant)
    ModelCompletion          raw model text + model id + token usage
    ParsedExtraction         parsed items, before the confidence filter
    ProcessAudioData         final payload returned to the app

All of them are request-scoped; none is persisted.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class AudioFormat(str, Enum):
    """Audio container formats accepted from the mobile recorder."""

    WAV = "wav"
    MP3 = "mp3"
    OGG = "ogg"
    WEBM = "webm"
    FLAC = "flac"

    @property
    def mime_type(self) -> str:
        return AUDIO_MIME_TYPES[self]


AUDIO_MIME_TYPES: Dict[AudioFormat, str] = {
    AudioFormat.WAV: "audio/wav",
    AudioFormat.MP3: "audio/mpeg",
    AudioFormat.OGG: "audio/ogg",
    AudioFormat.WEBM: "audio/webm",
    AudioFormat.FLAC: "audio/flac",
}

SUPPORTED_FORMATS: List[str] = [fmt.value for fmt in AudioFormat]


class ItemKind(str, Enum):
    MATERIAL = "material"
    SERVICE = "service"


class ParseOutcome(str, Enum):
    """How the model output was turned into JSON."""

    # The whole output was valid JSON
    CLEAN = "clean"
    # JSON was found inside surrounding prose or code fences
    RECOVERED = "recovered"


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ProcessAudioRequest(BaseModel):
    """
    Body of POST /ai/process-audio.

    Every field is optional at the schema level so that a missing or empty
    `audioData` produces 400 MISSING_AUDIO_DATA from the pipeline validator
    instead of a generic schema error.
    """

    audioData: Optional[str] = Field(default=None, description="Base64-encoded audio")
    audioFormat: Optional[str] = Field(
        default=None,
        description="wav, mp3, ogg, webm or flac (case-insensitive, default wav)",
    )
    uid: Optional[str] = Field(default=None, description="Technician uid (logging only)")
    clientId: Optional[str] = Field(default=None, description="Client code (logging only)")

    model_config = {"extra": "ignore"}


class AudioExtractionRequest(BaseModel):
    """A validated, decoded audio request."""

    audio: bytes = Field(repr=False)
    audio_format: AudioFormat
    uid: Optional[str] = None
    client_id: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.audio)


# ══════════════════════════════════════════════════════════════════════════
# Intermediate Pipeline Types
# ══════════════════════════════════════════════════════════════════════════


class Transcript(BaseModel):
    """
    Speech-to-text output.

    `text` may contain inline [inaudível] markers where the speech could not
    be understood; they are passed through untouched.
    """

    text: str
    model: str
    duration_seconds: Optional[float] = None


class TokenUsage(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ModelCompletion(BaseModel):
    """Raw text returned by the structured-extraction model."""

    text: str
    model: str
    token_usage: Optional[TokenUsage] = None


class ExtractedItem(BaseModel):
    """
    One material or service named in the memo.

    `name` is the model's verbatim wording; it is never normalised or
    translated. `key` is the model's own incrementing key (item_1, servico_2).
    """

    kind: ItemKind
    key: str
    name: str
    quantity: Optional[str] = None
    confidence: int = Field(ge=0, le=100)


class ParsedExtraction(BaseModel):
    """Structured model output, before the confidence filter."""

    pecas_materiais: List[ExtractedItem] = Field(default_factory=list)
    servicos: List[ExtractedItem] = Field(default_factory=list)
    # Only the single-call variant gets a transcript back from the model
    transcricao: Optional[str] = None
    parse_outcome: ParseOutcome = ParseOutcome.CLEAN


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ExtractionMetadata(BaseModel):
    models: Dict[str, str] = Field(
        description="Model ids by role: transcription, extraction"
    )
    processed_at: datetime
    audio_format: AudioFormat
    confidence_threshold: int
    pipeline_variant: str
    parse_outcome: ParseOutcome
    discarded_items: int = Field(description="Items dropped for low confidence")
    extraction_skipped: bool = Field(
        default=False,
        description="True when the transcript was empty and no extraction call was made",
    )
    token_usage: Optional[TokenUsage] = None


class ProcessAudioData(BaseModel):
    """
    `data` payload of a successful extraction.

    Invariant: every item in pecas_materiais and servicos has
    confidence >= metadata.confidence_threshold.
    """

    transcricao: Optional[str] = None
    pecas_materiais: List[ExtractedItem] = Field(default_factory=list)
    servicos: List[ExtractedItem] = Field(default_factory=list)
    metadata: ExtractionMetadata


class ProcessAudioResponse(BaseModel):
    success: bool = True
    message: str = "Áudio processado com sucesso"
    data: ProcessAudioData


class AIStatusData(BaseModel):
    api_configured: bool
    status: str = Field(description="ready or not_configured")
    pipeline_variant: str
    models: Dict[str, str]
    missing_settings: List[str] = Field(default_factory=list)
    supported_formats: List[str]
    confidence_threshold: int
    endpoint: str = "/ai/process-audio"
    timestamp: datetime


class AIStatusResponse(BaseModel):
    success: bool = True
    message: str = "Status do serviço de IA"
    data: AIStatusData
