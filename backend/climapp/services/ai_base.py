"""
Climapp Backend: Abstract AI Adapter Interfaces
================================================

What:  Contracts for the two upstream AI roles of the voice-memo pipeline.
How:   Concrete adapters inherit and implement the async methods; the
       pipeline only ever talks to these interfaces.
Who:   DeepgramTranscriptionService, GeminiExtractionService, and the test
       suite's fakes.

Error contract (both adapters):
    Every upstream failure is translated into a typed ClimappError before it
    leaves the adapter:
        ConfigurationError     key not set
        AuthenticationError    key rejected (503 UPSTREAM_AUTH_FAILED)
        RateLimitError         quota exhausted
        PayloadError           audio rejected
        UpstreamTimeoutError   no answer within UPSTREAM_TIMEOUT_SECONDS
        UpstreamServiceError   anything else
"""

from abc import ABC, abstractmethod

from climapp.schemas.extraction import AudioFormat, ModelCompletion, Transcript


class SpeechToTextAdapter(ABC):
    """Turns recorded audio into Portuguese text."""

    model_name: str = ""

    @abstractmethod
    async def transcribe(self, audio: bytes, audio_format: AudioFormat) -> Transcript:
        """
        Transcribe one audio memo.

        Returns:
            Transcript whose text may contain [inaudível] markers. An empty
            text is valid (silence).
        """
        ...

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True when the adapter has the credential it needs. No network call."""
        ...


class StructuredExtractionAdapter(ABC):
    """Asks a language model for the materials/services JSON document."""

    model_name: str = ""

    @abstractmethod
    async def extract_from_transcript(self, transcript: str) -> ModelCompletion:
        """Text-only extraction (two-call variant)."""
        ...

    @abstractmethod
    async def extract_from_audio(
        self, audio: bytes, audio_format: AudioFormat
    ) -> ModelCompletion:
        """
        Multimodal extraction (single-call variant). The completion also
        carries the transcript under `transcricao`.
        """
        ...

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...
