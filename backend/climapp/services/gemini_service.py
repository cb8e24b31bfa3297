"""
Climapp Backend: Google Gemini Structured-Extraction Adapter
=============================================================

What:  Asks Gemini for the materials/services JSON document describing a
       technician's voice memo.
How:   Two entry points share one call path:
         - extract_from_transcript(): text-only prompt (two-call variant)
         - extract_from_audio(): prompt + inline audio part (single-call)
       The call is bounded by UPSTREAM_TIMEOUT_SECONDS, wrapped in the shared
       tenacity helper, and every SDK error is mapped onto the ClimappError
       taxonomy. The raw text is returned untouched; parsing belongs to
       extraction_parser.
Who:   Built once in create_app(); used by AudioPipeline.

Prompt rules (both variants):
    1. Verbatim extraction: item names exactly as spoken. No paraphrase,
       translation, synonym or spelling correction.
    2. Every item carries `confianca` (0-100).
    3. Incrementing keys: item_1, item_2... for parts/materials and
       servico_1, servico_2... for services.
    4. Empty arrays when nothing qualifies. No invented items.
"""

import asyncio
import logging
import time
from typing import Any, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from climapp.config import Settings
from climapp.exceptions import (
    AuthenticationError,
    ClimappError,
    ConfigurationError,
    PayloadError,
    RateLimitError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from climapp.middleware.request_id import get_request_id
from climapp.schemas.extraction import AudioFormat, ModelCompletion, TokenUsage
from climapp.services.ai_base import StructuredExtractionAdapter
from climapp.services.upstream import call_with_retry

logger = logging.getLogger(__name__)

SERVICE_NAME = "gemini"

_RULES = """Regras obrigatórias:
1. Copie o nome de cada peça, material ou serviço EXATAMENTE como foi falado.
   Não parafraseie, não traduza, não troque por sinônimos e não corrija a grafia.
2. Cada item deve ter o campo "confianca": um número inteiro de 0 a 100 que
   indica o quanto você tem certeza de que o item foi realmente mencionado.
3. Use chaves incrementais: "item_1", "item_2"... para peças e materiais, e
   "servico_1", "servico_2"... para serviços.
4. Para peças e materiais, informe "quantidade" como texto quando for dita
   (ex.: "2", "meio metro"); caso contrário use null.
5. Se nada for mencionado, retorne listas vazias. Nunca invente itens.
6. Retorne APENAS o objeto JSON, sem texto antes ou depois e sem blocos de código."""

TRANSCRIPT_PROMPT = """Você é um assistente especializado em relatórios técnicos de manutenção de
ar-condicionado, refrigeração e linha branca.

Abaixo está a transcrição de um áudio gravado por um técnico em campo.
Liste as peças/materiais e os serviços mencionados.

""" + _RULES + """

Formato de resposta:
{
  "pecas_materiais": [{"item_1": "nome falado", "quantidade": "2", "confianca": 95}],
  "servicos": [{"servico_1": "serviço falado", "confianca": 90}]
}

Transcrição:
\"\"\"
{transcricao}
\"\"\""""

AUDIO_PROMPT = """Você é um assistente especializado em relatórios técnicos de manutenção de
ar-condicionado, refrigeração e linha branca.

O áudio anexo foi gravado por um técnico em campo, em português do Brasil.
Primeiro transcreva o áudio com precisão (marque trechos incompreensíveis
como [inaudível]); depois liste as peças/materiais e os serviços mencionados.

""" + _RULES + """

Formato de resposta:
{
  "transcricao": "transcrição completa do áudio",
  "pecas_materiais": [{"item_1": "nome falado", "quantidade": "2", "confianca": 95}],
  "servicos": [{"servico_1": "serviço falado", "confianca": 90}]
}"""


class GeminiExtractionService(StructuredExtractionAdapter):
    """
    Gemini implementation of the structured-extraction role.

    Error mapping (google.api_core exceptions):
        Unauthenticated / PermissionDenied / API_KEY_INVALID → AuthenticationError (503)
        ResourceExhausted                                    → RateLimitError (429)
        DeadlineExceeded / asyncio.TimeoutError              → UpstreamTimeoutError (408)
        InvalidArgument                                      → PayloadError (400)
        anything else                                        → UpstreamServiceError (503)
    """

    def __init__(self, app_settings: Settings, model: Optional[Any] = None):
        self.settings = app_settings
        self.model_name = app_settings.gemini_model

        if app_settings.gemini_configured:
            genai.configure(api_key=app_settings.gemini_api_key)

        # Model object is reusable across requests
        self.model = model or genai.GenerativeModel(
            app_settings.gemini_model,
            generation_config={
                "temperature": app_settings.gemini_temperature,
                "max_output_tokens": app_settings.gemini_max_output_tokens,
                "response_mime_type": "application/json",
            },
        )

        logger.info(
            "GeminiExtractionService initialized with model=%s, configured=%s",
            self.model_name,
            app_settings.gemini_configured,
        )

    @property
    def is_configured(self) -> bool:
        return self.settings.gemini_configured

    async def extract_from_transcript(self, transcript: str) -> ModelCompletion:
        prompt = TRANSCRIPT_PROMPT.replace("{transcricao}", transcript)
        return await self._generate([prompt], mode="transcript")

    async def extract_from_audio(
        self, audio: bytes, audio_format: AudioFormat
    ) -> ModelCompletion:
        contents = [
            AUDIO_PROMPT,
            {"mime_type": audio_format.mime_type, "data": audio},
        ]
        return await self._generate(contents, mode="audio")

    async def _generate(self, contents: List[Any], mode: str) -> ModelCompletion:
        if not self.is_configured:
            raise ConfigurationError(service=SERVICE_NAME, setting="GEMINI_API_KEY")

        return await call_with_retry(
            lambda: self._call_gemini(contents, mode),
            self.settings,
            f"gemini extraction ({mode})",
        )

    async def _call_gemini(self, contents: List[Any], mode: str) -> ModelCompletion:
        request_id = get_request_id()
        timeout = self.settings.upstream_timeout_seconds
        start_time = time.time()

        logger.info("[%s] Starting Gemini extraction (mode=%s)", request_id, mode)

        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(
                    contents,
                    request_options={"timeout": timeout},
                ),
                timeout=timeout,
            )
        except ClimappError:
            raise
        except Exception as e:
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                request_id,
                (time.time() - start_time) * 1000,
                type(e).__name__,
            )
            raise self._translate_error(e, timeout) from e

        try:
            text = response.text or ""
        except ValueError as e:
            # .text raises when the candidate was blocked or has no parts
            raise UpstreamServiceError(
                message="A IA não retornou conteúdo para este áudio. Tente novamente.",
                context={"service": SERVICE_NAME, "error": str(e)},
            ) from e

        usage = self._token_usage(response)
        logger.info(
            "[%s] Gemini extraction completed in %.0fms, %d chars, tokens=%s",
            request_id,
            (time.time() - start_time) * 1000,
            len(text),
            usage.total_tokens if usage else "n/a",
        )
        return ModelCompletion(text=text, model=self.model_name, token_usage=usage)

    @staticmethod
    def _translate_error(exc: Exception, timeout: float) -> ClimappError:
        context = {"service": SERVICE_NAME, "error_type": type(exc).__name__}
        if isinstance(exc, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
            return AuthenticationError.upstream(SERVICE_NAME, context=context)
        if isinstance(exc, google_exceptions.InvalidArgument):
            # Gemini reports a bad key as 400 with reason API_KEY_INVALID
            if getattr(exc, "reason", None) == "API_KEY_INVALID":
                return AuthenticationError.upstream(SERVICE_NAME, context=context)
            return PayloadError(context=context)
        if isinstance(exc, google_exceptions.ResourceExhausted):
            return RateLimitError(code="UPSTREAM_RATE_LIMITED", context=context)
        if isinstance(exc, (google_exceptions.DeadlineExceeded, asyncio.TimeoutError)):
            return UpstreamTimeoutError(timeout=timeout, context=context)
        context["error"] = str(exc)
        return UpstreamServiceError(context=context)

    @staticmethod
    def _token_usage(response: Any) -> Optional[TokenUsage]:
        metadata = getattr(response, "usage_metadata", None)
        if metadata is None:
            return None
        return TokenUsage(
            prompt_tokens=getattr(metadata, "prompt_token_count", None),
            completion_tokens=getattr(metadata, "candidates_token_count", None),
            total_tokens=getattr(metadata, "total_token_count", None),
        )
