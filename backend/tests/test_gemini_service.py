"""
Climapp Backend: Gemini Service Unit Tests (Mocked)
====================================================

What:  GeminiExtractionService with a mocked GenerativeModel.
How:   Patches the genai module and injects a MagicMock model whose
       generate_content_async is an AsyncMock.

What we test:
    ✅ Transcript and audio entry points build the right request
    ✅ Raw text and token usage are returned untouched
    ✅ SDK errors map onto the ClimappError taxonomy
    ✅ Missing key fails without calling the SDK
    ✅ Transient failures are retried only within the configured budget
    ❌ Real API calls
"""

import asyncio
from types import SimpleNamespace

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from google.api_core import exceptions as google_exceptions

from climapp.exceptions import (
    AuthenticationError,
    ConfigurationError,
    PayloadError,
    RateLimitError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from climapp.schemas.extraction import AudioFormat
from climapp.services.gemini_service import GeminiExtractionService

from conftest import make_settings


def _response(text='{"pecas_materiais": [], "servicos": []}', usage=True):
    usage_metadata = None
    if usage:
        usage_metadata = SimpleNamespace(
            prompt_token_count=80,
            candidates_token_count=20,
            total_token_count=100,
        )
    return SimpleNamespace(text=text, usage_metadata=usage_metadata)


def _service(app_settings=None, side_effect=None, return_value=None):
    mock_model = MagicMock()
    mock_model.generate_content_async = AsyncMock(
        side_effect=side_effect, return_value=return_value or _response()
    )
    with patch("climapp.services.gemini_service.genai"):
        service = GeminiExtractionService(app_settings or make_settings(), model=mock_model)
    return service, mock_model


class TestGeminiExtraction:

    @pytest.mark.asyncio
    async def test_transcript_prompt_contains_transcript(self):
        service, mock_model = _service()

        completion = await service.extract_from_transcript("troca do capacitor")

        contents = mock_model.generate_content_async.call_args.args[0]
        assert len(contents) == 1
        assert "troca do capacitor" in contents[0]
        assert "{transcricao}" not in contents[0]
        assert completion.text == '{"pecas_materiais": [], "servicos": []}'
        assert completion.model == "gemini-2.0-flash"
        assert completion.token_usage.total_tokens == 100
        assert completion.token_usage.prompt_tokens == 80
        assert completion.token_usage.completion_tokens == 20

    @pytest.mark.asyncio
    async def test_audio_is_sent_inline_with_mime_type(self):
        service, mock_model = _service()

        await service.extract_from_audio(b"audio-bytes", AudioFormat.MP3)

        contents = mock_model.generate_content_async.call_args.args[0]
        assert contents[1] == {"mime_type": "audio/mpeg", "data": b"audio-bytes"}
        options = mock_model.generate_content_async.call_args.kwargs["request_options"]
        assert options == {"timeout": 60.0}

    @pytest.mark.asyncio
    async def test_missing_usage_metadata(self):
        service, _ = _service(return_value=_response(usage=False))
        completion = await service.extract_from_transcript("x")
        assert completion.token_usage is None

    @pytest.mark.asyncio
    async def test_missing_key_never_calls_sdk(self):
        service, mock_model = _service(make_settings(gemini_api_key=""))

        with pytest.raises(ConfigurationError) as exc_info:
            await service.extract_from_transcript("x")

        assert exc_info.value.context["setting"] == "GEMINI_API_KEY"
        mock_model.generate_content_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_blocked_response_is_unavailable(self):
        class Blocked:
            usage_metadata = None

            @property
            def text(self):
                raise ValueError("candidate was blocked")

        service, _ = _service(return_value=Blocked())

        with pytest.raises(UpstreamServiceError):
            await service.extract_from_transcript("x")


class TestGeminiErrorMapping:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "sdk_error, expected, status_code",
        [
            (google_exceptions.Unauthenticated("bad key"), AuthenticationError, 503),
            (google_exceptions.PermissionDenied("denied"), AuthenticationError, 503),
            (google_exceptions.InvalidArgument("audio corrupt"), PayloadError, 400),
            (google_exceptions.ResourceExhausted("quota"), RateLimitError, 429),
            (google_exceptions.DeadlineExceeded("slow"), UpstreamTimeoutError, 408),
            (asyncio.TimeoutError(), UpstreamTimeoutError, 408),
            (google_exceptions.InternalServerError("boom"), UpstreamServiceError, 503),
            (ConnectionError("refused"), UpstreamServiceError, 503),
        ],
    )
    async def test_mapping(self, sdk_error, expected, status_code):
        service, _ = _service(side_effect=sdk_error)

        with pytest.raises(expected) as exc_info:
            await service.extract_from_transcript("x")

        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_rejected_key_code(self):
        service, _ = _service(side_effect=google_exceptions.Unauthenticated("bad key"))

        with pytest.raises(AuthenticationError) as exc_info:
            await service.extract_from_transcript("x")

        assert exc_info.value.code == "UPSTREAM_AUTH_FAILED"

    @pytest.mark.asyncio
    async def test_quota_code(self):
        service, _ = _service(side_effect=google_exceptions.ResourceExhausted("quota"))

        with pytest.raises(RateLimitError) as exc_info:
            await service.extract_from_transcript("x")

        assert exc_info.value.code == "UPSTREAM_RATE_LIMITED"


class TestGeminiRetry:

    @pytest.mark.asyncio
    async def test_default_budget_does_not_retry(self):
        service, mock_model = _service(side_effect=google_exceptions.ServiceUnavailable("down"))

        with pytest.raises(UpstreamServiceError):
            await service.extract_from_transcript("x")

        assert mock_model.generate_content_async.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried_when_configured(self):
        app_settings = make_settings(upstream_retry_attempts=2, retry_min_wait=1, retry_max_wait=1)
        service, mock_model = _service(
            app_settings,
            side_effect=[google_exceptions.ServiceUnavailable("down"), _response()],
        )

        # retry_max_wait=1 caps the backoff at one second
        completion = await service.extract_from_transcript("x")

        assert completion.text == '{"pecas_materiais": [], "servicos": []}'
        assert mock_model.generate_content_async.await_count == 2

    @pytest.mark.asyncio
    async def test_quota_is_never_retried(self):
        app_settings = make_settings(upstream_retry_attempts=3)
        service, mock_model = _service(
            app_settings, side_effect=google_exceptions.ResourceExhausted("quota")
        )

        with pytest.raises(RateLimitError):
            await service.extract_from_transcript("x")

        assert mock_model.generate_content_async.await_count == 1
