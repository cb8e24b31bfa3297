"""
Climapp Backend: AI Endpoint Tests
===================================

What:  POST /ai/process-audio and GET /ai/status through the full app
       (middleware, exception handlers) with the pipeline's adapters faked.
"""

import pytest
from unittest.mock import AsyncMock

from climapp.dependencies import get_audio_pipeline
from climapp.exceptions import RateLimitError, UpstreamTimeoutError
from climapp.services.audio_pipeline import AudioPipeline

from conftest import encode_audio, make_settings


@pytest.fixture
def pipeline(app, test_settings, fake_transcriber, fake_extractor):
    audio_pipeline = AudioPipeline(test_settings, fake_transcriber, fake_extractor)
    app.dependency_overrides[get_audio_pipeline] = lambda: audio_pipeline
    return audio_pipeline


class TestProcessAudio:

    @pytest.mark.asyncio
    async def test_success_envelope(self, test_client, pipeline):
        response = await test_client.post(
            "/ai/process-audio",
            json={"audioData": encode_audio(), "audioFormat": "wav", "uid": "tech-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Áudio processado com sucesso"
        data = body["data"]
        assert data["transcricao"] == "troquei o capacitor e fiz a limpeza do filtro"
        assert data["pecas_materiais"][0]["key"] == "item_1"
        assert data["pecas_materiais"][0]["confidence"] == 95
        assert data["servicos"][0]["name"] == "limpeza do filtro"
        assert data["metadata"]["confidence_threshold"] == 80
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_missing_audio_fails_before_any_upstream_call(
        self, test_client, pipeline, fake_transcriber, fake_extractor
    ):
        response = await test_client.post("/ai/process-audio", json={"audioFormat": "wav"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "MISSING_AUDIO_DATA"
        assert body["request_id"]
        assert "timestamp" in body
        fake_transcriber.transcribe.assert_not_called()
        fake_extractor.extract_from_transcript.assert_not_called()

    @pytest.mark.asyncio
    async def test_unsupported_format(self, test_client, pipeline, fake_transcriber):
        response = await test_client.post(
            "/ai/process-audio", json={"audioData": encode_audio(), "audioFormat": "aac"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INVALID_AUDIO_FORMAT"
        assert body["details"]["supported_formats"] == ["wav", "mp3", "ogg", "webm", "flac"]
        fake_transcriber.transcribe.assert_not_called()

    @pytest.mark.asyncio
    async def test_upstream_timeout_is_408(self, test_client, pipeline, fake_transcriber):
        fake_transcriber.transcribe = AsyncMock(side_effect=UpstreamTimeoutError(timeout=60))

        response = await test_client.post("/ai/process-audio", json={"audioData": encode_audio()})

        assert response.status_code == 408
        assert response.json()["error"] == "UPSTREAM_TIMEOUT"

    @pytest.mark.asyncio
    async def test_quota_exhausted_is_429_with_retry_after(
        self, test_client, pipeline, fake_extractor
    ):
        fake_extractor.extract_from_transcript = AsyncMock(
            side_effect=RateLimitError(code="UPSTREAM_RATE_LIMITED", retry_after=30)
        )

        response = await test_client.post("/ai/process-audio", json={"audioData": encode_audio()})

        assert response.status_code == 429
        assert response.json()["error"] == "UPSTREAM_RATE_LIMITED"
        assert response.headers["Retry-After"] == "30"

    @pytest.mark.asyncio
    async def test_malformed_model_output_is_503(self, test_client, pipeline, fake_extractor):
        from climapp.schemas.extraction import ModelCompletion

        fake_extractor.extract_from_transcript = AsyncMock(
            return_value=ModelCompletion(text="sem json", model="gemini-2.0-flash")
        )

        response = await test_client.post("/ai/process-audio", json={"audioData": encode_audio()})

        assert response.status_code == 503
        body = response.json()
        assert body["error"] == "MALFORMED_AI_RESPONSE"
        # The raw model output never reaches the client
        assert "sem json" not in response.text


class TestAIStatus:

    @pytest.mark.asyncio
    async def test_configured(self, test_client, pipeline):
        response = await test_client.get("/ai/status")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["api_configured"] is True
        assert data["status"] == "ready"
        assert data["pipeline_variant"] == "two_call"
        assert data["supported_formats"] == ["wav", "mp3", "ogg", "webm", "flac"]
        assert data["missing_settings"] == []

    @pytest.mark.asyncio
    async def test_not_configured(self, app, test_client, fake_transcriber, fake_extractor):
        fake_extractor.is_configured = False
        audio_pipeline = AudioPipeline(
            make_settings(gemini_api_key=""), fake_transcriber, fake_extractor
        )
        app.dependency_overrides[get_audio_pipeline] = lambda: audio_pipeline

        data = (await test_client.get("/ai/status")).json()["data"]

        assert data["api_configured"] is False
        assert data["status"] == "not_configured"
        assert data["missing_settings"] == ["GEMINI_API_KEY"]

    @pytest.mark.asyncio
    async def test_process_audio_without_key_is_503(
        self, app, test_client, fake_transcriber, fake_extractor
    ):
        fake_extractor.is_configured = False
        audio_pipeline = AudioPipeline(
            make_settings(gemini_api_key=""), fake_transcriber, fake_extractor
        )
        app.dependency_overrides[get_audio_pipeline] = lambda: audio_pipeline

        response = await test_client.post("/ai/process-audio", json={"audioData": encode_audio()})

        assert response.status_code == 503
        assert response.json()["error"] == "SERVICE_NOT_CONFIGURED"
        fake_transcriber.transcribe.assert_not_called()
