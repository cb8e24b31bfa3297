"""
Climapp Backend: Deepgram Transcription Adapter Tests
======================================================

What:  DeepgramTranscriptionService against an httpx.MockTransport.

What we test:
    ✅ Request shape (path, query, auth header, content type, raw body)
    ✅ Transcript and duration are read from the response
    ✅ HTTP statuses and transport failures map onto the error taxonomy
    ✅ Malformed bodies are reported as service errors
"""

import httpx
import pytest

from climapp.exceptions import (
    AuthenticationError,
    ConfigurationError,
    PayloadError,
    RateLimitError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from climapp.schemas.extraction import AudioFormat
from climapp.services.transcription_service import DeepgramTranscriptionService

from conftest import make_settings

DEEPGRAM_BODY = {
    "metadata": {"duration": 3.5},
    "results": {
        "channels": [
            {"alternatives": [{"transcript": " troquei o capacitor ", "confidence": 0.98}]}
        ]
    },
}


def _service(handler, app_settings=None):
    return DeepgramTranscriptionService(
        app_settings or make_settings(), transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_successful_transcription():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["request"] = request
        return httpx.Response(200, json=DEEPGRAM_BODY)

    transcript = await _service(handler).transcribe(b"ogg-bytes", AudioFormat.OGG)

    request = captured["request"]
    assert request.url.path == "/v1/listen"
    assert request.url.params["model"] == "nova-2"
    assert request.url.params["language"] == "pt-BR"
    assert request.headers["Authorization"] == "Token test-deepgram-key"
    assert request.headers["Content-Type"] == "audio/ogg"
    assert request.content == b"ogg-bytes"

    assert transcript.text == "troquei o capacitor"
    assert transcript.model == "nova-2"
    assert transcript.duration_seconds == 3.5


@pytest.mark.asyncio
async def test_missing_key_sends_nothing():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=DEEPGRAM_BODY)

    service = _service(handler, make_settings(deepgram_api_key=""))
    with pytest.raises(ConfigurationError):
        await service.transcribe(b"x", AudioFormat.WAV)
    assert calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, expected, status_code",
    [
        (401, AuthenticationError, 503),
        (403, AuthenticationError, 503),
        (400, PayloadError, 400),
        (415, PayloadError, 400),
        (429, RateLimitError, 429),
        (504, UpstreamTimeoutError, 408),
        (500, UpstreamServiceError, 503),
        (502, UpstreamServiceError, 503),
    ],
)
async def test_status_mapping(status, expected, status_code):
    service = _service(lambda request: httpx.Response(status, json={"err_msg": "x"}))

    with pytest.raises(expected) as exc_info:
        await service.transcribe(b"x", AudioFormat.WAV)

    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_retry_after_header_is_honoured():
    service = _service(
        lambda request: httpx.Response(429, headers={"Retry-After": "12"}, json={})
    )

    with pytest.raises(RateLimitError) as exc_info:
        await service.transcribe(b"x", AudioFormat.WAV)

    assert exc_info.value.retry_after == 12


@pytest.mark.asyncio
async def test_transport_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UpstreamTimeoutError) as exc_info:
        await _service(handler).transcribe(b"x", AudioFormat.WAV)

    assert exc_info.value.context["timeout_seconds"] == 60.0


@pytest.mark.asyncio
async def test_connection_refused():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamServiceError):
        await _service(handler).transcribe(b"x", AudioFormat.WAV)


@pytest.mark.asyncio
async def test_malformed_body():
    service = _service(lambda request: httpx.Response(200, json={"results": {"channels": []}}))

    with pytest.raises(UpstreamServiceError):
        await service.transcribe(b"x", AudioFormat.WAV)


@pytest.mark.asyncio
async def test_silence_gives_empty_transcript():
    body = {"results": {"channels": [{"alternatives": [{"transcript": ""}]}]}}
    transcript = await _service(lambda request: httpx.Response(200, json=body)).transcribe(
        b"x", AudioFormat.WAV
    )

    assert transcript.text == ""
    assert transcript.duration_seconds is None
