"""
Climapp Backend: Application-Level Tests
=========================================

What we test:
    ✅ GET / banner and GET /health
    ✅ Request ID propagation (client-supplied and generated)
    ✅ Schema failures become 400 VALIDATION_ERROR with an errors list
    ✅ Unexpected exceptions become 500 INTERNAL_ERROR without internals
    ✅ Settings validation
"""

import logging

import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import ValidationError as PydanticValidationError

from climapp.config import PipelineVariant
from climapp.dependencies import get_auth_service
from climapp.main import setup_logging
from climapp.middleware.request_id import RequestIdFilter

from conftest import make_settings


@pytest.mark.asyncio
async def test_root_banner(test_client):
    response = await test_client.get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["endpoints"]["ai"] == "/ai"


@pytest.mark.asyncio
async def test_health_reports_database_and_services(test_client):
    response = await test_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"
    assert body["services"] == {
        "gemini": "configured",
        "deepgram": "configured",
        "firebase": "configured",
        "cloudinary": "configured",
    }


@pytest.mark.asyncio
async def test_request_id_is_echoed(test_client):
    response = await test_client.get("/", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"


@pytest.mark.asyncio
async def test_request_id_is_generated(test_client):
    response = await test_client.get("/")
    assert len(response.headers["X-Request-ID"]) == 8


@pytest.mark.asyncio
async def test_schema_failure_is_400_with_errors(test_client):
    response = await test_client.post(
        "/auth/signup",
        json={"email": "tecnico@example.com", "password": "123"},
        headers={"X-Request-ID": "req-42"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "VALIDATION_ERROR"
    assert body["request_id"] == "req-42"
    assert body["details"]["errors"][0]["field"] == "password"


@pytest.mark.asyncio
async def test_unexpected_error_is_500_without_internals(app):
    class ExplodingAuth:
        async def get_profile(self, id_token):
            raise RuntimeError("secret connection string leaked")

    app.dependency_overrides[get_auth_service] = lambda: ExplodingAuth()
    # Starlette re-raises after the 500 handler runs; keep the response
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get(
            "/auth/profile",
            headers={"Authorization": "Bearer token", "X-Request-ID": "boom-1"},
        )

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "INTERNAL_ERROR"
    assert body["request_id"] == "boom-1"
    assert "secret" not in response.text


def test_request_id_filter_outside_request():
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
    assert RequestIdFilter().filter(record) is True
    assert record.request_id == "-"


def test_setup_logging_installs_filter():
    setup_logging("WARNING")
    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert any(
        isinstance(f, RequestIdFilter) for handler in root.handlers for f in handler.filters
    )


class TestSettings:

    def test_defaults(self):
        app_settings = make_settings()
        assert app_settings.confidence_threshold == 80
        assert app_settings.upstream_retry_attempts == 1
        assert app_settings.ai_pipeline_variant == PipelineVariant.TWO_CALL

    def test_threshold_range_is_validated(self):
        with pytest.raises(PydanticValidationError):
            make_settings(confidence_threshold=101)

    def test_log_level_is_normalised(self):
        assert make_settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(PydanticValidationError):
            make_settings(log_level="LOUD")

    def test_retry_window(self):
        with pytest.raises(PydanticValidationError):
            make_settings(retry_min_wait=10, retry_max_wait=2)

    def test_missing_credentials(self):
        app_settings = make_settings(
            gemini_api_key="", deepgram_api_key="", cloudinary_api_secret=""
        )
        missing = app_settings.missing_credentials()
        assert set(missing) == {
            "GEMINI_API_KEY",
            "DEEPGRAM_API_KEY",
            "CLOUDINARY_CLOUD_NAME/API_KEY/API_SECRET",
        }

    def test_single_call_does_not_need_deepgram(self):
        app_settings = make_settings(
            ai_pipeline_variant=PipelineVariant.SINGLE_CALL, deepgram_api_key=""
        )
        assert app_settings.ai_configured
        assert "DEEPGRAM_API_KEY" not in app_settings.missing_credentials()
