"""
Climapp Backend: Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all
       tests. No test touches the network or a real PostgreSQL: upstream
       services are faked with httpx.MockTransport / AsyncMock, and the
       database is an in-memory SQLite (aiosqlite) created per test.

Fixture Hierarchy:
    test_settings:    Settings with fake credentials for every upstream
    db_engine:        In-memory SQLite engine with all tables created
    db_session:       One AsyncSession on that engine
    fake_transcriber: Speech-to-text adapter double (AsyncMock)
    fake_extractor:   Structured-extraction adapter double (AsyncMock)
    app:              create_app(test_settings) with the DB dependency overridden
    test_client:      HTTPX AsyncClient over ASGITransport
"""

import base64
import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

# Override settings for testing BEFORE any climapp import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["GEMINI_API_KEY"] = "test-gemini-key"
os.environ["DEEPGRAM_API_KEY"] = "test-deepgram-key"
os.environ["FIREBASE_WEB_API_KEY"] = "test-firebase-key"
os.environ["CLOUDINARY_CLOUD_NAME"] = "demo-cloud"
os.environ["CLOUDINARY_API_KEY"] = "123456"
os.environ["CLOUDINARY_API_SECRET"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from climapp.config import PipelineVariant, Settings
from climapp.database import Base, get_db_session
from climapp.models.atendimento import Atendimento  # noqa: F401
from climapp.models.client import Client  # noqa: F401
from climapp.schemas.extraction import ModelCompletion, TokenUsage, Transcript


def make_settings(**overrides) -> Settings:
    """Settings that ignore any local .env file."""
    values = dict(
        database_url="sqlite+aiosqlite://",
        gemini_api_key="test-gemini-key",
        deepgram_api_key="test-deepgram-key",
        firebase_web_api_key="test-firebase-key",
        cloudinary_cloud_name="demo-cloud",
        cloudinary_api_key="123456",
        cloudinary_api_secret="test-secret",
        ai_pipeline_variant=PipelineVariant.TWO_CALL,
        confidence_threshold=80,
        upstream_retry_attempts=1,
        log_level="WARNING",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def encode_audio(raw: bytes = b"RIFF fake wav bytes") -> str:
    return base64.b64encode(raw).decode("ascii")


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """
    In-memory SQLite shared by every session of one test.

    StaticPool keeps a single connection so the tables created here are
    visible to the sessions opened by the routes.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Upstream adapter doubles
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fake_transcriber():
    transcriber = MagicMock()
    transcriber.model_name = "nova-2"
    transcriber.is_configured = True
    transcriber.transcribe = AsyncMock(
        return_value=Transcript(
            text="troquei o capacitor e fiz a limpeza do filtro",
            model="nova-2",
            duration_seconds=4.2,
        )
    )
    return transcriber


@pytest.fixture
def fake_extractor():
    extractor = MagicMock()
    extractor.model_name = "gemini-2.0-flash"
    extractor.is_configured = True
    completion = ModelCompletion(
        text=(
            '{"pecas_materiais": [{"item_1": "capacitor 35uF", "quantidade": 1, '
            '"confianca": 95}], "servicos": [{"servico_1": "limpeza do filtro", '
            '"confianca": 90}]}'
        ),
        model="gemini-2.0-flash",
        token_usage=TokenUsage(prompt_tokens=120, completion_tokens=40, total_tokens=160),
    )
    extractor.extract_from_transcript = AsyncMock(return_value=completion)
    extractor.extract_from_audio = AsyncMock(return_value=completion)
    return extractor


# ══════════════════════════════════════════════════════════════════════════
# Application
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def app(test_settings, db_engine):
    """
    A fresh application with the session dependency pointed at the test
    database. Tests override the service dependencies they need.
    """
    from climapp.main import create_app

    application = create_app(test_settings)
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db_session] = override_db_session
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_client(app):
    """
    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
