"""
Climapp Backend: FastAPI Application Factory
=============================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() wires settings, adapters, middleware,
       exception handlers and routers, and returns the app.
Who:   uvicorn (`uvicorn climapp.main:app`) and the test suite, which calls
       create_app() with its own Settings.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────────┐ ┌──────────┐ ┌────────┐ ┌──────┐  │
    │  │  Request ID  │→│ Logging  │→│  GZip  │→│ CORS │  │
    │  └──────────────┘ └──────────┘ └────────┘ └──────┘  │
    │                                                     │
    │  Routes:                                            │
    │  /ai  /auth  /clientes  /atendimentos  /upload      │
    │  /health  /                                         │
    │                                                     │
    │  Exception Handlers:                                │
    │  ┌──────────────────────────────────────────────┐   │
    │  │ ClimappError → its status_code and code      │   │
    │  │ RequestValidationError → 400                 │   │
    │  │ Exception → 500 INTERNAL_ERROR               │   │
    │  └──────────────────────────────────────────────┘   │
    └─────────────────────────────────────────────────────┘

Adapters (Deepgram, Gemini, Firebase, Cloudinary) are built once in
create_app() and kept on app.state; routes reach them through the
functions in climapp.dependencies.
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from climapp import __version__
from climapp.config import Settings, settings
from climapp.database import dispose_engine
from climapp.exceptions import ClimappError, RateLimitError
from climapp.middleware.logging import RequestLoggingMiddleware
from climapp.middleware.request_id import RequestIDMiddleware, RequestIdFilter, request_id_var
from climapp.routes import ai, atendimentos, auth, clients, health, uploads
from climapp.services.audio_pipeline import AudioPipeline
from climapp.services.auth_service import AuthService
from climapp.services.gemini_service import GeminiExtractionService
from climapp.services.transcription_service import DeepgramTranscriptionService
from climapp.services.upload_service import UploadService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s

    RequestIdFilter sits on the handler, so every record (ours and third
    party) gets a request_id before formatting; "-" outside a request.
    """
    log_format = "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s"

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup:
        1. Setup logging
        2. Report missing upstream credentials (never fatal)
        3. Log pipeline variant and listen address

    Shutdown:
        1. Dispose database engine (close all pooled connections)
    """
    app_settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(app_settings.log_level)
    logger.info("=" * 60)
    logger.info("Climapp Backend %s starting up (%s)...", __version__, app_settings.environment)

    for setting, feature in app_settings.missing_credentials().items():
        logger.warning("%s not set: %s disabled (503 SERVICE_NOT_CONFIGURED)", setting, feature)

    logger.info(
        "Voice-memo pipeline: %s, confidence threshold %d",
        app_settings.ai_pipeline_variant.value,
        app_settings.confidence_threshold,
    )
    logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Climapp Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    # The catch-all handler runs outside the middleware stack, where the
    # ContextVar may already be reset; request.state survives
    return getattr(request.state, "request_id", None) or request_id_var.get("")


def error_body(
    message: str,
    code: str,
    request_id: str,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    """The error envelope shared by every handler."""
    body: Dict[str, Any] = {
        "success": False,
        "message": message,
        "error": code,
        "request_id": request_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if details is not None:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error responses.

    Handler hierarchy:
        ClimappError (all subclasses) → exc.status_code / exc.code
        RequestValidationError        → 400 VALIDATION_ERROR
        Exception (fallback)          → 500 INTERNAL_ERROR

    Security: handlers never expose stack traces, SQL or upstream bodies.
    `exc.context` is logged server-side only; `exc.details` is returned.
    """

    @app.exception_handler(ClimappError)
    async def handle_climapp_error(request: Request, exc: ClimappError):
        rid = _request_id(request)
        if exc.status_code >= 500:
            logger.error(
                "[%s] %s %s: %s | Context: %s",
                rid, exc.status_code, exc.code, exc.message, exc.context,
            )
        else:
            logger.warning(
                "[%s] %s %s: %s | Context: %s",
                rid, exc.status_code, exc.code, exc.message, exc.context,
            )

        headers = {}
        if isinstance(exc, RateLimitError):
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.code, rid, exc.details),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Body/path/query did not match the schema."""
        rid = _request_id(request)
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
                "message": error.get("msg", ""),
                "type": error.get("type", ""),
            }
            for error in exc.errors()
        ]
        logger.warning("[%s] Request validation failed: %s", rid, errors)
        return JSONResponse(
            status_code=400,
            content=error_body("Dados inválidos", "VALIDATION_ERROR", rid, {"errors": errors}),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Stack trace is logged server-side only."""
        rid = _request_id(request)
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "Erro interno do servidor. Tente novamente ou contate o suporte.",
                "INTERNAL_ERROR",
                rid,
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def build_services(app: FastAPI, app_settings: Settings) -> None:
    """Construct the upstream adapters and the pipeline onto app.state."""
    transcriber = DeepgramTranscriptionService(app_settings)
    extractor = GeminiExtractionService(app_settings)

    app.state.settings = app_settings
    app.state.audio_pipeline = AudioPipeline(app_settings, transcriber, extractor)
    app.state.auth_service = AuthService(app_settings)
    app.state.upload_service = UploadService(app_settings)


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use; the process-wide instance by default.
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title="Climapp API",
        description=(
            "Backend for the Climapp field-service app: voice-memo extraction of parts "
            "and services, clients, service tickets, estimates and photo uploads."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    build_services(app, app_settings)

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in reverse order of addition: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(ai.router)
    app.include_router(auth.router)
    app.include_router(clients.router)
    app.include_router(atendimentos.router)
    app.include_router(uploads.router)
    app.include_router(health.router)

    @app.get("/", tags=["Health"], summary="Service banner")
    async def root() -> Dict[str, Any]:
        return {
            "success": True,
            "message": "Climapp Backend API",
            "version": __version__,
            "environment": app_settings.environment,
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "ai": "/ai",
                "auth": "/auth",
                "clientes": "/clientes",
                "atendimentos": "/atendimentos",
                "upload": "/upload",
            },
        }

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `climapp.main:app` to be importable
app = create_app()
