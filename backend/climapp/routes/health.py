"""
Climapp Backend: Health Check Route
====================================

What:  Health check endpoint for the hosting platform's probe.
How:   Runs SELECT 1 against the database and reports which upstream
       services have credentials. Upstream APIs are never called from here;
       a probe every few seconds would spend quota.
Who:   Render health checks, uptime monitors, developers.

Status levels:
    - healthy:   Database reachable and every upstream configured
    - degraded:  Database reachable, some upstream credential missing
                 (the matching endpoints answer 503 SERVICE_NOT_CONFIGURED)
    - unhealthy: Database unreachable
"""

import logging
import time

from fastapi import APIRouter, Depends

from climapp import __version__
from climapp.config import Settings
from climapp.database import check_database
from climapp.dependencies import get_app_settings
from climapp.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Set once when the module loads
_start_time = time.time()


def services_summary(app_settings: Settings) -> dict:
    def flag(configured: bool) -> str:
        return "configured" if configured else "not_configured"

    return {
        "gemini": flag(app_settings.gemini_configured),
        "deepgram": flag(app_settings.deepgram_configured),
        "firebase": flag(app_settings.firebase_configured),
        "cloudinary": flag(app_settings.cloudinary_configured),
    }


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description=(
        "Returns the health status of the backend and its dependencies. The database "
        "is probed; upstream services are reported by credential presence only."
    ),
)
async def health_check(
    app_settings: Settings = Depends(get_app_settings),
) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        await check_database()
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    services = services_summary(app_settings)
    if overall == "healthy" and "not_configured" in services.values():
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        environment=app_settings.environment,
        database=db_status,
        services=services,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
