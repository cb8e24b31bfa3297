"""
Climapp Backend: Request Logging Middleware
============================================

What:  One access-log line per request: method, path, status, duration.
How:   Measures from middleware entry to response return; the level follows
       the status class (5xx ERROR, 4xx WARNING, else INFO).
When:  Inside RequestIDMiddleware, so the line carries the request ID.

Never logged: request bodies (base64 audio, passwords), Authorization headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from climapp.middleware.request_id import request_id_var

logger = logging.getLogger("climapp.access")

# Polled by the hosting platform every few seconds
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Typical durations:
        GET /health, /ai/status: 1-5ms
        GET /clientes/{uid}: 10-50ms (database query)
        POST /ai/process-audio: 3-15s (transcription + extraction)
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        path = request.url.path

        if path in QUIET_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms from %s",
            request.method,
            path,
            status,
            duration_ms,
            client_ip,
            extra={
                "request_id": request_id_var.get(""),
                "status": status,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
