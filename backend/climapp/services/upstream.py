"""
Climapp Backend: Shared Upstream Call Helpers
==============================================

What:  Translation of httpx failures into the ClimappError taxonomy, and the
       tenacity retry wrapper every adapter goes through.
Who:   DeepgramTranscriptionService, GeminiExtractionService, AuthService,
       UploadService.

Retry policy:
    UPSTREAM_RETRY_ATTEMPTS (default 1) bounds the attempts. Only transient
    failures (UpstreamServiceError, UpstreamTimeoutError) are retried; a
    rejected key, a rejected payload or an exhausted quota never is.
"""

import logging
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from climapp.config import Settings
from climapp.exceptions import (
    AuthenticationError,
    ClimappError,
    PayloadError,
    RateLimitError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (UpstreamServiceError, UpstreamTimeoutError)


def error_for_status(
    service: str,
    status_code: int,
    body_preview: str = "",
    retry_after: Optional[str] = None,
) -> ClimappError:
    """
    Map an upstream AI service HTTP status onto the error taxonomy.

    401/403  → AuthenticationError (503, our key is wrong)
    429      → RateLimitError
    400/413/415/422 → PayloadError
    408/504  → UpstreamTimeoutError
    other    → UpstreamServiceError
    """
    context = {"service": service, "status": status_code, "body": body_preview[:200]}
    if status_code in (401, 403):
        return AuthenticationError.upstream(service, context=context)
    if status_code == 429:
        return RateLimitError(
            code="UPSTREAM_RATE_LIMITED",
            retry_after=_parse_retry_after(retry_after),
            context=context,
        )
    if status_code in (400, 413, 415, 422):
        return PayloadError(context=context)
    if status_code in (408, 504):
        return UpstreamTimeoutError(context=context)
    return UpstreamServiceError(context=context)


def _parse_retry_after(value: Optional[str]) -> int:
    if value and value.strip().isdigit():
        return int(value.strip())
    return 60


def raise_for_upstream_status(response: httpx.Response, service: str) -> None:
    """Raise the mapped ClimappError when `response` is not 2xx."""
    if response.is_success:
        return
    raise error_for_status(
        service,
        response.status_code,
        body_preview=response.text,
        retry_after=response.headers.get("retry-after"),
    )


def translate_transport_error(
    exc: httpx.HTTPError,
    service: str,
    timeout: float,
    unavailable: Optional[UpstreamServiceError] = None,
    timeout_message: Optional[str] = None,
) -> ClimappError:
    """
    Network-level failure (no HTTP response) → typed error.

    `unavailable` and `timeout_message` replace the AI-flavoured defaults for
    services that are not AI models.
    """
    if isinstance(exc, httpx.TimeoutException):
        if timeout_message:
            return UpstreamTimeoutError(
                message=timeout_message, timeout=timeout, context={"service": service}
            )
        return UpstreamTimeoutError(timeout=timeout, context={"service": service})
    error = unavailable or UpstreamServiceError()
    error.context.update(
        {"service": service, "error_type": type(exc).__name__, "error": str(exc)}
    )
    return error


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    app_settings: Settings,
    description: str,
) -> T:
    """
    Run `operation` under the configured retry budget.

    What:    One tenacity AsyncRetrying loop shared by every adapter.
    Returns: The operation's result.
    Raises:  The last ClimappError once the attempts are spent.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(app_settings.upstream_retry_attempts),
        wait=wait_exponential_jitter(
            initial=app_settings.retry_min_wait,
            max=app_settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.info(
                    "Retrying %s (attempt %d/%d)",
                    description,
                    attempt.retry_state.attempt_number,
                    app_settings.upstream_retry_attempts,
                )
            return await operation()
    # AsyncRetrying with reraise=True never falls through
    raise UpstreamServiceError(context={"operation": description})
