"""
Climapp Backend: Custom Exception Hierarchy
============================================

What:  Defines application-specific exceptions for every failure the API
       reports to the mobile client.
How:   Each class carries a class-level HTTP `status_code` and machine-readable
       `code`. Instances carry a user-facing message (Portuguese, shown in the
       app), optional public `details`, and a private `context` dict that is
       logged but never returned.
Who:   Raised by services and adapters; caught by the handlers registered in
       main.register_exception_handlers().

Exception Hierarchy:
    ClimappError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── PayloadError             → 400 Bad Request (upstream rejected the audio)
    ├── AuthenticationError      → 401 (user credentials) / 503 (our credentials)
    ├── ForbiddenError           → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── UpstreamTimeoutError     → 408 Request Timeout
    ├── RateLimitError           → 429 Too Many Requests
    ├── ConfigurationError       → 503 Service Unavailable (key not set)
    ├── UpstreamServiceError     → 503 Service Unavailable
    ├── ParseError               → 503 Service Unavailable (model output unusable)
    ├── UploadBatchError         → 503 Service Unavailable (per-item report)
    └── DatabaseError            → 500 Internal Server Error

The handlers switch on the class (through `status_code` and `code`), never
on message text.
"""

from typing import Any, Dict, List, Optional


class ClimappError(Exception):
    """
    Base exception for all Climapp application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        code:     Machine-readable error code (defaults to the class `code`)
        details:  Optional structured data returned to the client
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "Erro interno do servidor",
        code: Optional[str] = None,
        details: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if code:
            self.code = code
        self.details = details
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ClimappError):
    """
    Raised when client input fails a business rule.

    When:    Missing audio, bad base64, unsupported format, empty update body,
             invalid status, oversized image.
    HTTP:    400 Bad Request
    """

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Dados inválidos",
        code: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, code=code, details=details, context=ctx)
        self.field = field


class PayloadError(ClimappError):
    """Upstream refused the audio (corrupt, unsupported encoding, too long)."""

    status_code = 400
    code = "INVALID_AUDIO_PAYLOAD"

    def __init__(
        self,
        message: str = "Áudio inválido ou corrompido",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class AuthenticationError(ClimappError):
    """
    Raised when credentials are rejected.

    Two layers raise it:
        - The user layer (bad login, invalid idToken) → 401.
        - Our own upstream credentials (Gemini/Deepgram rejected the API key)
          → 503 UPSTREAM_AUTH_FAILED, since the client cannot fix that.
    """

    status_code = 401
    code = "AUTHENTICATION_FAILED"

    def __init__(
        self,
        message: str = "Credenciais inválidas",
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)
        if status_code:
            self.status_code = status_code

    @classmethod
    def upstream(cls, service: str, context: Optional[Dict[str, Any]] = None):
        """Builds the 503 variant for a rejected upstream API key."""
        ctx = context or {}
        ctx["service"] = service
        return cls(
            message=f"Serviço '{service}' mal configurado no servidor. Contate o suporte.",
            code="UPSTREAM_AUTH_FAILED",
            status_code=503,
            context=ctx,
        )


class ForbiddenError(ClimappError):
    """Account exists but may not sign in (disabled by an administrator)."""

    status_code = 403
    code = "FORBIDDEN"

    def __init__(
        self,
        message: str = "Acesso negado",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class NotFoundError(ClimappError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; the service layer converts that
    into NotFoundError so routes never check for None.
    """

    status_code = 404
    code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "Recurso",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"{resource} não encontrado"
            if resource_id:
                message = f"{resource} '{resource_id}' não encontrado"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, code=code, context=ctx)


class ConflictError(ClimappError):
    status_code = 409
    code = "CONFLICT"

    def __init__(
        self,
        message: str = "Recurso já existe",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class UpstreamTimeoutError(ClimappError):
    """
    Raised when an upstream call exceeds UPSTREAM_TIMEOUT_SECONDS.

    HTTP:    408 Request Timeout. For audio this usually means the memo was too
             long for the model to answer in time.
    """

    status_code = 408
    code = "UPSTREAM_TIMEOUT"

    def __init__(
        self,
        message: str = "Tempo limite excedido. O áudio pode ser muito longo; tente uma gravação menor.",
        timeout: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if timeout is not None:
            ctx["timeout_seconds"] = timeout
        super().__init__(message=message, context=ctx)


class RateLimitError(ClimappError):
    """
    Raised when an upstream quota is exhausted or the identity provider
    throttles an account.

    Response includes a Retry-After header.
    """

    status_code = 429
    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str = "Limite de requisições excedido. Tente novamente em alguns instantes.",
        code: Optional[str] = None,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, code=code, context=ctx)
        self.retry_after = retry_after


class ConfigurationError(ClimappError):
    """
    Raised when a feature is called but its upstream credential is not set.

    The process starts without optional keys; only the endpoints that need
    them answer 503.
    """

    status_code = 503
    code = "SERVICE_NOT_CONFIGURED"

    def __init__(
        self,
        service: str,
        setting: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["service"] = service
        if setting:
            ctx["setting"] = setting
        super().__init__(
            message=f"Serviço '{service}' não configurado no servidor",
            context=ctx,
        )
        self.service = service


class UpstreamServiceError(ClimappError):
    """
    Raised when an upstream service fails for any reason not covered by the
    more specific classes (5xx, connection refused, DNS failure).
    """

    status_code = 503
    code = "AI_SERVICE_UNAVAILABLE"

    def __init__(
        self,
        message: str = "Serviço de IA temporariamente indisponível. Tente novamente.",
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code=code, context=context)


class ParseError(ClimappError):
    """
    Raised when the model output contains no usable JSON object.

    The raw output is kept in `context` (logged, truncated) and never returned.
    """

    status_code = 503
    code = "MALFORMED_AI_RESPONSE"

    def __init__(
        self,
        message: str = "A IA retornou uma resposta em formato inválido. Tente novamente.",
        raw_output: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if raw_output is not None:
            ctx["raw_preview"] = raw_output[:200]
        super().__init__(message=message, context=ctx)


class UploadBatchError(ClimappError):
    """
    Raised when at least one image of a multi-image upload fails.

    `details` carries the per-item report so the client knows which images
    were rejected. Images that did upload are not rolled back.
    """

    status_code = 503
    code = "UPLOAD_BATCH_FAILED"

    def __init__(
        self,
        report: List[Dict[str, Any]],
        message: str = "Falha no upload de uma ou mais imagens",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["failed"] = sum(1 for entry in report if not entry.get("ok"))
        ctx["total"] = len(report)
        super().__init__(message=message, details={"items": report}, context=ctx)
        self.report = report


class DatabaseError(ClimappError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; SQL and constraint
    names are logged server-side only.
    """

    status_code = 500
    code = "DATABASE_ERROR"

    def __init__(
        self,
        message: str = "Erro ao acessar o banco de dados. Tente novamente.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
