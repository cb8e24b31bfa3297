"""
Climapp Backend: Authentication Service (Firebase Identity Toolkit)
====================================================================

What:  Signup, login, password reset and profile lookup, delegated to the
       Firebase Identity Toolkit REST API.
How:   httpx POSTs to {FIREBASE_AUTH_BASE_URL}/accounts:<method>?key=<web key>.
       Provider error codes (body `error.message`, e.g. "EMAIL_EXISTS" or
       "WEAK_PASSWORD : Password should be at least 6 characters") are
       mapped onto the ClimappError taxonomy per operation.
Who:   routes/auth.py.

The backend never sees or stores passwords beyond forwarding them; sessions
are the provider's idToken/refreshToken pair held by the app.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, Type

import httpx

from climapp.config import Settings
from climapp.exceptions import (
    AuthenticationError,
    ClimappError,
    ConfigurationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    UpstreamServiceError,
    ValidationError,
)
from climapp.schemas.auth import AuthTokens, LoginData, UserProfile
from climapp.services.upstream import call_with_retry, translate_transport_error

logger = logging.getLogger(__name__)

SERVICE_NAME = "firebase"

PERSISTENT_SESSION = timedelta(days=30)
TEMPORARY_SESSION = timedelta(days=1)

_BAD_CREDENTIALS = (AuthenticationError, "Email e/ou senha incorretos", "INVALID_CREDENTIALS")
_BAD_TOKEN = (AuthenticationError, "Token inválido ou expirado", "INVALID_TOKEN")

# provider code → (exception class, user message, our error code)
PROVIDER_ERRORS: Dict[str, Tuple[Type[ClimappError], str, str]] = {
    "EMAIL_EXISTS": (ConflictError, "Este email já está em uso", "EMAIL_EXISTS"),
    "INVALID_EMAIL": (ValidationError, "Email inválido", "INVALID_EMAIL"),
    "MISSING_EMAIL": (ValidationError, "Email é obrigatório", "INVALID_EMAIL"),
    "WEAK_PASSWORD": (
        ValidationError,
        "Senha muito fraca. Use pelo menos 6 caracteres",
        "WEAK_PASSWORD",
    ),
    "EMAIL_NOT_FOUND": _BAD_CREDENTIALS,
    "INVALID_PASSWORD": _BAD_CREDENTIALS,
    "INVALID_LOGIN_CREDENTIALS": _BAD_CREDENTIALS,
    "USER_DISABLED": (ForbiddenError, "Usuário desabilitado", "USER_DISABLED"),
    "TOO_MANY_ATTEMPTS_TRY_LATER": (
        RateLimitError,
        "Muitas tentativas. Tente novamente mais tarde",
        "TOO_MANY_ATTEMPTS",
    ),
    "INVALID_ID_TOKEN": _BAD_TOKEN,
    "TOKEN_EXPIRED": _BAD_TOKEN,
    "USER_NOT_FOUND": _BAD_TOKEN,
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": _BAD_TOKEN,
}

# An unknown address is not an authentication failure on the reset flow
FORGOT_PASSWORD_ERRORS = {
    "EMAIL_NOT_FOUND": (NotFoundError, "Email inválido ou não cadastrado", "EMAIL_NOT_FOUND"),
}


def provider_error_code(body: Any) -> str:
    """'WEAK_PASSWORD : Password should be...' → 'WEAK_PASSWORD'."""
    if not isinstance(body, dict):
        return ""
    message = (body.get("error") or {}).get("message") or ""
    return message.split(":", 1)[0].strip()


def _is_invalid_api_key(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    details = (body.get("error") or {}).get("details") or []
    return any(
        isinstance(detail, dict) and detail.get("reason") == "API_KEY_INVALID"
        for detail in details
    )


def _from_millis(value: Any) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError):
        return None


class AuthService:
    """Thin client over the identity provider's REST API."""

    def __init__(
        self,
        app_settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = app_settings
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.settings.firebase_configured

    # ── Operations ────────────────────────────────────────────────────────

    async def signup(
        self, email: str, password: str, display_name: Optional[str] = None
    ) -> AuthTokens:
        """Create an account; sets the display name when one is given."""
        created = await self._call(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        if display_name:
            await self._call(
                "accounts:update",
                {
                    "idToken": created["idToken"],
                    "displayName": display_name,
                    "returnSecureToken": False,
                },
            )

        logger.info("Account created uid=%s", created.get("localId"))
        return AuthTokens(
            uid=created["localId"],
            email=created.get("email", email),
            displayName=display_name,
            emailVerified=False,
            idToken=created["idToken"],
            refreshToken=created["refreshToken"],
            expiresIn=int(created.get("expiresIn", 3600)),
        )

    async def login(self, email: str, password: str, remember_me: bool = False) -> LoginData:
        """
        Password sign-in.

        `rememberMe` does not change the provider's token lifetime; it tells
        the app how long to keep the refresh token (persistent 30 days or
        temporary 1 day) through sessionType / suggestedExpiry.
        """
        signed_in = await self._call(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        profile = await self._lookup(signed_in["idToken"])

        session = PERSISTENT_SESSION if remember_me else TEMPORARY_SESSION
        logger.info(
            "Login uid=%s session=%s",
            signed_in.get("localId"),
            "persistent" if remember_me else "temporary",
        )
        return LoginData(
            uid=signed_in["localId"],
            email=signed_in.get("email", email),
            displayName=signed_in.get("displayName") or profile.displayName,
            emailVerified=profile.emailVerified,
            idToken=signed_in["idToken"],
            refreshToken=signed_in["refreshToken"],
            expiresIn=int(signed_in.get("expiresIn", 3600)),
            rememberMe=remember_me,
            sessionType="persistent" if remember_me else "temporary",
            suggestedExpiry=datetime.now(timezone.utc) + session,
            note=(
                "Sessão persistente (30 dias)"
                if remember_me
                else "Sessão temporária (1 dia)"
            ),
        )

    async def send_password_reset(self, email: str) -> str:
        """Ask the provider to email a password-reset link."""
        result = await self._call(
            "accounts:sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email},
            overrides=FORGOT_PASSWORD_ERRORS,
        )
        logger.info("Password reset email requested")
        return result.get("email", email)

    async def get_profile(self, id_token: str) -> UserProfile:
        """Resolve an idToken to the account it belongs to."""
        if not id_token:
            raise AuthenticationError(message="Token não fornecido", code="MISSING_TOKEN")
        return await self._lookup(id_token)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _lookup(self, id_token: str) -> UserProfile:
        result = await self._call("accounts:lookup", {"idToken": id_token})
        users = result.get("users") or []
        if not users:
            error_class, message, code = _BAD_TOKEN
            raise error_class(message=message, code=code)
        user = users[0]
        return UserProfile(
            uid=user["localId"],
            email=user.get("email"),
            displayName=user.get("displayName"),
            emailVerified=bool(user.get("emailVerified", False)),
            creationTime=_from_millis(user.get("createdAt")),
            lastSignInTime=_from_millis(user.get("lastLoginAt")),
        )

    async def _call(
        self,
        method: str,
        payload: Dict[str, Any],
        overrides: Optional[Dict[str, Tuple[Type[ClimappError], str, str]]] = None,
    ) -> Dict[str, Any]:
        if not self.is_configured:
            raise ConfigurationError(service=SERVICE_NAME, setting="FIREBASE_WEB_API_KEY")

        return await call_with_retry(
            lambda: self._post(method, payload, overrides or {}),
            self.settings,
            f"firebase {method}",
        )

    async def _post(
        self,
        method: str,
        payload: Dict[str, Any],
        overrides: Dict[str, Tuple[Type[ClimappError], str, str]],
    ) -> Dict[str, Any]:
        timeout = self.settings.upstream_timeout_seconds
        try:
            async with httpx.AsyncClient(
                base_url=self.settings.firebase_auth_base_url,
                timeout=timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    f"/{method}",
                    params={"key": self.settings.firebase_web_api_key},
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise translate_transport_error(
                e,
                SERVICE_NAME,
                timeout,
                unavailable=self._unavailable(),
                timeout_message="Tempo limite excedido no serviço de autenticação",
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success and isinstance(body, dict):
            return body
        raise self._translate(method, response.status_code, body, overrides)

    def _translate(
        self,
        method: str,
        status_code: int,
        body: Any,
        overrides: Dict[str, Tuple[Type[ClimappError], str, str]],
    ) -> ClimappError:
        provider_code = provider_error_code(body)
        context = {"service": SERVICE_NAME, "method": method, "status": status_code}

        mapping = overrides.get(provider_code) or PROVIDER_ERRORS.get(provider_code)
        if mapping:
            error_class, message, code = mapping
            context["provider_code"] = provider_code
            return error_class(message=message, code=code, context=context)

        if _is_invalid_api_key(body) or status_code in (401, 403):
            return AuthenticationError.upstream(SERVICE_NAME, context=context)
        if status_code >= 500 or not isinstance(body, dict):
            return self._unavailable(context)

        context["provider_code"] = provider_code
        return ValidationError(
            message="Não foi possível concluir a operação de autenticação",
            code=provider_code or "AUTH_REQUEST_REJECTED",
            context=context,
        )

    @staticmethod
    def _unavailable(context: Optional[Dict[str, Any]] = None) -> UpstreamServiceError:
        return UpstreamServiceError(
            message="Serviço de autenticação temporariamente indisponível",
            code="AUTH_SERVICE_UNAVAILABLE",
            context=context,
        )
