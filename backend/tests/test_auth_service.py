"""
Climapp Backend: Auth Service & Endpoint Tests
===============================================

What:  AuthService against a fake identity provider (httpx.MockTransport),
       and the /auth endpoints with the service swapped in.
"""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from climapp.dependencies import get_auth_service
from climapp.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from climapp.services.auth_service import AuthService, provider_error_code

from conftest import make_settings

SIGNED_IN = {
    "localId": "uid-123",
    "email": "tecnico@climapp.com",
    "displayName": "",
    "idToken": "id-token",
    "refreshToken": "refresh-token",
    "expiresIn": "3600",
}

LOOKUP = {
    "users": [
        {
            "localId": "uid-123",
            "email": "tecnico@climapp.com",
            "displayName": "Carlos",
            "emailVerified": True,
            "createdAt": "1700000000000",
            "lastLoginAt": "1700000600000",
        }
    ]
}


def _provider_error(message: str, status: int = 400, details=None) -> httpx.Response:
    error = {"code": status, "message": message}
    if details is not None:
        error["details"] = details
    return httpx.Response(status, json={"error": error})


class FakeProvider:
    """Routes accounts:<method> calls to canned responses and records them."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        self.calls.append((method, request))
        return self.responses[method]


def _service(provider, **overrides) -> AuthService:
    return AuthService(make_settings(**overrides), transport=httpx.MockTransport(provider))


class TestProviderErrorCode:

    def test_strips_the_explanation(self):
        body = {"error": {"message": "WEAK_PASSWORD : Password should be at least 6 characters"}}
        assert provider_error_code(body) == "WEAK_PASSWORD"

    @pytest.mark.parametrize("body", [None, [], {}, {"error": None}])
    def test_missing_code(self, body):
        assert provider_error_code(body) == ""


class TestSignup:

    @pytest.mark.asyncio
    async def test_signup_sets_display_name(self):
        provider = FakeProvider(
            {
                "accounts:signUp": httpx.Response(200, json=SIGNED_IN),
                "accounts:update": httpx.Response(200, json={"localId": "uid-123"}),
            }
        )

        tokens = await _service(provider).signup("tecnico@climapp.com", "secret1", "Carlos")

        assert tokens.uid == "uid-123"
        assert tokens.displayName == "Carlos"
        assert tokens.expiresIn == 3600
        assert [method for method, _ in provider.calls] == ["accounts:signUp", "accounts:update"]

        method, request = provider.calls[0]
        assert request.url.path == "/v1/accounts:signUp"
        assert request.url.params["key"] == "test-firebase-key"
        assert json.loads(request.content) == {
            "email": "tecnico@climapp.com",
            "password": "secret1",
            "returnSecureToken": True,
        }

    @pytest.mark.asyncio
    async def test_signup_without_name_skips_update(self):
        provider = FakeProvider({"accounts:signUp": httpx.Response(200, json=SIGNED_IN)})

        await _service(provider).signup("tecnico@climapp.com", "secret1")

        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_email_exists_is_conflict(self):
        provider = FakeProvider({"accounts:signUp": _provider_error("EMAIL_EXISTS")})

        with pytest.raises(ConflictError) as exc_info:
            await _service(provider).signup("tecnico@climapp.com", "secret1")
        assert exc_info.value.code == "EMAIL_EXISTS"

    @pytest.mark.asyncio
    async def test_weak_password(self):
        provider = FakeProvider(
            {"accounts:signUp": _provider_error("WEAK_PASSWORD : Password should be at least 6")}
        )

        with pytest.raises(ValidationError) as exc_info:
            await _service(provider).signup("tecnico@climapp.com", "123")
        assert exc_info.value.code == "WEAK_PASSWORD"


class TestLogin:

    @pytest.mark.asyncio
    async def test_remember_me_gives_persistent_session(self):
        provider = FakeProvider(
            {
                "accounts:signInWithPassword": httpx.Response(200, json=SIGNED_IN),
                "accounts:lookup": httpx.Response(200, json=LOOKUP),
            }
        )

        data = await _service(provider).login("tecnico@climapp.com", "secret1", remember_me=True)

        assert data.sessionType == "persistent"
        assert data.rememberMe is True
        assert data.emailVerified is True
        assert data.displayName == "Carlos"
        assert data.suggestedExpiry > datetime.now(timezone.utc) + timedelta(days=29)

    @pytest.mark.asyncio
    async def test_default_is_temporary(self):
        provider = FakeProvider(
            {
                "accounts:signInWithPassword": httpx.Response(200, json=SIGNED_IN),
                "accounts:lookup": httpx.Response(200, json=LOOKUP),
            }
        )

        data = await _service(provider).login("tecnico@climapp.com", "secret1")

        assert data.sessionType == "temporary"
        assert data.note == "Sessão temporária (1 dia)"

    @pytest.mark.parametrize(
        "provider_code,error_class,code",
        [
            ("INVALID_LOGIN_CREDENTIALS", AuthenticationError, "INVALID_CREDENTIALS"),
            ("EMAIL_NOT_FOUND", AuthenticationError, "INVALID_CREDENTIALS"),
            ("INVALID_PASSWORD", AuthenticationError, "INVALID_CREDENTIALS"),
            ("USER_DISABLED", ForbiddenError, "USER_DISABLED"),
            ("TOO_MANY_ATTEMPTS_TRY_LATER : Access disabled", RateLimitError, "TOO_MANY_ATTEMPTS"),
        ],
    )
    @pytest.mark.asyncio
    async def test_provider_errors(self, provider_code, error_class, code):
        provider = FakeProvider({"accounts:signInWithPassword": _provider_error(provider_code)})

        with pytest.raises(error_class) as exc_info:
            await _service(provider).login("tecnico@climapp.com", "wrong")
        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_rejected_api_key_is_our_problem(self):
        provider = FakeProvider(
            {
                "accounts:signInWithPassword": _provider_error(
                    "API key not valid. Please pass a valid API key.",
                    details=[{"reason": "API_KEY_INVALID"}],
                )
            }
        )

        with pytest.raises(AuthenticationError) as exc_info:
            await _service(provider).login("tecnico@climapp.com", "secret1")
        assert exc_info.value.status_code == 503
        assert exc_info.value.code == "UPSTREAM_AUTH_FAILED"

    @pytest.mark.asyncio
    async def test_not_configured_sends_nothing(self):
        provider = FakeProvider({})

        with pytest.raises(ConfigurationError):
            await _service(provider, firebase_web_api_key="").login("a@b.com", "x")
        assert provider.calls == []


class TestForgotPasswordAndProfile:

    @pytest.mark.asyncio
    async def test_reset_request(self):
        provider = FakeProvider(
            {"accounts:sendOobCode": httpx.Response(200, json={"email": "tecnico@climapp.com"})}
        )

        email = await _service(provider).send_password_reset("tecnico@climapp.com")

        assert email == "tecnico@climapp.com"
        body = json.loads(provider.calls[0][1].content)
        assert body["requestType"] == "PASSWORD_RESET"

    @pytest.mark.asyncio
    async def test_unknown_email_is_404_on_reset(self):
        provider = FakeProvider({"accounts:sendOobCode": _provider_error("EMAIL_NOT_FOUND")})

        with pytest.raises(NotFoundError) as exc_info:
            await _service(provider).send_password_reset("ninguem@climapp.com")
        assert exc_info.value.code == "EMAIL_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_profile(self):
        provider = FakeProvider({"accounts:lookup": httpx.Response(200, json=LOOKUP)})

        profile = await _service(provider).get_profile("id-token")

        assert profile.uid == "uid-123"
        assert profile.creationTime.year == 2023

    @pytest.mark.asyncio
    async def test_expired_token(self):
        provider = FakeProvider({"accounts:lookup": _provider_error("INVALID_ID_TOKEN")})

        with pytest.raises(AuthenticationError) as exc_info:
            await _service(provider).get_profile("stale")
        assert exc_info.value.code == "INVALID_TOKEN"


class TestAuthEndpoints:

    @pytest.fixture
    def provider(self, app):
        provider = FakeProvider(
            {
                "accounts:signUp": httpx.Response(200, json=SIGNED_IN),
                "accounts:signInWithPassword": _provider_error("INVALID_LOGIN_CREDENTIALS"),
                "accounts:lookup": httpx.Response(200, json=LOOKUP),
            }
        )
        service = _service(provider)
        app.dependency_overrides[get_auth_service] = lambda: service
        return provider

    @pytest.mark.asyncio
    async def test_signup(self, test_client, provider):
        response = await test_client.post(
            "/auth/signup", json={"email": "tecnico@climapp.com", "password": "secret1"}
        )

        assert response.status_code == 201
        assert response.json()["data"]["idToken"] == "id-token"

    @pytest.mark.asyncio
    async def test_short_password_never_reaches_provider(self, test_client, provider):
        response = await test_client.post(
            "/auth/signup", json={"email": "tecnico@climapp.com", "password": "123"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_bad_login_is_401(self, test_client, provider):
        response = await test_client.post(
            "/auth/login", json={"email": "tecnico@climapp.com", "password": "wrong"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_CREDENTIALS"

    @pytest.mark.asyncio
    async def test_profile_with_bearer(self, test_client, provider):
        response = await test_client.get(
            "/auth/profile", headers={"Authorization": "Bearer id-token"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["displayName"] == "Carlos"
        assert json.loads(provider.calls[0][1].content) == {"idToken": "id-token"}

    @pytest.mark.asyncio
    async def test_profile_without_header(self, test_client, provider):
        response = await test_client.get("/auth/profile")

        assert response.status_code == 401
        assert response.json()["error"] == "MISSING_TOKEN"

    @pytest.mark.asyncio
    async def test_profile_with_wrong_scheme(self, test_client, provider):
        response = await test_client.get("/auth/profile", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_TOKEN_FORMAT"
