"""
Climapp Backend: Authentication Route Handlers
===============================================

What:  Sign-up, password login, password-reset email and profile lookup.
How:   Every call is delegated to the identity provider through AuthService.
       Provider error codes are translated there into typed ClimappErrors;
       this module only reads the request and shapes the envelope.
Who:   The mobile app's login and account screens.

The backend keeps no user table. The provider's uid is the tenant key for
clients and atendimentos.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, status

from climapp.dependencies import get_auth_service
from climapp.exceptions import AuthenticationError
from climapp.schemas.auth import (
    ForgotPasswordData,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    ProfileResponse,
    SignupRequest,
    SignupResponse,
)
from climapp.schemas.common import ErrorResponse
from climapp.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

_PROVIDER_ERRORS = {
    429: {"description": "Too many attempts", "model": ErrorResponse},
    503: {"description": "Identity provider unavailable or not configured", "model": ErrorResponse},
}


def bearer_token(authorization: Optional[str]) -> str:
    """
    Extract the idToken from an `Authorization: Bearer <token>` header.

    Raises:
        AuthenticationError: header missing or not a Bearer credential
    """
    if not authorization:
        raise AuthenticationError(message="Token não fornecido", code="MISSING_TOKEN")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError(
            message="Formato do token inválido. Use: Bearer <token>",
            code="INVALID_TOKEN_FORMAT",
        )
    return token.strip()


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    response_model=SignupResponse,
    responses={
        400: {"description": "Invalid email or weak password", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
        **_PROVIDER_ERRORS,
    },
    summary="Create an account",
)
async def signup(
    payload: SignupRequest,
    auth: AuthService = Depends(get_auth_service),
) -> SignupResponse:
    tokens = await auth.signup(payload.email, payload.password, payload.displayName)
    return SignupResponse(data=tokens)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"description": "Wrong email or password", "model": ErrorResponse},
        403: {"description": "Account disabled", "model": ErrorResponse},
        **_PROVIDER_ERRORS,
    },
    summary="Password login",
    description=(
        "Returns the provider tokens. `rememberMe` selects a persistent (30 days) "
        "or temporary (1 day) session; the app uses `suggestedExpiry` to decide "
        "how long to keep the refresh token."
    ),
)
async def login(
    payload: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    data = await auth.login(payload.email, payload.password, payload.rememberMe)
    return LoginResponse(data=data)


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    responses={
        404: {"description": "No account with this email", "model": ErrorResponse},
        **_PROVIDER_ERRORS,
    },
    summary="Send a password-reset email",
)
async def forgot_password(
    payload: ForgotPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> ForgotPasswordResponse:
    email = await auth.send_password_reset(payload.email)
    return ForgotPasswordResponse(data=ForgotPasswordData(email=email))


@router.get(
    "/profile",
    response_model=ProfileResponse,
    responses={
        401: {"description": "Missing, malformed or expired token", "model": ErrorResponse},
        **_PROVIDER_ERRORS,
    },
    summary="Profile of the signed-in user",
)
async def profile(
    authorization: Optional[str] = Header(default=None),
    auth: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    user = await auth.get_profile(bearer_token(authorization))
    return ProfileResponse(data=user)
