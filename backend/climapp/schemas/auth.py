"""
Climapp Backend: Authentication Schemas
========================================

Request bodies and response payloads for /auth/*. Field names follow the
mobile app's camelCase contract. Validation messages are in Portuguese;
they surface verbatim in the 400 VALIDATION_ERROR `errors` list.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_email(value: str) -> str:
    value = value.strip()
    if not _EMAIL_PATTERN.match(value):
        raise ValueError("Email deve ter um formato válido")
    return value


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class SignupRequest(BaseModel):
    email: str
    password: str = Field(min_length=6, description="At least 6 characters")
    displayName: Optional[str] = Field(default=None, min_length=2, max_length=50)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)
    rememberMe: bool = Field(
        default=False,
        description="persistent session (30 days) instead of temporary (1 day)",
    )

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class AuthTokens(BaseModel):
    uid: str
    email: str
    displayName: Optional[str] = None
    emailVerified: bool = False
    idToken: str
    refreshToken: str
    expiresIn: int = Field(description="idToken lifetime in seconds")


class LoginData(AuthTokens):
    rememberMe: bool
    sessionType: str = Field(description="persistent or temporary")
    suggestedExpiry: datetime
    note: str


class SignupResponse(BaseModel):
    success: bool = True
    message: str = "Usuário criado com sucesso"
    data: AuthTokens


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login realizado com sucesso"
    data: LoginData


class ForgotPasswordData(BaseModel):
    email: str


class ForgotPasswordResponse(BaseModel):
    success: bool = True
    message: str = "Email de redefinição de senha enviado"
    data: ForgotPasswordData


class UserProfile(BaseModel):
    uid: str
    email: Optional[str] = None
    displayName: Optional[str] = None
    emailVerified: bool = False
    creationTime: Optional[datetime] = None
    lastSignInTime: Optional[datetime] = None


class ProfileResponse(BaseModel):
    success: bool = True
    message: str = "Perfil do usuário"
    data: UserProfile
