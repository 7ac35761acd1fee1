"""
API request and response models.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Wire format is camelCase ({"accessToken": ..., "tokenType": "Bearer"}) to stay
compatible with existing clients; Python attributes stay snake_case.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from auth.credentials import MAX_PASSWORD_BYTES
from auth.models import Identity

# Loose shape check only. The normalized email is the identity key, and
# ownership is proven by the password or by Google, not by this pattern.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth."""

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    # Not stripped: whitespace is part of the password.
    password: str = Field(min_length=1, max_length=72, json_schema_extra={"format": "password"})

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return value.strip() if isinstance(value, str) else value


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/users.

    The password limit is bcrypt's 72 UTF-8 bytes. max_length counts
    characters, so multi-byte passwords get a separate byte check.
    """

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=72)
    name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AuthResponse(_CamelModel):
    """Response for login and registration."""

    access_token: str
    token_type: str = "Bearer"
    id: int
    email: str
    name: Optional[str] = None

    @classmethod
    def build(cls, token: str, identity: Identity) -> "AuthResponse":
        return cls(access_token=token, id=identity.id, email=identity.email, name=identity.display_name)


class OAuthLoginResponse(BaseModel):
    """Body written by the Google callback."""

    message: str = "Login successful"
    token: str
    email: str
    name: Optional[str] = None


class OAuthProviderInfo(BaseModel):
    name: str
    label: str


class MeResponse(_CamelModel):
    """Response for GET /api/users/me."""

    id: int
    email: str
    name: Optional[str] = None
    provider: str
    capabilities: list[str]
    enabled: bool
    token_expires_at: Optional[int] = None

    @classmethod
    def build(cls, identity: Identity, token_expires_at: Optional[int] = None) -> "MeResponse":
        return cls(
            id=identity.id,
            email=identity.email,
            name=identity.display_name,
            provider=identity.provider.value,
            capabilities=sorted(c.value for c in identity.capabilities),
            enabled=identity.enabled,
            token_expires_at=token_expires_at,
        )


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = {}


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """All error responses share this envelope: {"error": {"code", "message", "detail"}}."""

    error: ErrorDetail
