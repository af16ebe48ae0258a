"""
API request and response models for the site user portal REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Authority, SiteUser

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        # Registration stores usernames stripped.
        return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    username: str
    authority: Authority


class MeResponse(BaseModel):
    """Identity of the caller as seen by the security layer."""

    model_config = ConfigDict(frozen=True)

    username: str
    authority: Authority


class UserResponse(BaseModel):
    """One user record as exposed to admins. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    gender: int
    is_admin: bool
    authority: Authority
    created_at: str

    @classmethod
    def from_site_user(cls, user: SiteUser) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            gender=user.gender,
            is_admin=user.is_admin,
            authority=user.authority,
            created_at=user.created_at or "",
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
