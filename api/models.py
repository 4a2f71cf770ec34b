"""
API request and response models for the asset tracker REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
assets/models.py, which own the internal domain representation. Route
handlers map between the two.

Request models forbid unknown fields: a body with an extra or misspelled key
is rejected before any store is touched. Email fields are EmailStr, so
addresses that fail email-validator syntax checks never reach the service.
They are lower-cased before validation.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import OtpPurpose


def _normalize_email(value: object) -> object:
    if isinstance(value, str):
        return value.strip().lower()
    return value


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    # bcrypt only looks at the first 72 bytes; longer passwords are refused
    # rather than silently truncated.
    password: str = Field(min_length=1, max_length=72)
    username: Optional[str] = Field(default=None, max_length=64)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        return _normalize_email(value)

    @field_validator("username", mode="before")
    @classmethod
    def blank_username_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value


class VerifyOtpRequest(BaseModel):
    """Request body for POST /auth/verify-otp. purpose defaults to registration."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    email: EmailStr
    otp: str = Field(min_length=1, max_length=12)
    purpose: OtpPurpose = OtpPurpose.register

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        return _normalize_email(value)

    @field_validator("otp", mode="before")
    @classmethod
    def otp_as_string(cls, value: object) -> object:
        # Clients send the code as a number or a string; compare as text.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=72)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        return _normalize_email(value)


class ResendOtpRequest(BaseModel):
    """Request body for POST /auth/resend-otp."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: object) -> object:
        return _normalize_email(value)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserProfile(BaseModel):
    """Public view of an account. Never carries the password hash or OTP state."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: Optional[str]
    email: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    email: Optional[str] = None


class TokenResponse(BaseModel):
    """Response for a successful verify-otp or password login."""

    model_config = ConfigDict(frozen=True)

    message: str
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserProfile


class OtpChallengeResponse(BaseModel):
    """Response for a password login when a second OTP step is required."""

    model_config = ConfigDict(frozen=True)

    message: str
    email: str
    otp_required: bool = True


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: Optional[str]
    email: str
    is_verified: bool
    created_at: Optional[str]
    last_login: Optional[str]


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


class AssetCreate(BaseModel):
    """Request body for POST /assets. The owner comes from the token, not the body."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    type: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    quantity: float = Field(ge=0, allow_inf_nan=False)
    price: float = Field(ge=0, allow_inf_nan=False)


class AssetUpdate(BaseModel):
    """Request body for PUT /assets/{asset_id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    quantity: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    price: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


class AssetResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    type: str
    name: str
    quantity: float
    price: float
    value: float
    created_at: str
    updated_at: str


class TypeBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int
    value: float


class DashboardResponse(BaseModel):
    """Response for GET /dashboard."""

    model_config = ConfigDict(frozen=True)

    total_assets: int
    total_value: float
    by_type: dict[str, TypeBreakdown]


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


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
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
