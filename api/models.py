"""
API request and response models for dashgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

AuthResponse keeps the {success, session_id, message} envelope the dashboard
frontend already reads, on both success and failure responses.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.tokens import MAX_PASSWORD_BYTES, normalize_username, password_too_long

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /api/setup-admin and POST /api/login.

    Username is stripped of surrounding whitespace; password is taken
    verbatim. bcrypt only looks at the first 72 bytes of a password, and
    newer bcrypt releases reject longer input, so the cap is 72 UTF-8 bytes.
    """

    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_BYTES)

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        return normalize_username(value)

    @field_validator("password")
    @classmethod
    def check_password_bytes(cls, value: str) -> str:
        if password_too_long(value):
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8")
        return value


class SessionRequest(BaseModel):
    """Request body for POST /api/logout and POST /api/validate-session."""

    session_id: str = Field(max_length=256)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AuthResponse(BaseModel):
    """Envelope for every auth endpoint except needs-setup."""

    success: bool
    session_id: Optional[str] = None
    message: Optional[str] = None


class StoreHealth(BaseModel):
    model_config = ConfigDict(frozen=True)

    records: int
    persisted: bool


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, StoreHealth] = Field(default_factory=dict)


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
