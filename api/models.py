"""
API request and response models for TokenGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
Response models never carry a password hash or a token digest.
"""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Shared validators
# ---------------------------------------------------------------------------


def _check_password(value: str) -> str:
    """Password policy: at least one letter and one digit (length via Field)."""
    if not any(c.isalpha() for c in value) or not any(c.isdigit() for c in value):
        raise ValueError("password must contain at least 1 letter and 1 number")
    return value


# Annotated type that applies length bounds and the letter+digit policy.
Password = Annotated[str, Field(min_length=8, max_length=128), AfterValidator(_check_password)]


# ---------------------------------------------------------------------------
# Auth request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register. Role is always USER."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: Password


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class LogoutRequest(BaseModel):
    """Request body for POST /api/v1/auth/logout."""

    session_token: str = Field(min_length=1, max_length=256)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/forgot-password."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/reset-password?token=..."""

    password: Password


# ---------------------------------------------------------------------------
# User management request models
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users (manageUsers right)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: Password
    # Checked against the configured RoleRights table by the route.
    role: str = Field(default=Role.USER.value, min_length=1, max_length=30)


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{user_id}. All fields optional.

    Role changes are not accepted here: a user editing themselves must not be
    able to promote their own account.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[Password] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: str
    is_email_verified: bool

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method -- the mapping lives beside the output model."""
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_email_verified=user.is_email_verified,
        )


class AuthResponse(BaseModel):
    """Response for register and login: the user plus a raw session token.

    token is shown exactly once. Only its SHA-256 digest is stored.
    """

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    token: str
    token_type: str = "bearer"
    expires_at: datetime


class UserPage(BaseModel):
    """Response for GET /api/v1/users."""

    model_config = ConfigDict(frozen=True)

    results: list[UserResponse]
    page: int
    limit: int
    total_pages: int
    total_results: int


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

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
