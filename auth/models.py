"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and managers do
the work; these classes only own the shape of the domain.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class TokenType(str, Enum):
    RESET_PASSWORD = "RESET_PASSWORD"
    VERIFY_EMAIL = "VERIFY_EMAIL"


@dataclass
class User:
    """A registered account.

    password holds the bcrypt hash, never the plaintext. It is always loaded
    by the store so credential checks can run; response models drop it.

    id is a 16-char random string assigned by the store on insert.
    """

    name: str
    email: str  # stored lowercased, unique
    password: str  # bcrypt hash
    role: str = Role.USER.value
    is_email_verified: bool = False
    id: str | None = None
    created_at: str | None = None  # ISO 8601
    updated_at: str | None = None  # ISO 8601


@dataclass
class Session:
    """A login session.

    id is the SHA-256 hex digest of the raw bearer token. The raw token only
    ever exists in the issue response and the client's memory.
    """

    id: str
    user_id: str
    expires_at: datetime  # timezone-aware UTC


@dataclass
class Token:
    """A single-use purpose token (password reset or email verification).

    token is the SHA-256 hex digest of the raw value sent by email.
    """

    token: str
    user_id: str
    type: str  # TokenType value
    expires: datetime  # timezone-aware UTC
    blacklisted: bool = False
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class AuthContext:
    """The authenticated identity handed to route handlers.

    Built by auth.dependencies and passed explicitly into handlers via
    Depends() -- nothing is stashed on the request object.
    """

    user: User
    session: Session


@dataclass(frozen=True)
class SessionValidationResult:
    """Tagged result of SessionManager.validate().

    Either both user and session are set (valid=True) or both are None.
    Callers must treat "no such session" and "expired session" identically;
    this type does not distinguish them.
    """

    user: User | None = None
    session: Session | None = None

    @property
    def valid(self) -> bool:
        return self.session is not None and self.user is not None


@dataclass(frozen=True)
class IssuedSession:
    """Return value of SessionManager.issue(): the raw token plus its record."""

    token: str
    session: Session

    @property
    def expires_at(self) -> datetime:
        return self.session.expires_at
