"""
auth/tokens.py -- Opaque token codec, password hashing, and credential checks.

Security design decisions:
  Opaque tokens: 20 bytes from secrets.token_bytes (160 bits of entropy),
       encoded as lowercase base32 without padding. The token carries no
       claims; it is valid only while its hash exists in the token store.

  Token ids: SHA-256 hex of the raw token. Only the digest is persisted, so a
       read of the database never discloses a usable credential. A plain
       (unkeyed) hash is enough because the input already has 160 bits of
       entropy -- there is nothing to brute-force.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered [C1].

Layer rule: no imports from api/. Nothing here touches the database except
authenticate_user(), which receives the store it should use.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from typing import TYPE_CHECKING

import bcrypt

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("tokengate.auth")

_TOKEN_BYTES = 20
_USER_ID_BYTES = 12  # 16 URL-safe characters

# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------


def generate_token() -> str:
    """Return a new opaque bearer secret: 32 lowercase base32 characters."""
    raw = secrets.token_bytes(_TOKEN_BYTES)
    return base64.b32encode(raw).decode("ascii").rstrip("=").lower()


def hash_token(token: str) -> str:
    """Return the storage id for a raw token: lowercase SHA-256 hex digest."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def short_id(token_hash: str) -> str:
    """Return a log-safe prefix of a token hash. Never pass a raw token here."""
    return token_hash[:8]


def generate_user_id() -> str:
    """Return a 16-character random URL-safe user id."""
    return secrets.token_urlsafe(_USER_ID_BYTES)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input past 72 bytes. The API layer caps password length
    at 128 characters, and ASCII passwords below 72 are the common case.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


# Timing equalization dummy hash [C1]. Computed once at module load.
_DUMMY_HASH: str = hash_password("tokengate_timing_dummy")


# ---------------------------------------------------------------------------
# User authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the email is registered:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password):
        return None
    return user
