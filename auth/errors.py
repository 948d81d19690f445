"""
auth/errors.py -- Exception taxonomy for the session and token subsystem.

Every exception carries the HTTP status and envelope code it maps to, so the
single AuthError handler in api/main.py can render all of them without a
lookup table. Lower layers raise these; only the API layer turns them into
responses.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all errors raised by auth/."""

    status_code: int = 400
    code: str = "auth_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__


class NotFoundError(AuthError):
    """A referenced user or token does not exist."""

    status_code = 404
    code = "not_found"


class ConflictError(AuthError):
    """A uniqueness constraint rejected an insert (hashed id or email)."""

    status_code = 409
    code = "conflict"


class AuthenticationFailedError(AuthError):
    """No valid credential. Raised with the same message for every cause."""

    status_code = 401
    code = "unauthorized"


class AuthorizationDeniedError(AuthError):
    """Authenticated, but the role does not grant the required rights."""

    status_code = 403
    code = "forbidden"


class OperationFailedError(AuthError):
    """A multi-step purpose-token flow failed. The cause is logged, not exposed."""

    status_code = 401
    code = "operation_failed"
