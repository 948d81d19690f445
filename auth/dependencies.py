"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and rights.

One auth method: Authorization: Bearer <opaque session token>.

authenticate() is the soft variant: a single linear function that returns
the tagged SessionValidationResult and never raises.
get_auth_context() wraps it and raises AuthenticationFailedError (401) when
the result is absent; otherwise it returns an explicit AuthContext that the
route receives as a parameter. Nothing is attached to the request object.
require_rights(...) builds a dependency that also runs the role check,
raising AuthorizationDeniedError (403) on deny.

All three are plain `def` functions: they hit the database, and FastAPI runs
sync dependencies in its thread pool so the event loop is never blocked.

Every authentication failure carries the same message ("Please authenticate")
whether the header was missing, the token unknown, or the session expired.

Layer rule: auth/dependencies.py may import from fastapi (for Depends and
Request) because this module is part of the FastAPI dependency injection
system. It does not import from api/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.errors import AuthenticationFailedError
from auth.models import AuthContext, SessionValidationResult
from auth.roles import authorize
from auth.sessions import SessionManager


def extract_bearer_token(request: Request) -> str | None:
    """Return the token from an `Authorization: Bearer <token>` header, or None.

    No structural validation beyond presence: the token is opaque.
    """
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def authenticate(request: Request) -> SessionValidationResult:
    """Validate the request's bearer token. Never raises for bad credentials."""
    session_manager: SessionManager = request.app.state.session_manager
    return session_manager.validate(extract_bearer_token(request))


def get_auth_context(request: Request) -> AuthContext:
    """Require authentication. Raises AuthenticationFailedError (401) if absent.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(ctx: AuthContext = Depends(get_auth_context)): ...
    """
    result = authenticate(request)
    if not result.valid:
        raise AuthenticationFailedError("Please authenticate")
    return AuthContext(user=result.user, session=result.session)


def require_rights(*rights: str) -> Callable[..., AuthContext]:
    """Build a dependency that authenticates and then checks role rights.

    The route's `user_id` path parameter, when present, is the subject of
    the request: a user acting on themselves passes regardless of role.

    Use as a FastAPI dependency:
        @router.get("/users/{user_id}")
        def route(ctx: AuthContext = Depends(require_rights("getUsers"))): ...
    """

    def dependency(request: Request, context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        subject_user_id = request.path_params.get("user_id")
        authorize(request.app.state.role_rights, context.user, rights, subject_user_id)
        return context

    return dependency
