"""
api/routes/v1/auth.py -- Registration, login, logout, password reset, email verification.

Routes:
  POST /api/v1/auth/register                 -- create USER account + session; 201
  POST /api/v1/auth/login                    -- password login; returns session token
  POST /api/v1/auth/logout                   -- revoke the given session token; 204
  POST /api/v1/auth/forgot-password          -- email a reset link; 204
  POST /api/v1/auth/reset-password?token=    -- set new password with reset token; 204
  POST /api/v1/auth/send-verification-email  -- email a verify link (requires auth); 204
  POST /api/v1/auth/verify-email?token=      -- mark email verified; 204
  GET  /api/v1/auth/me                       -- current user (requires auth)

Security:
  [H2] POST /login and /forgot-password are rate-limited per IP.
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on every response that carries a session token.
  Reset and verification failures return one generic 401 whatever the cause.

All handlers that touch the stores are plain `def`: FastAPI runs them in its
thread pool, so blocking SQLite I/O never stalls the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserResponse,
)
from auth.dependencies import get_auth_context
from auth.errors import ConflictError
from auth.models import AuthContext, IssuedSession, Role, User
from auth.purpose_tokens import PurposeTokenManager
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import authenticate_user, hash_password
from core.config import get_settings
from core.email import EmailService

_settings = get_settings()

# Auth policy:
# - POST /auth/register, /login, /logout, /forgot-password,
#   /reset-password, /verify-email:            public
# - POST /auth/send-verification-email:       requires auth (get_auth_context)
# - GET  /auth/me:                             requires auth (get_auth_context)
router = APIRouter()


def _session_response(user: User, issued: IssuedSession, status_code: int) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            user=UserResponse.from_user(user),
            token=issued.token,
            expires_at=issued.expires_at,
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a USER account and log it in.

    Registration never accepts a role: every self-registered account is USER.
    Admins create other admins through POST /users.
    """
    user_store: UserStore = request.app.state.user_store
    session_manager: SessionManager = request.app.state.session_manager

    try:
        user = user_store.create_user(
            User(
                name=body.name,
                email=body.email,
                password=hash_password(body.password),
                role=Role.USER.value,
            )
        )
    except ConflictError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "email_taken", "message": "Email already taken"},
        ) from exc

    issued = session_manager.issue(user.id)
    return _session_response(user, issued, status_code=201)


@limiter.limit(_settings.login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a new session token.

    Returns the same error for unknown email and wrong password so the
    response does not reveal which accounts exist.
    """
    user_store: UserStore = request.app.state.user_store
    session_manager: SessionManager = request.app.state.session_manager

    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Incorrect email or password"}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    issued = session_manager.issue(user.id)
    return _session_response(user, issued, status_code=200)


@router.post("/auth/logout", status_code=204)
def logout(request: Request, body: LogoutRequest) -> Response:
    """Revoke a session. Unknown or already-revoked tokens also return 204."""
    session_manager: SessionManager = request.app.state.session_manager
    session_manager.invalidate(body.session_token)
    return Response(status_code=204)


@limiter.limit(_settings.forgot_password_rate_limit)  # [H2]
@router.post("/auth/forgot-password", status_code=204)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> Response:
    """Email a password-reset link. 404 if no account uses that email."""
    purpose_tokens: PurposeTokenManager = request.app.state.purpose_tokens
    mailer: EmailService = request.app.state.mailer

    token = purpose_tokens.issue_reset_token(body.email)
    mailer.send_reset_password_email(body.email, token)
    return Response(status_code=204)


@router.post("/auth/reset-password", status_code=204)
def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    token: str = Query(min_length=1),
) -> Response:
    """Set a new password using the emailed token. Revokes all sessions of the user."""
    purpose_tokens: PurposeTokenManager = request.app.state.purpose_tokens
    purpose_tokens.consume_for_password_reset(token, body.password)
    return Response(status_code=204)


@router.post("/auth/verify-email", status_code=204)
def verify_email(request: Request, token: str = Query(min_length=1)) -> Response:
    """Mark the token owner's email address as verified."""
    purpose_tokens: PurposeTokenManager = request.app.state.purpose_tokens
    purpose_tokens.consume_for_email_verification(token)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/send-verification-email", status_code=204)
def send_verification_email(
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
) -> Response:
    """Email a verification link to the current user."""
    purpose_tokens: PurposeTokenManager = request.app.state.purpose_tokens
    mailer: EmailService = request.app.state.mailer

    token = purpose_tokens.issue_verify_token(ctx.user.id)
    mailer.send_verification_email(ctx.user.email, token)
    return Response(status_code=204)


@router.get("/auth/me", response_model=UserResponse)
def me(ctx: AuthContext = Depends(get_auth_context)) -> UserResponse:
    """Return the currently authenticated user."""
    return UserResponse.from_user(ctx.user)
