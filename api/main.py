"""
api/main.py -- FastAPI application entry point for TokenGate.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every collaborator once and parks it on app.state:
  engine -> user_store, token_store -> session_manager, purpose_tokens,
  plus the immutable role_rights table and the mailer. Route handlers and
  auth dependencies read them from request.app.state; nothing is a module
  global.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import get_auth_context
from auth.errors import AuthError
from auth.models import AuthContext
from auth.purpose_tokens import PurposeTokenManager
from auth.roles import RoleRights
from auth.sessions import SessionManager
from auth.store import UserStore, create_db_engine
from auth.token_store import TokenStore
from core.config import get_settings
from core.email import EmailService

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokengate.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the stores and managers on startup; dispose the engine on shutdown.

    Both stores share one engine so session lookups can join users.
    """
    settings = get_settings()
    logger.info("TokenGate API starting up")

    engine = create_db_engine(settings.database_url)
    app.state.user_store = UserStore(engine)
    app.state.token_store = TokenStore(engine)
    app.state.session_manager = SessionManager(
        app.state.token_store,
        lifetime=timedelta(days=settings.session_expire_days),
        renew_window=timedelta(days=settings.session_renew_window_days),
    )
    app.state.purpose_tokens = PurposeTokenManager(
        app.state.token_store,
        app.state.user_store,
        reset_lifetime=timedelta(minutes=settings.reset_password_expire_minutes),
        verify_lifetime=timedelta(minutes=settings.verify_email_expire_minutes),
    )
    app.state.role_rights = RoleRights.default()
    app.state.mailer = EmailService(settings)
    logger.info(
        "Auth initialized (users=%d, roles=%s, email=%s)",
        app.state.user_store.count_users(),
        ",".join(app.state.role_rights.roles),
        "smtp" if app.state.mailer.enabled else "log-only",
    )

    yield

    app.state.user_store.close()
    logger.info("TokenGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TokenGate API",
    description="User registration, opaque session tokens, password reset, email verification, and role rights.",
    version=__version__,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced below by auth-protected routes.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() calls are applied outermost-first from the caller's
# perspective. Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Logs path only, never the query string: reset and verify links carry a
# live token in ?token=.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
def docs(ctx: AuthContext = Depends(get_auth_context)):
    """Swagger UI -- requires a valid session."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="TokenGate API")


@app.get("/redoc", include_in_schema=False)
def redoc(ctx: AuthContext = Depends(get_auth_context)):
    """ReDoc UI -- requires a valid session."""
    return get_redoc_html(openapi_url="/openapi.json", title="TokenGate API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render the auth/ exception taxonomy. Status and code travel on the exception.

    401 responses carry WWW-Authenticate so clients know a bearer token is expected.
    """
    response = _error(exc.status_code, exc.code, exc.message)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with structured error when request body or query params fail validation."""
    return _error(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and a database probe."""
    try:
        request.app.state.user_store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=__version__, components={"app": "ok", "database": database})
