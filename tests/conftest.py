"""
tests/conftest.py -- Shared test fixtures for TokenGate tests.

This module provides:
  - FrozenClock: a settable clock for session and purpose-token managers
  - engine / user_store / token_store: per-test in-memory stores for unit tests
  - _make_test_stores(): isolated named shared-memory DB for TestClient tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus an ADMIN session token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the TestClient fixture because route handlers run in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process. Unit tests stay on one thread
and use plain :memory:.

RATE_LIMIT_ENABLED must be set before any api/ import: the limiter reads
settings once at import time, and integration tests log in far more often
than the production limit allows.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

# CRITICAL: Set before any api/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.purpose_tokens import PurposeTokenManager
from auth.roles import RoleRights
from auth.sessions import SessionManager
from auth.store import UserStore, create_db_engine
from auth.token_store import TokenStore
from auth.tokens import hash_password

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    eng = create_db_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture()
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture()
def token_store(engine) -> TokenStore:
    return TokenStore(engine)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def alice(user_store: UserStore) -> User:
    """A USER account with password 'alicepass1'."""
    return user_store.create_user(
        User(name="Alice", email="alice@example.com", password=hash_password("alicepass1"))
    )


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, TokenStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'auth', 'users').
    """
    url = f"sqlite:///file:test_tokengate_{db_suffix}?mode=memory&cache=shared&uri=true"
    eng = create_db_engine(url)
    return UserStore(eng), TokenStore(eng)


def _patch_lifespan(user_store: UserStore, token_store: TokenStore, mailer: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the production database. The mailer is a
    MagicMock so tests can read the raw tokens that would have been emailed.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.token_store = token_store
        app.state.session_manager = SessionManager(token_store)
        app.state.purpose_tokens = PurposeTokenManager(token_store, user_store)
        app.state.role_rights = RoleRights.default()
        app.state.mailer = mailer
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated in-memory stores. The
    admin user is created before the client starts and a real session is
    issued for use in Authorization headers.
    """
    user_store, token_store = _make_test_stores(os.urandom(4).hex())
    admin = user_store.create_user(
        User(
            name="Admin",
            email=ADMIN_EMAIL,
            password=hash_password(ADMIN_PASSWORD),
            role=Role.ADMIN.value,
        )
    )
    issued = SessionManager(token_store).issue(admin.id)

    app.router.lifespan_context = _patch_lifespan(user_store, token_store, MagicMock())

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, issued.token, admin.id

    user_store.close()


@pytest.fixture()
def mailer(api_client) -> MagicMock:
    """The MagicMock mailer behind api_client, reset for each test."""
    client, _, _ = api_client
    client.app.state.mailer.reset_mock()
    return client.app.state.mailer


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register(client: TestClient, name: str, email: str, password: str = "password1") -> dict:
    """Register through the API and return the response body."""
    resp = client.post("/api/v1/auth/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    return resp.json()
