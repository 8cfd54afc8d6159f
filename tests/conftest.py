"""
tests/conftest.py -- Shared test fixtures for Gatehouse unit and integration tests.

This module provides:
  - _make_test_store(): creates an isolated in-memory credential store
  - _patch_lifespan(): wires test objects into app.state, bypassing real startup
  - user_store / codec / service: function-scoped objects for service tests
  - api_client: TestClient with an admin access token for HTTP tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment must be set before any auth/core import:
  DEBUG          -- get_settings() auto-generates SECRET_KEY instead of raising.
  BCRYPT_ROUNDS  -- minimum cost keeps the suite fast.
  *_RATE_LIMIT   -- every request comes from the same "testclient" address.
  ALLOWED_HOSTS  -- TestClient sends Host: testserver.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("SIGNUP_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec, get_token_codec
from core.config import Settings, get_settings

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "testpass123"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str | None = None) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so tests don't share
                   state. A random one is used when omitted.
    """
    suffix = db_suffix or uuid.uuid4().hex
    return UserStore(f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore, service: AuthService):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.auth_service = service
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Function-scoped fixtures -- service-level tests
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = _make_test_store()
    yield store
    store.close()


@pytest.fixture
def codec(settings: Settings) -> TokenCodec:
    return TokenCodec(settings.secret_key)


@pytest.fixture
def service(user_store: UserStore, codec: TokenCodec, settings: Settings) -> AuthService:
    return AuthService(user_store, codec, settings)


# ---------------------------------------------------------------------------
# Module-scoped fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for HTTP integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers and dependencies but an isolated store.
    """
    user_store = _make_test_store("api")
    service = AuthService(user_store, get_token_codec(), get_settings())
    service.ensure_admin(ADMIN_USERNAME, ADMIN_PASSWORD, "Test Admin")
    session = service.authenticate(ADMIN_USERNAME, ADMIN_PASSWORD)

    app.router.lifespan_context = _patch_lifespan(user_store, service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, session.access_token, session.principal.id

    user_store.close()
