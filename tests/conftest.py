"""
tests/conftest.py -- Shared test fixtures for Doorman.

This module provides:
  - make_engine_for(): isolated named shared-memory SQLite engine per test
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - stores: (UserStore, SessionManager) on a fresh database
  - web_client: TestClient with follow_redirects=False for web route tests
  - create_user: helper that registers an account straight through the store

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any app import: get_settings() is
cached on first call, and auth.passwords hashes its dummy digest at import
time with the configured bcrypt cost. Cost 4 keeps the suite fast.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import uuid
from collections.abc import Callable, Generator

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef-0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.limiter import limiter
from asgi import app
from auth.models import User
from auth.passwords import hash_password
from auth.sessions import SessionManager, SqlSessionBackend
from auth.store import UserStore
from core.config import get_settings
from core.database import make_engine

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_engine_for(prefix: str) -> Engine:
    """Return an Engine on a uniquely named shared-memory SQLite database."""
    name = f"{prefix}_{uuid.uuid4().hex}"
    return make_engine(f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore, sessions: SessionManager):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a real
    asyncio.Task, as it does in production.
    """

    @contextlib.asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.sessions = sessions
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await app.state.purge_task

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> Generator[None, None, None]:
    """Every test starts with empty rate limit counters."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def stores() -> Generator[tuple[UserStore, SessionManager], None, None]:
    engine = make_engine_for("doorman")
    user_store = UserStore(engine)
    sessions = SessionManager(SqlSessionBackend(engine), secret_key=get_settings().secret_key)
    yield user_store, sessions
    engine.dispose()


@pytest.fixture
def web_client(stores: tuple[UserStore, SessionManager]) -> Generator[TestClient, None, None]:
    """TestClient over the real app with isolated stores.

    follow_redirects=False is essential: tests assert on redirect Location
    headers, which disappear once the client follows them.
    """
    user_store, sessions = stores
    app.router.lifespan_context = _patch_lifespan(user_store, sessions)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def create_user(stores: tuple[UserStore, SessionManager]) -> Callable[..., User]:
    user_store, _ = stores

    def _create(username: str = "bob_1", email: str = "bob@example.com", password: str = "hunter22") -> User:
        return user_store.create(username, email, hash_password(password))

    return _create


@pytest.fixture
def cookie_name() -> str:
    return get_settings().session_cookie_name
