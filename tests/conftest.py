"""
tests/conftest.py -- Shared test fixtures for dashgate.

This module provides:
  - FakeClock / clock: a settable epoch-seconds clock for expiry tests
  - credential_store / session_store: stores backed by tmp_path documents
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient on the real app with empty, isolated stores

bcrypt runs at 4 rounds (the minimum) everywhere in the suite; the cost
factor does not change behaviour, only speed.

LOGIN_RATE_LIMIT must be raised before api.main is imported: the slowapi
counter is process-wide and the suite logs in far more than 10 times a minute.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: set before any api/core import so get_settings() sees it.
os.environ.setdefault("LOGIN_RATE_LIMIT", "10000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.sessions import SessionStore
from auth.store import CredentialStore

TEST_ROUNDS = 4
START_TIME = 1_700_000_000


class FakeClock:
    """Callable clock returning a controllable epoch time."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def users_path(tmp_path: Path) -> Path:
    return tmp_path / "users.json"


@pytest.fixture
def sessions_path(tmp_path: Path) -> Path:
    return tmp_path / "sessions.json"


@pytest.fixture
def credential_store(users_path: Path) -> CredentialStore:
    store = CredentialStore(users_path, bcrypt_rounds=TEST_ROUNDS)
    store.load()
    return store


@pytest.fixture
def session_store(sessions_path: Path, clock: FakeClock) -> SessionStore:
    store = SessionStore(sessions_path, clock=clock)
    store.load()
    return store


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(credentials: CredentialStore, sessions: SessionStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state exactly where the real
    lifespan puts them, without a sweep task or shutdown logout.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.credential_store = credentials
        app.state.session_store = sessions
        app.state.sweep_task = None
        yield

    return test_lifespan


@pytest.fixture
def api_client(
    credential_store: CredentialStore, session_store: SessionStore
) -> Generator[tuple[TestClient, CredentialStore, SessionStore], None, None]:
    """Yield (client, credential_store, session_store) with both stores empty.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use isolated tmp_path documents.
    """
    original = app.router.lifespan_context
    app.router.lifespan_context = _patch_lifespan(credential_store, session_store)
    try:
        with TestClient(app, raise_server_exceptions=True) as client:
            yield client, credential_store, session_store
    finally:
        app.router.lifespan_context = original
