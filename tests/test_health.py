"""
tests/test_health.py -- Integration tests for GET /api/health and the real lifespan.

Covers:
  - 200 response with status, version and per-store components
  - a failed document write reports persisted=false and status "degraded"
  - the real lifespan loads stores from DATA_DIR and logs out all sessions on shutdown
  - expired sessions are swept at startup and by the periodic sweep task
"""

from __future__ import annotations

import asyncio
import json
from contextlib import suppress
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import api.main
from api.main import app, lifespan
from auth.sessions import SessionStore
from core.config import Settings

from conftest import FakeClock


def test_health_returns_200_with_components(api_client):
    client, _, _ = api_client
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == api.main.VERSION
    assert data["components"]["users"] == {"records": 0, "persisted": True}
    assert data["components"]["sessions"] == {"records": 0, "persisted": True}


def test_health_counts_records(api_client):
    client, _, _ = api_client
    client.post("/api/setup-admin", json={"username": "admin", "password": "secret"})
    client.post("/api/login", json={"username": "admin", "password": "secret"})
    data = client.get("/api/health").json()
    assert data["components"]["users"]["records"] == 1
    assert data["components"]["sessions"]["records"] == 1


def test_health_reports_degraded_after_write_failure(api_client, tmp_path: Path):
    client, credentials, _ = api_client
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    credentials._doc.path = blocker / "users.json"

    resp = client.post("/api/setup-admin", json={"username": "admin", "password": "secret"})
    assert resp.status_code == 201  # in-memory bootstrap stands

    data = client.get("/api/health").json()
    assert data["status"] == "degraded"
    assert data["components"]["users"]["persisted"] is False


@pytest.fixture
def real_lifespan(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    settings = Settings(data_dir=tmp_path, bcrypt_rounds=4, sweep_interval_seconds=0)
    monkeypatch.setattr(api.main, "_settings", settings)
    monkeypatch.setattr(app.router, "lifespan_context", lifespan)
    return tmp_path


def test_lifespan_loads_from_data_dir_and_clears_sessions_on_shutdown(real_lifespan: Path):
    with TestClient(app) as client:
        assert client.get("/api/needs-setup").json() is True
        client.post("/api/setup-admin", json={"username": "admin", "password": "secret"})
        sid = client.post("/api/login", json={"username": "admin", "password": "secret"}).json()["session_id"]
        sessions_doc = json.loads((real_lifespan / "sessions.json").read_text(encoding="utf-8"))
        assert [s["session_id"] for s in sessions_doc["sessions"]] == [sid]

    sessions_doc = json.loads((real_lifespan / "sessions.json").read_text(encoding="utf-8"))
    assert sessions_doc["sessions"] == []

    # Users survive the restart; sessions do not.
    with TestClient(app) as client:
        assert client.get("/api/needs-setup").json() is False
        resp = client.post("/api/validate-session", json={"session_id": sid})
        assert resp.json()["success"] is False


def test_lifespan_survives_corrupt_documents(real_lifespan: Path):
    (real_lifespan / "users.json").write_text("{broken", encoding="utf-8")
    (real_lifespan / "sessions.json").write_text("{broken", encoding="utf-8")
    with TestClient(app) as client:
        assert client.get("/api/needs-setup").json() is True
    assert list(real_lifespan.glob("users.json.corrupt-*"))


# ---------------------------------------------------------------------------
# Expired-session sweeps: once at startup, then periodically
# ---------------------------------------------------------------------------


def test_startup_sweep_drops_sessions_that_expired_while_down(real_lifespan: Path):
    expired = {"session_id": "e" * 64, "username": "admin", "created_at": 1_000, "expires_at": 2_000}
    (real_lifespan / "sessions.json").write_text(
        json.dumps({"version": 1, "sessions": [expired]}), encoding="utf-8"
    )
    with TestClient(app) as client:
        assert client.get("/api/health").json()["components"]["sessions"]["records"] == 0
        on_disk = json.loads((real_lifespan / "sessions.json").read_text(encoding="utf-8"))
        assert on_disk["sessions"] == []


def test_sweep_task_is_started_and_stopped_with_the_app(real_lifespan: Path, monkeypatch: pytest.MonkeyPatch):
    settings = Settings(data_dir=real_lifespan, bcrypt_rounds=4, sweep_interval_seconds=3600)
    monkeypatch.setattr(api.main, "_settings", settings)
    with TestClient(app):
        task = app.state.sweep_task
        assert task is not None
        assert not task.done()
    assert task.done()


def _run_sweep_loop(store: SessionStore, until) -> None:
    """Drive _sweep_loop with a 10 ms interval until `until()` holds (or ~2 s)."""
    state = SimpleNamespace(state=SimpleNamespace(session_store=store))

    async def scenario() -> None:
        task = asyncio.create_task(api.main._sweep_loop(state, 0.01))
        for _ in range(200):
            await asyncio.sleep(0.01)
            if until():
                break
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def test_sweep_loop_removes_expired_sessions(sessions_path: Path, clock: FakeClock):
    store = SessionStore(sessions_path, ttl_seconds=60, clock=clock)
    store.load()
    stale = store.issue("admin")
    clock.advance(120)
    live = store.issue("admin")

    _run_sweep_loop(store, until=lambda: store.count() == 1)

    assert store.get(stale) is None
    assert store.is_valid(live)


def test_sweep_loop_survives_a_failing_sweep(
    sessions_path: Path, clock: FakeClock, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
):
    store = SessionStore(sessions_path, ttl_seconds=60, clock=clock)
    store.load()
    store.issue("admin")
    clock.advance(120)

    real_sweep = store.sweep_expired
    calls: list[int] = []

    def flaky_sweep() -> int:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("disk on fire")
        return real_sweep()

    monkeypatch.setattr(store, "sweep_expired", flaky_sweep)
    with caplog.at_level("ERROR", logger="dashgate.api"):
        _run_sweep_loop(store, until=lambda: store.count() == 0)

    assert len(calls) >= 2
    assert store.count() == 0
    assert "Periodic session sweep failed" in caplog.text
