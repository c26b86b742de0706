"""Tests for auth/service.py -- the cross-store auth operations.

These run the end-to-end scenarios against real stores (tmp_path documents,
fake clock): bootstrap -> login -> validate -> logout, failed login, expiry.
"""

from __future__ import annotations

import pytest

from auth import service
from auth.errors import AlreadyInitialized, AuthenticationFailure
from auth.sessions import DEFAULT_TTL_SECONDS, SessionStore
from auth.store import CredentialStore

from conftest import FakeClock


def test_full_lifecycle(credential_store: CredentialStore, session_store: SessionStore) -> None:
    assert service.needs_setup(credential_store)

    service.setup_admin(credential_store, "admin", "secret")
    assert not service.needs_setup(credential_store)

    with pytest.raises(AlreadyInitialized):
        service.setup_admin(credential_store, "admin2", "x")

    sid = service.login(credential_store, session_store, "admin", "secret")
    assert service.validate_session(session_store, sid) == sid

    service.logout(session_store, sid)
    assert service.validate_session(session_store, sid) is None


@pytest.mark.parametrize(
    ("username", "password"),
    [("admin", "wrong"), ("ghost", "secret"), ("ADMIN", "secret")],
)
def test_failed_login_issues_no_session(
    credential_store: CredentialStore, session_store: SessionStore, username: str, password: str
) -> None:
    service.setup_admin(credential_store, "admin", "secret")
    before = session_store.count()

    with pytest.raises(AuthenticationFailure) as exc_info:
        service.login(credential_store, session_store, username, password)

    assert str(exc_info.value) == "Invalid credentials"
    assert session_store.count() == before


def test_login_before_setup_fails(credential_store: CredentialStore, session_store: SessionStore) -> None:
    with pytest.raises(AuthenticationFailure):
        service.login(credential_store, session_store, "admin", "secret")


def test_logout_unknown_session_is_silent(session_store: SessionStore) -> None:
    service.logout(session_store, "never-issued")
    assert session_store.count() == 0


def test_expired_session_fails_validation_then_is_cleaned_up(
    credential_store: CredentialStore, session_store: SessionStore, clock: FakeClock
) -> None:
    service.setup_admin(credential_store, "admin", "secret")
    expired = service.login(credential_store, session_store, "admin", "secret")
    clock.advance(DEFAULT_TTL_SECONDS + 5)
    live = service.login(credential_store, session_store, "admin", "secret")

    assert service.validate_session(session_store, expired) is None
    assert service.cleanup_sessions(session_store) == 1
    assert service.validate_session(session_store, live) == live


def test_logout_all(credential_store: CredentialStore, session_store: SessionStore) -> None:
    service.setup_admin(credential_store, "admin", "secret")
    sids = [service.login(credential_store, session_store, "admin", "secret") for _ in range(3)]

    assert service.logout_all(session_store) == 3
    assert all(service.validate_session(session_store, s) is None for s in sids)
