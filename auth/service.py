"""
auth/service.py -- The auth operations exposed to the HTTP layer and the CLI.

Each function takes the store(s) it needs explicitly; nothing here reaches
for a module-level global. login() is the only operation that touches both
stores, and it does so sequentially: verify_credentials() takes and releases
the credential lock before issue() takes the session lock.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.errors import AuthenticationFailure
from auth.models import UserInfo
from auth.sessions import SessionStore
from auth.store import CredentialStore

logger = logging.getLogger("dashgate.auth")


def needs_setup(credentials: CredentialStore) -> bool:
    """True until the first admin has been created."""
    return credentials.bootstrap_needed()


def setup_admin(credentials: CredentialStore, username: str, password: str) -> UserInfo:
    """One-shot admin bootstrap. Raises AlreadyInitialized or HashingFailure."""
    return credentials.create_admin(username, password)


def login(credentials: CredentialStore, sessions: SessionStore, username: str, password: str) -> str:
    """Verify the credentials and return a fresh session id.

    Raises AuthenticationFailure -- with one fixed message -- for an unknown
    user, a wrong password, or a verification error. No session is issued in
    any of those cases.
    """
    user = credentials.verify_credentials(username, password)
    if user is None:
        raise AuthenticationFailure()
    session_id = sessions.issue(user.username)
    logger.info("Login successful for '%s'", user.username)
    return session_id


def logout(sessions: SessionStore, session_id: str) -> None:
    """End one session. Logging out an unknown or already-removed id is fine."""
    sessions.revoke(session_id)


def logout_all(sessions: SessionStore) -> int:
    """End every session; used at shutdown and by the CLI."""
    return sessions.revoke_all()


def validate_session(sessions: SessionStore, session_id: str) -> str | None:
    """Return session_id if it names a live session, otherwise None."""
    return session_id if sessions.is_valid(session_id) else None


def cleanup_sessions(sessions: SessionStore) -> int:
    """Sweep expired sessions; return how many were removed."""
    return sessions.sweep_expired()
