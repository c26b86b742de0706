"""
auth/sessions.py -- Session store: issue, validate, sweep and revoke tokens.

Same Repository + Data Mapper shape as auth/store.py, with its own document
and its own lock. The two stores never hold each other's lock: login reads the
credential store, releases it, then calls issue() here.

Expiry is lazy. is_valid() compares expires_at against the clock and never
deletes; expired entries stay in memory and on disk until sweep_expired(),
revoke() or revoke_all() runs.

The clock is injectable (any zero-arg callable returning epoch seconds) so
tests can move time forward without sleeping.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path

from auth.errors import PersistenceReadError
from auth.models import Session
from auth.persistence import JsonDocument
from auth.tokens import new_session_id, redact

logger = logging.getLogger("dashgate.auth")

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class SessionStore:
    """Repository for Session records backed by a JSON document.

    Usage:
        sessions = SessionStore(Path("data/sessions.json"))
        sessions.load()
        sid = sessions.issue("admin")
        sessions.is_valid(sid)      # True for the next 24 hours
        sessions.revoke(sid)
    """

    def __init__(
        self,
        path: Path,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._doc = JsonDocument(path, key="sessions")
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: list[Session] = []
        self._persisted_ok = True

    @property
    def path(self) -> Path:
        return self._doc.path

    @property
    def persisted_ok(self) -> bool:
        """False while the last document write has failed (disk is stale)."""
        with self._lock:
            return self._persisted_ok

    def _now(self) -> int:
        return int(self._clock())

    def _persist(self) -> None:
        # Caller must hold self._lock.
        self._persisted_ok = self._doc.save([_session_to_record(s) for s in self._sessions])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Replace the in-memory sessions with the document's contents.

        Expired sessions are loaded too; they are invalid on read and go away
        at the next sweep.
        """
        records = self._doc.load()
        try:
            sessions = [_record_to_session(r) for r in records]
        except ValueError as exc:
            err = PersistenceReadError(self.path, str(exc))
            moved_to = self._doc.quarantine()
            logger.error("Discarding sessions document: %s. Original kept at %s", err, moved_to or "<could not move>")
            sessions = []
        with self._lock:
            self._sessions = sessions
        logger.info("Loaded %d sessions from %s", len(sessions), self.path)
        return len(sessions)

    # ------------------------------------------------------------------
    # Issue / validate
    # ------------------------------------------------------------------

    def issue(self, username: str) -> str:
        """Create a session for username, persist it, and return its id.

        A duplicate id would mean the random source is broken. That is an
        invariant violation, reported as RuntimeError rather than overwriting
        the existing session.
        """
        session_id = new_session_id()
        with self._lock:
            if any(s.session_id == session_id for s in self._sessions):
                raise RuntimeError("session id collision")
            now = self._now()
            self._sessions.append(
                Session(
                    session_id=session_id,
                    username=username,
                    created_at=now,
                    expires_at=now + self._ttl,
                )
            )
            self._persist()
        logger.info("Session %s issued for '%s'", redact(session_id), username)
        return session_id

    def is_valid(self, session_id: str) -> bool:
        """True iff the session exists and has not yet expired. Never mutates."""
        with self._lock:
            now = self._now()
            return any(s.session_id == session_id and s.expires_at > now for s in self._sessions)

    def get(self, session_id: str) -> Session | None:
        """Return the stored session (expired or not), or None."""
        with self._lock:
            return next((s for s in self._sessions if s.session_id == session_id), None)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def revoke(self, session_id: str) -> int:
        """Remove every session with this id. Unknown ids are a no-op.

        The document is rewritten only if something was removed.
        """
        with self._lock:
            before = len(self._sessions)
            self._sessions = [s for s in self._sessions if s.session_id != session_id]
            removed = before - len(self._sessions)
            if removed:
                self._persist()
        if removed:
            logger.info("Session %s logged out", redact(session_id))
        return removed

    def revoke_all(self) -> int:
        """Remove every session.

        Always rewrites the document, even when already empty, so the file on
        disk is the canonical empty document afterwards.
        """
        with self._lock:
            removed = len(self._sessions)
            self._sessions = []
            self._persist()
        logger.info("Logged out all %d sessions", removed)
        return removed

    def sweep_expired(self) -> int:
        """Remove sessions with expires_at <= now; return how many went."""
        with self._lock:
            now = self._now()
            before = len(self._sessions)
            self._sessions = [s for s in self._sessions if s.expires_at > now]
            removed = before - len(self._sessions)
            if removed:
                self._persist()
        if removed:
            logger.info("Cleaned up %d expired sessions", removed)
        return removed


# ---------------------------------------------------------------------------
# Record mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _session_to_record(session: Session) -> dict:
    return {
        "session_id": session.session_id,
        "username": session.username,
        "created_at": session.created_at,
        "expires_at": session.expires_at,
    }


def _record_to_session(record: dict) -> Session:
    strs_ok = all(isinstance(record.get(f), str) for f in ("session_id", "username"))
    # bool is an int subclass; a true/false timestamp is still malformed.
    ints_ok = all(
        isinstance(record.get(f), int) and not isinstance(record.get(f), bool) for f in ("created_at", "expires_at")
    )
    if not (strs_ok and ints_ok):
        raise ValueError(f"malformed session record with keys {sorted(record)!r}")
    return Session(
        session_id=record["session_id"],
        username=record["username"],
        created_at=record["created_at"],
        expires_at=record["expires_at"],
    )
