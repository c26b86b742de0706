"""
auth/store.py -- Credential store: registered users and the admin bootstrap.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_record_to_user / _user_to_record are the mappers between JSON records and
the User dataclass. Route and CLI code never touch the document directly.

Concurrency:
  One threading.Lock guards the user list. Every read takes it, and every
  mutation holds it through the document write, so no reader can observe an
  in-memory state that is not yet on disk.

  bcrypt runs OUTSIDE the lock. Users are never mutated after creation, so a
  hash copied out under the lock cannot go stale while it is being checked,
  and a slow login does not block needs-setup checks or other logins.

Bootstrap rule:
  create_admin() is the only way this core creates users, and it refuses as
  soon as ANY user exists -- not merely an admin-tagged one. It is a one-shot
  bootstrap, not a general user-creation API.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from auth.errors import AlreadyInitialized, HashingFailure, PersistenceReadError
from auth.models import User, UserInfo
from auth.persistence import JsonDocument
from auth.tokens import dummy_hash, hash_password, verify_password

logger = logging.getLogger("dashgate.auth")

ADMIN_ROLE = "admin"


class CredentialStore:
    """Repository for User records backed by a JSON document.

    Usage:
        store = CredentialStore(Path("data/users.json"), bcrypt_rounds=12)
        store.load()
        if store.bootstrap_needed():
            store.create_admin("admin", "secret")
        user = store.verify_credentials("admin", "secret")   # UserInfo | None
    """

    def __init__(self, path: Path, bcrypt_rounds: int = 12) -> None:
        self._doc = JsonDocument(path, key="users")
        self._rounds = bcrypt_rounds
        self._lock = threading.Lock()
        self._users: list[User] = []
        self._persisted_ok = True

    @property
    def path(self) -> Path:
        return self._doc.path

    @property
    def persisted_ok(self) -> bool:
        """False while the last document write has failed (disk is stale)."""
        with self._lock:
            return self._persisted_ok

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Replace the in-memory users with the document's contents.

        Returns the number of users loaded. A corrupt document (unparseable,
        or a record missing a field) yields an empty store and a logged
        diagnostic, never an exception.
        """
        records = self._doc.load()
        try:
            users = [_record_to_user(r) for r in records]
        except ValueError as exc:
            err = PersistenceReadError(self.path, str(exc))
            moved_to = self._doc.quarantine()
            logger.error("Discarding users document: %s. Original kept at %s", err, moved_to or "<could not move>")
            users = []
        with self._lock:
            self._users = users
        logger.info("Loaded %d users from %s", len(users), self.path)
        return len(users)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def bootstrap_needed(self) -> bool:
        """Return True iff no user exists yet (first-run state)."""
        with self._lock:
            return not self._users

    def has_admin(self) -> bool:
        """Return True if any user carries the admin role. Informational only."""
        with self._lock:
            return any(u.role == ADMIN_ROLE for u in self._users)

    def count(self) -> int:
        with self._lock:
            return len(self._users)

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def create_admin(self, username: str, password: str) -> UserInfo:
        """Create the first user with the admin role and persist it.

        Raises AlreadyInitialized if any user exists, checked both before the
        (slow) hash and again under the lock before appending, so two
        concurrent bootstrap requests cannot both succeed [M1].

        Raises HashingFailure if bcrypt cannot hash the password. Nothing is
        appended or written in that case.
        """
        if not self.bootstrap_needed():
            raise AlreadyInitialized()

        try:
            hashed = hash_password(password, self._rounds)
        except HashingFailure:
            logger.error("Admin bootstrap aborted: password could not be hashed")
            raise

        user = User(username=username, password_hash=hashed, role=ADMIN_ROLE)
        with self._lock:
            if self._users:
                raise AlreadyInitialized()
            self._users.append(user)
            self._persisted_ok = self._doc.save([_user_to_record(u) for u in self._users])
        logger.info("Admin user '%s' created", username)
        return UserInfo(username=user.username, role=user.role)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_credentials(self, username: str, password: str) -> UserInfo | None:
        """Return the matching user if the password is correct, else None.

        Unknown username, wrong password and a bcrypt error all return None.
        An unknown username is checked against a dummy hash of the same cost
        so it is not measurably faster than a wrong password [C1].
        """
        with self._lock:
            user = next((u for u in self._users if u.username == username), None)

        if user is None:
            try:
                verify_password(password, dummy_hash(self._rounds))
            except HashingFailure as exc:
                logger.warning("Timing equalization skipped: %s", exc)
            logger.info("Login failed for '%s': unknown user", username)
            return None

        if not verify_password(password, user.password_hash):
            logger.info("Login failed for '%s': bad password", username)
            return None
        return UserInfo(username=user.username, role=user.role)


# ---------------------------------------------------------------------------
# Record mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _user_to_record(user: User) -> dict:
    return {
        "username": user.username,
        "password_hash": user.password_hash,
        "role": user.role,
    }


def _record_to_user(record: dict) -> User:
    fields = ("username", "password_hash", "role")
    if not all(isinstance(record.get(f), str) for f in fields):
        raise ValueError(f"malformed user record with keys {sorted(record)!r}")
    return User(
        username=record["username"],
        password_hash=record["password_hash"],
        role=record["role"],
    )
