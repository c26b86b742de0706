"""
auth/tokens.py -- Password hashing and session token utilities.

Security design decisions:
  Passwords: bcrypt, used directly (no passlib wrapper). bcrypt is the right
       choice for low-entropy secrets because its cost factor makes brute-force
       expensive. The cost is a parameter at hash time; checkpw() reads the
       cost embedded in the stored hash, so hashes created under an older
       BCRYPT_ROUNDS setting keep verifying after the setting changes.

  Timing: dummy_hash() provides a hash of the configured cost so that a login
       for an unknown username still pays for one bcrypt check [C1].

  Session ids: secrets.token_hex(32) gives 256 bits of entropy -- guessing a
       live session id is computationally infeasible.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
from functools import lru_cache

import bcrypt

from auth.errors import HashingFailure

logger = logging.getLogger("dashgate.auth")

_SESSION_ID_BYTES = 32

# bcrypt ignores (4.x) or rejects (5.x) anything past the first 72 bytes.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Credential input rules (shared by the HTTP models and the CLI)
# ---------------------------------------------------------------------------


def normalize_username(username: str) -> str:
    """Strip surrounding whitespace; raise ValueError if nothing is left."""
    stripped = username.strip()
    if not stripped:
        raise ValueError("username must not be blank")
    return stripped


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises HashingFailure if bcrypt rejects the input: a rounds value outside
    4..31, or (bcrypt >= 5) a password longer than 72 bytes.
    """
    try:
        salt = bcrypt.gensalt(rounds=rounds)
        return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")
    except (ValueError, TypeError) as exc:
        raise HashingFailure(f"bcrypt could not hash password: {exc}") from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Any bcrypt error (malformed hash, bad salt) counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError) as exc:
        logger.warning("Password verification error: %s", exc)
        return False


@lru_cache(maxsize=4)
def dummy_hash(rounds: int) -> str:
    """Return a throwaway hash at the given cost for timing equalization [C1].

    Cached per cost so only the first unknown-user login pays for hashing it.
    """
    return hash_password("dashgate_timing_dummy", rounds)


# ---------------------------------------------------------------------------
# Session ids
# ---------------------------------------------------------------------------


def new_session_id() -> str:
    """Generate an opaque session id: 64 hex chars, 256 bits of entropy."""
    return secrets.token_hex(_SESSION_ID_BYTES)


def redact(session_id: str) -> str:
    """Shorten a session id for log lines. Full ids never go to the log."""
    return f"{session_id[:8]}..."
