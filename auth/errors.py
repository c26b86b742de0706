"""
auth/errors.py -- Exception taxonomy for the auth core.

Only AlreadyInitialized, AuthenticationFailure and HashingFailure ever reach
callers outside auth/. The two persistence errors are raised by
JsonDocument.read()/write() and recovered inside JsonDocument.load()/save(),
which log them and keep the process running.
"""

from __future__ import annotations

from pathlib import Path


class AuthError(Exception):
    """Base class for every error raised by the auth core."""


class AlreadyInitialized(AuthError):
    """Admin bootstrap attempted after a user already exists."""

    def __init__(self, message: str = "Admin already exists") -> None:
        super().__init__(message)


class AuthenticationFailure(AuthError):
    """Login rejected.

    Unknown username, wrong password and a failing verify primitive all raise
    this same exception with the same message so callers cannot tell them apart.
    """

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class HashingFailure(AuthError):
    """The password hashing primitive raised (e.g. invalid work factor)."""


class PersistenceError(AuthError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class PersistenceReadError(PersistenceError):
    """A document exists but could not be parsed into records."""


class PersistenceWriteError(PersistenceError):
    """A document could not be serialized or written to disk."""
