"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). The stores do the
work; these dataclasses only own the shape of a record.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class User:
    """A registered identity as held by the credential store.

    password_hash is the full bcrypt string ("$2b$<rounds>$<salt+digest>"),
    never the plaintext. It stays inside auth/ -- callers receive UserInfo.
    """

    username: str  # unique, case-sensitive
    password_hash: str
    role: str  # free-form tag; "admin" for the bootstrap user


@dataclass(frozen=True)
class UserInfo:
    """The caller-visible view of a User: identity and role, no hash."""

    username: str
    role: str


@dataclass(frozen=True)
class Session:
    """One authenticated period of access.

    created_at and expires_at are integer Unix epoch seconds. A session is
    valid while expires_at > now; expired entries linger until a sweep or
    logout removes them.
    """

    session_id: str
    username: str
    created_at: int
    expires_at: int
