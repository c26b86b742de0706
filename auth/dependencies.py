"""
auth/dependencies.py -- FastAPI Depends() helpers for the auth stores.

The stores are built once in the application lifespan and parked on
app.state. Route handlers receive them through these dependencies instead of
importing a global, which also lets tests wire in stores backed by tmp_path.

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi (for Request/HTTPException)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.sessions import SessionStore
from auth.store import CredentialStore


def get_credential_store(request: Request) -> CredentialStore:
    """Return the process-wide CredentialStore.

    Use as a FastAPI dependency:
        @router.get("/needs-setup")
        def route(credentials: CredentialStore = Depends(get_credential_store)): ...
    """
    store = getattr(request.app.state, "credential_store", None)
    if store is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "not_ready", "message": "Credential store is not initialized."},
        )
    return store


def get_session_store(request: Request) -> SessionStore:
    """Return the process-wide SessionStore (503 before startup completes)."""
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise HTTPException(
            status_code=503,
            detail={"code": "not_ready", "message": "Session store is not initialized."},
        )
    return store
