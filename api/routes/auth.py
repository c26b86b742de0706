"""
api/routes/auth.py -- Setup, login, logout and session validation endpoints.

Routes (paths match the dashboard frontend):
  GET  /api/needs-setup        -- true until the first admin exists
  POST /api/setup-admin        -- one-shot admin bootstrap
  POST /api/login              -- password login; returns a session id
  POST /api/logout             -- end one session (idempotent)
  POST /api/validate-session   -- is this session id live?

All routes are public: these ARE the endpoints that establish a session.
The session id travels in the JSON body, as the frontend sends it.

Security:
  [H2] POST /login is rate-limited (LOGIN_RATE_LIMIT, default 10/minute per IP).
  [C1] Unknown user and wrong password produce the same 401 body.
  [M5] Cache-Control: no-store on login responses.

Handlers are plain `def` so FastAPI runs them in its thread pool: bcrypt and
the synchronous document writes would otherwise block the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit
from api.models import AuthResponse, CredentialsRequest, SessionRequest
from auth import service
from auth.dependencies import get_credential_store, get_session_store
from auth.errors import AlreadyInitialized, AuthenticationFailure, HashingFailure
from auth.sessions import SessionStore
from auth.store import CredentialStore

logger = logging.getLogger("dashgate.api")

router = APIRouter()


def _auth_json(status_code: int, body: AuthResponse, *, no_store: bool = False) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=body.model_dump())
    if no_store:
        resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


@router.get("/needs-setup", response_model=bool)
def needs_setup(credentials: CredentialStore = Depends(get_credential_store)) -> bool:
    """Return true while no user exists; the frontend shows the setup form."""
    return service.needs_setup(credentials)


@router.post("/setup-admin", response_model=AuthResponse, status_code=201)
def setup_admin(
    body: CredentialsRequest,
    credentials: CredentialStore = Depends(get_credential_store),
) -> JSONResponse:
    """Create the first admin account.

    409 once any user exists. A hashing failure aborts just this request with
    a 500; the store is left untouched so the operator can retry.
    """
    try:
        user = service.setup_admin(credentials, body.username, body.password)
    except AlreadyInitialized as exc:
        return _auth_json(409, AuthResponse(success=False, message=str(exc)))
    except HashingFailure as exc:
        raise HTTPException(
            status_code=500,
            detail={"code": "hashing_failed", "message": "Could not hash the admin password."},
        ) from exc
    return _auth_json(201, AuthResponse(success=True, message=f"Admin '{user.username}' created"))


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@limiter.limit(login_limit)  # [H2] brute-force mitigation -- must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=AuthResponse)
def login(
    request: Request,
    body: CredentialsRequest,
    credentials: CredentialStore = Depends(get_credential_store),
    sessions: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    """Authenticate with username and password; return a new session id.

    Returns the same generic error for wrong username and wrong password
    to avoid leaking username existence information.
    """
    try:
        session_id = service.login(credentials, sessions, body.username, body.password)
    except AuthenticationFailure as exc:
        return _auth_json(401, AuthResponse(success=False, message=str(exc)), no_store=True)
    return _auth_json(200, AuthResponse(success=True, session_id=session_id), no_store=True)


@router.post("/logout", response_model=AuthResponse)
def logout(body: SessionRequest, sessions: SessionStore = Depends(get_session_store)) -> AuthResponse:
    """End the session. Always succeeds, known id or not."""
    service.logout(sessions, body.session_id)
    return AuthResponse(success=True, message="Logged out")


@router.post("/validate-session", response_model=AuthResponse)
def validate_session(body: SessionRequest, sessions: SessionStore = Depends(get_session_store)) -> AuthResponse:
    """Report whether the session is live; echo its id only when it is."""
    session_id = service.validate_session(sessions, body.session_id)
    return AuthResponse(success=session_id is not None, session_id=session_id)
