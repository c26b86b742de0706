"""
api/main.py -- FastAPI application entry point for dashgate.

Exposes the auth core (credential store + session store) over HTTP for the
dashboard frontend.

Run with:      dashgate serve
               uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware        -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (load both stores, first sweep, sweep task) and
shutdown (cancel sweep task, log out all sessions) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse, StoreHealth
from api.routes.auth import router as auth_router
from auth.service import cleanup_sessions, logout_all
from auth.sessions import SessionStore
from auth.store import CredentialStore
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("dashgate.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background sweep task
# ---------------------------------------------------------------------------


async def _sweep_loop(app: FastAPI, interval: int) -> None:
    """Remove expired sessions every `interval` seconds.

    Just another caller of sweep_expired(). The sweep takes the session lock
    and writes a file, so it runs in a worker thread rather than on the loop.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly. A failed sweep is logged
    and retried at the next tick; it does not end the loop.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(cleanup_sessions, app.state.session_store)
        except Exception:
            logger.exception("Periodic session sweep failed")


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build, load and tear down the auth stores.

    Startup order matters:
      1. Credential store, then session store -- each constructed explicitly
         and loaded from its own document. A corrupt document is logged and
         replaced by an empty store; it never aborts startup.
      2. One sweep, so sessions that expired while the server was down do
         not linger until the first timer tick.
      3. Sweep task last -- it references app.state.session_store.

    Shutdown logs out every session (LOGOUT_ALL_ON_SHUTDOWN), so a restart
    always requires a fresh login.
    """
    logger.info("dashgate API starting up (data_dir=%s)", _settings.data_dir)
    app.state.credential_store = CredentialStore(_settings.users_path, bcrypt_rounds=_settings.bcrypt_rounds)
    app.state.credential_store.load()
    app.state.session_store = SessionStore(_settings.sessions_path, ttl_seconds=_settings.session_ttl_seconds)
    app.state.session_store.load()
    cleanup_sessions(app.state.session_store)
    logger.info(
        "Auth initialized (setup_required=%s)",
        app.state.credential_store.bootstrap_needed(),
    )
    app.state.sweep_task = None
    if _settings.sweep_interval_seconds > 0:
        app.state.sweep_task = asyncio.create_task(_sweep_loop(app, _settings.sweep_interval_seconds))

    yield

    # Shutdown
    if app.state.sweep_task is not None:
        app.state.sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.sweep_task
    if _settings.logout_all_on_shutdown:
        logout_all(app.state.session_store)
    logger.info("dashgate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="dashgate API",
    description="Admin bootstrap, login and session management for the dashboard.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them: CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_allow_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when the request body fails validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {code, message} dict as detail;
    use it directly as the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit applied -- health checks from monitoring systems must not be
# throttled. A store whose last document write failed reports persisted=false
# and flips the overall status to "degraded".
# ---------------------------------------------------------------------------


@app.get("/api/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and per-store persistence state."""
    credentials: CredentialStore = request.app.state.credential_store
    sessions: SessionStore = request.app.state.session_store
    components = {
        "users": StoreHealth(records=credentials.count(), persisted=credentials.persisted_ok),
        "sessions": StoreHealth(records=sessions.count(), persisted=sessions.persisted_ok),
    }
    status = "healthy" if all(c.persisted for c in components.values()) else "degraded"
    return HealthResponse(status=status, version=VERSION, components=components)
