"""
api/main.py -- FastAPI application entry point for Doorman.

Builds the app object, its lifespan and the middleware stack. The HTML routes
and the error views are mounted by asgi.py, not here.

Run with:      python main.py serve
               uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- one log line per request
  2. security_headers      -- CSP and friends on every response
  3. CORSMiddleware        -- CORS headers for allowed browser origins
  4. SlowAPIMiddleware     -- enforces the global default rate limit

Lifespan handles startup (engine, user store, session manager, purge task)
and shutdown (cancel purge task, dispose engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import HealthResponse
from auth.sessions import SessionManager, SqlSessionBackend
from auth.store import UserStore
from core.config import get_settings
from core.database import make_engine
from core.headers import apply_security_headers

settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("doorman.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Sweep session records past their retention window every interval seconds.

    The sweep itself is blocking database I/O, so it runs in a worker thread.
    Any failing sweep is logged and retried on the next tick. CancelledError
    is not an Exception subclass, so task.cancel() during shutdown still
    unwinds the loop.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(app.state.sessions.purge_expired)
        except Exception:
            logger.exception("Session purge failed")
            continue
        if removed:
            logger.info("Purged %d expired session(s)", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The Engine is created once here and handed to both stores.
    """
    logger.info("Doorman starting up (environment=%s)", settings.environment)
    # model_fields_set holds only values that came from the environment or .env
    supplied = settings.model_fields_set
    logger.info("Database URL configured: %s", "yes" if "database_url" in supplied else "no (default)")
    logger.info("Session secret configured: %s", "yes" if "secret_key" in supplied else "no (generated)")

    engine = make_engine(settings.database_url, timeout=settings.db_timeout_seconds)
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.sessions = SessionManager(
        SqlSessionBackend(engine),
        secret_key=settings.secret_key,
        max_age=settings.session_max_age_seconds,
        retention=settings.session_retention_seconds,
    )
    logger.info("Stores initialized")
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.session_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await app.state.purge_task
    engine.dispose()
    logger.info("Doorman shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Doorman",
    description="Session-based signup, login and logout.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the current stack, so the LAST registered middleware
# is the OUTERMOST. Register innermost first.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

if settings.is_production:
    # Any origin, with credentials.
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        max_age=3600,
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        max_age=3600,
    )

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Security headers
# ---------------------------------------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    return apply_security_headers(response)


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
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# Exempt from rate limiting -- load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
@limiter.exempt
async def health(request: Request) -> HealthResponse:
    """Return liveness, current server time and the running environment."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        environment=settings.environment,
    )
