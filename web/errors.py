"""
web/errors.py -- App-wide exception handlers that render the error view.

register_error_views(app) is called from asgi.py, the only module that knows
about both the app object (api/) and the HTML layer (web/).

Handlers:
  LoginRequired          -> 302 to "/" and clear the stale cookie
  StoreUnavailableError  -> 500, generic message, details logged
  RateLimitExceeded      -> 429 with Retry-After
  HTTPException          -> error view with the status (404 "Page not found")
  Exception              -> 500 catch-all, traceback logged, never rendered
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from auth.dependencies import clear_session_cookie
from auth.errors import LoginRequired, StoreUnavailableError
from web.views import render_error

logger = logging.getLogger("doorman.web")

_STATUS_MESSAGES: dict[int, str] = {
    404: "Page not found",
    405: "Method not allowed",
}

_AUTH_PATHS = frozenset({"/signup", "/login"})


async def login_required_handler(request: Request, exc: LoginRequired) -> Response:
    response = RedirectResponse("/", status_code=302)
    clear_session_cookie(response)
    return response


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> Response:
    logger.error(
        "Store unavailable on %s %s: %r",
        request.method,
        request.url.path,
        exc.__cause__,
    )
    return render_error(request, 500, exc.public_message)


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Return 429 with the error view when a rate limit is exceeded.

    slowapi stores the retry hint on the exception as exc.retry_after when
    available; fall back to the window of the limit that tripped.

    Plain def: SlowAPIMiddleware calls this directly without awaiting.
    """
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is None:
        limit = getattr(exc, "limit", None)
        retry_after = limit.limit.get_expiry() if limit is not None else 60
    client = request.client.host if request.client else "unknown"
    logger.warning("Rate limit exceeded on %s %s from %s", request.method, request.url.path, client)
    if request.method == "POST" and request.url.path in _AUTH_PATHS:
        message = "Too many authentication attempts, please try again later."
    else:
        message = "Too many requests from this client, please try again later."
    response = render_error(request, 429, message, back_url="/")
    response.headers["Retry-After"] = str(int(retry_after))
    return response


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    message = _STATUS_MESSAGES.get(exc.status_code, "Request could not be processed.")
    response = render_error(request, exc.status_code, message)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    """Catch-all for unexpected server errors.

    The exception goes to the log only. The client gets a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return render_error(request, 500, "Something went wrong. Please try again.")


def register_error_views(app: FastAPI) -> None:
    app.add_exception_handler(LoginRequired, login_required_handler)
    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
