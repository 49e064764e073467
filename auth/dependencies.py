"""
auth/dependencies.py -- Access-control gate for protected routes.

try_get_current_user() is the soft variant (returns None when there is no
live, backed identity). require_user() wraps it and raises LoginRequired,
which the web layer renders as a redirect to the login page.

A session only counts if its user still exists. A session whose user was
deleted is destroyed on the spot, so a stale cookie cannot keep unlocking
protected pages.

Layer rule: no imports from web/. auth/dependencies.py may import from
fastapi (for Request) because this module is part of the FastAPI dependency
injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import LoginRequired
from auth.models import User
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("doorman.auth")


def get_session_token(request: Request) -> str | None:
    """Return the raw session token from the request cookie, if any."""
    return request.cookies.get(get_settings().session_cookie_name) or None


def try_get_current_user(request: Request) -> User | None:
    """Resolve the request's session cookie to a User, or None.

    On success the user is attached as request.state.user so templates and
    later handlers can reuse it without another lookup. Store failures
    propagate as StoreUnavailableError.
    """
    cached = getattr(request.state, "user", None)
    if cached is not None:
        return cached

    token = get_session_token(request)
    if token is None:
        return None

    sessions: SessionManager = request.app.state.sessions
    user_id = sessions.resolve(token)
    if user_id is None:
        return None

    user_store: UserStore = request.app.state.user_store
    user = user_store.find_by_id(user_id)
    if user is None:
        logger.warning("Session refers to a deleted account; destroying it")
        sessions.destroy(token)
        return None

    request.state.user = user
    return user


def require_user(request: Request) -> User:
    """Require a live session. Raises LoginRequired otherwise.

    Use as a FastAPI dependency:
        @router.get("/home")
        def home(request: Request, user: User = Depends(require_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise LoginRequired()
    return user


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    secure: only sent over HTTPS in production.
    samesite: "strict" in production, "lax" in local development.
    max_age: matches the session's absolute lifetime so both end together.
    """
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        value=token,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite=settings.cookie_samesite,
    )


def clear_session_cookie(response) -> None:
    """Expire the session cookie on the client."""
    settings = get_settings()
    response.delete_cookie(
        settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite=settings.cookie_samesite,
    )
