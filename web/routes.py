"""
web/routes.py -- Jinja2 template routes for the Doorman web UI.

These routes serve server-rendered HTML and share app.state (user store,
session manager) with the rest of the application.

Routes:
  GET  /        -- login form, or redirect to /home with a live session
  GET  /signup  -- signup form, same redirect rule
  POST /signup  -- validate, create account, redirect /
  POST /login   -- validate, verify password, issue session, redirect /home
  GET  /home    -- protected landing page
  POST /logout  -- destroy session, redirect /

Error policy (see web/errors.py for app-wide handlers):
  Validation failure      -> 400, joined messages, store never touched
  Duplicate account       -> 400, one message for username and email alike
  Bad email or password   -> 401, one message for both
  Store failure           -> 500, generic "try again", logged server-side
"""

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.responses import Response

from api.limiter import GLOBAL_SCOPE, auth_rate_limit, global_rate_limit, limiter
from auth.dependencies import (
    clear_session_cookie,
    get_session_token,
    require_user,
    set_session_cookie,
    try_get_current_user,
)
from auth.errors import CredentialValidationError, DuplicateUserError, InvalidCredentialsError, StoreUnavailableError
from auth.models import User
from auth.passwords import authenticate_user, hash_password
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.validation import validate_login, validate_signup
from web.views import render_error, templates

logger = logging.getLogger("doorman.web")

router = APIRouter()


def _no_store(response: Response) -> Response:
    response.headers["Cache-Control"] = "no-store"
    return response


# ---------------------------------------------------------------------------
# Entry points (global rate limit)
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
@limiter.shared_limit(global_rate_limit, scope=GLOBAL_SCOPE)
def login_form(request: Request) -> Response:
    """Render the login page, or skip it when already signed in."""
    if try_get_current_user(request) is not None:
        return RedirectResponse("/home", status_code=302)
    return templates.TemplateResponse(request, "login.html", {})


@router.get("/signup", response_class=HTMLResponse)
@limiter.shared_limit(global_rate_limit, scope=GLOBAL_SCOPE)
def signup_form(request: Request) -> Response:
    if try_get_current_user(request) is not None:
        return RedirectResponse("/home", status_code=302)
    return templates.TemplateResponse(request, "signup.html", {})


# ---------------------------------------------------------------------------
# Credential submission (rate limited)
# ---------------------------------------------------------------------------


@router.post("/signup", response_class=HTMLResponse)
@limiter.limit(auth_rate_limit)
def signup_post(
    request: Request,
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    confirm: str = Form(""),
) -> Response:
    """Create an account.

    The uniqueness pre-check avoids paying for a bcrypt hash on obvious
    duplicates; the store's UNIQUE index still decides races between
    concurrent signups (DuplicateUserError from create()).
    """
    try:
        creds = validate_signup({"username": username, "email": email, "password": password, "confirm": confirm})
    except CredentialValidationError as exc:
        return render_error(request, 400, exc.message, back_url="/signup")

    user_store: UserStore = request.app.state.user_store
    try:
        if user_store.find_by_username_or_email(creds.username, creds.email) is not None:
            raise DuplicateUserError()
        user = user_store.create(creds.username, creds.email, hash_password(creds.password))
    except DuplicateUserError as exc:
        return render_error(request, 400, exc.message, back_url="/signup")
    except StoreUnavailableError:
        logger.exception("Signup failed")
        return render_error(request, 500, "Registration failed. Please try again.", back_url="/signup")

    logger.info("Account created (id=%s)", user.id)
    return RedirectResponse("/", status_code=302)


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(auth_rate_limit)
def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
) -> Response:
    """Handle the login form.

    Uses authenticate_user() for timing equalization. Unknown email and wrong
    password take the same time and yield the same 401 response.
    """
    try:
        creds = validate_login({"email": email, "password": password})
    except CredentialValidationError as exc:
        return render_error(request, 400, exc.message, back_url="/")

    user_store: UserStore = request.app.state.user_store
    sessions: SessionManager = request.app.state.sessions
    try:
        user = authenticate_user(user_store, creds.email, creds.password)
        if user is None:
            raise InvalidCredentialsError()
        # Never carry a pre-login session over into the authenticated one.
        sessions.destroy(get_session_token(request))
        token = sessions.create(user.id)
    except InvalidCredentialsError as exc:
        logger.info("Failed login attempt from %s", request.client.host if request.client else "unknown")
        return _no_store(render_error(request, 401, exc.message, back_url="/"))
    except StoreUnavailableError:
        logger.exception("Login failed")
        return render_error(request, 500, "Login failed. Please try again.", back_url="/")

    logger.info("User %s logged in", user.id)
    resp = RedirectResponse("/home", status_code=302)
    set_session_cookie(resp, token, sessions.cookie_max_age)
    return _no_store(resp)


# ---------------------------------------------------------------------------
# Protected routes (global rate limit)
# ---------------------------------------------------------------------------


@router.get("/home", response_class=HTMLResponse)
@limiter.shared_limit(global_rate_limit, scope=GLOBAL_SCOPE)
def home(request: Request, user: User = Depends(require_user)) -> Response:
    """Landing page for signed-in users. Renders the username only."""
    return _no_store(templates.TemplateResponse(request, "home.html", {"username": user.username}))


@router.post("/logout")
@limiter.shared_limit(global_rate_limit, scope=GLOBAL_SCOPE)
def logout(request: Request, user: User = Depends(require_user)) -> Response:
    """Destroy the session and return to the login page.

    The redirect happens even if the store fails to delete the record; the
    cookie is cleared either way and the record expires on its own.
    """
    sessions: SessionManager = request.app.state.sessions
    try:
        sessions.destroy(get_session_token(request))
    except StoreUnavailableError:
        logger.exception("Logout could not remove session for user %s", user.id)
    else:
        logger.info("User %s logged out", user.id)
    resp = RedirectResponse("/", status_code=302)
    clear_session_cookie(resp)
    return resp
