"""
auth/errors.py -- Exception hierarchy for the authentication flow.

Every error a route handler may have to turn into a response derives from
AuthError. Each carries the HTTP status and the user-facing message; the
detail that explains *why* (driver errors, which field conflicted) stays in
server logs and never reaches the response body.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for authentication-flow errors."""

    status_code: int = 400
    public_message: str = "Request could not be processed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)

    @property
    def message(self) -> str:
        return str(self)


class CredentialValidationError(AuthError):
    """Submitted credentials failed validation. Carries every collected message."""

    status_code = 400

    def __init__(self, messages: list[str]) -> None:
        if not messages:
            raise ValueError("CredentialValidationError needs at least one message")
        self.messages = list(messages)
        super().__init__(", ".join(self.messages))


class DuplicateUserError(AuthError):
    """Username or email already registered.

    The message does not say which field conflicted.
    """

    status_code = 400
    public_message = "Email or username already registered"


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password. Same message for both."""

    status_code = 401
    public_message = "Invalid email or password"


class LoginRequired(AuthError):
    """No live session on a protected route. Rendered as a redirect, not a page."""

    status_code = 302
    public_message = "Authentication required."


class StoreUnavailableError(AuthError):
    """The database or session backend failed or timed out."""

    status_code = 500
    public_message = "Server error occurred. Please try again."
