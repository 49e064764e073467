"""
auth/validation.py -- Credential validation for signup and login forms.

Each field is validated by an ordered tuple of check functions. A check takes
the current value and either returns it (possibly normalized) or raises
ValueError with a user-facing message. Checks for one field stop at the first
failure; every field is still checked, and the first failure of each field is
collected in field order. If anything failed, CredentialValidationError
carries the full list.

All functions here are pure: no I/O, no store access. Callers must reject the
request on CredentialValidationError before touching the database.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email

from auth.errors import CredentialValidationError

Check = Callable[[str], str]

USERNAME_MIN = 3
USERNAME_MAX = 30
PASSWORD_MIN = 6

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


@dataclass(frozen=True)
class SignupCredentials:
    username: str
    email: str
    password: str


@dataclass(frozen=True)
class LoginCredentials:
    email: str
    password: str


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def strip(value: str) -> str:
    return value.strip()


def username_length(value: str) -> str:
    if not USERNAME_MIN <= len(value) <= USERNAME_MAX:
        raise ValueError(f"Username must be between {USERNAME_MIN} and {USERNAME_MAX} characters")
    return value


def username_charset(value: str) -> str:
    if not _USERNAME_RE.match(value):
        raise ValueError("Username can only contain letters, numbers, and underscores")
    return value


def email_address(value: str) -> str:
    """Validate email syntax and return the canonical, lowercased address.

    Deliverability (DNS) is not checked; signup must not depend on the
    network.
    """
    try:
        info = validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise ValueError("Please provide a valid email") from None
    return info.normalized.lower()


def password_length(value: str) -> str:
    if len(value) < PASSWORD_MIN:
        raise ValueError(f"Password must be at least {PASSWORD_MIN} characters long")
    return value


def required_password(value: str) -> str:
    if not value:
        raise ValueError("Password is required")
    return value


def matches(other: str, message: str) -> Check:
    """Build a check that passes only when the value equals other exactly."""

    def check(value: str) -> str:
        if value != other:
            raise ValueError(message)
        return value

    return check


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


def run_checks(fields: Sequence[tuple[str, str, Sequence[Check]]]) -> dict[str, str]:
    """Apply each field's checks in order and return the normalized values.

    fields is a sequence of (name, raw_value, checks). Raises
    CredentialValidationError with one message per failing field.
    """
    values: dict[str, str] = {}
    errors: list[str] = []
    for name, raw, checks in fields:
        value = raw
        try:
            for check in checks:
                value = check(value)
        except ValueError as exc:
            errors.append(str(exc))
            continue
        values[name] = value
    if errors:
        raise CredentialValidationError(errors)
    return values


def validate_signup(form: Mapping[str, str]) -> SignupCredentials:
    """Validate raw signup fields: username, email, password, confirm."""
    password = form.get("password") or ""
    values = run_checks(
        [
            ("username", form.get("username") or "", (strip, username_length, username_charset)),
            ("email", form.get("email") or "", (strip, email_address)),
            ("password", password, (password_length,)),
            ("confirm", form.get("confirm") or "", (matches(password, "Passwords do not match"),)),
        ]
    )
    return SignupCredentials(username=values["username"], email=values["email"], password=values["password"])


def validate_login(form: Mapping[str, str]) -> LoginCredentials:
    """Validate raw login fields: email, password (presence only)."""
    values = run_checks(
        [
            ("email", form.get("email") or "", (strip, email_address)),
            ("password", form.get("password") or "", (required_password,)),
        ]
    )
    return LoginCredentials(email=values["email"], password=values["password"])
