"""
auth/passwords.py -- Password hashing and credential verification.

Security design decisions:
  bcrypt, used directly (no passlib wrapper). The cost factor comes from
       Settings.bcrypt_rounds (default 12, roughly 100-300 ms per hash on
       commodity hardware). The salt is generated per hash and embedded in the
       digest, so the digest alone is enough to verify.

  verify_password() fails closed: a malformed digest, a non-ASCII digest or
       any bcrypt error is "no match", never "match".

  _DUMMY_HASH enables timing equalization in authenticate_user() so response
       time does not reveal whether an email is registered.

  Plaintext passwords are never logged and never leave these functions except
       as bytes handed to bcrypt.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("doorman.auth")


def hash_password(plain: str) -> str:
    """Return a salted bcrypt digest of the given plaintext password.

    bcrypt only reads the first 72 bytes of input and recent releases raise
    on anything longer. Passwords have no upper length bound, so the input is
    sliced to 72 bytes here and in verify_password().
    """
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt digest."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except Exception:
        return False


# Computed once at module load so the first failed login is not measurably
# faster than later ones.
_DUMMY_HASH: str = hash_password("doorman_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the email exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH
    - Known email:   bcrypt runs against the stored digest

    Returns the User on success, None on any mismatch. Store failures
    propagate as StoreUnavailableError.
    """
    user = store.find_by_email(email)
    if user is None or not user.password_hash:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user
