"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these only own the shape.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered account.

    id is an opaque UUID4 hex string assigned by the store at creation.

    password_hash is the bcrypt digest. It is populated only by
    UserStore.find_by_email() (the login path); every other read leaves it
    None so the digest never travels further than it has to.
    """

    username: str
    email: str
    id: str | None = None
    password_hash: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class SessionRecord:
    """Server-side state for one authenticated browser.

    The record is stored under HMAC(SECRET_KEY, token); the raw token only
    exists in the client's cookie. Timestamps are POSIX seconds (UTC).
    """

    user_id: str
    created_at: float
    expires_at: float

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "created_at": self.created_at, "expires_at": self.expires_at}

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        return cls(
            user_id=str(data["user_id"]),
            created_at=float(data["created_at"]),
            expires_at=float(data["expires_at"]),
        )
