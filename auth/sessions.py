"""
auth/sessions.py -- Server-side sessions on top of a key-value-with-TTL backend.

SessionManager owns the session lifecycle (create / resolve / destroy) and
the expiry policy. Storage is behind SessionBackend so the backing store is
swappable:

  SqlSessionBackend    -- sessions table next to users (default).
  MemorySessionBackend -- process-local dict, for single-worker setups and tests.

Security design decisions:
  Token: secrets.token_urlsafe(32) (256 bits). Only the client holds it.

  Lookup key: HMAC-SHA256(SECRET_KEY, token). Deterministic, so lookup is a
      primary-key hit; keyed, so a dump of the sessions table cannot be
      replayed as cookies, and a forged or tampered cookie simply does not
      resolve.

  Expiry: two independent clocks.
      expires_at (inside the record) is the security boundary: 24 hours from
          creation, never extended by activity.
      The backend TTL (retention, 14 days) only bounds how long an idle
          record lingers before purge_expired() removes it. resolve() touches
          it so active sessions are not swept early.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from sqlalchemy import Column, Float, MetaData, String, Table, Text, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.errors import StoreUnavailableError
from auth.models import SessionRecord

logger = logging.getLogger("doorman.auth")

# Tokens from token_urlsafe(32) are 43 chars. Anything far longer is junk and
# is rejected before it costs an HMAC and a query.
_MAX_TOKEN_LENGTH = 128


# ---------------------------------------------------------------------------
# Backend interface
# ---------------------------------------------------------------------------


class SessionBackend(ABC):
    """Key-value store with per-key time-to-live.

    get() must never return a value whose TTL has elapsed. Expired keys may
    linger physically until purge_expired() runs.
    """

    @abstractmethod
    def get(self, key: str) -> dict | None: ...

    @abstractmethod
    def set(self, key: str, value: dict, ttl_seconds: int) -> None: ...

    @abstractmethod
    def touch(self, key: str, ttl_seconds: int) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def purge_expired(self) -> int: ...

    def close(self) -> None:
        pass


class MemorySessionBackend(SessionBackend):
    """In-process backend. Entries live as long as the process does."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[dict, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> dict | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                self._entries.pop(key, None)
                return None
            return dict(value)

    def set(self, key: str, value: dict, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (dict(value), self._clock() + ttl_seconds)

    def touch(self, key: str, ttl_seconds: int) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries[key] = (entry[0], self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)


_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("key", String(64), primary_key=True),  # HMAC-SHA256 hex
    Column("data", Text, nullable=False),  # JSON-encoded SessionRecord
    Column("expires_at", Float, nullable=False, index=True),  # backend TTL, epoch seconds
)


class SqlSessionBackend(SessionBackend):
    """SQLAlchemy Core backend. Shares the application Engine.

    Rows past expires_at are filtered out by get() and deleted in bulk by
    purge_expired(), which the application runs on a timer.
    Rows whose data does not decode as JSON are deleted when read.
    """

    def __init__(self, engine: Engine, clock: Callable[[], float] = time.time) -> None:
        self.engine = engine
        self._clock = clock
        _metadata.create_all(self.engine)

    def get(self, key: str) -> dict | None:
        stmt = select(_sessions.c.data).where((_sessions.c.key == key) & (_sessions.c.expires_at > self._clock()))
        try:
            with self.engine.connect() as conn:
                row = conn.execute(stmt).fetchone()
        except (OperationalError, PoolTimeoutError) as exc:
            raise StoreUnavailableError() from exc
        if row is None:
            return None
        try:
            return json.loads(row.data)
        except ValueError:
            logger.warning("Discarding session row with undecodable data")
            self.delete(key)
            return None

    def set(self, key: str, value: dict, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds
        data = json.dumps(value)
        try:
            with self.engine.begin() as conn:
                updated = conn.execute(
                    _sessions.update().where(_sessions.c.key == key).values(data=data, expires_at=expires_at)
                )
                if updated.rowcount == 0:
                    conn.execute(_sessions.insert().values(key=key, data=data, expires_at=expires_at))
        except (OperationalError, PoolTimeoutError) as exc:
            raise StoreUnavailableError() from exc

    def touch(self, key: str, ttl_seconds: int) -> None:
        self._write(_sessions.update().where(_sessions.c.key == key).values(expires_at=self._clock() + ttl_seconds))

    def delete(self, key: str) -> None:
        self._write(_sessions.delete().where(_sessions.c.key == key))

    def purge_expired(self) -> int:
        return self._write(_sessions.delete().where(_sessions.c.expires_at <= self._clock()))

    def _write(self, stmt) -> int:
        try:
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount
        except (OperationalError, PoolTimeoutError) as exc:
            raise StoreUnavailableError() from exc


# ---------------------------------------------------------------------------
# Session manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Issue, resolve and destroy browser sessions.

    Usage:
        sessions = SessionManager(SqlSessionBackend(engine), secret_key=settings.secret_key)
        token = sessions.create(user.id)      # set as cookie value
        sessions.resolve(token)               # -> user.id, or None
        sessions.destroy(token)               # idempotent
    """

    def __init__(
        self,
        backend: SessionBackend,
        secret_key: str,
        max_age: int = 24 * 60 * 60,
        retention: int = 14 * 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if retention < max_age:
            raise ValueError("retention must not be shorter than max_age")
        self.backend = backend
        self.max_age = max_age
        self.retention = retention
        self._secret = secret_key.encode("utf-8")
        self._clock = clock

    @property
    def cookie_max_age(self) -> int:
        return self.max_age

    def create(self, user_id: str) -> str:
        """Persist a new session for user_id and return its raw token."""
        token = secrets.token_urlsafe(32)
        now = self._clock()
        record = SessionRecord(user_id=user_id, created_at=now, expires_at=now + self.max_age)
        self.backend.set(self._key(token), record.to_dict(), self.retention)
        return token

    def resolve(self, token: str | None) -> str | None:
        """Return the owning user id for a live session, else None.

        None covers: no token, malformed token, unknown (or tampered) token,
        and sessions past their absolute expiry. Expired records are deleted
        on sight.
        """
        if not token or len(token) > _MAX_TOKEN_LENGTH:
            return None
        key = self._key(token)
        data = self.backend.get(key)
        if data is None:
            return None
        try:
            record = SessionRecord.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding unreadable session record")
            self.backend.delete(key)
            return None
        if record.expires_at <= self._clock():
            self.backend.delete(key)
            return None
        self.backend.touch(key, self.retention)
        return record.user_id

    def destroy(self, token: str | None) -> None:
        """Remove the session if it exists. Safe to call repeatedly."""
        if not token or len(token) > _MAX_TOKEN_LENGTH:
            return
        self.backend.delete(self._key(token))

    def purge_expired(self) -> int:
        """Sweep records whose retention window has elapsed."""
        return self.backend.purge_expired()

    def _key(self, token: str) -> str:
        return hmac.new(self._secret, token.encode("utf-8"), hashlib.sha256).hexdigest()
