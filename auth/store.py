"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Route and dependency
code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  username and email each carry a UNIQUE index. find_by_username_or_email()
  is only a fast pre-check for signup: two concurrent signups can both pass
  it, and the index is what guarantees only one insert succeeds. create()
  turns the losing insert's IntegrityError into DuplicateUserError.

  password_hash is only selected by find_by_email(). The other lookups use
  _PUBLIC_COLUMNS so the digest is not loaded for display paths.

Failure mapping:
  IntegrityError on insert            -> DuplicateUserError
  OperationalError / pool TimeoutError -> StoreUnavailableError

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.errors import DuplicateUserError, StoreUnavailableError
from auth.models import User

logger = logging.getLogger("doorman.auth")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(32), primary_key=True),  # uuid4().hex
    Column("username", String(30), nullable=False, unique=True),
    Column("email", String(254), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_PUBLIC_COLUMNS = (
    _users.c.id,
    _users.c.username,
    _users.c.email,
    _users.c.created_at,
    _users.c.updated_at,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(make_engine("sqlite:///doorman.db"))
        user = store.create("alice99", "a@x.com", hash_password("secret1"))
        store.find_by_email("a@x.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_username_or_email(self, username: str, email: str) -> User | None:
        """Return any user holding either the username or the email, else None.

        Signup uniqueness pre-check. A hit on either field is a conflict; the
        caller does not learn (and must not reveal) which one matched.
        """
        stmt = (
            select(*_PUBLIC_COLUMNS).where(or_(_users.c.username == username, _users.c.email == email)).limit(1)
        )
        row = self._fetch_one(stmt)
        return _row_to_user(row) if row is not None else None

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by normalized email, including the password digest."""
        row = self._fetch_one(select(_users).where(_users.c.email == email))
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: str) -> User | None:
        """Look up a user by id. The password digest is not loaded."""
        row = self._fetch_one(select(*_PUBLIC_COLUMNS).where(_users.c.id == user_id))
        return _row_to_user(row) if row is not None else None

    def count(self) -> int:
        """Return the number of registered accounts."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(select(func.count()).select_from(_users)).scalar()
        except (OperationalError, PoolTimeoutError) as exc:
            raise StoreUnavailableError() from exc
        return result or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, username: str, email: str, password_hash: str) -> User:
        """Insert a new user and return it (without the digest).

        Raises DuplicateUserError if the UNIQUE index on username or email
        rejects the row -- including when a concurrent signup won the race
        after our pre-check passed.
        """
        if not password_hash:
            raise ValueError("password_hash must not be empty")
        now = _now_iso()
        user = User(
            id=uuid.uuid4().hex,
            username=username,
            email=email,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user.id,
                        username=username,
                        email=email,
                        password_hash=password_hash,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            logger.info("Signup rejected by unique index")
            raise DuplicateUserError() from exc
        except (OperationalError, PoolTimeoutError) as exc:
            raise StoreUnavailableError() from exc
        return user

    def delete(self, user_id: str) -> bool:
        """Permanently delete a user. Returns True if a row was removed.

        Sessions owned by the user are left to the gate: the next request
        carrying one finds no user, destroys the session and redirects.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_users.delete().where(_users.c.id == user_id))
        except (OperationalError, PoolTimeoutError) as exc:
            raise StoreUnavailableError() from exc
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_one(self, stmt):
        try:
            with self.engine.connect() as conn:
                return conn.execute(stmt).fetchone()
        except (OperationalError, PoolTimeoutError) as exc:
            raise StoreUnavailableError() from exc


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    # Rows selected with _PUBLIC_COLUMNS have no password_hash attribute.
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=getattr(row, "password_hash", None),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
