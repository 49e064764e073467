"""
core/database.py -- SQLAlchemy engine construction.

One Engine is built in the application lifespan and handed to every store
that needs it (UserStore, SqlSessionBackend). Nothing in the codebase holds a
module-level connection.

Timeouts: every call is bounded by DB_TIMEOUT_SECONDS. For SQLite that is the
busy timeout (how long a writer waits on a locked database); for server
databases it is the pool checkout timeout plus the driver connect timeout.
"""

from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys on every new SQLite connection.

    SQLite PRAGMAs are not inherited by new connections from the pool, so this
    runs per-connection. In-memory databases ignore journal_mode=WAL.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(db_url: str, timeout: float = 5.0) -> Engine:
    """Create an Engine for db_url with the operation timeout applied."""
    if db_url.startswith("sqlite"):
        engine = create_engine(
            db_url,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
        event.listen(engine, "connect", _set_sqlite_pragmas)
        return engine
    return create_engine(
        db_url,
        pool_timeout=timeout,
        pool_pre_ping=True,
        connect_args={"connect_timeout": int(timeout)},
    )
