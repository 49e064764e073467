#!/usr/bin/env python3
"""
Doorman -- session-based signup, login and logout.

Usage:
  python main.py serve
  python main.py serve --port 8080 --reload
  python main.py purge-sessions
  python main.py delete-user alice@example.com

Configuration comes from the environment (or a .env file); see
core/config.py. The most important variables:
  ENVIRONMENT    development (default) or production
  SECRET_KEY     session-signing secret, required in production
  DATABASE_URL   SQLAlchemy URL for users and sessions
  HOST / PORT    listening address for `serve`
"""

import argparse
import sys

from auth.errors import StoreUnavailableError
from auth.sessions import SessionManager, SqlSessionBackend
from auth.store import UserStore
from auth.validation import email_address
from core.config import get_settings
from core.database import make_engine


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    host = args.host or settings.host
    port = args.port or settings.port
    print(f"Doorman listening on http://{host}:{port} (environment={settings.environment})")
    uvicorn.run(
        "asgi:app",
        host=host,
        port=port,
        reload=args.reload,
        # Behind a TLS-terminating proxy in production: trust X-Forwarded-*
        # so rate limits key on the real client and Secure cookies stick.
        proxy_headers=settings.is_production,
        forwarded_allow_ips="*" if settings.is_production else None,
        log_level=settings.log_level.lower(),
    )
    return 0


def _purge_sessions(args: argparse.Namespace) -> int:
    settings = get_settings()
    engine = make_engine(settings.database_url, timeout=settings.db_timeout_seconds)
    try:
        sessions = SessionManager(
            SqlSessionBackend(engine),
            secret_key=settings.secret_key,
            max_age=settings.session_max_age_seconds,
            retention=settings.session_retention_seconds,
        )
        removed = sessions.purge_expired()
    except StoreUnavailableError as exc:
        print(f"  [!] Database unavailable: {exc.__cause__}")
        return 1
    finally:
        engine.dispose()
    print(f"  Removed {removed} expired session record(s).")
    return 0


def _delete_user(args: argparse.Namespace) -> int:
    try:
        email = email_address(args.email.strip())
    except ValueError as exc:
        print(f"  [!] {exc}")
        return 2
    settings = get_settings()
    engine = make_engine(settings.database_url, timeout=settings.db_timeout_seconds)
    try:
        store = UserStore(engine)
        user = store.find_by_email(email)
        if user is None:
            print(f"  [!] No account registered for {email}.")
            return 1
        store.delete(user.id)
        remaining = store.count()
    except StoreUnavailableError as exc:
        print(f"  [!] Database unavailable: {exc.__cause__}")
        return 1
    finally:
        engine.dispose()
    print(f"  Deleted {user.username} <{email}>. {remaining} account(s) remain.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="doorman",
        description="Session-based signup, login and logout.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the web server")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST or 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT or 3000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=_serve)

    purge = sub.add_parser("purge-sessions", help="Delete session records past their retention window")
    purge.set_defaults(func=_purge_sessions)

    delete = sub.add_parser("delete-user", help="Delete the account registered to EMAIL")
    delete.add_argument("email", metavar="EMAIL")
    delete.set_defaults(func=_delete_user)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
