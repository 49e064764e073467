"""Unit tests for main.py -- the doorman command line.

Covers:
- purge-sessions removes only records past their retention window
- delete-user removes an account by (normalized) email
- delete-user exit codes for unknown accounts and invalid addresses
"""

import pytest

import main
from auth.passwords import hash_password
from auth.sessions import SessionManager, SqlSessionBackend
from auth.store import UserStore
from core.config import Settings
from core.database import make_engine

SECRET = "c" * 40


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    """Settings pointing at a throwaway file database, patched into main."""
    s = Settings(
        _env_file=None,
        environment="development",
        secret_key=SECRET,
        database_url=f"sqlite:///{tmp_path / 'cli.db'}",
    )
    monkeypatch.setattr(main, "get_settings", lambda: s)
    return s


@pytest.fixture
def engine(settings: Settings):
    e = make_engine(settings.database_url)
    yield e
    e.dispose()


def test_no_command_prints_help(capsys) -> None:
    assert main.main([]) == 0
    assert "purge-sessions" in capsys.readouterr().out


def test_purge_sessions(settings: Settings, engine, capsys) -> None:
    # Records written against a clock far in the past are beyond retention now.
    stale = SessionManager(SqlSessionBackend(engine, clock=lambda: 1_000_000.0), secret_key=SECRET)
    stale.create("stale-1")
    stale.create("stale-2")
    current = SessionManager(SqlSessionBackend(engine), secret_key=SECRET)
    live = current.create("live-user")

    assert main.main(["purge-sessions"]) == 0
    assert "Removed 2 expired session record(s)." in capsys.readouterr().out
    assert current.resolve(live) == "live-user"


def test_delete_user(settings: Settings, engine, capsys) -> None:
    store = UserStore(engine)
    user = store.create("alice99", "a@x.com", hash_password("secret1"))
    store.create("bob_1", "b@x.com", hash_password("secret1"))

    assert main.main(["delete-user", " A@X.com "]) == 0
    out = capsys.readouterr().out
    assert "Deleted alice99 <a@x.com>. 1 account(s) remain." in out
    assert store.find_by_id(user.id) is None


def test_delete_unknown_user(settings: Settings, engine, capsys) -> None:
    UserStore(engine)
    assert main.main(["delete-user", "nobody@x.com"]) == 1
    assert "No account registered for nobody@x.com." in capsys.readouterr().out


def test_delete_user_rejects_invalid_email(settings: Settings, capsys) -> None:
    assert main.main(["delete-user", "not-an-email"]) == 2
    assert "Please provide a valid email" in capsys.readouterr().out
