"""Unit tests for auth/store.py -- UserStore queries and uniqueness guarantees.

Covers:
- create() assigns an opaque id and timestamps, never returns the digest
- find_by_email() loads the digest; find_by_id() and the pre-check do not
- UNIQUE username / email enforced by the database, username case-sensitive
- Concurrent signups for one identity: exactly one row, one DuplicateUserError
- Driver failures surface as StoreUnavailableError
"""

import threading

import pytest
from sqlalchemy.exc import OperationalError

from auth.errors import DuplicateUserError, StoreUnavailableError
from auth.passwords import hash_password
from auth.store import UserStore
from core.database import make_engine


@pytest.fixture
def store(stores) -> UserStore:
    user_store, _ = stores
    return user_store


def test_create_assigns_id_and_timestamps(store: UserStore) -> None:
    user = store.create("alice99", "a@x.com", hash_password("secret1"))
    assert user.id and len(user.id) == 32
    assert user.created_at and user.created_at == user.updated_at
    assert user.password_hash is None
    assert store.count() == 1


def test_create_rejects_empty_digest(store: UserStore) -> None:
    with pytest.raises(ValueError):
        store.create("alice99", "a@x.com", "")


def test_find_by_email_includes_digest(store: UserStore) -> None:
    digest = hash_password("secret1")
    store.create("alice99", "a@x.com", digest)
    user = store.find_by_email("a@x.com")
    assert user is not None
    assert user.password_hash == digest
    assert user.password_hash != "secret1"


def test_find_by_id_excludes_digest(store: UserStore) -> None:
    created = store.create("alice99", "a@x.com", hash_password("secret1"))
    user = store.find_by_id(created.id)
    assert user is not None
    assert user.username == "alice99"
    assert user.email == "a@x.com"
    assert user.password_hash is None


def test_find_by_id_unknown(store: UserStore) -> None:
    assert store.find_by_id("0" * 32) is None


@pytest.mark.parametrize(
    "username, email",
    [("alice99", "other@x.com"), ("someone", "a@x.com"), ("alice99", "a@x.com")],
)
def test_precheck_matches_either_field(store: UserStore, username: str, email: str) -> None:
    store.create("alice99", "a@x.com", hash_password("secret1"))
    hit = store.find_by_username_or_email(username, email)
    assert hit is not None
    assert hit.password_hash is None


def test_precheck_miss(store: UserStore) -> None:
    store.create("alice99", "a@x.com", hash_password("secret1"))
    assert store.find_by_username_or_email("bob", "b@x.com") is None


def test_duplicate_username_rejected_by_index(store: UserStore) -> None:
    store.create("alice99", "a@x.com", hash_password("secret1"))
    with pytest.raises(DuplicateUserError):
        store.create("alice99", "b@x.com", hash_password("secret1"))
    assert store.count() == 1


def test_duplicate_email_rejected_by_index(store: UserStore) -> None:
    store.create("alice99", "a@x.com", hash_password("secret1"))
    with pytest.raises(DuplicateUserError):
        store.create("bob_1", "a@x.com", hash_password("secret1"))
    assert store.count() == 1


def test_username_is_case_sensitive(store: UserStore) -> None:
    store.create("alice99", "a@x.com", hash_password("secret1"))
    store.create("Alice99", "b@x.com", hash_password("secret1"))
    assert store.count() == 2


def test_delete(store: UserStore) -> None:
    user = store.create("alice99", "a@x.com", hash_password("secret1"))
    assert store.delete(user.id) is True
    assert store.delete(user.id) is False
    assert store.find_by_id(user.id) is None


def test_concurrent_signups_create_exactly_one_user(tmp_path) -> None:
    """Two threads race to insert the same identity; the UNIQUE index decides.

    Uses a file-backed database so SQLite's busy timeout serializes the
    writers instead of failing one with a shared-cache lock error.
    """
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}", timeout=10)
    store = UserStore(engine)
    digest = hash_password("secret1")
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def signup() -> None:
        barrier.wait()
        try:
            store.create("alice99", "a@x.com", digest)
            result = "created"
        except DuplicateUserError:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=signup) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["conflict", "created"]
    assert store.count() == 1
    engine.dispose()


def test_driver_failure_becomes_store_unavailable(store: UserStore, monkeypatch) -> None:
    def broken_connect():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    monkeypatch.setattr(store.engine, "connect", broken_connect)
    with pytest.raises(StoreUnavailableError) as excinfo:
        store.find_by_email("a@x.com")
    assert "database is locked" not in str(excinfo.value)
