"""
tests/test_rate_limit.py -- slowapi limits on credential routes and globally.

Covers:
  - 5 credential submissions per client per window; the 6th is 429
  - 429 renders the auth message with a Retry-After header
  - signup and login are counted separately
  - The global limit covers page views and logout, one budget for all of them
"""

from __future__ import annotations

from fastapi.testclient import TestClient

AUTH_MESSAGE = "Too many authentication attempts, please try again later."
GLOBAL_MESSAGE = "Too many requests from this client, please try again later."


def _bad_login(client: TestClient):
    return client.post("/login", data={"email": "nobody@x.com", "password": "wrong"})


def test_sixth_login_attempt_is_rejected(web_client: TestClient, create_user) -> None:
    create_user(email="bob@example.com", password="hunter22")
    for _ in range(5):
        assert _bad_login(web_client).status_code == 401

    resp = _bad_login(web_client)
    assert resp.status_code == 429
    assert AUTH_MESSAGE in resp.text
    assert int(resp.headers["retry-after"]) > 0


def test_limit_applies_to_correct_credentials_too(web_client: TestClient, create_user) -> None:
    create_user(email="bob@example.com", password="hunter22")
    for _ in range(5):
        _bad_login(web_client)
    resp = web_client.post("/login", data={"email": "bob@example.com", "password": "hunter22"})
    assert resp.status_code == 429


def test_signup_is_limited(web_client: TestClient) -> None:
    for _ in range(5):
        assert web_client.post("/signup", data={}).status_code == 400
    resp = web_client.post("/signup", data={})
    assert resp.status_code == 429
    assert AUTH_MESSAGE in resp.text


def test_signup_and_login_counted_separately(web_client: TestClient) -> None:
    for _ in range(5):
        web_client.post("/signup", data={})
    assert _bad_login(web_client).status_code == 401


def test_global_limit_on_page_views(web_client: TestClient) -> None:
    for _ in range(100):
        assert web_client.get("/").status_code == 200
    resp = web_client.get("/")
    assert resp.status_code == 429
    assert GLOBAL_MESSAGE in resp.text


def test_global_limit_is_shared_across_pages(web_client: TestClient) -> None:
    for _ in range(50):
        assert web_client.get("/").status_code == 200
        assert web_client.get("/signup").status_code == 200
    resp = web_client.get("/signup")
    assert resp.status_code == 429
    assert GLOBAL_MESSAGE in resp.text
    assert int(resp.headers["retry-after"]) > 0


def test_global_limit_covers_logout(web_client: TestClient, create_user) -> None:
    create_user(email="bob@example.com", password="hunter22")
    web_client.post("/login", data={"email": "bob@example.com", "password": "hunter22"})
    for _ in range(100):
        assert web_client.get("/home").status_code == 200
    resp = web_client.post("/logout")
    assert resp.status_code == 429
    assert GLOBAL_MESSAGE in resp.text
