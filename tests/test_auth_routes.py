from __future__ import annotations

from dataclasses import replace
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

from fastapi.testclient import TestClient

from authgate.api.server import create_app
from authgate.auth.errors import OAuthError
from authgate.auth.models import NormalizedUser
from authgate.auth.session import SESSION_COOKIE_NAME, encode_session
from conftest import FakeProvider, FakeStore, make_auth_config

ALICE = NormalizedUser(id=7, login="alice", name="Alice")


def _client(cfg=None, *, stores=None, provider=None) -> TestClient:
    app = create_app(cfg or make_auth_config(), stores=stores or [], provider=provider or FakeProvider())
    return TestClient(app, base_url="https://auth.example.com")


def _cookie_header(resp) -> str:
    return ", ".join(v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie")


def _cookie_attrs(resp) -> set:
    """Lower-cased attributes of the session Set-Cookie header (the value itself excluded)."""
    for k, v in resp.headers.multi_items():
        if k.lower() == "set-cookie" and v.startswith(f"{SESSION_COOKIE_NAME}="):
            return {part.strip().lower() for part in v.split(";")[1:]}
    return set()


def test_health_is_public() -> None:
    c = _client()
    r = c.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_auth_me_requires_session() -> None:
    c = _client()
    r = c.get("/auth/me")
    assert r.status_code == 401
    assert r.json() == {"error": "Not authenticated"}
    # Do not trigger browser auth popups.
    assert "www-authenticate" not in {k.lower() for k in r.headers.keys()}


def test_auth_me_returns_session_user(auth_config) -> None:
    c = _client(auth_config)
    c.cookies.set(SESSION_COOKIE_NAME, encode_session(auth_config, ALICE))
    r = c.get("/auth/me")
    assert r.status_code == 200
    assert r.json() == {"user": {"id": 7, "login": "alice", "name": "Alice", "avatar_url": None}}


def test_auth_me_clears_invalid_cookie(auth_config) -> None:
    c = _client(auth_config)
    c.cookies.set(SESSION_COOKIE_NAME, encode_session(replace(auth_config, session_secret="other"), ALICE))
    r = c.get("/auth/me")
    assert r.status_code == 401
    assert "max-age=0" in _cookie_header(r).lower()


def test_missing_cookie_secret_is_server_error() -> None:
    c = _client(make_auth_config(session_secret=None))
    r = c.post("/auth/status", json={})
    assert r.status_code == 500
    assert "COOKIE_SECRET" in r.json()["detail"]


def test_status_with_valid_session_and_no_user(auth_config) -> None:
    c = _client(auth_config)
    c.cookies.set(SESSION_COOKIE_NAME, encode_session(auth_config, ALICE))
    r = c.post("/auth/status", json={})
    assert r.status_code == 200
    assert r.json() == {"status": "Authenticated", "code": 0}


def test_status_matches_login_or_id(auth_config) -> None:
    c = _client(auth_config)
    c.cookies.set(SESSION_COOKIE_NAME, encode_session(auth_config, ALICE))
    assert c.post("/auth/status", json={"user": "alice"}).json()["code"] == 0
    assert c.post("/auth/status", data={"user": "7"}).json()["code"] == 0


def test_status_identity_mismatch_is_forbidden(auth_config) -> None:
    c = _client(auth_config)
    c.cookies.set(SESSION_COOKIE_NAME, encode_session(auth_config, ALICE))
    r = c.post("/auth/status", json={"user": "bob"})
    assert r.status_code == 403
    assert r.json() == {"status": "Not Authenticated", "code": 1}
    # Session is valid; it must not be cleared.
    assert "set-cookie" not in {k.lower() for k in r.headers.keys()}


def test_status_without_cookie() -> None:
    c = _client()
    r = c.post("/auth/status")
    assert r.status_code == 401
    assert r.json() == {"status": "Not Authenticated", "code": 1}
    assert "set-cookie" not in {k.lower() for k in r.headers.keys()}


def test_status_with_tampered_cookie_clears_it(auth_config) -> None:
    c = _client(auth_config)
    c.cookies.set(SESSION_COOKIE_NAME, encode_session(auth_config, ALICE) + "x")
    r = c.post("/auth/status", json={})
    assert r.status_code == 401
    cookie = _cookie_header(r).lower()
    assert f"{SESSION_COOKIE_NAME}=" in cookie
    assert "max-age=0" in cookie


def test_login_requires_user() -> None:
    c = _client()
    r = c.post("/auth/login", json={})
    assert r.status_code == 400
    assert r.json()["error"] == "user is required"

    r = c.post("/auth/login", json={"user": "   "})
    assert r.status_code == 400


def test_login_rejects_bad_redirect_url() -> None:
    c = _client(stores=[FakeStore(users=[ALICE])])
    r = c.post("/auth/login", json={"user": "alice", "redirect_url": ""})
    assert r.status_code == 400

    r = c.post("/auth/login", json={"user": "alice", "redirect_url": "javascript:alert(1)"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid redirect_url"


def test_login_unknown_user_is_unauthorized() -> None:
    c = _client(stores=[FakeStore()], provider=FakeProvider())
    r = c.post("/auth/login", json={"user": "ghost"})
    assert r.status_code == 401
    assert r.json()["status"] == "failed"
    assert "set-cookie" not in {k.lower() for k in r.headers.keys()}


def test_login_success_sets_cookie_and_links() -> None:
    c = _client(stores=[FakeStore(users=[ALICE])])
    r = c.post("/auth/login", json={"user": "alice", "redirect_url": "https://app.example.com/home"})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["user"] == {"id": 7, "login": "alice", "name": "Alice", "avatar_url": None}
    assert body["redirect"] == "https://app.example.com/home?user=7"

    auth = urlsplit(body["authurl"])
    assert f"{auth.scheme}://{auth.netloc}{auth.path}" == "https://auth.example.com/auth"
    assert parse_qs(auth.query) == {"user": ["alice"], "redirect_url": ["https://app.example.com/home"]}

    attrs = _cookie_attrs(r)
    assert {"httponly", "samesite=lax", "max-age=86400", "path=/", "secure"} <= attrs

    # The issued cookie authenticates subsequent requests.
    assert c.get("/auth/me").json()["user"]["login"] == "alice"


def test_login_relative_redirect_and_form_body() -> None:
    c = _client(stores=[FakeStore(users=[ALICE])])
    r = c.post("/auth/login", data={"user": "7", "redirect_url": "/welcome"})
    assert r.status_code == 200
    assert r.json()["redirect"] == "https://auth.example.com/welcome?user=7"


def test_login_without_redirect_url() -> None:
    c = _client(stores=[FakeStore(users=[ALICE])])
    body = c.post("/auth/login", json={"user": "alice"}).json()
    assert body["redirect"] is None
    assert body["authurl"] == "https://auth.example.com/auth?user=alice"


def test_login_falls_back_to_provider() -> None:
    remote = NormalizedUser(id=99, login="remote")
    c = _client(stores=[FakeStore(fail=True)], provider=FakeProvider(users=[remote]))
    r = c.post("/auth/login", json={"user": "remote"})
    assert r.status_code == 200
    assert r.json()["user"]["id"] == 99


def test_cookie_secure_flag_follows_request_scheme(auth_config) -> None:
    app = create_app(auth_config, stores=[FakeStore(users=[ALICE])], provider=FakeProvider())

    plain = TestClient(app, base_url="http://auth.example.com")
    r = plain.post("/auth/login", json={"user": "alice"})
    assert "secure" not in _cookie_attrs(r)

    r = plain.post("/auth/login", json={"user": "alice"}, headers={"X-Forwarded-Proto": "https,http"})
    assert "secure" in _cookie_attrs(r)


def test_redirect_numeric_url_is_user_id() -> None:
    c = _client()
    r = c.get("/redirect", params={"url": "123"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "https://auth.example.com/auth/me?user=123"


def test_redirect_uses_configured_default_destination() -> None:
    c = _client(make_auth_config(default_redirect_url="https://app.example.com/start"))
    r = c.get("/redirect", params={"url": "123"}, follow_redirects=False)
    assert r.headers["location"] == "https://app.example.com/start?user=123"


def test_redirect_rejects_non_http_scheme() -> None:
    c = _client()
    r = c.get("/redirect", params={"url": "ftp://evil.example"}, follow_redirects=False)
    assert r.status_code == 400
    assert "location" not in {k.lower() for k in r.headers.keys()}


def test_redirect_requires_url() -> None:
    c = _client()
    assert c.get("/redirect", follow_redirects=False).status_code == 400


def test_redirect_external_with_user() -> None:
    c = _client()
    r = c.get("/redirect", params={"url": "https://app.example.com/x", "user": "42"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "https://app.example.com/x?user=42"


def test_logout_clears_session(auth_config) -> None:
    c = _client(auth_config)
    c.cookies.set(SESSION_COOKIE_NAME, encode_session(auth_config, ALICE))
    r = c.get("/logout")
    assert r.status_code == 200
    assert r.json() == {"message": "Logged out successfully"}
    assert "max-age=0" in _cookie_header(r).lower()


def test_users_lookup() -> None:
    c = _client(stores=[FakeStore(users=[ALICE])], provider=FakeProvider())
    r = c.get("/users/7")
    assert r.status_code == 200
    assert r.json()["user"]["login"] == "alice"

    assert c.get("/users/Alice").json()["user"]["id"] == 7

    r = c.get("/users/ghost")
    assert r.status_code == 404


def test_auth_start_redirects_to_github() -> None:
    c = _client()
    r = c.get(
        "/auth",
        params={"redirect_url": "https://app.example.com/after", "user": "octo", "send": "1"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    loc = urlsplit(r.headers["location"])
    assert f"{loc.scheme}://{loc.netloc}{loc.path}" == "https://github.com/login/oauth/authorize"
    q = parse_qs(loc.query)
    assert q["client_id"] == ["test-client-id"]
    assert q["login"] == ["octo"]

    callback = urlsplit(q["redirect_uri"][0])
    assert f"{callback.scheme}://{callback.netloc}{callback.path}" == "https://auth.example.com/auth/github/callback"
    assert parse_qs(callback.query) == {"url": ["https://app.example.com/after"], "send": ["1"]}


def test_auth_start_without_credentials_is_config_fault() -> None:
    c = _client(make_auth_config(github_client_secret=None))
    r = c.get("/auth", follow_redirects=False)
    assert r.status_code == 500


def test_auth_start_rejects_bad_destination() -> None:
    c = _client()
    r = c.get("/auth", params={"redirect_url": "ftp://evil.example"}, follow_redirects=False)
    assert r.status_code == 400


def test_callback_requires_code() -> None:
    c = _client()
    r = c.get("/auth/github/callback", follow_redirects=False)
    assert r.status_code == 400


def test_callback_provider_error_is_server_error() -> None:
    c = _client()
    with patch("authgate.api.server.exchange_code_for_token") as mock_exchange:
        mock_exchange.side_effect = OAuthError("The code passed is incorrect or expired.")
        r = c.get("/auth/github/callback", params={"code": "bad"}, follow_redirects=False)

    assert r.status_code == 500
    assert r.json()["detail"] == "Internal Server Error during authentication"
    assert "set-cookie" not in {k.lower() for k in r.headers.keys()}


def test_callback_rejects_tampered_destination() -> None:
    c = _client()
    with patch("authgate.api.server.exchange_code_for_token") as mock_exchange:
        r = c.get(
            "/auth/github/callback",
            params={"code": "abc", "url": "javascript:alert(1)"},
            follow_redirects=False,
        )
    assert r.status_code == 400
    mock_exchange.assert_not_called()
