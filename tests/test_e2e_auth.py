"""E2E tests for the session endpoints.

These tests require a running server (`python main.py --serve`) and are executed
in CI or manually.
Run with: pytest -m e2e
"""

import os
import time
from typing import Generator

import pytest
import requests

BASE_URL = os.getenv("AUTHGATE_E2E_BASE_URL", "http://localhost:8080").rstrip("/")

pytestmark = pytest.mark.e2e


@pytest.fixture(scope="module")
def wait_for_server() -> Generator[None, None, None]:
    """Wait for server to be ready."""
    max_retries = 30
    for i in range(max_retries):
        try:
            r = requests.get(f"{BASE_URL}/health", timeout=2)
            if r.status_code == 200:
                break
        except requests.RequestException:
            if i == max_retries - 1:
                raise Exception("Server failed to start within 30 seconds")
            time.sleep(1)
    yield


def test_health_endpoint(wait_for_server):
    r = requests.get(f"{BASE_URL}/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_me_requires_session(wait_for_server):
    r = requests.get(f"{BASE_URL}/auth/me")
    assert r.status_code == 401
    assert r.json() == {"error": "Not authenticated"}


def test_status_without_cookie(wait_for_server):
    r = requests.post(f"{BASE_URL}/auth/status", json={})
    assert r.status_code == 401
    assert r.json() == {"status": "Not Authenticated", "code": 1}


def test_tampered_cookie_is_cleared(wait_for_server):
    r = requests.get(f"{BASE_URL}/auth/me", cookies={"user_session": "not-a-signed-value"})
    assert r.status_code == 401
    assert "user_session=" in r.headers.get("set-cookie", "")


def test_redirect_rejects_non_http_scheme(wait_for_server):
    r = requests.get(f"{BASE_URL}/redirect", params={"url": "javascript:alert(1)"}, allow_redirects=False)
    assert r.status_code == 400


def test_logout_clears_cookie(wait_for_server):
    r = requests.get(f"{BASE_URL}/logout")
    assert r.status_code == 200
    assert r.json()["message"] == "Logged out successfully"
    assert "user_session=" in r.headers.get("set-cookie", "")
