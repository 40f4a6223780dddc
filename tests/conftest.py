"""
Pytest config.

Puts the repo root on sys.path so `import authgate` works whether or not the
project was pip-installed, and provides in-memory stand-ins for the user stores
and the GitHub identity provider.
"""

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from authgate.auth.config import AuthConfig  # noqa: E402
from authgate.auth.models import NormalizedUser  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-purposes-only"


class FakeStore:
    """In-memory UserStore that records every call."""

    def __init__(self, name: str = "fake", users: Optional[List[NormalizedUser]] = None, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.calls: List[tuple] = []
        self._users: Dict[int, NormalizedUser] = {u.id: u for u in (users or [])}

    def ensure_schema(self) -> None:
        self.calls.append(("ensure_schema",))

    def upsert(self, user: NormalizedUser) -> None:
        self.calls.append(("upsert", user.id))
        if self.fail:
            raise RuntimeError(f"{self.name} unavailable")
        self._users[user.id] = user

    def get_by_id(self, user_id: int) -> Optional[NormalizedUser]:
        self.calls.append(("get_by_id", user_id))
        if self.fail:
            raise RuntimeError(f"{self.name} unavailable")
        return self._users.get(user_id)

    def get_by_login(self, login: str) -> Optional[NormalizedUser]:
        self.calls.append(("get_by_login", login))
        if self.fail:
            raise RuntimeError(f"{self.name} unavailable")
        for u in self._users.values():
            if u.login.lower() == login.lower():
                return u
        return None


class FakeProvider:
    """In-memory IdentityProvider that records every call."""

    def __init__(self, users: Optional[List[NormalizedUser]] = None) -> None:
        self.calls: List[tuple] = []
        self._users = list(users or [])

    def fetch_user_by_login(self, login: str) -> Optional[NormalizedUser]:
        self.calls.append(("fetch_user_by_login", login))
        return next((u for u in self._users if u.login.lower() == login.lower()), None)

    def fetch_user_by_id(self, user_id: int) -> Optional[NormalizedUser]:
        self.calls.append(("fetch_user_by_id", user_id))
        return next((u for u in self._users if u.id == user_id), None)


def make_auth_config(**overrides) -> AuthConfig:
    cfg = AuthConfig(
        github_client_id="test-client-id",
        github_client_secret="test-client-secret",
        github_oauth_url="https://github.com/login/oauth",
        github_api_url="https://api.github.com",
        github_timeout_seconds=10,
        public_base_url="https://auth.example.com",
        session_secret=TEST_SECRET,
        session_ttl_seconds=60 * 60 * 24,
        trust_forwarded_proto=True,
    )
    return replace(cfg, **overrides)


@pytest.fixture
def auth_config() -> AuthConfig:
    return make_auth_config()


@pytest.fixture
def octo() -> NormalizedUser:
    return NormalizedUser(id=42, login="octo", name="Octo Cat", avatar_url="https://avatars.example.com/a.png")


@pytest.fixture(autouse=True)
def _clear_auth_config_cache():
    """load_auth_config() is cached per process; keep env-driven tests isolated."""
    from authgate.auth.config import load_auth_config

    load_auth_config.cache_clear()
    yield
    load_auth_config.cache_clear()
