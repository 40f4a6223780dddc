"""
GitHub provider for looking up public user profiles.

Read-only and unauthenticated: used as the fallback for identities that were
never persisted locally.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol
from urllib.parse import quote

import requests

from authgate.auth.models import NormalizedUser, normalize_user

logger = logging.getLogger(__name__)

GITHUB_HEADERS = {
    "Accept": "application/vnd.github+json",
    "User-Agent": "authgate",
    "X-GitHub-Api-Version": "2022-11-28",
}


class IdentityProvider(Protocol):
    """Protocol for remote identity lookups (read-only)."""

    def fetch_user_by_login(self, login: str) -> Optional[NormalizedUser]:
        """
        Get a public profile by username.

        Returns None when the user does not exist or the provider is unavailable;
        the two cases are not distinguished.
        """
        ...

    def fetch_user_by_id(self, user_id: int) -> Optional[NormalizedUser]:
        """Get a public profile by numeric id. Same miss semantics as by-login."""
        ...


class GitHubIdentityProvider:
    """
    Default provider backed by the GitHub REST API.

    Environment variables (via AuthConfig):
    - GITHUB_API_URL: API base (default: https://api.github.com)
    - GITHUB_HTTP_TIMEOUT_SECONDS: per-request timeout (default: 10)
    """

    def __init__(self, api_base: str = "https://api.github.com", timeout: float = 10) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _get_user(self, url: str, what: str) -> Optional[NormalizedUser]:
        try:
            response = requests.get(url, headers=GITHUB_HEADERS, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("GitHub lookup by %s failed: %s", what, str(e))
            return None
        if not response.ok:
            logger.info("GitHub lookup by %s returned status=%d", what, response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning("GitHub lookup by %s returned a non-JSON body", what)
            return None
        return normalize_user(data)

    def fetch_user_by_login(self, login: str) -> Optional[NormalizedUser]:
        login = (login or "").strip()
        if not login:
            return None
        return self._get_user(f"{self.api_base}/users/{quote(login, safe='')}", "login")

    def fetch_user_by_id(self, user_id: int) -> Optional[NormalizedUser]:
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            return None
        return self._get_user(f"{self.api_base}/user/{user_id}", "id")
