from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

GITHUB_OAUTH_URL = "https://github.com/login/oauth"
GITHUB_API_URL = "https://api.github.com"
DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 24  # 1 day


@dataclass(frozen=True)
class AuthConfig:
    # GitHub OAuth app
    github_client_id: Optional[str]
    github_client_secret: Optional[str]
    github_oauth_url: str
    github_api_url: str
    github_timeout_seconds: float

    # Session configuration
    public_base_url: Optional[str]  # AUTH_HOST; required for the OAuth callback URL
    session_secret: Optional[str]  # COOKIE_SECRET; required for session signing
    session_ttl_seconds: int
    trust_forwarded_proto: bool

    # Post-login destination when the caller did not supply one
    default_redirect_url: Optional[str] = None

    @property
    def oauth_enabled(self) -> bool:
        """OAuth is usable only when both halves of the client credential pair are set."""
        return bool(self.github_client_id and self.github_client_secret)

    @property
    def default_destination(self) -> str:
        if self.default_redirect_url:
            return self.default_redirect_url
        base = (self.public_base_url or "").rstrip("/")
        return f"{base}/auth/me" if base else "/auth/me"


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None


def _env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    Read once per process; call `load_auth_config.cache_clear()` in tests after
    changing the environment.
    """
    ttl_raw = (os.getenv("AUTH_SESSION_TTL_SECONDS", "") or "").strip() or str(DEFAULT_SESSION_TTL_SECONDS)
    ttl = int(float(ttl_raw))
    if ttl <= 60:
        ttl = 60

    timeout_raw = (os.getenv("GITHUB_HTTP_TIMEOUT_SECONDS", "") or "").strip() or "10"
    try:
        timeout = float(timeout_raw)
    except ValueError:
        timeout = 10.0

    public_base_url = _env_str("AUTH_HOST")
    return AuthConfig(
        github_client_id=_env_str("GITHUB_CLIENT_ID"),
        github_client_secret=_env_str("GITHUB_CLIENT_SECRET"),
        github_oauth_url=(_env_str("GITHUB_OAUTH_URL") or GITHUB_OAUTH_URL).rstrip("/"),
        github_api_url=(_env_str("GITHUB_API_URL") or GITHUB_API_URL).rstrip("/"),
        github_timeout_seconds=timeout,
        public_base_url=public_base_url.rstrip("/") if public_base_url else None,
        session_secret=_env_str("COOKIE_SECRET"),
        session_ttl_seconds=ttl,
        trust_forwarded_proto=_env_bool("AUTH_TRUST_FORWARDED_PROTO", True),
        default_redirect_url=_env_str("AUTH_DEFAULT_REDIRECT_URL"),
    )
