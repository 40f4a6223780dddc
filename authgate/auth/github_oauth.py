from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests

from authgate.auth.config import AuthConfig
from authgate.auth.errors import ConfigurationError, OAuthError
from authgate.auth.models import NormalizedUser, normalize_user
from authgate.providers.github_provider import GITHUB_HEADERS

OAUTH_SCOPE = "read:user user:email"


def require_oauth_config(cfg: AuthConfig) -> str:
    """Fail fast on a missing client id/secret pair or public host; return the host."""
    if not cfg.oauth_enabled:
        raise ConfigurationError("GitHub OAuth credentials are not configured (GITHUB_CLIENT_ID/GITHUB_CLIENT_SECRET)")
    if not cfg.public_base_url:
        raise ConfigurationError("AUTH_HOST is required for the OAuth callback URL")
    return cfg.public_base_url


def build_authorize_url(cfg: AuthConfig, *, redirect_uri: str, login_hint: Optional[str] = None) -> str:
    """Build the GitHub authorization URL for the authorization-code flow."""
    require_oauth_config(cfg)
    params = {
        "client_id": cfg.github_client_id,
        "redirect_uri": redirect_uri,
        "scope": OAUTH_SCOPE,
        "response_type": "code",
    }
    if login_hint:
        # GitHub pre-fills the account on its sign-in page.
        params["login"] = login_hint
    return f"{cfg.github_oauth_url}/authorize?{urlencode(params)}"


def exchange_code_for_token(cfg: AuthConfig, *, code: str) -> str:
    """
    Exchange an authorization code for an access token (server-to-server).

    Raises OAuthError on transport failure, non-success status, or a
    provider-reported error.
    """
    require_oauth_config(cfg)
    payload = {
        "client_id": cfg.github_client_id,
        "client_secret": cfg.github_client_secret,
        "code": code,
    }
    try:
        r = requests.post(
            f"{cfg.github_oauth_url}/access_token",
            json=payload,
            headers={"Accept": "application/json", "User-Agent": GITHUB_HEADERS["User-Agent"]},
            timeout=cfg.github_timeout_seconds,
        )
    except requests.RequestException as e:
        raise OAuthError(f"Token exchange request failed: {e}") from e
    if r.status_code >= 400:
        # Avoid leaking sensitive info; include minimal context.
        raise OAuthError(f"Token exchange failed (status={r.status_code})")
    try:
        data: Dict[str, Any] = r.json()
    except ValueError as e:
        raise OAuthError("Invalid token response") from e
    if not isinstance(data, dict):
        raise OAuthError("Invalid token response")
    if data.get("error"):
        raise OAuthError(str(data.get("error_description") or data.get("error")))

    token = str(data.get("access_token") or "").strip()
    if not token:
        raise OAuthError("Missing access_token in token response")
    return token


def fetch_authenticated_user(cfg: AuthConfig, *, access_token: str) -> NormalizedUser:
    """
    Fetch the profile of the token's owner, reduced to the NormalizedUser fields.

    No other profile fields (email, etc.) are retained.
    """
    headers = dict(GITHUB_HEADERS)
    headers["Authorization"] = f"Bearer {access_token}"
    try:
        r = requests.get(f"{cfg.github_api_url}/user", headers=headers, timeout=cfg.github_timeout_seconds)
    except requests.RequestException as e:
        raise OAuthError(f"Profile request failed: {e}") from e
    if r.status_code >= 400:
        raise OAuthError(f"Profile fetch failed (status={r.status_code})")
    try:
        data = r.json()
    except ValueError as e:
        raise OAuthError("Invalid profile response") from e

    user = normalize_user(data)
    if user is None:
        raise OAuthError("Profile response is missing id/login")
    return user
