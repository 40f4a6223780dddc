from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer
from starlette.requests import Request

from authgate.auth.config import AuthConfig
from authgate.auth.errors import ConfigurationError
from authgate.auth.models import NormalizedUser, normalize_user

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "user_session"
SESSION_SALT = "authgate-user-session-v1"


class SessionState(str, Enum):
    ABSENT = "absent"  # no cookie at all
    INVALID = "invalid"  # cookie present but unusable; caller should clear it
    AUTHENTICATED = "authenticated"
    FORBIDDEN = "forbidden"  # valid session for a different identity


@dataclass(frozen=True)
class SessionCheck:
    state: SessionState
    user: Optional[NormalizedUser] = None

    @property
    def authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    @property
    def should_clear_cookie(self) -> bool:
        return self.state is SessionState.INVALID


def require_session_secret(cfg: AuthConfig) -> str:
    if not cfg.session_secret:
        raise ConfigurationError("Cookie secret is not configured (COOKIE_SECRET)")
    return cfg.session_secret


def _serializer(cfg: AuthConfig) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key=require_session_secret(cfg), salt=SESSION_SALT)


def encode_session(cfg: AuthConfig, user: NormalizedUser) -> str:
    s = _serializer(cfg)
    # Keep cookie small and non-sensitive (no access tokens).
    raw = json.dumps(user.to_dict(), separators=(",", ":"), sort_keys=True)
    return s.dumps(raw)


def decode_session(cfg: AuthConfig, value: str | None) -> Optional[NormalizedUser]:
    """Return the session user, or None for a missing/invalid/expired cookie."""
    return check_session(cfg, value).user


def check_session(cfg: AuthConfig, value: str | None, requested: str | None = None) -> SessionCheck:
    """
    Verify a session cookie value.

    If `requested` is non-empty, the session must belong to that identity: it is
    compared case-sensitively against `login`, or as a string against `id`.
    """
    s = _serializer(cfg)
    if not value:
        return SessionCheck(SessionState.ABSENT)
    try:
        raw = s.loads(value, max_age=cfg.session_ttl_seconds)
    except (BadSignature, BadTimeSignature):
        return SessionCheck(SessionState.INVALID)
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to parse session cookie: %s", str(e))
        return SessionCheck(SessionState.INVALID)

    user = normalize_user(data)
    if user is None:
        return SessionCheck(SessionState.INVALID)

    wanted = (requested or "").strip()
    if wanted and wanted != user.login and wanted != str(user.id):
        return SessionCheck(SessionState.FORBIDDEN, user)
    return SessionCheck(SessionState.AUTHENTICATED, user)


def is_secure_request(request: Request, *, trust_forwarded_proto: bool = True) -> bool:
    """HTTPS directly, or via the first value of X-Forwarded-Proto from a trusted proxy."""
    if trust_forwarded_proto:
        forwarded = request.headers.get("x-forwarded-proto")
        if forwarded:
            proto = forwarded.split(",")[0].strip().lower()
            if proto:
                return proto == "https"
    return request.url.scheme == "https"


def session_cookie_kwargs(cfg: AuthConfig, value: str, *, secure: bool) -> dict:
    return {
        "key": SESSION_COOKIE_NAME,
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(cfg: AuthConfig, *, secure: bool) -> dict:
    kwargs = session_cookie_kwargs(cfg, "", secure=secure)
    kwargs["max_age"] = 0
    return kwargs
