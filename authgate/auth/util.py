from __future__ import annotations

from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from authgate.auth.errors import InvalidRedirect
from authgate.auth.models import parse_numeric_id

ALLOWED_REDIRECT_SCHEMES = ("http", "https")
CALLBACK_PATH = "/auth/github/callback"


def is_truthy(value: object) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def sanitize_redirect_url(raw: str | None, *, base_url: Optional[str] = None) -> str:
    """
    Validate a client-supplied redirect destination.

    Relative destinations are resolved against `base_url` (the service's public host).
    The result must be an absolute http(s) URL; anything else raises InvalidRedirect.
    """
    candidate = (raw or "").strip()
    if not candidate:
        raise InvalidRedirect("redirect url must be a non-empty string")
    if "\r" in candidate or "\n" in candidate:
        raise InvalidRedirect("invalid redirect url")

    try:
        parts = urlsplit(candidate)
        if not parts.scheme and base_url:
            candidate = urljoin(base_url.rstrip("/") + "/", candidate)
            parts = urlsplit(candidate)
    except ValueError as e:
        raise InvalidRedirect(f"invalid redirect url: {e}") from e

    if parts.scheme.lower() not in ALLOWED_REDIRECT_SCHEMES:
        raise InvalidRedirect("redirect url must use http or https")
    if not parts.netloc:
        raise InvalidRedirect("redirect url must include a host")
    return candidate


def with_user_param(url: str, user: object) -> str:
    """Set (or replace) the `user` query parameter on `url`."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "user"]
    query.append(("user", str(user)))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def resolve_redirect_target(
    url: str | None,
    *,
    user: str | None = None,
    default_destination: str,
    base_url: Optional[str] = None,
) -> str:
    """
    Compute the final destination for `/redirect`.

    A numeric `url` is a user id, not a path: it is rewritten to the default
    destination with `user=<id>`.
    """
    numeric = parse_numeric_id(url or "")
    if numeric is not None:
        return with_user_param(sanitize_redirect_url(default_destination, base_url=base_url), numeric)

    dest = sanitize_redirect_url(url, base_url=base_url)
    wanted = (user or "").strip()
    if wanted:
        dest = with_user_param(dest, wanted)
    return dest


def build_callback_url(base_url: str, *, destination: Optional[str] = None, send: bool = False) -> str:
    """
    Callback URL handed to the provider.

    The post-login destination rides along as the callback's own `url` query
    parameter so it survives the provider round trip without server state.
    """
    callback = f"{base_url.rstrip('/')}{CALLBACK_PATH}"
    params = []
    if destination:
        params.append(("url", destination))
    if send:
        params.append(("send", "1"))
    if params:
        callback = f"{callback}?{urlencode(params)}"
    return callback


def build_login_url(base_url: str, identifier: str, redirect_url: Optional[str] = None) -> str:
    """URL of this service's `/auth` entry point, prefilled for `identifier`."""
    params = [("user", identifier)]
    if redirect_url:
        params.append(("redirect_url", redirect_url))
    return f"{base_url.rstrip('/')}/auth?{urlencode(params)}"
