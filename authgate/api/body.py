"""Lenient request-body parsing for the login/status endpoints."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import parse_qsl

from starlette.requests import Request

# `..., "key", "value"` written where `..., "key": "value"` was meant.
_MALFORMED_PAIR = re.compile(r',\s*"([^"\\]+)"\s*,\s*"')


def parse_json_loose(raw: str) -> Optional[Dict[str, Any]]:
    attempts = [raw]
    patched = _MALFORMED_PAIR.sub(r',"\1": "', raw)
    if patched != raw:
        attempts.append(patched)

    for candidate in attempts:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def pairs_to_dict(pairs: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """Collect query/form pairs; a repeated key becomes a list of its values."""
    out: Dict[str, Any] = {}
    for key, value in pairs:
        if key not in out:
            out[key] = value
        elif isinstance(out[key], list):
            out[key].append(value)
        else:
            out[key] = [out[key], value]
    return out


def parse_body_text(raw: str, content_type: str = "") -> Dict[str, Any]:
    """
    Parse a request body as JSON or form data, whatever the client claimed.

    The declared content type is tried first; then JSON, then query-string syntax.
    Returns an empty dict when nothing usable is found.
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        return {}

    ctype = (content_type or "").lower()
    if "application/json" in ctype or "text/json" in ctype:
        parsed = parse_json_loose(trimmed)
        if parsed is not None:
            return parsed
    elif "application/x-www-form-urlencoded" in ctype:
        form = pairs_to_dict(parse_qsl(trimmed, keep_blank_values=True))
        if form:
            return form

    fallback = parse_json_loose(trimmed)
    if fallback is not None:
        return fallback

    return pairs_to_dict(parse_qsl(trimmed.lstrip("?"), keep_blank_values=True))


async def read_body_payload(request: Request) -> Dict[str, Any]:
    raw = (await request.body()).decode("utf-8", errors="replace")
    return parse_body_text(raw, request.headers.get("content-type", ""))


def body_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    """Return a body field as a trimmed string; None when absent or null."""
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, list):
        value = value[0] if value else ""
    return str(value).strip()
