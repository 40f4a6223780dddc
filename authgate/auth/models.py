from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class NormalizedUser:
    """Canonical identity record (from GitHub or a local store)."""

    id: int
    login: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Ids are stored as signed 64-bit integers (SQLite INTEGER, Postgres bigint).
MIN_USER_ID = -(2**63)
MAX_USER_ID = 2**63 - 1


def _in_id_range(n: int) -> Optional[int]:
    return n if MIN_USER_ID <= n <= MAX_USER_ID else None


def _coerce_id(value: Any) -> Optional[int]:
    # bool is an int subclass; `True` is not a user id.
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _in_id_range(value)
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        return _in_id_range(int(value))
    if isinstance(value, str):
        return parse_numeric_id(value)
    return None


def parse_numeric_id(raw: str) -> Optional[int]:
    """
    Parse a free-form identifier as a user id.

    Accepts integers and integral finite floats ("42", "42.0", "4.2e1") within
    the signed 64-bit range. Returns None for anything else, so an all-digit
    login too large to be an id is looked up by login only.
    """
    s = (raw or "").strip()
    if not s:
        return None
    try:
        return _in_id_range(int(s))
    except ValueError:
        pass
    try:
        f = float(s)
    except ValueError:
        return None
    if not math.isfinite(f) or not f.is_integer():
        return None
    return _in_id_range(int(f))


def normalize_user(value: Any) -> Optional[NormalizedUser]:
    """
    Coerce an unstructured value (JSON object, DB row mapping, provider profile)
    into a NormalizedUser.

    Total function: never raises. Returns None when `id` is not an integer in
    the signed 64-bit range or `login` is empty after string coercion.
    """
    if isinstance(value, NormalizedUser):
        return value
    if not isinstance(value, dict):
        return None

    user_id = _coerce_id(value.get("id"))
    if user_id is None:
        return None

    raw_login = value.get("login")
    if not raw_login:
        return None
    login = str(raw_login)
    if not login.strip():
        return None

    name = value.get("name")
    avatar_url = value.get("avatar_url")
    return NormalizedUser(
        id=user_id,
        login=login,
        name=name if isinstance(name, str) else None,
        avatar_url=avatar_url if isinstance(avatar_url, str) else None,
    )
