"""
User resolution and best-effort persistence.

Local stores are consulted first; the remote provider covers identities that
were never persisted. A failing store is logged and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from authgate.auth.models import NormalizedUser, parse_numeric_id
from authgate.providers.github_provider import IdentityProvider
from authgate.storage.base import UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreOutcome:
    store: str
    ok: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class PersistResult:
    outcomes: List[StoreOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when every configured store accepted the write (vacuously true with no stores)."""
        return all(o.ok for o in self.outcomes)

    @property
    def stored(self) -> bool:
        return any(o.ok for o in self.outcomes)


def _lookup_in_store(store: UserStore, identifier: str, numeric_id: Optional[int]) -> Optional[NormalizedUser]:
    if numeric_id is not None:
        found = store.get_by_id(numeric_id)
        if found is not None:
            return found
    return store.get_by_login(identifier)


def resolve_user(
    identifier: object,
    *,
    stores: Sequence[UserStore],
    provider: Optional[IdentityProvider] = None,
) -> Optional[NormalizedUser]:
    """
    Resolve a free-form identifier (numeric id or login) to a user.

    Order, first hit wins: each store by id then by login, then the provider by
    id then by login. Returns None when nothing matches.
    """
    trimmed = str(identifier).strip() if identifier is not None else ""
    if not trimmed:
        return None

    numeric_id = parse_numeric_id(trimmed)

    for store in stores:
        try:
            found = _lookup_in_store(store, trimmed, numeric_id)
        except Exception:
            logger.exception("User lookup failed in %s store (identifier=%r)", store.name, trimmed)
            continue
        if found is not None:
            logger.debug("Resolved %r from %s store (id=%d)", trimmed, store.name, found.id)
            return found

    if provider is None:
        return None

    if numeric_id is not None:
        via_id = provider.fetch_user_by_id(numeric_id)
        if via_id is not None:
            return via_id

    return provider.fetch_user_by_login(trimmed)


def persist_user(user: NormalizedUser, *, stores: Sequence[UserStore]) -> PersistResult:
    """
    Upsert `user` into every configured store.

    Never raises: a failing store is logged and recorded in the result.
    """
    outcomes: List[StoreOutcome] = []
    for store in stores:
        try:
            store.upsert(user)
        except Exception as e:
            logger.warning("Persisting user id=%d to %s store failed (non-fatal): %s", user.id, store.name, str(e))
            outcomes.append(StoreOutcome(store=store.name, ok=False, error=str(e)))
            continue
        outcomes.append(StoreOutcome(store=store.name, ok=True))
    return PersistResult(outcomes=outcomes)
