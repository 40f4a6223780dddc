from __future__ import annotations

from typing import Optional, Protocol

from authgate.auth.models import NormalizedUser

USERS_COLUMNS = "id, login, name, avatar_url"


class UserStore(Protocol):
    """
    Minimal user persistence interface. Implementations: SQLite, PostgreSQL.

    A miss is `None`, never an exception; backend failures do raise and are
    handled by the caller.
    """

    name: str

    def ensure_schema(self) -> None:
        """Create the users table if it does not exist."""

    def upsert(self, user: NormalizedUser) -> None:
        """Insert or overwrite the record keyed by `user.id` (last write wins)."""

    def get_by_id(self, user_id: int) -> Optional[NormalizedUser]:
        """Return the stored user with this id, or None."""

    def get_by_login(self, login: str) -> Optional[NormalizedUser]:
        """Return the stored user with this login (case-insensitive), or None."""
