"""Embedded SQLite user store (single file, no server)."""

from __future__ import annotations

import sqlite3
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from authgate.auth.models import NormalizedUser, normalize_user
from authgate.storage.base import USERS_COLUMNS

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY,
        login TEXT NOT NULL,
        name TEXT,
        avatar_url TEXT
    )
"""


@dataclass
class SqliteUserStore:
    """UserStore backed by a local SQLite database file."""

    path: str
    name: str = "sqlite"

    def __post_init__(self) -> None:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def ensure_schema(self) -> None:
        with closing(self._connect()) as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()

    def upsert(self, user: NormalizedUser) -> None:
        with closing(self._connect()) as conn:
            conn.execute(SCHEMA_SQL)
            conn.execute(
                f"INSERT OR REPLACE INTO users ({USERS_COLUMNS}) VALUES (?, ?, ?, ?)",
                (user.id, user.login, user.name, user.avatar_url),
            )
            conn.commit()

    def _fetch_one(self, where: str, params: Sequence[Any]) -> Optional[NormalizedUser]:
        with closing(self._connect()) as conn:
            conn.execute(SCHEMA_SQL)
            row = conn.execute(f"SELECT {USERS_COLUMNS} FROM users WHERE {where} LIMIT 1", params).fetchone()
        if row is None:
            return None
        return normalize_user(dict(row))

    def get_by_id(self, user_id: int) -> Optional[NormalizedUser]:
        return self._fetch_one("id = ?", (user_id,))

    def get_by_login(self, login: str) -> Optional[NormalizedUser]:
        return self._fetch_one("login = ? COLLATE NOCASE", (login,))
