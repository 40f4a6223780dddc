"""PostgreSQL user store (psycopg 3)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import psycopg
from psycopg.rows import dict_row

from authgate.auth.models import NormalizedUser, normalize_user
from authgate.storage.base import USERS_COLUMNS

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS users (
        id bigint PRIMARY KEY,
        login text NOT NULL,
        name text,
        avatar_url text
    )
"""

UPSERT_SQL = f"""
    INSERT INTO users ({USERS_COLUMNS})
    VALUES (%s, %s, %s, %s)
    ON CONFLICT (id) DO UPDATE SET
        login = EXCLUDED.login,
        name = EXCLUDED.name,
        avatar_url = EXCLUDED.avatar_url
"""


@dataclass
class PostgresUserStore:
    """
    UserStore backed by PostgreSQL.

    A connection is opened per operation; `with psycopg.connect(...)` commits on
    success, rolls back on error, and always closes.
    """

    dsn: str = field(repr=False)
    name: str = "postgres"
    connect_timeout: int = 10

    def _connect(self) -> psycopg.Connection:
        return psycopg.connect(self.dsn, connect_timeout=self.connect_timeout, row_factory=dict_row)

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(SCHEMA_SQL)

    def upsert(self, user: NormalizedUser) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
                cur.execute(UPSERT_SQL, (user.id, user.login, user.name, user.avatar_url))

    def _fetch_one(self, where: str, params: Sequence[Any]) -> Optional[NormalizedUser]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
                cur.execute(f"SELECT {USERS_COLUMNS} FROM users WHERE {where} LIMIT 1", params)
                row = cur.fetchone()
        if row is None:
            return None
        return normalize_user(dict(row))

    def get_by_id(self, user_id: int) -> Optional[NormalizedUser]:
        return self._fetch_one("id = %s", (user_id,))

    def get_by_login(self, login: str) -> Optional[NormalizedUser]:
        return self._fetch_one("lower(login) = lower(%s)", (login,))
