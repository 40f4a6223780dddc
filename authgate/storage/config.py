from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from authgate.storage.base import UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreConfig:
    # Embedded store: enabled when a file path is set
    sqlite_path: Optional[str]

    # Postgres connection (either dsn or parts)
    postgres_dsn: Optional[str]
    postgres_host: Optional[str]
    postgres_port: int
    postgres_db: Optional[str]
    postgres_user: Optional[str]
    postgres_password: Optional[str]


def load_store_config() -> StoreConfig:
    sqlite_path = (os.getenv("SQLITE_PATH") or "").strip() or None
    dsn = (os.getenv("DATABASE_URL") or "").strip() or (os.getenv("POSTGRES_DSN") or "").strip() or None
    host = (os.getenv("POSTGRES_HOST") or "").strip() or None
    port_raw = (os.getenv("POSTGRES_PORT") or "").strip() or "5432"
    try:
        port = int(port_raw)
    except ValueError:
        port = 5432
    db = (os.getenv("POSTGRES_DB") or "").strip() or None
    user = (os.getenv("POSTGRES_USER") or "").strip() or None
    pw = (os.getenv("POSTGRES_PASSWORD") or "").strip() or None

    return StoreConfig(
        sqlite_path=sqlite_path,
        postgres_dsn=dsn,
        postgres_host=host,
        postgres_port=port,
        postgres_db=db,
        postgres_user=user,
        postgres_password=pw,
    )


def build_postgres_dsn(cfg: StoreConfig) -> Optional[str]:
    if cfg.postgres_dsn:
        return cfg.postgres_dsn
    if not (cfg.postgres_host and cfg.postgres_db and cfg.postgres_user and cfg.postgres_password):
        return None
    # psycopg's conninfo builder quotes/escapes special characters (spaces, quotes) in passwords.
    from psycopg.conninfo import make_conninfo

    return make_conninfo(
        host=cfg.postgres_host,
        port=cfg.postgres_port,
        dbname=cfg.postgres_db,
        user=cfg.postgres_user,
        password=cfg.postgres_password,
    )


def build_user_stores(cfg: StoreConfig) -> List[UserStore]:
    """
    Instantiate the configured stores, in lookup order: SQLite first, then Postgres.

    Each binding independently enables its backend; none, one, or both may be active.
    """
    stores: List[UserStore] = []
    if cfg.sqlite_path:
        from authgate.storage.sqlite_store import SqliteUserStore

        stores.append(SqliteUserStore(path=cfg.sqlite_path))

    dsn = build_postgres_dsn(cfg)
    if dsn:
        from authgate.storage.postgres_store import PostgresUserStore

        stores.append(PostgresUserStore(dsn=dsn))

    # Avoid logging secrets; backend names only.
    logger.info("User stores: %s", ", ".join(s.name for s in stores) or "none")
    return stores
