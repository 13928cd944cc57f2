"""
Pooled Postgres access (psycopg 3).

The database is the only shared mutable resource in the pipeline; every job
reads current state, computes, and upserts by natural key through this pool.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from packages.seismo.settings import settings

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


class DatabasePool:
    """Thin wrapper over a psycopg connection pool returning dict rows."""

    def __init__(self, conninfo: Optional[str] = None) -> None:
        self._conninfo = conninfo or settings.database_url
        self._pool: Optional[ConnectionPool] = None

    def initialize(self) -> None:
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        logger.info("Initializing database connection pool...")
        self._pool = ConnectionPool(
            conninfo=self._conninfo,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            timeout=settings.db_connection_timeout,
            open=True,
            kwargs={"row_factory": dict_row},
        )
        logger.info(
            f"Database pool initialized (min={settings.db_pool_min_size}, "
            f"max={settings.db_pool_max_size})"
        )

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            self.initialize()
        return self._pool

    @contextmanager
    def get_cursor(self) -> Generator[psycopg.Cursor, None, None]:
        """Cursor on a pooled connection; commits when the block exits cleanly."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                yield cur
            conn.commit()

    def execute(
        self,
        query: str,
        params: Optional[tuple] = None,
        fetch: bool = False,
    ) -> Optional[list[dict]]:
        """
        Execute a query with optional parameter binding.

        Returns:
            List of dicts if fetch=True, else None
        """
        with self.get_cursor() as cur:
            cur.execute(query, params)
            if fetch:
                return cur.fetchall()
        return None

    def execute_many(self, query: str, params_seq: list[tuple]) -> int:
        """Execute one statement per parameter tuple; returns affected row count."""
        if not params_seq:
            return 0
        with self.get_cursor() as cur:
            cur.executemany(query, params_seq)
            return cur.rowcount

    def apply_schema(self, path: Path = SCHEMA_PATH) -> None:
        """Create tables and indexes (idempotent DDL)."""
        ddl = path.read_text(encoding="utf-8")
        with self.get_cursor() as cur:
            cur.execute(ddl)
        logger.info(f"Applied schema from {path.name}")

    def health_check(self) -> bool:
        try:
            result = self.execute("SELECT 1 AS health", fetch=True)
            return bool(result)
        except psycopg.Error as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self) -> None:
        if self._pool is not None:
            logger.info("Closing database connection pool...")
            self._pool.close()
            self._pool = None


_db_pool: Optional[DatabasePool] = None


def get_db_pool() -> DatabasePool:
    """
    Get or create the database pool singleton.

    Usage:
        from packages.seismo.storage import get_db_pool

        db = get_db_pool()
        rows = db.execute("SELECT * FROM markets WHERE event_id = %s", (event_id,), fetch=True)
    """
    global _db_pool
    if _db_pool is None:
        _db_pool = DatabasePool()
        _db_pool.initialize()
    return _db_pool
