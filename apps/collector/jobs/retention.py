"""
Data retention job with per-table policies and storage telemetry.

Append-only tables grow without bound; this job trims each to its horizon in
bounded batches and records table sizes for operators.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from packages.seismo.settings import settings
from packages.seismo.storage.db import get_db_pool
from packages.seismo.storage.queries import StatusQueries

logger = logging.getLogger(__name__)

TABLES_FOR_SIZE_TELEMETRY = [
    "price_snapshots",
    "aggregate_bars",
    "scores",
    "platform_metrics",
    "baselines",
    "market_sync_state",
]


def retention_policies() -> dict[str, tuple[str, timedelta]]:
    """table_name -> (timestamp_column, horizon)"""
    return {
        "price_snapshots": ("ts", timedelta(hours=settings.snapshot_retention_hours)),
        "scores": ("ts", timedelta(days=settings.score_retention_days)),
        "platform_metrics": ("computed_at", timedelta(days=settings.platform_metrics_retention_days)),
    }


def _safe_count(row: Optional[dict], key: str = "cnt") -> int:
    if not row:
        return 0
    value = row.get(key)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


async def _delete_with_batch(
    db,
    table: str,
    ts_column: str,
    cutoff: datetime,
    batch_size: int,
    max_batches: int,
) -> int:
    """Delete rows older than cutoff, at most max_batches batches; return total deleted."""
    total_deleted = 0

    for _ in range(max_batches):
        rows = await asyncio.to_thread(
            db.execute,
            f"""
            WITH deleted AS (
                DELETE FROM {table}
                WHERE ctid IN (
                    SELECT ctid
                    FROM {table}
                    WHERE {ts_column} < %s
                    LIMIT %s
                )
                RETURNING 1
            )
            SELECT COUNT(*) AS cnt FROM deleted
            """,
            (cutoff, batch_size),
            fetch=True,
        )
        deleted = _safe_count(rows[0] if rows else None)
        total_deleted += deleted
        if deleted < batch_size:
            break
        await asyncio.sleep(0.05)

    return total_deleted


async def run_retention_cleanup(now: Optional[datetime] = None) -> dict:
    """
    Apply retention policies and emit storage telemetry to system_status.
    """
    db = get_db_pool()
    now = now or datetime.now(timezone.utc)
    started_at = time.time()
    policies = retention_policies()

    deleted_by_table: dict[str, int] = {}
    for table, (ts_column, horizon) in policies.items():
        try:
            deleted_by_table[table] = await _delete_with_batch(
                db=db,
                table=table,
                ts_column=ts_column,
                cutoff=now - horizon,
                batch_size=settings.retention_batch_size,
                max_batches=settings.retention_max_batches,
            )
        except Exception as e:
            logger.warning(f"Retention failed for {table}: {e}")
            deleted_by_table[table] = -1

    size_rows = await asyncio.to_thread(
        db.execute,
        """
        SELECT
            c.relname AS table_name,
            pg_total_relation_size(c.oid) AS bytes,
            pg_size_pretty(pg_total_relation_size(c.oid)) AS size_pretty
        FROM pg_class c
        JOIN pg_namespace n ON c.relnamespace = n.oid
        WHERE n.nspname = 'public'
          AND c.relkind = 'r'
          AND c.relname = ANY(%s)
        ORDER BY bytes DESC
        """,
        (TABLES_FOR_SIZE_TELEMETRY,),
        fetch=True,
    )

    db_size_rows = await asyncio.to_thread(
        db.execute,
        """
        SELECT
            pg_database_size(current_database()) AS db_size_bytes,
            pg_size_pretty(pg_database_size(current_database())) AS db_size_pretty
        """,
        fetch=True,
    )

    table_sizes = {
        r["table_name"]: {
            "bytes": int(r["bytes"]),
            "pretty": r["size_pretty"],
        }
        for r in (size_rows or [])
    }
    db_size = (db_size_rows or [{}])[0]

    telemetry = {
        "timestamp": now.isoformat(),
        "elapsed_seconds": round(time.time() - started_at, 3),
        "retention_hours": {
            t: round(h.total_seconds() / 3600, 2) for t, (_, h) in policies.items()
        },
        "deleted_by_table": deleted_by_table,
        "table_sizes": table_sizes,
        "db_size_bytes": int(db_size.get("db_size_bytes") or 0),
        "db_size_pretty": db_size.get("db_size_pretty") or "unknown",
    }

    await asyncio.to_thread(StatusQueries.upsert_status, "storage_metrics", telemetry)

    logger.info(
        "Retention cleanup complete: "
        f"{deleted_by_table} | db_size={telemetry['db_size_pretty']}"
    )
    return telemetry
