"""
Raw SQL queries for the scoring pipeline.
Centralized query definitions, one class per record type.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from packages.seismo.models import (
    AggregateBar,
    Baseline,
    Event,
    Granularity,
    Market,
    PlatformMetrics,
    PriceSnapshot,
    Score,
)
from packages.seismo.storage.db import get_db_pool


@dataclass
class CatalogQueries:
    """Events and their markets, as mirrored from the catalog feed."""

    @staticmethod
    def upsert_event(event: Event) -> None:
        db = get_db_pool()
        db.execute(
            """
            INSERT INTO events (
                event_id, slug, title, category, image, active, closed,
                liquidity, volume, volume_24h, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (event_id) DO UPDATE SET
                slug = EXCLUDED.slug,
                title = EXCLUDED.title,
                category = EXCLUDED.category,
                image = EXCLUDED.image,
                active = EXCLUDED.active,
                closed = EXCLUDED.closed,
                liquidity = EXCLUDED.liquidity,
                volume = EXCLUDED.volume,
                volume_24h = EXCLUDED.volume_24h,
                updated_at = NOW()
            """,
            (
                event.event_id, event.slug, event.title, event.category, event.image,
                event.active, event.closed, event.liquidity, event.volume, event.volume_24h,
            ),
        )

    @staticmethod
    def upsert_markets(markets: list[Market]) -> int:
        db = get_db_pool()
        return db.execute_many(
            """
            INSERT INTO markets (
                market_id, event_id, question, active, closed,
                last_trade_price, best_bid, best_ask, volume_24h, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (market_id) DO UPDATE SET
                event_id = EXCLUDED.event_id,
                question = EXCLUDED.question,
                active = EXCLUDED.active,
                closed = EXCLUDED.closed,
                last_trade_price = EXCLUDED.last_trade_price,
                best_bid = EXCLUDED.best_bid,
                best_ask = EXCLUDED.best_ask,
                volume_24h = EXCLUDED.volume_24h,
                updated_at = NOW()
            """,
            [
                (
                    m.market_id, m.event_id, m.question, m.active, m.closed,
                    m.last_trade_price, m.best_bid, m.best_ask, m.volume_24h,
                )
                for m in markets
            ],
        )

    @staticmethod
    def get_market(market_id: str) -> Optional[dict]:
        db = get_db_pool()
        rows = db.execute(
            "SELECT * FROM markets WHERE market_id = %s",
            (market_id,),
            fetch=True,
        )
        return rows[0] if rows else None

    @staticmethod
    def get_markets_for_event(event_id: str) -> list[dict]:
        """Markets of one event in a stable order (most active first)."""
        db = get_db_pool()
        return db.execute(
            """
            SELECT * FROM markets
            WHERE event_id = %s
            ORDER BY volume_24h DESC, market_id
            """,
            (event_id,),
            fetch=True,
        ) or []

    @staticmethod
    def get_active_events(limit: int = 100) -> list[dict]:
        db = get_db_pool()
        return db.execute(
            """
            SELECT * FROM events
            WHERE active = true AND closed = false
            ORDER BY volume_24h DESC
            LIMIT %s
            """,
            (limit,),
            fetch=True,
        ) or []

    @staticmethod
    def get_active_markets(limit: int = 100) -> list[dict]:
        db = get_db_pool()
        return db.execute(
            """
            SELECT * FROM markets
            WHERE active = true AND closed = false
            ORDER BY volume_24h DESC
            LIMIT %s
            """,
            (limit,),
            fetch=True,
        ) or []


@dataclass
class SnapshotQueries:
    """Raw adaptively-sampled price snapshots."""

    @staticmethod
    def get_latest_snapshot(
        market_id: str,
        before: Optional[datetime] = None,
    ) -> Optional[dict]:
        """Most recent snapshot for a market, optionally strictly before `before`."""
        db = get_db_pool()
        if before is None:
            rows = db.execute(
                """
                SELECT * FROM price_snapshots
                WHERE market_id = %s
                ORDER BY ts DESC
                LIMIT 1
                """,
                (market_id,),
                fetch=True,
            )
        else:
            rows = db.execute(
                """
                SELECT * FROM price_snapshots
                WHERE market_id = %s AND ts < %s
                ORDER BY ts DESC
                LIMIT 1
                """,
                (market_id, before),
                fetch=True,
            )
        return rows[0] if rows else None

    @staticmethod
    def insert_snapshots_batch(snapshots: list[PriceSnapshot]) -> int:
        """
        Insert snapshots; an existing (market_id, ts) is left untouched.

        Returns:
            Number of rows inserted
        """
        db = get_db_pool()
        return db.execute_many(
            """
            INSERT INTO price_snapshots (
                market_id, event_id, ts, price, volume_since, usd_volume_since
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (market_id, ts) DO NOTHING
            """,
            [
                (s.market_id, s.event_id, s.ts, s.price, s.volume_since, s.usd_volume_since)
                for s in snapshots
            ],
        )

    @staticmethod
    def get_snapshots_range(
        start: datetime,
        end: datetime,
        market_id: Optional[str] = None,
    ) -> list[dict]:
        """Snapshots in [start, end), ordered by market then time."""
        db = get_db_pool()
        if market_id is None:
            return db.execute(
                """
                SELECT * FROM price_snapshots
                WHERE ts >= %s AND ts < %s
                ORDER BY market_id, ts
                """,
                (start, end),
                fetch=True,
            ) or []
        return db.execute(
            """
            SELECT * FROM price_snapshots
            WHERE market_id = %s AND ts >= %s AND ts < %s
            ORDER BY ts
            """,
            (market_id, start, end),
            fetch=True,
        ) or []

    @staticmethod
    def delete_old_snapshots(cutoff: datetime, batch_size: int) -> int:
        """Delete at most `batch_size` snapshots older than `cutoff`."""
        db = get_db_pool()
        rows = db.execute(
            """
            WITH deleted AS (
                DELETE FROM price_snapshots
                WHERE ctid IN (
                    SELECT ctid FROM price_snapshots
                    WHERE ts < %s
                    LIMIT %s
                )
                RETURNING 1
            )
            SELECT COUNT(*) AS cnt FROM deleted
            """,
            (cutoff, batch_size),
            fetch=True,
        )
        return int(rows[0]["cnt"]) if rows else 0


@dataclass
class BarQueries:
    """Hourly and daily OHLC bars."""

    @staticmethod
    def upsert_bars(bars: list[AggregateBar]) -> int:
        """Insert or overwrite bars keyed by (market_id, granularity, bucket_start)."""
        db = get_db_pool()
        return db.execute_many(
            """
            INSERT INTO aggregate_bars (
                market_id, event_id, granularity, bucket_start, bucket_end,
                open, high, low, close, volume, usd_volume, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (market_id, granularity, bucket_start) DO UPDATE SET
                event_id = EXCLUDED.event_id,
                bucket_end = EXCLUDED.bucket_end,
                open = EXCLUDED.open,
                high = EXCLUDED.high,
                low = EXCLUDED.low,
                close = EXCLUDED.close,
                volume = EXCLUDED.volume,
                usd_volume = EXCLUDED.usd_volume,
                updated_at = NOW()
            """,
            [
                (
                    b.market_id, b.event_id, b.granularity.value, b.bucket_start, b.bucket_end,
                    b.open, b.high, b.low, b.close, b.volume, b.usd_volume,
                )
                for b in bars
            ],
        )

    @staticmethod
    def get_bars_range(
        granularity: Granularity,
        start: datetime,
        end: datetime,
        market_id: Optional[str] = None,
    ) -> list[dict]:
        """Bars whose bucket starts in [start, end), ordered by market then time."""
        db = get_db_pool()
        if market_id is None:
            return db.execute(
                """
                SELECT * FROM aggregate_bars
                WHERE granularity = %s AND bucket_start >= %s AND bucket_start < %s
                ORDER BY market_id, bucket_start
                """,
                (granularity.value, start, end),
                fetch=True,
            ) or []
        return db.execute(
            """
            SELECT * FROM aggregate_bars
            WHERE market_id = %s AND granularity = %s
              AND bucket_start >= %s AND bucket_start < %s
            ORDER BY bucket_start
            """,
            (market_id, granularity.value, start, end),
            fetch=True,
        ) or []

    @staticmethod
    def get_latest_bar(
        market_id: str,
        granularity: Granularity,
        before: datetime,
    ) -> Optional[dict]:
        db = get_db_pool()
        rows = db.execute(
            """
            SELECT * FROM aggregate_bars
            WHERE market_id = %s AND granularity = %s AND bucket_start < %s
            ORDER BY bucket_start DESC
            LIMIT 1
            """,
            (market_id, granularity.value, before),
            fetch=True,
        )
        return rows[0] if rows else None


@dataclass
class BaselineQueries:
    """One current baseline row per market."""

    @staticmethod
    def upsert_baseline(baseline: Baseline) -> None:
        db = get_db_pool()
        db.execute(
            """
            INSERT INTO baselines (
                market_id, computed_at,
                mean_ret_minute, std_ret_minute,
                mean_ret_hour, std_ret_hour,
                mean_ret_day, std_ret_day,
                sample_count, sample_days, avg_volume_per_minute
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (market_id) DO UPDATE SET
                computed_at = EXCLUDED.computed_at,
                mean_ret_minute = EXCLUDED.mean_ret_minute,
                std_ret_minute = EXCLUDED.std_ret_minute,
                mean_ret_hour = EXCLUDED.mean_ret_hour,
                std_ret_hour = EXCLUDED.std_ret_hour,
                mean_ret_day = EXCLUDED.mean_ret_day,
                std_ret_day = EXCLUDED.std_ret_day,
                sample_count = EXCLUDED.sample_count,
                sample_days = EXCLUDED.sample_days,
                avg_volume_per_minute = EXCLUDED.avg_volume_per_minute
            """,
            (
                baseline.market_id, baseline.computed_at,
                baseline.mean_ret_minute, baseline.std_ret_minute,
                baseline.mean_ret_hour, baseline.std_ret_hour,
                baseline.mean_ret_day, baseline.std_ret_day,
                baseline.sample_count, baseline.sample_days, baseline.avg_volume_per_minute,
            ),
        )

    @staticmethod
    def get_baseline(market_id: str) -> Optional[dict]:
        db = get_db_pool()
        rows = db.execute(
            "SELECT * FROM baselines WHERE market_id = %s",
            (market_id,),
            fetch=True,
        )
        return rows[0] if rows else None


@dataclass
class PlatformMetricsQueries:
    """Append-only time series of platform volume bands, per window."""

    @staticmethod
    def insert_metrics(metrics: PlatformMetrics) -> None:
        db = get_db_pool()
        db.execute(
            """
            INSERT INTO platform_metrics (
                window_label, computed_at, platform_usd,
                r_lo, r_hi, r_lo_ema, r_hi_ema, event_count
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                metrics.window, metrics.computed_at, metrics.platform_usd,
                metrics.r_lo, metrics.r_hi, metrics.r_lo_ema, metrics.r_hi_ema,
                metrics.event_count,
            ),
        )

    @staticmethod
    def get_latest_metrics(window: str) -> Optional[dict]:
        db = get_db_pool()
        rows = db.execute(
            """
            SELECT window_label AS window, computed_at, platform_usd,
                   r_lo, r_hi, r_lo_ema, r_hi_ema, event_count
            FROM platform_metrics
            WHERE window_label = %s
            ORDER BY computed_at DESC, id DESC
            LIMIT 1
            """,
            (window,),
            fetch=True,
        )
        return rows[0] if rows else None


_SCORE_COLUMNS = """
    event_id, window_label AS window, ts, seismo_score, base_score,
    volume_multiplier, z_factor, reversal_bonus,
    top_market_id, top_market_question, top_market_change, top_market_movement,
    top_market_prev_price, top_market_curr_price, top_market_volume, top_market_usd,
    market_movements, total_volume, active_markets
"""


@dataclass
class ScoreQueries:
    """Append-only score history; the latest row per (event, window) is current."""

    @staticmethod
    def insert_score(score: Score) -> None:
        db = get_db_pool()
        movements = [m.model_dump() for m in score.market_movements]
        db.execute(
            """
            INSERT INTO scores (
                event_id, window_label, ts, seismo_score, base_score,
                volume_multiplier, z_factor, reversal_bonus,
                top_market_id, top_market_question, top_market_change, top_market_movement,
                top_market_prev_price, top_market_curr_price, top_market_volume, top_market_usd,
                market_movements, total_volume, active_markets
            ) VALUES (
                %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s, %s, %s::jsonb, %s, %s
            )
            """,
            (
                score.event_id, score.window, score.ts, score.seismo_score, score.base_score,
                score.volume_multiplier, score.z_factor, score.reversal_bonus,
                score.top_market_id, score.top_market_question, score.top_market_change,
                score.top_market_movement, score.top_market_prev_price,
                score.top_market_curr_price, score.top_market_volume, score.top_market_usd,
                json.dumps(movements), score.total_volume, score.active_markets,
            ),
        )

    @staticmethod
    def get_latest_score(event_id: str, window: str) -> Optional[dict]:
        db = get_db_pool()
        rows = db.execute(
            f"""
            SELECT {_SCORE_COLUMNS}
            FROM scores
            WHERE event_id = %s AND window_label = %s
            ORDER BY ts DESC, id DESC
            LIMIT 1
            """,
            (event_id, window),
            fetch=True,
        )
        return rows[0] if rows else None

    @staticmethod
    def get_top_scores(window: str, limit: int = 20) -> list[dict]:
        """Most recent score per event for a window, highest score first."""
        db = get_db_pool()
        return db.execute(
            f"""
            SELECT * FROM (
                SELECT DISTINCT ON (event_id) {_SCORE_COLUMNS}
                FROM scores
                WHERE window_label = %s
                ORDER BY event_id, ts DESC, id DESC
            ) latest
            ORDER BY seismo_score DESC, ts DESC
            LIMIT %s
            """,
            (window, limit),
            fetch=True,
        ) or []


@dataclass
class SyncStateQueries:
    """Per-market sync tier and last fetch time."""

    @staticmethod
    def ensure_sync_state(market_id: str, tier: str) -> None:
        """Create a state row stamped at the epoch (immediately due); existing rows are left alone."""
        db = get_db_pool()
        db.execute(
            """
            INSERT INTO market_sync_state (market_id, last_trade_fetch_at, priority)
            VALUES (%s, to_timestamp(0), %s)
            ON CONFLICT (market_id) DO NOTHING
            """,
            (market_id, tier),
        )

    @staticmethod
    def set_priority(market_id: str, tier: str, score: int, now: datetime) -> None:
        """Write the tier, keeping an existing last-fetch time."""
        db = get_db_pool()
        db.execute(
            """
            INSERT INTO market_sync_state (
                market_id, last_trade_fetch_at, priority, priority_score, updated_at
            ) VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (market_id) DO UPDATE SET
                priority = EXCLUDED.priority,
                priority_score = EXCLUDED.priority_score,
                last_trade_fetch_at = COALESCE(
                    market_sync_state.last_trade_fetch_at,
                    EXCLUDED.last_trade_fetch_at
                ),
                updated_at = EXCLUDED.updated_at
            """,
            (market_id, now, tier, score, now),
        )

    @staticmethod
    def mark_fetched(market_id: str, fetched_at: datetime) -> None:
        db = get_db_pool()
        db.execute(
            """
            UPDATE market_sync_state
            SET last_trade_fetch_at = %s, updated_at = NOW()
            WHERE market_id = %s
            """,
            (fetched_at, market_id),
        )

    @staticmethod
    def get_markets_due(tier: str, cutoff: datetime, limit: int = 10) -> list[dict]:
        """Markets of a tier not fetched since `cutoff` (never-fetched first)."""
        db = get_db_pool()
        return db.execute(
            """
            SELECT s.market_id, s.priority, s.priority_score, s.last_trade_fetch_at,
                   m.event_id, m.question
            FROM market_sync_state s
            JOIN markets m ON m.market_id = s.market_id
            WHERE s.priority = %s
              AND (s.last_trade_fetch_at IS NULL OR s.last_trade_fetch_at < %s)
            ORDER BY s.last_trade_fetch_at ASC NULLS FIRST
            LIMIT %s
            """,
            (tier, cutoff, limit),
            fetch=True,
        ) or []


@dataclass
class StatusQueries:
    """Operator-facing key/value status (job runs, storage telemetry)."""

    @staticmethod
    def upsert_status(key: str, value: dict) -> None:
        db = get_db_pool()
        db.execute(
            """
            INSERT INTO system_status (key, value, updated_at)
            VALUES (%s, %s::jsonb, NOW())
            ON CONFLICT (key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_at = NOW()
            """,
            (key, json.dumps(value, default=str)),
        )

    @staticmethod
    def get_all_status() -> list[dict]:
        db = get_db_pool()
        return db.execute(
            "SELECT key, value, updated_at FROM system_status ORDER BY key",
            fetch=True,
        ) or []
