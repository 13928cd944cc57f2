"""
Backfill hourly/daily bars for a past range, then refresh platform metrics.

    python scripts/backfill.py --days 30
    python scripts/backfill.py --from 2025-01-01 --to 2025-02-01 --market 0xabc... --concurrency 5
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime, timedelta, timezone

# Add project root to path for direct script execution.
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from apps.collector.jobs.backfill import backfill
from packages.seismo.storage import get_db_pool

logger = logging.getLogger("backfill")


def _parse_date(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill historical bars from the trade feed")
    parser.add_argument("--from", dest="start", type=_parse_date, help="Range start (ISO date, UTC)")
    parser.add_argument("--to", dest="end", type=_parse_date, help="Range end (ISO date, UTC); default now")
    parser.add_argument(
        "--days",
        type=int,
        default=14,
        help="Range length ending at --to when --from is not given",
    )
    parser.add_argument(
        "--market",
        action="append",
        dest="markets",
        help="Market id to backfill (repeatable); default all active markets",
    )
    parser.add_argument("--concurrency", type=int, default=None, help="Workers (1-5)")
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    args = parse_args()
    end = args.end or datetime.now(timezone.utc)
    start = args.start or end - timedelta(days=args.days)
    if start >= end:
        logger.error("--from must be before --to")
        sys.exit(2)

    db = get_db_pool()
    if not db.health_check():
        logger.error("Database not available")
        sys.exit(1)

    try:
        totals = asyncio.run(
            backfill(start, end, market_ids=args.markets, concurrency=args.concurrency)
        )
        logger.info(f"Done: {totals}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
