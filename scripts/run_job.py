"""
Run one collector job once, outside the scheduler.

    python scripts/run_job.py compute_scores
    python scripts/run_job.py --list
"""

import argparse
import asyncio
import json
import logging
import os
import sys

# Add project root to path for direct script execution.
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from apps.collector.main import build_registry, run_job_once
from packages.seismo.storage import get_db_pool

logger = logging.getLogger("run_job")


def parse_args(job_names: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a single pipeline job once")
    parser.add_argument("job", nargs="?", choices=job_names, help="Job name")
    parser.add_argument("--list", action="store_true", help="List registered jobs and exit")
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    registry = build_registry()
    args = parse_args(sorted(registry))

    if args.list or not args.job:
        for name, job in sorted(registry.items()):
            print(f"{name:<20} every {job.interval_seconds}s")
        return

    db = get_db_pool()
    try:
        status = asyncio.run(run_job_once(registry[args.job]))
    finally:
        db.close()

    print(json.dumps(status, indent=2, default=str))
    if status["status"] != "ok":
        sys.exit(1)


if __name__ == "__main__":
    main()
