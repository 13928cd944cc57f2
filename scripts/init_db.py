import logging
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from packages.seismo.storage import get_db_pool


def main():
    """Create the pipeline tables and indexes (safe to re-run)."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    logger = logging.getLogger("init_db")

    db = get_db_pool()
    if not db.health_check():
        logger.error("Database not available")
        sys.exit(1)

    try:
        db.apply_schema()
        logger.info("Schema ready.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
