#!/usr/bin/env python3
"""Create the database tables on startup.

Waits for the database to accept connections, then creates any missing
tables for the API server and the Celery workers.
"""
import logging
import sys
import time
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError

# Add parent directory to path so we can import the application package
sys.path.insert(0, str(Path(__file__).parent.parent))

from user_manager.core.config import get_settings
from user_manager.models import Base

logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s - %(message)s",
)


def wait_for_db(database_url: str, max_retries: int = 30, retry_interval: int = 2) -> bool:
    """Wait for database to become available.

    Args:
        database_url: SQLAlchemy database URL
        max_retries: Maximum number of connection attempts
        retry_interval: Seconds to wait between retries

    Returns:
        True if database is available, False otherwise
    """
    logger.info("Waiting for database to become available...")
    engine = create_engine(database_url, pool_pre_ping=True)

    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection established")
            engine.dispose()
            return True
        except OperationalError as e:
            if attempt == max_retries:
                logger.error(f"Failed to connect to database after {max_retries} attempts: {e}")
                engine.dispose()
                return False
            logger.warning(f"Attempt {attempt}/{max_retries} failed, retrying in {retry_interval}s...")
            time.sleep(retry_interval)

    return False


def main() -> int:
    settings = get_settings()
    if not wait_for_db(settings.database_url):
        return 1

    engine = create_engine(settings.database_url, future=True)
    Base.metadata.create_all(engine)
    engine.dispose()
    logger.info("Database tables are up to date")
    return 0


if __name__ == "__main__":
    sys.exit(main())
