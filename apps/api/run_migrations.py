#!/usr/bin/env python3
"""
Container entrypoint step: wait for the database, apply Alembic
migrations, and make sure the media upload directory exists.

Exits non-zero on any failure so the API never starts against an
unknown schema.
"""
import logging
import os
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from core.config import settings  # noqa: E402
from core.database import check_db_connection  # noqa: E402
from core.logging import setup_logging  # noqa: E402

logger = logging.getLogger("run_migrations")

DB_WAIT_ATTEMPTS = 30
DB_WAIT_SECONDS = 1


def wait_for_database(attempts: int = DB_WAIT_ATTEMPTS) -> bool:
    for attempt in range(1, attempts + 1):
        if check_db_connection():
            return True
        logger.info(f"Database unavailable, retrying ({attempt}/{attempts})")
        time.sleep(DB_WAIT_SECONDS)
    return False


def alembic_upgrade_head() -> None:
    from alembic import command
    from alembic.config import Config

    here = os.path.dirname(os.path.abspath(__file__))
    cfg = Config(os.path.join(here, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(here, "alembic"))
    command.upgrade(cfg, "head")


def ensure_uploads_dir() -> Path:
    path = Path(settings.UPLOADS_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def main() -> int:
    setup_logging()

    if not wait_for_database():
        logger.error("Database not ready, giving up")
        return 1

    try:
        alembic_upgrade_head()
    except Exception as e:
        logger.error(f"Alembic upgrade failed: {e}", exc_info=True)
        return 1
    logger.info("Migrations applied")

    try:
        uploads = ensure_uploads_dir()
    except OSError as e:
        logger.error(f"Cannot create uploads directory {settings.UPLOADS_DIR}: {e}")
        return 1
    logger.info(f"Uploads directory ready at {uploads}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
