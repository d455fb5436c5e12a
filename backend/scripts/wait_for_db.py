"""Block until the configured database answers, then run migrations.

Used as the container entrypoint step before ``uvicorn``:

    python scripts/wait_for_db.py && uvicorn coursechat.main:create_app --factory
"""
from __future__ import annotations

import argparse
import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from coursechat.core.logging import configure_logging
from coursechat.core.settings import get_settings
from coursechat.db.session import build_engine

logger = logging.getLogger("wait_for_db")


def wait_for_database(timeout: float, interval: float) -> None:
    settings = get_settings()
    engine = build_engine(settings)
    deadline = time.monotonic() + timeout
    attempt = 0
    try:
        while True:
            attempt += 1
            try:
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
                logger.info("database_ready", extra={"event": f"attempt {attempt}"})
                return
            except OperationalError as exc:
                if time.monotonic() >= deadline:
                    raise SystemExit("Database not reachable within timeout") from exc
                logger.warning("database_unavailable", extra={"event": f"attempt {attempt}"})
                time.sleep(interval)
    finally:
        engine.dispose()


def upgrade_schema() -> None:
    from alembic import command
    from alembic.config import Config

    command.upgrade(Config("alembic.ini"), "head")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--timeout", type=float, default=30.0)
    parser.add_argument("--interval", type=float, default=2.0)
    parser.add_argument("--skip-migrations", action="store_true")
    args = parser.parse_args()

    configure_logging(level=get_settings().log_level)
    wait_for_database(args.timeout, args.interval)
    if not args.skip_migrations:
        upgrade_schema()


if __name__ == "__main__":
    main()
