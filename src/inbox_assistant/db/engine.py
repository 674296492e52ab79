"""SQLAlchemy engine construction.

SQLite and Postgres are both supported. Repository functions are synchronous;
async callers push them onto a worker thread, so SQLite connections must be
usable from threads other than the one that opened them.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from inbox_assistant.config import Settings

logger = structlog.get_logger()


def create_db_engine(settings: Optional[Settings] = None, url: Optional[str] = None) -> Engine:
    from inbox_assistant.config import get_settings

    settings = settings or get_settings()
    url = url or settings.database_url

    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn: Any, _record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    else:
        engine = create_engine(url, pool_pre_ping=True)

    logger.info("db_engine_created", dialect=engine.dialect.name)
    return engine


@lru_cache
def get_engine() -> Engine:
    """Get the cached process-wide engine for the configured database."""
    return create_db_engine()
