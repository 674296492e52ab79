"""Idempotent schema bootstrap.

The DDL is written to run unchanged on SQLite and Postgres: ids are text,
timestamps are ISO-8601 UTC strings and booleans use ``BOOLEAN``.
"""

from __future__ import annotations

import structlog
from sqlalchemy import text

logger = structlog.get_logger()

_DDL = (
    """
    CREATE TABLE IF NOT EXISTS email_account (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        provider TEXT NOT NULL,
        access_token TEXT,
        refresh_token TEXT,
        webhook_url TEXT,
        watch_subscription_id TEXT,
        watch_expiration_date TEXT,
        last_history_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rule (
        id TEXT PRIMARY KEY,
        email_account_id TEXT NOT NULL REFERENCES email_account(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        position INTEGER NOT NULL DEFAULT 0,
        enabled BOOLEAN NOT NULL DEFAULT TRUE,
        condition_json TEXT NOT NULL,
        actions_json TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_rule_account_position ON rule(email_account_id, position)",
    """
    CREATE TABLE IF NOT EXISTS thread_tracker (
        id TEXT PRIMARY KEY,
        email_account_id TEXT NOT NULL REFERENCES email_account(id) ON DELETE CASCADE,
        thread_id TEXT NOT NULL,
        message_id TEXT NOT NULL,
        type TEXT NOT NULL,
        resolved BOOLEAN NOT NULL DEFAULT FALSE,
        sent_at TEXT NOT NULL,
        reason TEXT,
        created_at TEXT NOT NULL,
        resolved_at TEXT
    )
    """,
    # At most one unresolved tracker per thread.
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_thread_tracker_unresolved
        ON thread_tracker(email_account_id, thread_id)
        WHERE NOT resolved
    """,
    """
    CREATE TABLE IF NOT EXISTS executed_rule (
        id TEXT PRIMARY KEY,
        email_account_id TEXT NOT NULL REFERENCES email_account(id) ON DELETE CASCADE,
        message_id TEXT NOT NULL,
        thread_id TEXT NOT NULL,
        rule_id TEXT NOT NULL,
        status TEXT NOT NULL,
        reason TEXT,
        outcomes_json TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (email_account_id, message_id, rule_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_executed_rule_message ON executed_rule(email_account_id, message_id)",
    """
    CREATE TABLE IF NOT EXISTS scheduled_action (
        id TEXT PRIMARY KEY,
        email_account_id TEXT NOT NULL REFERENCES email_account(id) ON DELETE CASCADE,
        rule_id TEXT NOT NULL,
        message_id TEXT NOT NULL,
        thread_id TEXT NOT NULL,
        action_index INTEGER NOT NULL,
        action_json TEXT NOT NULL,
        run_at TEXT NOT NULL,
        status TEXT NOT NULL,
        error TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        executed_at TEXT,
        UNIQUE (rule_id, message_id, action_index)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_scheduled_action_due ON scheduled_action(status, run_at)",
    """
    CREATE TABLE IF NOT EXISTS digest_item (
        id TEXT PRIMARY KEY,
        email_account_id TEXT NOT NULL REFERENCES email_account(id) ON DELETE CASCADE,
        rule_id TEXT NOT NULL,
        message_id TEXT NOT NULL,
        thread_id TEXT NOT NULL,
        subject TEXT,
        sender TEXT,
        snippet TEXT,
        created_at TEXT NOT NULL,
        sent_at TEXT,
        UNIQUE (email_account_id, message_id, rule_id)
    )
    """,
)


def ensure_schema(engine) -> None:
    """Ensure required tables and indexes exist (idempotent).

    Args:
        engine: SQLAlchemy engine bound to the SQLite or Postgres database.
    """

    with engine.begin() as conn:
        for statement in _DDL:
            conn.execute(text(statement))

    logger.info("db_schema_ensured", tables=6)
