"""Executed-rule records: the idempotency key for rule application.

A row keyed by (account, message, rule) is claimed before any side effect.
A second claim for the same key fails on the unique constraint, so a message
redelivered to the engine is never processed twice.
"""

from __future__ import annotations

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from inbox_assistant.repository._util import new_id, now_utc, to_ts

STATUS_APPLYING = "APPLYING"
STATUS_APPLIED = "APPLIED"
STATUS_PARTIAL = "PARTIALLY_FAILED"
STATUS_FAILED = "FAILED"
STATUS_NO_MATCH = "NO_MATCH"

# Rule id recorded when no rule matched the message.
NO_RULE = ""


def claim_execution(
    engine,
    *,
    account_id: str,
    message_id: str,
    thread_id: str,
    rule_id: str,
    status: str = STATUS_APPLYING,
    reason: str | None = None,
) -> str | None:
    """Insert the execution record; returns None if the key was already claimed."""

    execution_id = new_id()
    now = to_ts(now_utc())
    q = text(
        """
        INSERT INTO executed_rule (
            id, email_account_id, message_id, thread_id, rule_id,
            status, reason, created_at, updated_at
        )
        VALUES (
            :id, :account_id, :message_id, :thread_id, :rule_id,
            :status, :reason, :now, :now
        )
        """
    )

    try:
        with engine.begin() as conn:
            conn.execute(
                q,
                {
                    "id": execution_id,
                    "account_id": account_id,
                    "message_id": message_id,
                    "thread_id": thread_id,
                    "rule_id": rule_id,
                    "status": status,
                    "reason": reason,
                    "now": now,
                },
            )
    except IntegrityError:
        return None

    return execution_id


def complete_execution(
    engine,
    execution_id: str,
    *,
    status: str,
    outcomes: list[dict[str, Any]],
) -> None:
    q = text(
        """
        UPDATE executed_rule
        SET status = :status,
            outcomes_json = :outcomes_json,
            updated_at = :now
        WHERE id = :id
        """
    )

    with engine.begin() as conn:
        conn.execute(
            q,
            {
                "id": execution_id,
                "status": status,
                "outcomes_json": json.dumps(outcomes),
                "now": to_ts(now_utc()),
            },
        )


def has_processed(engine, *, account_id: str, message_id: str) -> bool:
    q = text(
        """
        SELECT 1
        FROM executed_rule
        WHERE email_account_id = :account_id
          AND message_id = :message_id
        LIMIT 1
        """
    )

    with engine.begin() as conn:
        row = conn.execute(q, {"account_id": account_id, "message_id": message_id}).fetchone()

    return row is not None


def get_execution(engine, *, account_id: str, message_id: str) -> dict[str, Any] | None:
    """Most recent execution record for a message, with decoded outcomes."""

    q = text(
        """
        SELECT id, rule_id, status, reason, outcomes_json
        FROM executed_rule
        WHERE email_account_id = :account_id
          AND message_id = :message_id
        ORDER BY created_at DESC
        LIMIT 1
        """
    )

    with engine.begin() as conn:
        row = conn.execute(q, {"account_id": account_id, "message_id": message_id}).fetchone()

    if not row:
        return None
    return {
        "id": row[0],
        "rule_id": row[1] or None,
        "status": row[2],
        "reason": row[3],
        "outcomes": json.loads(row[4]) if row[4] else [],
    }
