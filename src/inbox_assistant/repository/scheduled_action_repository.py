"""Deferred (delayed) rule actions.

Jobs are keyed by ``(rule_id, message_id, action_index)``. Status moves
``PENDING -> RUNNING -> EXECUTED | FAILED``; the PENDING -> RUNNING claim is a
single conditional UPDATE, so only one runner ever executes a job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from inbox_assistant.models import Action
from inbox_assistant.repository._util import from_ts, new_id, now_utc, to_ts

STATUS_PENDING = "PENDING"
STATUS_RUNNING = "RUNNING"
STATUS_EXECUTED = "EXECUTED"
STATUS_FAILED = "FAILED"


@dataclass(frozen=True)
class ScheduledAction:
    id: str
    email_account_id: str
    rule_id: str
    message_id: str
    thread_id: str
    action_index: int
    action: Action
    run_at: datetime
    status: str
    error: str | None = None


_COLUMNS = """
    id, email_account_id, rule_id, message_id, thread_id,
    action_index, action_json, run_at, status, error
"""


def _row_to_job(r) -> ScheduledAction:
    return ScheduledAction(
        id=r[0],
        email_account_id=r[1],
        rule_id=r[2],
        message_id=r[3],
        thread_id=r[4],
        action_index=int(r[5]),
        action=Action.model_validate_json(r[6]),
        run_at=from_ts(r[7]),
        status=r[8],
        error=r[9],
    )


def schedule_action(
    engine,
    *,
    account_id: str,
    rule_id: str,
    message_id: str,
    thread_id: str,
    action_index: int,
    action: Action,
    run_at: datetime,
) -> tuple[str, bool]:
    """Persist a deferred job; returns ``(job_id, created)``.

    Scheduling an existing key returns the existing job unchanged.
    """

    job_id = new_id()
    now = to_ts(now_utc())
    q = text(
        """
        INSERT INTO scheduled_action (
            id, email_account_id, rule_id, message_id, thread_id,
            action_index, action_json, run_at, status, created_at, updated_at
        )
        VALUES (
            :id, :account_id, :rule_id, :message_id, :thread_id,
            :action_index, :action_json, :run_at, :status, :now, :now
        )
        """
    )

    try:
        with engine.begin() as conn:
            conn.execute(
                q,
                {
                    "id": job_id,
                    "account_id": account_id,
                    "rule_id": rule_id,
                    "message_id": message_id,
                    "thread_id": thread_id,
                    "action_index": action_index,
                    "action_json": action.model_dump_json(by_alias=True, exclude_none=True),
                    "run_at": to_ts(run_at),
                    "status": STATUS_PENDING,
                    "now": now,
                },
            )
    except IntegrityError:
        existing = get_job_by_key(
            engine, rule_id=rule_id, message_id=message_id, action_index=action_index
        )
        if existing is None:
            raise
        return existing.id, False

    return job_id, True


def get_job(engine, job_id: str) -> ScheduledAction | None:
    q = text(f"SELECT {_COLUMNS} FROM scheduled_action WHERE id = :id")

    with engine.begin() as conn:
        row = conn.execute(q, {"id": job_id}).fetchone()

    return _row_to_job(row) if row else None


def get_job_by_key(
    engine, *, rule_id: str, message_id: str, action_index: int
) -> ScheduledAction | None:
    q = text(
        f"""
        SELECT {_COLUMNS}
        FROM scheduled_action
        WHERE rule_id = :rule_id
          AND message_id = :message_id
          AND action_index = :action_index
        """
    )

    with engine.begin() as conn:
        row = conn.execute(
            q, {"rule_id": rule_id, "message_id": message_id, "action_index": action_index}
        ).fetchone()

    return _row_to_job(row) if row else None


def list_due(engine, now: datetime, *, limit: int = 100) -> list[ScheduledAction]:
    q = text(
        f"""
        SELECT {_COLUMNS}
        FROM scheduled_action
        WHERE status = :status
          AND run_at <= :now
        ORDER BY run_at ASC
        LIMIT :limit
        """
    )

    with engine.begin() as conn:
        rows = conn.execute(
            q, {"status": STATUS_PENDING, "now": to_ts(now), "limit": limit}
        ).fetchall()

    return [_row_to_job(r) for r in rows]


def claim_job(engine, job_id: str) -> bool:
    """Atomically move a job from PENDING to RUNNING. False if someone else has it."""

    q = text(
        """
        UPDATE scheduled_action
        SET status = :running,
            updated_at = :now
        WHERE id = :id
          AND status = :pending
        """
    )

    with engine.begin() as conn:
        result = conn.execute(
            q,
            {
                "id": job_id,
                "running": STATUS_RUNNING,
                "pending": STATUS_PENDING,
                "now": to_ts(now_utc()),
            },
        )

    return result.rowcount == 1


def finish_job(engine, job_id: str, *, status: str, error: str | None = None) -> None:
    now = to_ts(now_utc())
    q = text(
        """
        UPDATE scheduled_action
        SET status = :status,
            error = :error,
            updated_at = :now,
            executed_at = :executed_at
        WHERE id = :id
        """
    )

    with engine.begin() as conn:
        conn.execute(
            q,
            {
                "id": job_id,
                "status": status,
                "error": error,
                "now": now,
                "executed_at": now if status == STATUS_EXECUTED else None,
            },
        )

