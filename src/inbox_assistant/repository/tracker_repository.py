"""Thread tracker repository.

At most one unresolved tracker may exist per (account, thread). Creation
checks for an existing unresolved tracker and inserts inside one transaction;
the partial unique index ``uq_thread_tracker_unresolved`` rejects the loser of
a concurrent race, which then re-reads and returns the winner's row.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from inbox_assistant.exceptions import RepositoryError
from inbox_assistant.models import ThreadTracker, ThreadTrackerType
from inbox_assistant.repository._util import from_ts, new_id, now_utc, to_ts

logger = structlog.get_logger()

DEFAULT_NEEDS_REPLY_REASON = "Marked as needs reply by AI assistant"

_COLUMNS = "id, email_account_id, thread_id, message_id, type, resolved, sent_at, reason"

_SELECT_UNRESOLVED = text(
    f"""
    SELECT {_COLUMNS}
    FROM thread_tracker
    WHERE email_account_id = :account_id
      AND thread_id = :thread_id
      AND NOT resolved
    """
)


def _row_to_tracker(r) -> ThreadTracker:
    return ThreadTracker(
        id=r[0],
        email_account_id=r[1],
        thread_id=r[2],
        message_id=r[3],
        type=ThreadTrackerType(r[4]),
        resolved=bool(r[5]),
        sent_at=from_ts(r[6]),
        reason=r[7],
    )


def create_tracker(
    engine,
    *,
    account_id: str,
    thread_id: str,
    message_id: str,
    tracker_type: ThreadTrackerType,
    reason: str | None = None,
    sent_at: datetime | None = None,
) -> tuple[ThreadTracker, bool]:
    """Create an unresolved tracker or return the existing one.

    Returns:
        ``(tracker, created)``; ``created`` is False when an unresolved tracker
        for the thread already existed.
    """

    key = {"account_id": account_id, "thread_id": thread_id}
    tracker_id = new_id()
    now = now_utc()

    try:
        with engine.begin() as conn:
            row = conn.execute(_SELECT_UNRESOLVED, key).fetchone()
            if row:
                return _row_to_tracker(row), False

            conn.execute(
                text(
                    """
                    INSERT INTO thread_tracker (
                        id, email_account_id, thread_id, message_id, type,
                        resolved, sent_at, reason, created_at
                    )
                    VALUES (
                        :id, :account_id, :thread_id, :message_id, :type,
                        :resolved, :sent_at, :reason, :created_at
                    )
                    """
                ),
                {
                    **key,
                    "id": tracker_id,
                    "message_id": message_id,
                    "type": tracker_type.value,
                    "resolved": False,
                    "sent_at": to_ts(sent_at or now),
                    "reason": reason,
                    "created_at": to_ts(now),
                },
            )
    except IntegrityError:
        with engine.begin() as conn:
            row = conn.execute(_SELECT_UNRESOLVED, key).fetchone()
        if not row:
            raise
        logger.info("thread_tracker_race_lost", account_id=account_id, thread_id=thread_id)
        return _row_to_tracker(row), False

    logger.info(
        "thread_tracker_created",
        account_id=account_id,
        thread_id=thread_id,
        tracker_id=tracker_id,
        type=tracker_type.value,
    )
    tracker = get_tracker(engine, tracker_id)
    if tracker is None:
        raise RepositoryError(f"Thread tracker {tracker_id} was not found after insert")
    return tracker, True


def mark_needs_reply(
    engine,
    *,
    account_id: str,
    thread_id: str,
    message_id: str,
    reason: str | None = None,
) -> tuple[ThreadTracker, bool]:
    return create_tracker(
        engine,
        account_id=account_id,
        thread_id=thread_id,
        message_id=message_id,
        tracker_type=ThreadTrackerType.NEEDS_REPLY,
        reason=reason or DEFAULT_NEEDS_REPLY_REASON,
    )


def get_tracker(engine, tracker_id: str) -> ThreadTracker | None:
    q = text(f"SELECT {_COLUMNS} FROM thread_tracker WHERE id = :id")

    with engine.begin() as conn:
        row = conn.execute(q, {"id": tracker_id}).fetchone()

    return _row_to_tracker(row) if row else None


def get_unresolved_for_thread(engine, *, account_id: str, thread_id: str) -> ThreadTracker | None:
    with engine.begin() as conn:
        row = conn.execute(_SELECT_UNRESOLVED, {"account_id": account_id, "thread_id": thread_id}).fetchone()

    return _row_to_tracker(row) if row else None


def resolve_tracker(engine, tracker_id: str) -> bool:
    """Mark a tracker resolved. Returns False if it was missing or already resolved."""

    q = text(
        """
        UPDATE thread_tracker
        SET resolved = :resolved,
            resolved_at = :now
        WHERE id = :id
          AND NOT resolved
        """
    )

    with engine.begin() as conn:
        result = conn.execute(q, {"id": tracker_id, "resolved": True, "now": to_ts(now_utc())})

    return bool(result.rowcount)


def list_unresolved(
    engine,
    account_id: str,
    *,
    tracker_type: ThreadTrackerType | None = None,
    limit: int = 100,
) -> list[ThreadTracker]:
    type_clause = "AND type = :type" if tracker_type else ""
    q = text(
        f"""
        SELECT {_COLUMNS}
        FROM thread_tracker
        WHERE email_account_id = :account_id
          AND NOT resolved
          {type_clause}
        ORDER BY sent_at DESC
        LIMIT :limit
        """
    )
    params: dict[str, object] = {"account_id": account_id, "limit": limit}
    if tracker_type:
        params["type"] = tracker_type.value

    with engine.begin() as conn:
        rows = conn.execute(q, params).fetchall()

    return [_row_to_tracker(r) for r in rows]


def count_unresolved_by_type(engine, account_id: str) -> dict[ThreadTrackerType, int]:
    """Unresolved tracker counts grouped by type; every type is present."""

    q = text(
        """
        SELECT type, COUNT(*)
        FROM thread_tracker
        WHERE email_account_id = :account_id
          AND NOT resolved
        GROUP BY type
        """
    )

    with engine.begin() as conn:
        rows = conn.execute(q, {"account_id": account_id}).fetchall()

    counts = {t: 0 for t in ThreadTrackerType}
    for r in rows:
        counts[ThreadTrackerType(r[0])] = int(r[1])
    return counts


def supersede_tracker(
    engine,
    *,
    account_id: str,
    thread_id: str,
    message_id: str,
    tracker_type: ThreadTrackerType,
    reason: str | None = None,
) -> tuple[ThreadTracker, bool]:
    """Record a new state for a thread, resolving an unresolved tracker of another type first."""

    existing = get_unresolved_for_thread(engine, account_id=account_id, thread_id=thread_id)
    if existing and existing.type is not tracker_type:
        resolve_tracker(engine, existing.id)

    return create_tracker(
        engine,
        account_id=account_id,
        thread_id=thread_id,
        message_id=message_id,
        tracker_type=tracker_type,
        reason=reason,
    )
