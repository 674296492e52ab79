"""Digest queue: messages a DIGEST action adds to the user's next digest email."""

from __future__ import annotations

from sqlalchemy import text

from inbox_assistant.models import CanonicalMessage
from inbox_assistant.repository._util import new_id, now_utc, to_ts


def enqueue_digest_item(engine, *, account_id: str, rule_id: str, message: CanonicalMessage) -> bool:
    """Add a message to the digest; returns False if it was already queued for this rule."""

    q = text(
        """
        INSERT INTO digest_item (
            id, email_account_id, rule_id, message_id, thread_id,
            subject, sender, snippet, created_at
        )
        VALUES (
            :id, :account_id, :rule_id, :message_id, :thread_id,
            :subject, :sender, :snippet, :now
        )
        ON CONFLICT (email_account_id, message_id, rule_id) DO NOTHING
        """
    )

    with engine.begin() as conn:
        result = conn.execute(
            q,
            {
                "id": new_id(),
                "account_id": account_id,
                "rule_id": rule_id,
                "message_id": message.id,
                "thread_id": message.thread_id,
                "subject": message.subject,
                "sender": message.sender,
                "snippet": message.snippet,
                "now": to_ts(now_utc()),
            },
        )

    return bool(result.rowcount)


def list_pending_digest(engine, account_id: str) -> list[dict[str, str | None]]:
    q = text(
        """
        SELECT id, rule_id, message_id, thread_id, subject, sender, snippet, created_at
        FROM digest_item
        WHERE email_account_id = :account_id
          AND sent_at IS NULL
        ORDER BY created_at ASC
        """
    )

    with engine.begin() as conn:
        rows = conn.execute(q, {"account_id": account_id}).fetchall()

    return [
        {
            "id": r[0],
            "rule_id": r[1],
            "message_id": r[2],
            "thread_id": r[3],
            "subject": r[4],
            "sender": r[5],
            "snippet": r[6],
            "created_at": r[7],
        }
        for r in rows
    ]


def mark_digest_sent(engine, item_ids: list[str]) -> None:
    if not item_ids:
        return

    q = text("UPDATE digest_item SET sent_at = :now WHERE id = :id")
    now = to_ts(now_utc())
    with engine.begin() as conn:
        conn.execute(q, [{"id": i, "now": now} for i in item_ids])
