"""Email account repository."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import text

from inbox_assistant.exceptions import RepositoryError
from inbox_assistant.models import EmailAccount, WatchStatus
from inbox_assistant.repository._util import from_ts, new_id, now_utc, to_ts

_COLUMNS = """
    id,
    email,
    provider,
    access_token,
    refresh_token,
    webhook_url,
    watch_subscription_id,
    watch_expiration_date,
    last_history_id
"""


def _row_to_account(r) -> EmailAccount:
    return EmailAccount(
        id=r[0],
        email=r[1],
        provider=r[2],
        access_token=r[3],
        refresh_token=r[4],
        webhook_url=r[5],
        watch_subscription_id=r[6],
        watch_expiration_date=from_ts(r[7]),
        last_history_id=r[8],
    )


def get_account(engine, account_id: str) -> EmailAccount | None:
    q = text(f"SELECT {_COLUMNS} FROM email_account WHERE id = :id")

    with engine.begin() as conn:
        row = conn.execute(q, {"id": account_id}).fetchone()

    return _row_to_account(row) if row else None


def get_account_by_email(engine, email: str) -> EmailAccount | None:
    q = text(f"SELECT {_COLUMNS} FROM email_account WHERE lower(email) = lower(:email)")

    with engine.begin() as conn:
        row = conn.execute(q, {"email": email}).fetchone()

    return _row_to_account(row) if row else None


def list_accounts(engine) -> list[EmailAccount]:
    q = text(f"SELECT {_COLUMNS} FROM email_account ORDER BY created_at ASC")

    with engine.begin() as conn:
        rows = conn.execute(q).fetchall()

    return [_row_to_account(r) for r in rows]


def upsert_account(
    engine,
    *,
    email: str,
    provider: str,
    access_token: str | None = None,
    refresh_token: str | None = None,
    webhook_url: str | None = None,
    account_id: str | None = None,
) -> EmailAccount:
    """Insert or update an account keyed by email address."""

    now = to_ts(now_utc())
    existing = get_account_by_email(engine, email)

    if existing:
        q = text(
            """
            UPDATE email_account
            SET provider = :provider,
                access_token = COALESCE(:access_token, access_token),
                refresh_token = COALESCE(:refresh_token, refresh_token),
                webhook_url = COALESCE(:webhook_url, webhook_url),
                updated_at = :now
            WHERE id = :id
            """
        )
        params = {"id": existing.id}
    else:
        q = text(
            """
            INSERT INTO email_account (
                id, email, provider, access_token, refresh_token, webhook_url,
                created_at, updated_at
            )
            VALUES (
                :id, :email, :provider, :access_token, :refresh_token, :webhook_url,
                :now, :now
            )
            """
        )
        params = {"id": account_id or new_id(), "email": email}

    with engine.begin() as conn:
        conn.execute(
            q,
            {
                **params,
                "provider": provider,
                "access_token": access_token,
                "refresh_token": refresh_token,
                "webhook_url": webhook_url,
                "now": now,
            },
        )

    account = get_account(engine, params["id"])
    if account is None:
        raise RepositoryError(f"Email account {params['id']} was not found after upsert")
    return account


def set_webhook_url(engine, account_id: str, webhook_url: str | None) -> None:
    q = text("UPDATE email_account SET webhook_url = :url, updated_at = :now WHERE id = :id")

    with engine.begin() as conn:
        conn.execute(q, {"id": account_id, "url": webhook_url, "now": to_ts(now_utc())})


def set_watch_subscription(
    engine,
    account_id: str,
    *,
    subscription_id: str | None,
    expiration_date: datetime | None,
    history_id: str | None = None,
) -> None:
    q = text(
        """
        UPDATE email_account
        SET watch_subscription_id = :subscription_id,
            watch_expiration_date = :expiration_date,
            last_history_id = COALESCE(:history_id, last_history_id),
            updated_at = :now
        WHERE id = :id
        """
    )

    with engine.begin() as conn:
        conn.execute(
            q,
            {
                "id": account_id,
                "subscription_id": subscription_id,
                "expiration_date": to_ts(expiration_date),
                "history_id": history_id,
                "now": to_ts(now_utc()),
            },
        )


def clear_watch_subscription(engine, account_id: str) -> None:
    set_watch_subscription(engine, account_id, subscription_id=None, expiration_date=None)


def get_watch_status(engine, account_id: str) -> WatchStatus | None:
    """Read-only projection of the persisted subscription fields."""

    q = text(
        """
        SELECT watch_subscription_id, watch_expiration_date
        FROM email_account
        WHERE id = :id
        """
    )

    with engine.begin() as conn:
        row = conn.execute(q, {"id": account_id}).fetchone()

    if not row:
        return None

    return WatchStatus(
        is_watching=bool(row[0]),
        subscription_id=row[0],
        expiration_date=from_ts(row[1]),
    )
