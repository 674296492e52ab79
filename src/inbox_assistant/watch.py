"""Push-notification subscription management."""

from __future__ import annotations

import asyncio

import structlog
from sqlalchemy.engine import Engine

from inbox_assistant.models import EmailAccount, WatchStatus
from inbox_assistant.providers import EmailProvider
from inbox_assistant.repository import account_repository

logger = structlog.get_logger()


async def start_watching(engine: Engine, account: EmailAccount, provider: EmailProvider) -> WatchStatus:
    """Subscribe to new-mail notifications and persist the subscription."""

    subscription = await provider.watch()
    await asyncio.to_thread(
        account_repository.set_watch_subscription,
        engine,
        account.id,
        subscription_id=subscription.subscription_id,
        expiration_date=subscription.expiration_date,
        history_id=subscription.history_id,
    )
    logger.info(
        "watch_started",
        email=account.email,
        provider=provider.name,
        subscription_id=subscription.subscription_id,
        expiration_date=subscription.expiration_date.isoformat() if subscription.expiration_date else None,
    )
    return WatchStatus(
        is_watching=bool(subscription.subscription_id),
        subscription_id=subscription.subscription_id,
        expiration_date=subscription.expiration_date,
    )


async def stop_watching(engine: Engine, account: EmailAccount, provider: EmailProvider) -> WatchStatus:
    """Cancel the provider subscription and clear the persisted fields."""

    await provider.unwatch(account.watch_subscription_id)
    await asyncio.to_thread(account_repository.clear_watch_subscription, engine, account.id)
    logger.info("watch_stopped", email=account.email, provider=provider.name)
    return WatchStatus(is_watching=False)


def get_watch_status(engine: Engine, account_id: str) -> WatchStatus | None:
    return account_repository.get_watch_status(engine, account_id)
