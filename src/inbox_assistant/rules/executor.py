"""Execute resolved actions against the provider, digest queue, webhooks and trackers."""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from inbox_assistant.exceptions import ValidationError
from inbox_assistant.models import (
    ActionType,
    CanonicalMessage,
    EmailAccount,
    Rule,
    ThreadTrackerType,
)
from inbox_assistant.providers.base import EmailProvider, ProviderCapability
from inbox_assistant.repository import digest_repository, tracker_repository
from inbox_assistant.rules.resolver import ResolvedAction
from inbox_assistant.utils import shielded
from inbox_assistant.webhooks import WebhookClient, build_rule_payload

logger = structlog.get_logger()


class ActionExecutor:
    """Apply one resolved action.

    Every action is a side effect, so :meth:`execute` is shielded: cancelling
    the caller never leaves an action half-applied.
    """

    def __init__(
        self,
        engine: Engine,
        provider: EmailProvider,
        account: EmailAccount,
        webhooks: Optional[WebhookClient] = None,
    ) -> None:
        self.engine = engine
        self.provider = provider
        self.account = account
        self.webhooks = webhooks or WebhookClient(provider.settings)

    async def execute(self, message: CanonicalMessage, action: ResolvedAction, rule: Rule) -> str:
        """Run the action and return a short description of what was done."""
        return await shielded(self._execute(message, action, rule))

    async def _execute(self, message: CanonicalMessage, action: ResolvedAction, rule: Rule) -> str:
        f = action.fields
        t = action.type

        if t is ActionType.LABEL:
            await self.provider.apply_label(message, _required(f.label, "label", t))
            return f"labelled {f.label!r}"

        if t is ActionType.MOVE_FOLDER:
            self.provider.require(ProviderCapability.FOLDERS, "move_to_folder")
            folder = _required(f.folder_name, "folderName", t)
            await self.provider.move_to_folder(message, folder)
            return f"moved to {folder!r}"

        if t is ActionType.ARCHIVE:
            await self.provider.archive(message)
            return "archived"

        if t is ActionType.MARK_READ:
            await self.provider.mark_read(message)
            return "marked read"

        if t is ActionType.MARK_SPAM:
            await self.provider.mark_spam(message)
            return "marked spam"

        if t is ActionType.DRAFT_EMAIL:
            draft_id = await self.provider.draft_email(
                message,
                content=f.content or "",
                to=f.to,
                cc=f.cc,
                bcc=f.bcc,
                subject=f.subject,
            )
            await self._track(message, ThreadTrackerType.NEEDS_REPLY, f"Draft created by rule {rule.name!r}")
            return f"draft {draft_id} created"

        if t is ActionType.REPLY:
            await self.provider.send_reply(
                message,
                content=_required(f.content, "content", t),
                cc=f.cc,
                bcc=f.bcc,
            )
            await self._track(message, ThreadTrackerType.AWAITING, f"Replied by rule {rule.name!r}")
            return "reply sent"

        if t is ActionType.FORWARD:
            to = _required(f.to, "to", t)
            await self.provider.send_forward(message, to=to, content=f.content, cc=f.cc, bcc=f.bcc)
            return f"forwarded to {to}"

        if t is ActionType.DIGEST:
            added = await asyncio.to_thread(
                digest_repository.enqueue_digest_item,
                self.engine,
                account_id=self.account.id,
                rule_id=rule.id,
                message=message,
            )
            return "added to digest" if added else "already in digest"

        if t is ActionType.CALL_WEBHOOK:
            url = _required(f.webhook_url, "webhookUrl", t)
            payload = build_rule_payload(
                account_email=self.account.email,
                rule_id=rule.id,
                rule_name=rule.name,
                message=message,
            )
            await self.webhooks.post_json(url, payload)
            return "webhook called"

        raise ValidationError(f"Unknown action type: {t}")

    async def _track(self, message: CanonicalMessage, tracker_type: ThreadTrackerType, reason: str) -> None:
        tracker, created = await asyncio.to_thread(
            tracker_repository.supersede_tracker,
            self.engine,
            account_id=self.account.id,
            thread_id=message.thread_id,
            message_id=message.id,
            tracker_type=tracker_type,
            reason=reason,
        )
        logger.info(
            "rule_tracker_recorded",
            tracker_id=tracker.id,
            thread_id=message.thread_id,
            type=tracker_type.value,
            created=created,
        )


def _required(value: str | None, name: str, action_type: ActionType) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{action_type.value} requires '{name}'")
    return value
