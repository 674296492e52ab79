"""Tools exposed to the conversational assistant.

Each tool is a thin operation over the email provider and the thread tracker.
:meth:`AssistantToolbox.run_tool` is the only entry point the LLM loop uses and
it never raises: every failure becomes ``{"success": False, "message": ...}``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.engine import Engine

from inbox_assistant.config import Settings
from inbox_assistant.exceptions import InboxAssistantError, WebhookDeliveryError
from inbox_assistant.models import CanonicalMessage, EmailAccount, ThreadTrackerType
from inbox_assistant.providers import EmailProvider, SearchQuery
from inbox_assistant.repository import tracker_repository
from inbox_assistant.utils import shielded
from inbox_assistant.webhooks import WebhookClient, build_task_payload

logger = structlog.get_logger()


class _ToolInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class GetTodaysEmailsInput(_ToolInput):
    hours: float = Field(default=24, gt=0, description="How many hours back to search (default: 24)")
    max_results: int = Field(
        default=20, ge=1, le=100, description="Maximum number of emails to return (default: 20)"
    )
    unread_only: bool = Field(default=True, description="Only return unread emails (default: true)")


class MarkNeedsReplyInput(_ToolInput):
    thread_id: str = Field(description="The thread ID to mark as needs reply")
    message_id: str = Field(description="The message ID within the thread")
    reason: Optional[str] = Field(default=None, description="Optional note about why this needs a reply")


class CreateTaskFromEmailInput(_ToolInput):
    thread_id: str = Field(description="The thread ID")
    message_id: str = Field(description="The message ID")
    task_title: str = Field(description="Short title for the task")
    task_description: str = Field(description="Description of what needs to be done")
    priority: Optional[Literal["low", "medium", "high"]] = Field(
        default=None, description="Task priority level"
    )
    due_date: Optional[str] = Field(default=None, description="Due date in ISO format (YYYY-MM-DD)")


class GetEmailDetailsInput(_ToolInput):
    message_id: str = Field(description="The message ID to retrieve")
    include_thread: bool = Field(default=False, description="Include other messages in the thread")


class GetInboxStatsInput(_ToolInput):
    pass


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[_ToolInput]
    mutating: bool = False


TOOLS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="getTodaysEmails",
        description=(
            "Get emails received today (or in the last N hours). Returns emails with subject, "
            "sender, and snippet. Use this to answer questions about today's inbox or recent "
            "important emails."
        ),
        input_model=GetTodaysEmailsInput,
    ),
    ToolSpec(
        name="markNeedsReply",
        description=(
            "Mark an email thread as 'needs reply'. This adds it to the user's reply tracking "
            "system so they can manage it later in the Reply Tracker."
        ),
        input_model=MarkNeedsReplyInput,
        mutating=True,
    ),
    ToolSpec(
        name="createTaskFromEmail",
        description=(
            "Create a task from an email by sending it to the user's configured task management "
            "webhook. Use this when an email requires action that should become a task."
        ),
        input_model=CreateTaskFromEmailInput,
        mutating=True,
    ),
    ToolSpec(
        name="getEmailDetails",
        description=(
            "Get full details of a specific email including complete message content, headers, "
            "and optionally the other messages in its thread."
        ),
        input_model=GetEmailDetailsInput,
    ),
    ToolSpec(
        name="getInboxStats",
        description=(
            "Get statistics about the user's inbox including unread count, threads needing "
            "reply, threads awaiting reply, and threads needing action."
        ),
        input_model=GetInboxStatsInput,
    ),
)

_TOOLS_BY_NAME = {t.name: t for t in TOOLS}


def tool_definitions() -> list[dict[str, Any]]:
    """Name, description and JSON-schema parameters for every tool."""

    return [
        {
            "name": t.name,
            "description": t.description,
            "parameters": t.input_model.model_json_schema(by_alias=True),
        }
        for t in TOOLS
    ]


def _failure(message: str) -> dict[str, Any]:
    return {"success": False, "message": message}


def _summary_row(message: CanonicalMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "threadId": message.thread_id,
        "from": message.headers.from_,
        "subject": message.headers.subject or "(No subject)",
        "snippet": message.snippet,
        "date": message.headers.date,
    }


class AssistantToolbox:
    """Tool implementations bound to one email account."""

    def __init__(
        self,
        engine: Engine,
        account: EmailAccount,
        provider: EmailProvider,
        settings: Optional[Settings] = None,
        webhooks: Optional[WebhookClient] = None,
    ) -> None:
        from inbox_assistant.config import get_settings

        self.engine = engine
        self.account = account
        self.provider = provider
        self.settings = settings or get_settings()
        self.webhooks = webhooks or WebhookClient(self.settings)
        self._handlers: dict[str, Callable[[Any], Awaitable[dict[str, Any]]]] = {
            "getTodaysEmails": self.get_todays_emails,
            "markNeedsReply": self.mark_needs_reply,
            "createTaskFromEmail": self.create_task_from_email,
            "getEmailDetails": self.get_email_details,
            "getInboxStats": self.get_inbox_stats,
        }

    async def run_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        logger.info("assistant_tool_call", tool=name, email=self.account.email)

        spec = _TOOLS_BY_NAME.get(name)
        if spec is None:
            return _failure(f"Unknown tool: {name}")

        try:
            params = spec.input_model.model_validate(arguments or {})
        except PydanticValidationError as exc:
            return _failure(f"Invalid arguments for {name}: {exc.errors(include_url=False)}")

        call = self._handlers[name](params)
        try:
            return await (shielded(call) if spec.mutating else call)
        except asyncio.CancelledError:
            raise
        except InboxAssistantError as exc:
            logger.warning(
                "assistant_tool_failed",
                tool=name,
                email=self.account.email,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return _failure(f"{name} failed: {exc}")
        except Exception as exc:
            logger.exception("assistant_tool_error", tool=name, email=self.account.email)
            return _failure(f"{name} failed unexpectedly: {exc}")

    async def get_todays_emails(self, params: GetTodaysEmailsInput) -> dict[str, Any]:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=params.hours)
        query = SearchQuery.received_since(cutoff, unread_only=params.unread_only)
        messages = await self.provider.search_emails(str(query), params.max_results)

        kind = "unread " if params.unread_only else ""
        hours = f"{params.hours:g}"
        if not messages:
            return {
                "count": 0,
                "emails": [],
                "summary": f"No {kind}emails found in the last {hours} hours.",
            }

        emails = [
            {**_summary_row(m), "labels": list(m.label_ids), "isUnread": m.is_unread}
            for m in messages
        ]
        return {
            "count": len(emails),
            "emails": emails,
            "summary": f"Found {len(emails)} {kind}emails in the last {hours} hours.",
        }

    async def mark_needs_reply(self, params: MarkNeedsReplyInput) -> dict[str, Any]:
        tracker, created = await asyncio.to_thread(
            tracker_repository.mark_needs_reply,
            self.engine,
            account_id=self.account.id,
            thread_id=params.thread_id,
            message_id=params.message_id,
            reason=params.reason,
        )
        message = (
            "Thread marked as needs reply. You can manage this in your Reply Tracker."
            if created
            else "This thread is already being tracked"
        )
        return {"success": True, "message": message, "trackerId": tracker.id}

    async def create_task_from_email(self, params: CreateTaskFromEmailInput) -> dict[str, Any]:
        url = self.account.webhook_url
        if not url:
            return _failure(
                "No webhook URL configured. Please configure a webhook in Settings to enable task creation."
            )

        message = await self.provider.get_message(params.message_id)
        payload = build_task_payload(
            thread_id=params.thread_id,
            message_id=params.message_id,
            message=message,
            title=params.task_title,
            description=params.task_description,
            priority=params.priority,
            due_date=params.due_date,
        )

        try:
            body = await self.webhooks.post_json(url, payload)
        except WebhookDeliveryError as exc:
            return _failure(f"Failed to create task: {exc}")

        return {
            "success": True,
            "message": f'Task created: "{params.task_title}"',
            "webhookResponse": body,
        }

    async def get_email_details(self, params: GetEmailDetailsInput) -> dict[str, Any]:
        message = await self.provider.get_message(params.message_id)

        result: dict[str, Any] = {
            "id": message.id,
            "threadId": message.thread_id,
            "from": message.headers.from_,
            "to": message.headers.to,
            "cc": message.headers.cc,
            "subject": message.headers.subject,
            "date": message.headers.date,
            "snippet": message.snippet,
            "textPlain": message.text_plain,
            "textHtml": message.text_html,
            "labels": list(message.label_ids),
            "attachments": [
                {"filename": a.filename, "mimeType": a.mime_type, "size": a.size}
                for a in message.attachments
            ],
        }

        if params.include_thread:
            thread = await self.provider.get_thread(message.thread_id)
            result["thread"] = [_summary_row(m) for m in thread.messages]

        return result

    async def get_inbox_stats(self, params: GetInboxStatsInput) -> dict[str, Any]:
        counts = await asyncio.to_thread(
            tracker_repository.count_unresolved_by_type, self.engine, self.account.id
        )

        unread: int | None = None
        if self.account.has_access_token:
            try:
                unread = await self.provider.get_unread_inbox_count()
            except InboxAssistantError as exc:
                logger.error("unread_count_failed", email=self.account.email, error=str(exc))

        needs_reply = counts[ThreadTrackerType.NEEDS_REPLY]
        awaiting = counts[ThreadTrackerType.AWAITING]
        needs_action = counts[ThreadTrackerType.NEEDS_ACTION]

        unread_text = f"{unread} unread emails in inbox" if unread is not None else "unread count unavailable"
        return {
            "unreadInInbox": unread,
            "needsReply": needs_reply,
            "awaitingReply": awaiting,
            "needsAction": needs_action,
            "summary": (
                f"{unread_text}, {needs_reply} threads need a reply, "
                f"{awaiting} awaiting a reply and {needs_action} need action."
            ),
        }
