"""Outbound webhook delivery."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import requests
import structlog

from inbox_assistant.config import Settings
from inbox_assistant.exceptions import WebhookDeliveryError
from inbox_assistant.models import CanonicalMessage

logger = structlog.get_logger()


class WebhookClient:
    """POST JSON payloads to user-configured URLs.

    Failures are not retried: a non-2xx status or a network error raises
    :class:`WebhookDeliveryError` and the caller reports it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        from inbox_assistant.config import get_settings

        self.settings = settings or get_settings()
        self._session = session or requests.Session()

    async def post_json(self, url: str, payload: dict[str, Any]) -> str:
        """Deliver ``payload`` and return the response body text."""
        return await asyncio.to_thread(self._post_sync, url, payload)

    def _post_sync(self, url: str, payload: dict[str, Any]) -> str:
        try:
            response = self._session.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.settings.webhook_timeout,
            )
        except requests.RequestException as exc:
            logger.error("webhook_delivery_failed", url=url, error=str(exc))
            raise WebhookDeliveryError(f"Webhook request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.error("webhook_delivery_failed", url=url, status_code=response.status_code)
            raise WebhookDeliveryError(
                f"Webhook returned {response.status_code}", status_code=response.status_code
            )

        logger.info("webhook_delivered", url=url, status_code=response.status_code)
        return response.text


def build_task_payload(
    *,
    thread_id: str,
    message_id: str,
    message: CanonicalMessage,
    title: str,
    description: str,
    priority: str | None = None,
    due_date: str | None = None,
) -> dict[str, Any]:
    task: dict[str, Any] = {
        "title": title,
        "description": description,
        "priority": priority or "medium",
    }
    if due_date:
        task["dueDate"] = due_date

    return {
        "action": "create_task",
        "task": task,
        "email": {
            "threadId": thread_id,
            "messageId": message_id,
            "subject": message.headers.subject,
            "from": message.headers.from_,
            "snippet": message.snippet,
            "date": message.headers.date,
        },
    }


def build_rule_payload(
    *,
    account_email: str,
    rule_id: str,
    rule_name: str,
    message: CanonicalMessage,
) -> dict[str, Any]:
    """Body sent by a CALL_WEBHOOK rule action."""

    return {
        "action": "rule_triggered",
        "account": account_email,
        "rule": {"id": rule_id, "name": rule_name},
        "email": {
            "threadId": message.thread_id,
            "messageId": message.id,
            "subject": message.headers.subject,
            "from": message.headers.from_,
            "to": message.headers.to,
            "snippet": message.snippet,
            "date": message.headers.date,
            "labels": list(message.label_ids),
        },
    }
