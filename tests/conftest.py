"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable
from typing import Any

import pytest

from inbox_assistant.exceptions import ProviderNotFoundError
from inbox_assistant.llm import LanguageModel
from inbox_assistant.models import (
    CanonicalMessage,
    EmailAccount,
    EmailThread,
    MessageHeaders,
)
from inbox_assistant.providers.base import EmailProvider, ProviderCapability, WatchSubscription

_INSTRUCTION_MARKER = "Instruction for this part of the field:\n"


class FakeLLM(LanguageModel):
    """Language model double.

    Judge prompts (``json_format=True``) are answered by ``judge``; placeholder
    prompts by ``fill``, which receives the span's instruction text.
    """

    def __init__(
        self,
        judge: bool | Callable[[str], Any] = False,
        fill: dict[str, str] | Callable[[str], Any] | None = None,
    ) -> None:
        self.judge = judge
        self.fill = fill or {}
        self.calls: list[dict[str, Any]] = []

    @property
    def judge_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if c["json_format"]]

    @property
    def fill_calls(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if not c["json_format"]]

    async def generate(self, prompt: str, *, system: str | None = None, json_format: bool = False) -> str:
        self.calls.append({"prompt": prompt, "system": system, "json_format": json_format})

        if json_format:
            verdict = self.judge(prompt) if callable(self.judge) else self.judge
            if isinstance(verdict, Exception):
                raise verdict
            if isinstance(verdict, str):
                return verdict
            return json.dumps({"matched": bool(verdict), "reason": "fake judge"})

        instruction = prompt.split(_INSTRUCTION_MARKER, 1)[1].split("\n\n", 1)[0].strip()
        result = self.fill(instruction) if callable(self.fill) else self.fill.get(instruction, instruction.upper())
        if isinstance(result, Exception):
            raise result
        return result


class FakeProvider(EmailProvider):
    """In-memory provider recording every mutation."""

    def __init__(
        self,
        settings=None,
        *,
        name: str = "google",
        capabilities: frozenset[ProviderCapability] = frozenset({ProviderCapability.LABELS}),
        messages: list[CanonicalMessage] | None = None,
        unread_count: int = 0,
    ) -> None:
        super().__init__(settings)
        self.name = name
        self.capabilities = capabilities
        self.messages = {m.id: m for m in messages or []}
        self.unread_count = unread_count
        self.calls: list[tuple[str, str | None, dict[str, Any]]] = []
        self.failures: dict[str, Exception] = {}
        self.searches: list[tuple[str, int]] = []

    def _record(self, op: str, message: CanonicalMessage | None = None, **kwargs: Any) -> None:
        if op in self.failures:
            raise self.failures[op]
        self.calls.append((op, message.id if message else None, kwargs))

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]

    async def search_emails(self, query: str, max_results: int = 20) -> list[CanonicalMessage]:
        self.searches.append((query, max_results))
        return list(self.messages.values())[:max_results]

    async def get_message(self, message_id: str) -> CanonicalMessage:
        if "get_message" in self.failures:
            raise self.failures["get_message"]
        try:
            return self.messages[message_id]
        except KeyError:
            raise ProviderNotFoundError(f"message {message_id} not found") from None

    async def get_thread(self, thread_id: str) -> EmailThread:
        return EmailThread(
            id=thread_id,
            messages=tuple(m for m in self.messages.values() if m.thread_id == thread_id),
        )

    async def get_unread_inbox_count(self) -> int:
        if "get_unread_inbox_count" in self.failures:
            raise self.failures["get_unread_inbox_count"]
        return self.unread_count

    async def apply_label(self, message: CanonicalMessage, label: str) -> None:
        self._record("apply_label", message, label=label)

    async def move_to_folder(self, message: CanonicalMessage, folder_name: str) -> None:
        self.require(ProviderCapability.FOLDERS, "move_to_folder")
        self._record("move_to_folder", message, folder=folder_name)

    async def archive(self, message: CanonicalMessage) -> None:
        self._record("archive", message)

    async def mark_read(self, message: CanonicalMessage) -> None:
        self._record("mark_read", message)

    async def mark_spam(self, message: CanonicalMessage) -> None:
        self._record("mark_spam", message)

    async def draft_email(self, message: CanonicalMessage, **kwargs: Any) -> str:
        self._record("draft_email", message, **kwargs)
        return "draft-1"

    async def send_reply(self, message: CanonicalMessage, **kwargs: Any) -> None:
        self._record("send_reply", message, **kwargs)

    async def send_forward(self, message: CanonicalMessage, **kwargs: Any) -> None:
        self._record("send_forward", message, **kwargs)

    async def watch(self) -> WatchSubscription:
        self._record("watch")
        return WatchSubscription(subscription_id="sub-123", expiration_date=None)

    async def unwatch(self, subscription_id: str | None) -> None:
        self._record("unwatch", None, subscription_id=subscription_id)


class FakeWebhooks:
    """WebhookClient double."""

    def __init__(self, response: str = "ok", error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.posts: list[tuple[str, dict[str, Any]]] = []

    async def post_json(self, url: str, payload: dict[str, Any]) -> str:
        self.posts.append((url, payload))
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def mock_settings(tmp_path):
    """Provide mock settings for testing."""
    from inbox_assistant.config import Settings

    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.sqlite3'}",
        llm_host="http://test:11434",
        llm_model="test-model",
        retry_delay=0,
        provider_max_retries=2,
        llm_max_retries=1,
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def db_engine(mock_settings):
    """Temporary SQLite database with the schema applied."""
    from inbox_assistant.db import create_db_engine
    from inbox_assistant.repository.schema import ensure_schema

    engine = create_db_engine(mock_settings)
    ensure_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def account(db_engine) -> EmailAccount:
    from inbox_assistant.repository.account_repository import upsert_account

    return upsert_account(
        db_engine,
        email="user@example.com",
        provider="google",
        access_token="token",
        refresh_token="refresh",
    )


@pytest.fixture
def make_message() -> Callable[..., CanonicalMessage]:
    def _make(
        message_id: str = "msg-1",
        *,
        thread_id: str = "thread-1",
        sender: str = "Alice Example <alice@example.com>",
        to: str = "user@example.com",
        subject: str = "Quarterly invoice",
        body: str = "Please find the invoice attached.",
        labels: tuple[str, ...] = ("INBOX", "UNREAD"),
    ) -> CanonicalMessage:
        return CanonicalMessage(
            id=message_id,
            thread_id=thread_id,
            headers=MessageHeaders(
                **{
                    "from": sender,
                    "to": to,
                    "subject": subject,
                    "date": "Mon, 19 Oct 2026 09:00:00 +0000",
                    "message-id": f"<{message_id}@mail.example.com>",
                }
            ),
            snippet=body[:80],
            text_plain=body,
            label_ids=labels,
        )

    return _make


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_provider(mock_settings, make_message) -> FakeProvider:
    return FakeProvider(mock_settings, messages=[make_message()], unread_count=7)


@pytest.fixture
def fake_webhooks() -> FakeWebhooks:
    return FakeWebhooks()


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


@pytest.fixture
def sample_email_data() -> dict:
    """Gmail API message resource (format=full) with a plain, HTML and attached part."""
    return {
        "id": "msg123456",
        "threadId": "thread789",
        "historyId": "9001",
        "labelIds": ["INBOX", "UNREAD"],
        "snippet": "Weekly Newsletter &amp; Python Tips",
        "payload": {
            "mimeType": "multipart/mixed",
            "headers": [
                {"name": "Subject", "value": "Weekly Newsletter - Python Tips"},
                {"name": "From", "value": "Python News <newsletter@python.org>"},
                {"name": "To", "value": "user@example.com"},
                {"name": "Date", "value": "Mon, 19 Oct 2026 09:00:00 +0000"},
                {"name": "Message-ID", "value": "<abc@python.org>"},
                {"name": "X-Mailer", "value": "ignored"},
            ],
            "body": {"size": 0},
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "headers": [],
                    "body": {"size": 0},
                    "parts": [
                        {
                            "mimeType": "text/plain",
                            "headers": [{"name": "Content-Type", "value": "text/plain"}],
                            "body": {"data": _b64("Welcome to this week's Python tips!")},
                        },
                        {
                            "mimeType": "text/html",
                            "headers": [{"name": "Content-Type", "value": "text/html"}],
                            "body": {"data": _b64("<p>Welcome to this week's <b>Python</b> tips!</p>")},
                        },
                    ],
                },
                {
                    "mimeType": "application/pdf",
                    "filename": "tips.pdf",
                    "headers": [
                        {"name": "Content-Type", "value": "application/pdf"},
                        {"name": "Content-Disposition", "value": "attachment; filename=tips.pdf"},
                    ],
                    "body": {"attachmentId": "att-1", "size": 2048},
                },
                {
                    "mimeType": "image/png",
                    "filename": "logo.png",
                    "headers": [
                        {"name": "Content-Type", "value": "image/png"},
                        {"name": "Content-Disposition", "value": "inline; filename=logo.png"},
                        {"name": "Content-ID", "value": "<logo>"},
                    ],
                    "body": {"attachmentId": "att-2", "size": 512},
                },
            ],
        },
    }
