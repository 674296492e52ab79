"""Email provider interface.

Concrete providers wrap a synchronous API client. Calls are pushed onto a worker
thread with ``asyncio.to_thread`` so the rest of the codebase stays async, and
every call goes through :meth:`EmailProvider._call`, which maps native errors to
the provider taxonomy, retries rate-limited/transient failures and shields
mutations from caller cancellation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

import structlog

from inbox_assistant.config import Settings
from inbox_assistant.exceptions import (
    RETRYABLE_PROVIDER_ERRORS,
    ProviderError,
    UnsupportedCapabilityError,
)
from inbox_assistant.models import CanonicalMessage, EmailThread
from inbox_assistant.utils import retry_async, shielded

logger = structlog.get_logger()

T = TypeVar("T")


class ProviderCapability(str, Enum):
    LABELS = "labels"
    CATEGORIES = "categories"
    FOLDERS = "folders"


@dataclass(frozen=True)
class WatchSubscription:
    subscription_id: str | None
    expiration_date: datetime | None
    history_id: str | None = None


class EmailProvider:
    """Uniform interface over heterogeneous mail backends."""

    name: str = "base"
    capabilities: frozenset[ProviderCapability] = frozenset()

    def __init__(self, settings: Settings | None = None) -> None:
        from inbox_assistant.config import get_settings

        self.settings = settings or get_settings()

    def supports(self, capability: ProviderCapability) -> bool:
        return capability in self.capabilities

    def require(self, capability: ProviderCapability, operation: str) -> None:
        if not self.supports(capability):
            raise UnsupportedCapabilityError(
                f"{operation} is not supported by the {self.name} provider"
            )

    # Reads

    async def search_emails(self, query: str, max_results: int = 20) -> list[CanonicalMessage]:
        raise NotImplementedError

    async def get_message(self, message_id: str) -> CanonicalMessage:
        raise NotImplementedError

    async def get_thread(self, thread_id: str) -> EmailThread:
        raise NotImplementedError

    async def get_unread_inbox_count(self) -> int:
        raise NotImplementedError

    # Mutations

    async def apply_label(self, message: CanonicalMessage, label: str) -> None:
        raise NotImplementedError

    async def move_to_folder(self, message: CanonicalMessage, folder_name: str) -> None:
        raise NotImplementedError

    async def archive(self, message: CanonicalMessage) -> None:
        raise NotImplementedError

    async def mark_read(self, message: CanonicalMessage) -> None:
        raise NotImplementedError

    async def mark_spam(self, message: CanonicalMessage) -> None:
        raise NotImplementedError

    async def draft_email(
        self,
        message: CanonicalMessage,
        *,
        content: str,
        to: str | None = None,
        cc: str | None = None,
        bcc: str | None = None,
        subject: str | None = None,
    ) -> str:
        """Create a reply draft and return the draft id."""
        raise NotImplementedError

    async def send_reply(
        self,
        message: CanonicalMessage,
        *,
        content: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> None:
        raise NotImplementedError

    async def send_forward(
        self,
        message: CanonicalMessage,
        *,
        to: str,
        content: str | None = None,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> None:
        raise NotImplementedError

    async def watch(self) -> WatchSubscription:
        raise NotImplementedError

    async def unwatch(self, subscription_id: str | None) -> None:
        raise NotImplementedError

    # Plumbing

    def _translate_error(self, exc: Exception) -> ProviderError:
        return ProviderError(str(exc))

    def _run_sync(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run one synchronous client call on the worker thread."""
        return func(*args, **kwargs)

    async def _call(
        self,
        operation: str,
        func: Callable[..., T],
        *args: Any,
        mutating: bool = False,
        **kwargs: Any,
    ) -> T:
        async def attempt() -> T:
            try:
                return await asyncio.to_thread(self._run_sync, func, *args, **kwargs)
            except ProviderError:
                raise
            except Exception as exc:
                error = self._translate_error(exc)
                logger.warning(
                    "provider_call_failed",
                    provider=self.name,
                    operation=operation,
                    error_type=type(error).__name__,
                    error=str(exc),
                )
                raise error from exc

        call = retry_async(
            attempt,
            max_retries=self.settings.provider_max_retries,
            delay=self.settings.retry_delay,
            backoff=self.settings.retry_backoff,
            retry_on=RETRYABLE_PROVIDER_ERRORS,
            operation=f"{self.name}.{operation}",
        )
        if mutating:
            return await shielded(call)
        return await call
