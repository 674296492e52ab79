"""Gmail implementation of the provider interface.

Notes:
    The Google API client is synchronous. Calls are wrapped with
    `asyncio.to_thread` (see `EmailProvider._call`) so the rest of the codebase
    can remain async-friendly. The service wraps one `httplib2.Http`, so calls
    on one provider are serialized.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from inbox_assistant.config import Settings
from inbox_assistant.exceptions import (
    ConfigurationError,
    ProviderAuthExpiredError,
    ProviderError,
    ProviderNotFoundError,
    ProviderRateLimitedError,
    ProviderTransientError,
)
from inbox_assistant.models import (
    INBOX_LABEL,
    UNREAD_LABEL,
    CanonicalMessage,
    EmailAccount,
    EmailThread,
)
from inbox_assistant.providers.base import EmailProvider, ProviderCapability, WatchSubscription
from inbox_assistant.providers.gmail_parsing import message_to_canonical, thread_to_canonical
from inbox_assistant.providers.mime import build_forward, build_reply, encode_raw
from inbox_assistant.providers.query import SearchQuery

logger = structlog.get_logger()

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
SPAM_LABEL = "SPAM"

_RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded", "quotaExceeded"}


class GmailProvider(EmailProvider):
    """Gmail API provider for one connected account."""

    name = "google"
    capabilities = frozenset({ProviderCapability.LABELS})

    def __init__(
        self,
        account: EmailAccount,
        settings: Settings | None = None,
        service: Any | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            account: The connected Gmail account.
            settings: Application settings. If None, uses default settings.
            service: Prebuilt Gmail API service. If None, one is built lazily
                from the account's stored OAuth tokens.
        """
        super().__init__(settings)
        self.account = account
        self.user_id = "me"
        self._service = service
        self._label_ids: dict[str, str] | None = None
        # httplib2.Http is not thread-safe; one client call at a time per service.
        self._service_lock = threading.Lock()
        logger.info("gmail_provider_initialized", email=account.email)

    @property
    def service(self) -> Any:
        if self._service is None:
            self._service = self._build_service()
        return self._service

    def _build_service(self) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        import google_auth_httplib2
        import httplib2
        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        if not self.account.access_token and not self.account.refresh_token:
            raise ProviderAuthExpiredError(
                f"No Gmail credentials stored for {self.account.email}; re-authentication required"
            )

        creds = Credentials(
            token=self.account.access_token,
            refresh_token=self.account.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self.settings.google_client_id,
            client_secret=self.settings.google_client_secret,
        )
        http = google_auth_httplib2.AuthorizedHttp(
            creds, http=httplib2.Http(timeout=self.settings.provider_timeout)
        )
        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", http=http, cache_discovery=False)

    def _run_sync(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        with self._service_lock:
            return func(*args, **kwargs)

    def _translate_error(self, exc: Exception) -> ProviderError:
        from google.auth.exceptions import RefreshError, TransportError
        from googleapiclient.errors import HttpError

        if isinstance(exc, RefreshError):
            return ProviderAuthExpiredError(str(exc))
        if isinstance(exc, HttpError):
            status = int(getattr(exc.resp, "status", 0) or 0)
            reason = exc._get_reason() if hasattr(exc, "_get_reason") else str(exc)
            details = exc.error_details if isinstance(exc.error_details, list) else []
            reasons = {d.get("reason") for d in details if isinstance(d, dict)}
            if status == 401:
                return ProviderAuthExpiredError(reason)
            if status == 429 or (status == 403 and reasons & _RATE_LIMIT_REASONS):
                return ProviderRateLimitedError(reason)
            if status == 404:
                return ProviderNotFoundError(reason)
            if status >= 500:
                return ProviderTransientError(reason)
            return ProviderError(reason)
        if isinstance(exc, (TransportError, TimeoutError, ConnectionError, OSError)):
            return ProviderTransientError(str(exc))
        return ProviderError(str(exc))

    # Reads

    async def search_emails(self, query: str, max_results: int = 20) -> list[CanonicalMessage]:
        parsed = SearchQuery.parse(query)
        logger.info("gmail_search", query=str(parsed), max_results=max_results)

        ids = await self._call("list_messages", self._list_message_ids, str(parsed), max_results)
        return [await self.get_message(mid) for mid in ids]

    async def get_message(self, message_id: str) -> CanonicalMessage:
        raw = await self._call("get_message", self._get_message_sync, message_id)
        return message_to_canonical(raw)

    async def get_thread(self, thread_id: str) -> EmailThread:
        raw = await self._call("get_thread", self._get_thread_sync, thread_id)
        return thread_to_canonical(raw)

    async def get_unread_inbox_count(self) -> int:
        label = await self._call("get_label", self._get_label_sync, INBOX_LABEL)
        return int(label.get("messagesUnread") or 0)

    # Mutations

    async def apply_label(self, message: CanonicalMessage, label: str) -> None:
        label_id = await self._call("resolve_label", self._label_id_for, label, mutating=True)
        await self._call(
            "modify_message",
            self._modify_message_sync,
            message.id,
            [label_id],
            [],
            mutating=True,
        )

    async def move_to_folder(self, message: CanonicalMessage, folder_name: str) -> None:
        self.require(ProviderCapability.FOLDERS, "move_to_folder")

    async def archive(self, message: CanonicalMessage) -> None:
        await self._call(
            "archive", self._modify_thread_sync, message.thread_id, [], [INBOX_LABEL], mutating=True
        )

    async def mark_read(self, message: CanonicalMessage) -> None:
        await self._call(
            "mark_read", self._modify_thread_sync, message.thread_id, [], [UNREAD_LABEL], mutating=True
        )

    async def mark_spam(self, message: CanonicalMessage) -> None:
        await self._call(
            "mark_spam",
            self._modify_thread_sync,
            message.thread_id,
            [SPAM_LABEL],
            [INBOX_LABEL],
            mutating=True,
        )

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
        mime = build_reply(
            message,
            from_email=self.account.email,
            content=content,
            to=to,
            cc=cc,
            bcc=bcc,
            subject=subject,
        )
        body = {"message": {"raw": encode_raw(mime), "threadId": message.thread_id}}
        draft = await self._call("create_draft", self._create_draft_sync, body, mutating=True)
        return str(draft.get("id") or "")

    async def send_reply(
        self,
        message: CanonicalMessage,
        *,
        content: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> None:
        mime = build_reply(message, from_email=self.account.email, content=content, cc=cc, bcc=bcc)
        body = {"raw": encode_raw(mime), "threadId": message.thread_id}
        await self._call("send_reply", self._send_sync, body, mutating=True)

    async def send_forward(
        self,
        message: CanonicalMessage,
        *,
        to: str,
        content: str | None = None,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> None:
        mime = build_forward(
            message, from_email=self.account.email, to=to, content=content, cc=cc, bcc=bcc
        )
        await self._call("send_forward", self._send_sync, {"raw": encode_raw(mime)}, mutating=True)

    async def watch(self) -> WatchSubscription:
        topic = self.settings.google_pubsub_topic
        if not topic:
            raise ConfigurationError("INBOX_ASSISTANT_GOOGLE_PUBSUB_TOPIC is not configured")

        body = {"labelIds": [INBOX_LABEL], "labelFilterBehavior": "include", "topicName": topic}
        resp = await self._call("watch", self._watch_sync, body, mutating=True)

        expiration_ms = resp.get("expiration")
        expiration = (
            datetime.fromtimestamp(int(expiration_ms) / 1000.0, tz=timezone.utc)
            if expiration_ms
            else None
        )
        # Gmail has no subscription resource; the topic identifies the watch.
        return WatchSubscription(
            subscription_id=topic,
            expiration_date=expiration,
            history_id=str(resp["historyId"]) if resp.get("historyId") else None,
        )

    async def unwatch(self, subscription_id: str | None) -> None:
        await self._call("unwatch", self._stop_sync, mutating=True)

    # Synchronous API calls (run on a worker thread)

    def _list_message_ids(self, query: str, max_results: int) -> list[str]:
        ids: list[str] = []
        page_token: str | None = None
        while len(ids) < max_results:
            per_page = min(500, max_results - len(ids))
            response = (
                self.service.users()
                .messages()
                .list(userId=self.user_id, maxResults=per_page, q=query or None, pageToken=page_token)
                .execute()
            )
            for m in response.get("messages", []) or []:
                if m.get("id"):
                    ids.append(m["id"])
            page_token = response.get("nextPageToken")
            if page_token is None:
                break
        return ids[:max_results]

    def _get_message_sync(self, message_id: str) -> dict[str, Any]:
        return (
            self.service.users()
            .messages()
            .get(userId=self.user_id, id=message_id, format="full")
            .execute()
        )

    def _get_thread_sync(self, thread_id: str) -> dict[str, Any]:
        return (
            self.service.users()
            .threads()
            .get(userId=self.user_id, id=thread_id, format="full")
            .execute()
        )

    def _get_label_sync(self, label_id: str) -> dict[str, Any]:
        return self.service.users().labels().get(userId=self.user_id, id=label_id).execute()

    def _label_id_for(self, name: str) -> str:
        if self._label_ids is None:
            resp = self.service.users().labels().list(userId=self.user_id).execute()
            self._label_ids = {
                str(l["name"]).casefold(): str(l["id"])
                for l in resp.get("labels", []) or []
                if l.get("id") and l.get("name")
            }

        existing = self._label_ids.get(name.casefold())
        if existing:
            return existing

        created = (
            self.service.users()
            .labels()
            .create(
                userId=self.user_id,
                body={
                    "name": name,
                    "labelListVisibility": "labelShow",
                    "messageListVisibility": "show",
                },
            )
            .execute()
        )
        label_id = str(created["id"])
        self._label_ids[name.casefold()] = label_id
        logger.info("gmail_label_created", label=name, label_id=label_id)
        return label_id

    def _modify_message_sync(self, message_id: str, add: list[str], remove: list[str]) -> None:
        self.service.users().messages().modify(
            userId=self.user_id,
            id=message_id,
            body={"addLabelIds": add, "removeLabelIds": remove},
        ).execute()

    def _modify_thread_sync(self, thread_id: str, add: list[str], remove: list[str]) -> None:
        self.service.users().threads().modify(
            userId=self.user_id,
            id=thread_id,
            body={"addLabelIds": add, "removeLabelIds": remove},
        ).execute()

    def _create_draft_sync(self, body: dict[str, Any]) -> dict[str, Any]:
        return self.service.users().drafts().create(userId=self.user_id, body=body).execute()

    def _send_sync(self, body: dict[str, Any]) -> dict[str, Any]:
        return self.service.users().messages().send(userId=self.user_id, body=body).execute()

    def _watch_sync(self, body: dict[str, Any]) -> dict[str, Any]:
        return self.service.users().watch(userId=self.user_id, body=body).execute()

    def _stop_sync(self) -> None:
        self.service.users().stop(userId=self.user_id).execute()
