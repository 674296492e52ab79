"""Microsoft Graph (Outlook) implementation of the provider interface."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from email.utils import getaddresses
from typing import Any

import requests
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
from inbox_assistant.models import CanonicalMessage, EmailAccount, EmailThread
from inbox_assistant.providers.base import EmailProvider, ProviderCapability, WatchSubscription
from inbox_assistant.providers.outlook_parsing import message_to_canonical
from inbox_assistant.providers.query import SearchQuery

logger = structlog.get_logger()

_MESSAGE_FIELDS = (
    "id,conversationId,changeKey,subject,from,toRecipients,ccRecipients,bccRecipients,"
    "replyTo,receivedDateTime,sentDateTime,internetMessageId,bodyPreview,body,isRead,"
    "categories,parentFolderId,hasAttachments,internetMessageHeaders"
)
# Attachment metadata only; get_message expands the full attachments.
_LIST_ATTACHMENTS = "attachments($select=id,name,contentType,size,isInline)"

# Graph caps mail subscriptions at just under three days.
_SUBSCRIPTION_LIFETIME = timedelta(minutes=4200)


def to_recipients(value: str | None) -> list[dict[str, Any]]:
    if not value:
        return []
    return [
        {"emailAddress": {"address": addr, "name": name or addr}}
        for name, addr in getaddresses([value])
        if addr
    ]


def _graph_datetime(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _escape_odata(value: str) -> str:
    return value.replace("'", "''")


class OutlookProvider(EmailProvider):
    """Microsoft Graph provider for one connected account.

    Outlook has folders and categories instead of labels: ``apply_label``
    categorizes the message and ``move_to_folder`` is supported.
    """

    name = "microsoft"
    capabilities = frozenset({ProviderCapability.CATEGORIES, ProviderCapability.FOLDERS})

    def __init__(
        self,
        account: EmailAccount,
        settings: Settings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(settings)
        self.account = account
        self.base_url = self.settings.microsoft_graph_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        self._inbox_folder_id: str | None = None
        self._folder_ids: dict[str, str] = {}
        logger.info("outlook_provider_initialized", email=account.email)

    def _translate_error(self, exc: Exception) -> ProviderError:
        if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
            return ProviderTransientError(str(exc))
        return ProviderError(str(exc))

    # Reads

    async def search_emails(self, query: str, max_results: int = 20) -> list[CanonicalMessage]:
        parsed = SearchQuery.parse(query)
        logger.info("outlook_search", query=str(parsed), max_results=max_results)

        path = "/me/mailFolders/inbox/messages" if parsed.in_inbox else "/me/messages"
        params: dict[str, Any] = {
            "$top": max_results,
            "$select": _MESSAGE_FIELDS,
            "$orderby": "receivedDateTime desc",
            "$expand": _LIST_ATTACHMENTS,
        }
        filters = self._build_filters(parsed)
        if filters:
            params["$filter"] = " and ".join(filters)

        inbox_id = await self._inbox_id()
        rows = await self._call("list_messages", self._list_sync, path, params, max_results)
        return [message_to_canonical(r, inbox_folder_id=inbox_id) for r in rows]

    async def get_message(self, message_id: str) -> CanonicalMessage:
        inbox_id = await self._inbox_id()
        raw = await self._call(
            "get_message",
            self._request,
            "GET",
            f"/me/messages/{message_id}",
            params={"$select": _MESSAGE_FIELDS, "$expand": "attachments"},
        )
        return message_to_canonical(raw, inbox_folder_id=inbox_id)

    async def get_thread(self, thread_id: str) -> EmailThread:
        inbox_id = await self._inbox_id()
        params = {
            "$filter": f"conversationId eq '{_escape_odata(thread_id)}'",
            "$select": _MESSAGE_FIELDS,
            "$top": 100,
            "$expand": _LIST_ATTACHMENTS,
        }
        rows = await self._call("get_thread", self._list_sync, "/me/messages", params, 100)
        rows.sort(key=lambda r: r.get("receivedDateTime") or "")
        return EmailThread(
            id=thread_id,
            messages=tuple(message_to_canonical(r, inbox_folder_id=inbox_id) for r in rows),
        )

    async def get_unread_inbox_count(self) -> int:
        folder = await self._call("get_inbox", self._request, "GET", "/me/mailFolders/inbox")
        return int(folder.get("unreadItemCount") or 0)

    # Mutations

    async def apply_label(self, message: CanonicalMessage, label: str) -> None:
        current = await self._call(
            "get_categories",
            self._request,
            "GET",
            f"/me/messages/{message.id}",
            params={"$select": "categories"},
        )
        categories = list(current.get("categories") or [])
        if label in categories:
            return
        await self._call(
            "categorize",
            self._request,
            "PATCH",
            f"/me/messages/{message.id}",
            json={"categories": [*categories, label]},
            mutating=True,
        )

    async def move_to_folder(self, message: CanonicalMessage, folder_name: str) -> None:
        folder_id = await self._call(
            "resolve_folder", self._folder_id_for, folder_name, mutating=True
        )
        await self._move(message, folder_id)

    async def archive(self, message: CanonicalMessage) -> None:
        await self._move(message, "archive")

    async def mark_read(self, message: CanonicalMessage) -> None:
        await self._call(
            "mark_read",
            self._request,
            "PATCH",
            f"/me/messages/{message.id}",
            json={"isRead": True},
            mutating=True,
        )

    async def mark_spam(self, message: CanonicalMessage) -> None:
        await self._move(message, "junkemail")

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
        draft = await self._call(
            "create_reply",
            self._request,
            "POST",
            f"/me/messages/{message.id}/createReply",
            json={"comment": content},
            mutating=True,
        )
        draft_id = str(draft.get("id") or "")

        patch: dict[str, Any] = {}
        if to:
            patch["toRecipients"] = to_recipients(to)
        if cc:
            patch["ccRecipients"] = to_recipients(cc)
        if bcc:
            patch["bccRecipients"] = to_recipients(bcc)
        if subject:
            patch["subject"] = subject
        if patch and draft_id:
            await self._call(
                "update_draft",
                self._request,
                "PATCH",
                f"/me/messages/{draft_id}",
                json=patch,
                mutating=True,
            )
        return draft_id

    async def send_reply(
        self,
        message: CanonicalMessage,
        *,
        content: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> None:
        body: dict[str, Any] = {"comment": content}
        extra = self._recipient_fields(cc=cc, bcc=bcc)
        if extra:
            body["message"] = extra
        await self._call(
            "send_reply",
            self._request,
            "POST",
            f"/me/messages/{message.id}/reply",
            json=body,
            mutating=True,
        )

    async def send_forward(
        self,
        message: CanonicalMessage,
        *,
        to: str,
        content: str | None = None,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> None:
        body: dict[str, Any] = {"comment": content or "", "toRecipients": to_recipients(to)}
        extra = self._recipient_fields(cc=cc, bcc=bcc)
        if extra:
            body["message"] = extra
        await self._call(
            "send_forward",
            self._request,
            "POST",
            f"/me/messages/{message.id}/forward",
            json=body,
            mutating=True,
        )

    async def watch(self) -> WatchSubscription:
        callback = self.settings.microsoft_notification_url
        if not callback:
            raise ConfigurationError("INBOX_ASSISTANT_MICROSOFT_NOTIFICATION_URL is not configured")

        expiration = datetime.now(timezone.utc) + _SUBSCRIPTION_LIFETIME
        body = {
            "changeType": "created",
            "notificationUrl": callback,
            "resource": "/me/mailFolders('inbox')/messages",
            "expirationDateTime": _graph_datetime(expiration),
            "clientState": self.account.id,
        }
        resp = await self._call("watch", self._request, "POST", "/subscriptions", json=body, mutating=True)

        raw_expiration = resp.get("expirationDateTime")
        return WatchSubscription(
            subscription_id=resp.get("id"),
            expiration_date=(
                datetime.fromisoformat(raw_expiration.replace("Z", "+00:00"))
                if raw_expiration
                else expiration
            ),
        )

    async def unwatch(self, subscription_id: str | None) -> None:
        if not subscription_id:
            return
        try:
            await self._call(
                "unwatch", self._request, "DELETE", f"/subscriptions/{subscription_id}", mutating=True
            )
        except ProviderNotFoundError:
            logger.info("outlook_subscription_already_gone", subscription_id=subscription_id)

    # Helpers

    @staticmethod
    def _build_filters(parsed: SearchQuery) -> list[str]:
        filters: list[str] = []
        # Graph requires the $orderby property to lead the $filter clause.
        after = parsed.after_datetime or datetime(1970, 1, 1, tzinfo=timezone.utc)
        if parsed.after is not None or parsed.unread or parsed.before is not None:
            filters.append(f"receivedDateTime ge {_graph_datetime(after)}")
        if parsed.before_datetime is not None:
            filters.append(f"receivedDateTime lt {_graph_datetime(parsed.before_datetime)}")
        if parsed.unread:
            filters.append("isRead eq false")
        return filters

    @staticmethod
    def _recipient_fields(*, cc: str | None, bcc: str | None) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if cc:
            fields["ccRecipients"] = to_recipients(cc)
        if bcc:
            fields["bccRecipients"] = to_recipients(bcc)
        return fields

    async def _inbox_id(self) -> str | None:
        if self._inbox_folder_id is None:
            folder = await self._call("get_inbox", self._request, "GET", "/me/mailFolders/inbox")
            self._inbox_folder_id = folder.get("id")
        return self._inbox_folder_id

    async def _move(self, message: CanonicalMessage, destination_id: str) -> None:
        await self._call(
            "move_message",
            self._request,
            "POST",
            f"/me/messages/{message.id}/move",
            json={"destinationId": destination_id},
            mutating=True,
        )

    # Synchronous HTTP calls (run on a worker thread)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        if not self.account.access_token:
            raise ProviderAuthExpiredError(
                f"No Microsoft access token stored for {self.account.email}; re-authentication required"
            )

        url = path if path.startswith("http") else f"{self.base_url}{path}"
        response = self._session.request(
            method,
            url,
            headers={"Authorization": f"Bearer {self.account.access_token}"},
            timeout=self.settings.provider_timeout,
            **kwargs,
        )
        if not response.ok:
            raise self._status_error(response)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    @staticmethod
    def _status_error(response: requests.Response) -> ProviderError:
        status = response.status_code
        detail = f"Graph {response.request.method if response.request else ''} HTTP {status}: {response.text[:300]}"
        if status == 401:
            return ProviderAuthExpiredError(detail)
        if status == 404:
            return ProviderNotFoundError(detail)
        if status == 429:
            return ProviderRateLimitedError(detail)
        if status >= 500:
            return ProviderTransientError(detail)
        return ProviderError(detail)

    def _list_sync(self, path: str, params: dict[str, Any], limit: int) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        data = self._request("GET", path, params=params)
        while True:
            rows.extend(data.get("value", []) or [])
            next_link = data.get("@odata.nextLink")
            if len(rows) >= limit or not next_link:
                break
            data = self._request("GET", next_link)
        return rows[:limit]

    def _folder_id_for(self, folder_name: str) -> str:
        key = folder_name.casefold()
        if key in self._folder_ids:
            return self._folder_ids[key]

        data = self._request(
            "GET",
            "/me/mailFolders",
            params={"$filter": f"displayName eq '{_escape_odata(folder_name)}'"},
        )
        folders = data.get("value", []) or []
        if folders:
            folder_id = str(folders[0]["id"])
        else:
            created = self._request("POST", "/me/mailFolders", json={"displayName": folder_name})
            folder_id = str(created["id"])
            logger.info("outlook_folder_created", folder=folder_name, folder_id=folder_id)

        self._folder_ids[key] = folder_id
        return folder_id
