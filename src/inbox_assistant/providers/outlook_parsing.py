"""Mapping Microsoft Graph message JSON into the canonical model."""

from __future__ import annotations

from typing import Any

from inbox_assistant.models import (
    INBOX_LABEL,
    UNREAD_LABEL,
    Attachment,
    AttachmentHeaders,
    CanonicalMessage,
    MessageHeaders,
)
from inbox_assistant.providers.html import decode_snippet


def format_recipient(recipient: dict[str, Any] | None) -> str:
    address = (recipient or {}).get("emailAddress") or {}
    name = (address.get("name") or "").strip()
    addr = (address.get("address") or "").strip()
    if name and addr and name != addr:
        return f"{name} <{addr}>"
    return addr or name


def _join_recipients(recipients: list[dict[str, Any]] | None) -> str | None:
    values = [format_recipient(r) for r in recipients or []]
    values = [v for v in values if v]
    return ", ".join(values) if values else None


def _internet_headers(message: dict[str, Any]) -> dict[str, str]:
    result: dict[str, str] = {}
    for h in message.get("internetMessageHeaders") or []:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            result.setdefault(name.lower(), value)
    return result


def _to_attachment(raw: dict[str, Any]) -> Attachment:
    return Attachment(
        filename=raw.get("name") or "",
        mime_type=raw.get("contentType") or "application/octet-stream",
        size=int(raw.get("size") or 0),
        attachment_id=raw.get("id") or "",
        headers=AttachmentHeaders(
            **{
                "content-type": raw.get("contentType") or "",
                "content-description": raw.get("name") or "",
                "content-id": raw.get("contentId"),
            }
        ),
    )


def message_to_canonical(
    message: dict[str, Any],
    *,
    inbox_folder_id: str | None = None,
) -> CanonicalMessage:
    """Convert a Graph message resource to a CanonicalMessage.

    Unread state becomes the literal ``UNREAD`` label and Outlook categories
    become labels, so rule evaluation and the assistant tools see the same
    shape for every provider.
    """

    extra = _internet_headers(message)
    values = {
        "subject": message.get("subject"),
        "from": format_recipient(message.get("from")) or None,
        "to": _join_recipients(message.get("toRecipients")),
        "cc": _join_recipients(message.get("ccRecipients")),
        "bcc": _join_recipients(message.get("bccRecipients")),
        "date": message.get("receivedDateTime") or message.get("sentDateTime"),
        "message-id": message.get("internetMessageId"),
        "reply-to": _join_recipients(message.get("replyTo")),
        "in-reply-to": extra.get("in-reply-to"),
        "references": extra.get("references"),
    }
    headers = MessageHeaders(**{k: v for k, v in values.items() if v is not None})

    body = message.get("body") or {}
    content = body.get("content")
    is_html = (body.get("contentType") or "").lower() == "html"

    labels: list[str] = [str(c) for c in message.get("categories") or []]
    if message.get("isRead") is False:
        labels.append(UNREAD_LABEL)
    if inbox_folder_id and message.get("parentFolderId") == inbox_folder_id:
        labels.append(INBOX_LABEL)

    attachments: list[Attachment] = []
    inline: list[Attachment] = []
    for raw in message.get("attachments") or []:
        (inline if raw.get("isInline") else attachments).append(_to_attachment(raw))

    return CanonicalMessage(
        id=str(message.get("id") or ""),
        thread_id=str(message.get("conversationId") or ""),
        history_id=message.get("changeKey"),
        headers=headers,
        snippet=decode_snippet(message.get("bodyPreview")),
        text_plain=None if is_html else content,
        text_html=content if is_html else None,
        label_ids=tuple(labels),
        attachments=tuple(attachments),
        inline=tuple(inline),
    )
