"""Helpers for parsing Gmail API messages into the canonical model."""

from __future__ import annotations

import base64
from typing import Any

from inbox_assistant.models import (
    Attachment,
    AttachmentHeaders,
    CanonicalMessage,
    EmailThread,
    MessageHeaders,
)
from inbox_assistant.providers.html import decode_snippet

_CANONICAL_HEADERS = (
    "subject",
    "from",
    "to",
    "cc",
    "bcc",
    "date",
    "message-id",
    "reply-to",
    "in-reply-to",
    "references",
)


def _header_map(headers: list[dict[str, Any]] | None) -> dict[str, str]:
    result: dict[str, str] = {}
    for h in headers or []:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first.
            result.setdefault(name.lower(), value)
    return result


def decode_body(data: str | None) -> str:
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    raw = base64.urlsafe_b64decode(padded.encode("utf-8"))
    return raw.decode("utf-8", errors="replace")


def _walk_parts(part: dict[str, Any]) -> list[dict[str, Any]]:
    parts = [part]
    for child in part.get("parts") or []:
        parts.extend(_walk_parts(child))
    return parts


def _to_attachment(part: dict[str, Any], headers: dict[str, str]) -> Attachment:
    body = part.get("body") or {}
    return Attachment(
        filename=part.get("filename") or "",
        mime_type=part.get("mimeType") or "application/octet-stream",
        size=int(body.get("size") or 0),
        attachment_id=body.get("attachmentId") or "",
        headers=AttachmentHeaders(
            **{
                "content-type": headers.get("content-type", ""),
                "content-description": headers.get("content-description", ""),
                "content-id": headers.get("content-id"),
            }
        ),
    )


def _is_inline(headers: dict[str, str]) -> bool:
    disposition = headers.get("content-disposition", "").lower()
    return disposition.startswith("inline") or ("content-id" in headers and not disposition)


def message_to_canonical(message: dict[str, Any]) -> CanonicalMessage:
    """Convert a Gmail API message (format=full) to a CanonicalMessage."""

    payload = message.get("payload") or {}
    hm = _header_map(payload.get("headers"))
    headers = MessageHeaders(**{k: hm[k] for k in _CANONICAL_HEADERS if k in hm})

    text_plain: list[str] = []
    text_html: list[str] = []
    attachments: list[Attachment] = []
    inline: list[Attachment] = []

    for part in _walk_parts(payload):
        mime = (part.get("mimeType") or "").lower()
        body = part.get("body") or {}
        part_headers = _header_map(part.get("headers"))

        if part.get("filename") and body.get("attachmentId"):
            target = inline if _is_inline(part_headers) else attachments
            target.append(_to_attachment(part, part_headers))
            continue

        data = body.get("data")
        if not data:
            continue
        if mime.startswith("text/plain"):
            text_plain.append(decode_body(data))
        elif mime.startswith("text/html"):
            text_html.append(decode_body(data))

    label_ids = message.get("labelIds") or []
    if not isinstance(label_ids, list):
        label_ids = []

    return CanonicalMessage(
        id=str(message.get("id") or ""),
        thread_id=str(message.get("threadId") or ""),
        history_id=str(message["historyId"]) if message.get("historyId") else None,
        headers=headers,
        snippet=decode_snippet(message.get("snippet")),
        text_plain="\n\n".join(text_plain) if text_plain else None,
        text_html="\n".join(text_html) if text_html else None,
        label_ids=tuple(str(x) for x in label_ids if isinstance(x, str)),
        attachments=tuple(attachments),
        inline=tuple(inline),
    )


def thread_to_canonical(thread: dict[str, Any]) -> EmailThread:
    return EmailThread(
        id=str(thread.get("id") or ""),
        messages=tuple(message_to_canonical(m) for m in thread.get("messages") or []),
    )
