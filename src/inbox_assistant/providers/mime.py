"""RFC 822 message construction for replies, forwards and drafts."""

from __future__ import annotations

import base64
from email.message import EmailMessage

from inbox_assistant.models import CanonicalMessage


def reply_subject(subject: str) -> str:
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}" if subject else "Re:"


def forward_subject(subject: str) -> str:
    if subject.lower().startswith(("fwd:", "fw:")):
        return subject
    return f"Fwd: {subject}" if subject else "Fwd:"


def _references(original: CanonicalMessage) -> str | None:
    message_id = original.headers.message_id
    refs = original.headers.references
    if refs and message_id:
        return f"{refs} {message_id}"
    return refs or message_id


def build_reply(
    original: CanonicalMessage,
    *,
    from_email: str,
    content: str,
    to: str | None = None,
    cc: str | None = None,
    bcc: str | None = None,
    subject: str | None = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to or original.headers.reply_to or original.sender
    if cc:
        msg["Cc"] = cc
    if bcc:
        msg["Bcc"] = bcc
    msg["Subject"] = subject or reply_subject(original.subject)
    if original.headers.message_id:
        msg["In-Reply-To"] = original.headers.message_id
    references = _references(original)
    if references:
        msg["References"] = references
    msg.set_content(content)
    return msg


def build_forward(
    original: CanonicalMessage,
    *,
    from_email: str,
    to: str,
    content: str | None = None,
    cc: str | None = None,
    bcc: str | None = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to
    if cc:
        msg["Cc"] = cc
    if bcc:
        msg["Bcc"] = bcc
    msg["Subject"] = forward_subject(original.subject)

    quoted = [
        "---------- Forwarded message ---------",
        f"From: {original.sender}",
        f"Date: {original.headers.date or ''}",
        f"Subject: {original.subject}",
        f"To: {original.headers.to or ''}",
        "",
        original.body_text(),
    ]
    body = "\n".join(quoted)
    if content:
        body = f"{content}\n\n{body}"
    msg.set_content(body)
    return msg


def encode_raw(msg: EmailMessage) -> str:
    """Base64url-encode a message for the Gmail ``raw`` field."""
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii")
