"""Provider-independent message model.

Every provider normalises its native message shape into :class:`CanonicalMessage`.
Instances are immutable snapshots: re-fetch instead of mutating.
"""

from __future__ import annotations

from email.utils import parseaddr

from pydantic import BaseModel, ConfigDict, Field

UNREAD_LABEL = "UNREAD"
INBOX_LABEL = "INBOX"


class MessageHeaders(BaseModel):
    """Parsed RFC 822 headers. Absent headers stay ``None``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    subject: str | None = None
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    date: str | None = None
    message_id: str | None = Field(default=None, alias="message-id")
    reply_to: str | None = Field(default=None, alias="reply-to")
    in_reply_to: str | None = Field(default=None, alias="in-reply-to")
    references: str | None = None

    def header_dict(self) -> dict[str, str]:
        """Return only the headers present on the original message."""
        return self.model_dump(by_alias=True, exclude_none=True)


class AttachmentHeaders(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    content_type: str = Field(default="", alias="content-type")
    content_description: str = Field(default="", alias="content-description")
    content_id: str | None = Field(default=None, alias="content-id")


class Attachment(BaseModel):
    """Descriptor for a file attached to a message (the bytes are not fetched)."""

    model_config = ConfigDict(frozen=True)

    filename: str
    mime_type: str
    size: int = 0
    attachment_id: str
    headers: AttachmentHeaders = Field(default_factory=AttachmentHeaders)


class CanonicalMessage(BaseModel):
    """A normalised email message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider message ID")
    thread_id: str = Field(description="Provider thread / conversation ID")
    history_id: str | None = Field(default=None, description="Provider change marker")
    headers: MessageHeaders = Field(default_factory=MessageHeaders)
    snippet: str = Field(default="", description="Decoded plain-text preview")
    text_plain: str | None = Field(default=None, description="Plain-text body")
    text_html: str | None = Field(default=None, description="HTML body")
    label_ids: tuple[str, ...] = Field(default=(), description="Canonical label identifiers")
    attachments: tuple[Attachment, ...] = Field(default=())
    inline: tuple[Attachment, ...] = Field(default=())

    @property
    def is_unread(self) -> bool:
        return UNREAD_LABEL in self.label_ids

    @property
    def subject(self) -> str:
        return self.headers.subject or ""

    @property
    def sender(self) -> str:
        return self.headers.from_ or ""

    @property
    def sender_email(self) -> str:
        return parseaddr(self.sender)[1].lower()

    def body_text(self, max_chars: int = 20_000) -> str:
        """Best-effort text body used for model prompts."""

        text = (self.text_plain or "").strip()
        if not text and self.text_html:
            from inbox_assistant.providers.html import html_to_text

            text = html_to_text(self.text_html)
        if not text:
            text = self.snippet
        return text[:max_chars]


class EmailThread(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    messages: tuple[CanonicalMessage, ...] = ()
