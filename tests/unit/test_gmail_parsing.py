"""Unit tests for Gmail API message parsing."""

from inbox_assistant.providers.gmail_parsing import (
    decode_body,
    message_to_canonical,
    thread_to_canonical,
)
from inbox_assistant.providers.html import decode_snippet, html_to_text


class TestGmailParsing:
    """Test suite for Gmail message parsing."""

    def test_headers_are_normalised(self, sample_email_data: dict) -> None:
        """Only canonical headers are kept, keyed by lower-case name."""
        message = message_to_canonical(sample_email_data)

        assert message.id == "msg123456"
        assert message.thread_id == "thread789"
        assert message.history_id == "9001"
        assert message.subject == "Weekly Newsletter - Python Tips"
        assert message.sender_email == "newsletter@python.org"
        assert message.headers.message_id == "<abc@python.org>"
        assert "x-mailer" not in message.headers.header_dict()

    def test_bodies_are_decoded(self, sample_email_data: dict) -> None:
        """Nested text/plain and text/html parts are base64url-decoded."""
        message = message_to_canonical(sample_email_data)

        assert message.text_plain == "Welcome to this week's Python tips!"
        assert message.text_html is not None
        assert "<b>Python</b>" in message.text_html

    def test_attachments_and_inline_are_split(self, sample_email_data: dict) -> None:
        """Parts with a disposition of inline are kept separately."""
        message = message_to_canonical(sample_email_data)

        assert [a.filename for a in message.attachments] == ["tips.pdf"]
        assert message.attachments[0].attachment_id == "att-1"
        assert message.attachments[0].size == 2048
        assert [a.filename for a in message.inline] == ["logo.png"]
        assert message.inline[0].headers.content_id == "<logo>"

    def test_snippet_entities_decoded(self, sample_email_data: dict) -> None:
        """HTML entities Gmail leaves in snippets are unescaped."""
        message = message_to_canonical(sample_email_data)

        assert message.snippet == "Weekly Newsletter & Python Tips"

    def test_labels_and_unread(self, sample_email_data: dict) -> None:
        """The UNREAD label drives is_unread."""
        message = message_to_canonical(sample_email_data)

        assert message.label_ids == ("INBOX", "UNREAD")
        assert message.is_unread is True

    def test_minimal_message(self) -> None:
        """A message with no payload still parses."""
        message = message_to_canonical({"id": "m1", "threadId": "t1"})

        assert message.subject == ""
        assert message.text_plain is None
        assert message.body_text() == ""

    def test_thread_to_canonical(self, sample_email_data: dict) -> None:
        """Threads wrap every message in order."""
        thread = thread_to_canonical({"id": "thread789", "messages": [sample_email_data]})

        assert thread.id == "thread789"
        assert [m.id for m in thread.messages] == ["msg123456"]


class TestBodyHelpers:
    """Test suite for decoding helpers."""

    def test_decode_body_handles_missing_padding(self) -> None:
        """Gmail strips base64 padding; decoding must tolerate it."""
        assert decode_body("aGVsbG8") == "hello"
        assert decode_body(None) == ""

    def test_html_to_text_drops_scripts(self) -> None:
        """Script and style content never reaches the prompt."""
        text = html_to_text("<html><style>p{}</style><p>Hello</p><script>x()</script><p>World</p></html>")

        assert "Hello" in text
        assert "World" in text
        assert "x()" not in text
        assert "p{}" not in text

    def test_body_text_falls_back_to_html(self, make_message) -> None:
        """body_text uses the HTML part when there is no plain part."""
        message = make_message(body="").model_copy(update={"text_plain": None, "text_html": "<p>Only html</p>"})

        assert message.body_text() == "Only html"

    def test_decode_snippet(self) -> None:
        """Numeric entities are decoded."""
        assert decode_snippet("It&#39;s here") == "It's here"
        assert decode_snippet(None) == ""
