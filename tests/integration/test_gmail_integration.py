"""Integration tests against a real Gmail mailbox.

Set ``INBOX_ASSISTANT_TEST_GMAIL_ACCESS_TOKEN`` (and optionally
``INBOX_ASSISTANT_TEST_GMAIL_REFRESH_TOKEN``) to run them. They only read.
"""

import os

import pytest

from inbox_assistant.models import EmailAccount
from inbox_assistant.providers import create_email_provider

ACCESS_TOKEN = os.environ.get("INBOX_ASSISTANT_TEST_GMAIL_ACCESS_TOKEN")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not ACCESS_TOKEN, reason="Gmail test credentials not configured"),
]


@pytest.fixture
def gmail_provider(mock_settings):
    account = EmailAccount(
        id="integration",
        email=os.environ.get("INBOX_ASSISTANT_TEST_GMAIL_ADDRESS", "me"),
        provider="google",
        access_token=ACCESS_TOKEN,
        refresh_token=os.environ.get("INBOX_ASSISTANT_TEST_GMAIL_REFRESH_TOKEN"),
    )
    return create_email_provider(account, mock_settings)


class TestGmailIntegration:
    """Integration tests for the Gmail provider."""

    @pytest.mark.asyncio
    async def test_unread_count(self, gmail_provider) -> None:
        """The inbox unread count is a non-negative integer."""
        assert await gmail_provider.get_unread_inbox_count() >= 0

    @pytest.mark.asyncio
    async def test_search_and_fetch(self, gmail_provider) -> None:
        """Search results can be re-fetched by id with their thread."""
        messages = await gmail_provider.search_emails("in:inbox", max_results=1)
        if not messages:
            pytest.skip("inbox is empty")

        message = await gmail_provider.get_message(messages[0].id)
        thread = await gmail_provider.get_thread(message.thread_id)

        assert message.id == messages[0].id
        assert message.id in [m.id for m in thread.messages]
