"""Inbox agent: feeds incoming messages through the rule engine."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from inbox_assistant.config import Settings
from inbox_assistant.llm import LanguageModel, OllamaClient
from inbox_assistant.models import CanonicalMessage, EmailAccount
from inbox_assistant.providers import EmailProvider, SearchQuery, create_email_provider
from inbox_assistant.rules import RuleEngine, RuleRunResult

logger = structlog.get_logger()


class InboxAgent:
    """Process messages for one email account.

    Messages are independent units of work and are processed concurrently;
    coordination happens only through the database.
    """

    def __init__(
        self,
        engine: Engine,
        account: EmailAccount,
        settings: Optional[Settings] = None,
        provider: Optional[EmailProvider] = None,
        llm: Optional[LanguageModel] = None,
        max_concurrency: int = 4,
    ) -> None:
        """Initialize the agent.

        Args:
            engine: Database engine.
            account: The account whose rules are applied.
            settings: Application settings. If None, uses default settings.
            provider: Email provider. If None, one is created for the account.
            llm: Language model. If None, an Ollama client is created.
            max_concurrency: Maximum messages processed at once.
        """
        from inbox_assistant.config import get_settings

        self.settings = settings or get_settings()
        self.account = account
        self.provider = provider or create_email_provider(account, self.settings)
        self.llm = llm or OllamaClient(self.settings)
        self.rule_engine = RuleEngine(engine, account, self.provider, self.llm, self.settings)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        logger.info("inbox_agent_initialized", email=account.email, provider=account.provider)

    async def process_message(self, message_id: str) -> RuleRunResult:
        async with self._semaphore:
            return await self.rule_engine.process_message_id(message_id)

    async def process_recent(
        self,
        hours: float = 24,
        max_results: int = 50,
        unread_only: bool = False,
    ) -> list[RuleRunResult]:
        """Run the rules over messages received in the last ``hours``."""

        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        query = SearchQuery.received_since(since, unread_only=unread_only)
        messages = await self.provider.search_emails(str(query), max_results)
        logger.info("inbox_agent_processing", email=self.account.email, count=len(messages))

        async def run(message: CanonicalMessage) -> RuleRunResult:
            async with self._semaphore:
                return await self.rule_engine.process_message(message)

        return list(await asyncio.gather(*(run(m) for m in messages)))
