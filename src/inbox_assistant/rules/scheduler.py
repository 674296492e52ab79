"""Runner for delayed rule actions."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from inbox_assistant.config import Settings
from inbox_assistant.exceptions import InboxAssistantError
from inbox_assistant.llm import LanguageModel
from inbox_assistant.models import EmailAccount
from inbox_assistant.providers import EmailProvider, create_email_provider
from inbox_assistant.repository import account_repository, rule_repository
from inbox_assistant.repository import scheduled_action_repository as jobs
from inbox_assistant.rules.executor import ActionExecutor
from inbox_assistant.rules.resolver import ActionResolver, ResolvedAction
from inbox_assistant.utils import shielded
from inbox_assistant.webhooks import WebhookClient

logger = structlog.get_logger()

ProviderFactory = Callable[[EmailAccount], EmailProvider]


@dataclass(frozen=True)
class DeferredRunResult:
    job_id: str
    status: str
    detail: str | None = None
    error: str | None = None


class DeferredActionRunner:
    """Execute scheduled actions whose ``run_at`` has passed.

    Each job is claimed with an atomic PENDING -> RUNNING update before any
    work is done, so running :meth:`run_due` concurrently (or twice) never
    executes a job more than once.
    """

    def __init__(
        self,
        engine: Engine,
        llm: LanguageModel,
        settings: Optional[Settings] = None,
        provider_factory: Optional[ProviderFactory] = None,
        webhooks: Optional[WebhookClient] = None,
    ) -> None:
        from inbox_assistant.config import get_settings

        self.engine = engine
        self.settings = settings or get_settings()
        self.resolver = ActionResolver(llm, self.settings)
        self.webhooks = webhooks or WebhookClient(self.settings)
        self._provider_factory = provider_factory or (
            lambda account: create_email_provider(account, self.settings)
        )
        self._providers: dict[str, EmailProvider] = {}

    async def run_due(self, now: Optional[datetime] = None, limit: int = 100) -> list[DeferredRunResult]:
        now = now or datetime.now(timezone.utc)
        due = await asyncio.to_thread(jobs.list_due, self.engine, now, limit=limit)
        logger.info("deferred_actions_due", count=len(due))

        results: list[DeferredRunResult] = []
        for job in due:
            result = await self.run_job(job)
            if result is not None:
                results.append(result)
        return results

    async def run_job(self, job: jobs.ScheduledAction) -> DeferredRunResult | None:
        """Claim and run one job; returns None if another runner already claimed it."""

        claimed = await asyncio.to_thread(jobs.claim_job, self.engine, job.id)
        if not claimed:
            logger.info("deferred_action_already_claimed", job_id=job.id)
            return None

        log = logger.bind(job_id=job.id, rule_id=job.rule_id, message_id=job.message_id)
        try:
            detail = await self._execute(job)
        except asyncio.CancelledError:
            log.warning("deferred_action_cancelled")
            await shielded(self._fail(job.id, "cancelled while running"))
            raise
        except InboxAssistantError as exc:
            log.warning("deferred_action_failed", error_type=type(exc).__name__, error=str(exc))
            return await self._fail(job.id, str(exc))
        except Exception as exc:
            log.exception("deferred_action_crashed", error_type=type(exc).__name__)
            return await self._fail(job.id, f"{type(exc).__name__}: {exc}")

        await asyncio.to_thread(jobs.finish_job, self.engine, job.id, status=jobs.STATUS_EXECUTED)
        log.info("deferred_action_executed", detail=detail)
        return DeferredRunResult(job_id=job.id, status=jobs.STATUS_EXECUTED, detail=detail)

    async def _execute(self, job: jobs.ScheduledAction) -> str:
        account = await asyncio.to_thread(account_repository.get_account, self.engine, job.email_account_id)
        if account is None:
            raise InboxAssistantError(f"Email account {job.email_account_id} no longer exists")
        rule = await asyncio.to_thread(rule_repository.get_rule, self.engine, job.rule_id)
        if rule is None:
            raise InboxAssistantError(f"Rule {job.rule_id} no longer exists")

        provider = self._provider_for(account)
        message = await provider.get_message(job.message_id)

        resolved = await self.resolver.resolve(
            message,
            job.action,
            rule_id=job.rule_id,
            action_index=job.action_index,
            force=True,
        )
        if not isinstance(resolved, ResolvedAction):
            raise InboxAssistantError(f"Action {job.action_index} of rule {job.rule_id} did not resolve")

        executor = ActionExecutor(self.engine, provider, account, self.webhooks)
        return await executor.execute(message, resolved, rule)

    async def _fail(self, job_id: str, error: str) -> DeferredRunResult:
        await asyncio.to_thread(jobs.finish_job, self.engine, job_id, status=jobs.STATUS_FAILED, error=error)
        return DeferredRunResult(job_id=job_id, status=jobs.STATUS_FAILED, error=error)

    def _provider_for(self, account: EmailAccount) -> EmailProvider:
        if account.id not in self._providers:
            self._providers[account.id] = self._provider_factory(account)
        return self._providers[account.id]
