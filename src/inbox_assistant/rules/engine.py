"""Rule engine: first-match-wins evaluation and action application.

Per message the run moves through::

    RECEIVED -> EVALUATING -> MATCHED | NO_MATCH
    MATCHED -> RESOLVING_ACTIONS -> EXECUTING -> DONE | FAILED

Rules are evaluated in stored order and evaluation stops at the first match.
All actions of the matched rule are resolved before any of them executes;
execution then follows list order and continues past individual failures.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import structlog
from sqlalchemy.engine import Engine

from inbox_assistant.config import Settings
from inbox_assistant.exceptions import InboxAssistantError, ProviderAuthExpiredError
from inbox_assistant.llm import LanguageModel
from inbox_assistant.models import ActionType, CanonicalMessage, EmailAccount, Rule
from inbox_assistant.providers.base import EmailProvider
from inbox_assistant.repository import (
    executed_rule_repository,
    rule_repository,
    scheduled_action_repository,
)
from inbox_assistant.rules.conditions import ConditionEvaluator, MatchReason
from inbox_assistant.rules.executor import ActionExecutor
from inbox_assistant.rules.resolver import ActionResolver, ResolvedAction, ScheduledActionDirective
from inbox_assistant.webhooks import WebhookClient

logger = structlog.get_logger()

_AUTH_EXPIRED = "provider authentication expired; re-authentication required"

# Actions that call the mail provider. DIGEST and CALL_WEBHOOK do not.
PROVIDER_ACTIONS = frozenset(
    {
        ActionType.LABEL,
        ActionType.MOVE_FOLDER,
        ActionType.ARCHIVE,
        ActionType.MARK_READ,
        ActionType.MARK_SPAM,
        ActionType.DRAFT_EMAIL,
        ActionType.REPLY,
        ActionType.FORWARD,
    }
)


class RuleRunState(str, Enum):
    RECEIVED = "RECEIVED"
    EVALUATING = "EVALUATING"
    MATCHED = "MATCHED"
    NO_MATCH = "NO_MATCH"
    RESOLVING_ACTIONS = "RESOLVING_ACTIONS"
    EXECUTING = "EXECUTING"
    DONE = "DONE"
    FAILED = "FAILED"


class ActionStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SCHEDULED = "SCHEDULED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class ActionOutcome:
    index: int
    type: ActionType
    status: ActionStatus
    detail: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "type": self.type.value,
            "status": self.status.value,
            "detail": self.detail,
            "error": self.error,
        }


@dataclass
class RuleRunResult:
    message_id: str
    state: RuleRunState = RuleRunState.RECEIVED
    rule_id: str | None = None
    rule_name: str | None = None
    reasons: tuple[MatchReason, ...] = ()
    outcomes: list[ActionOutcome] = field(default_factory=list)
    already_processed: bool = False
    error: str | None = None

    @property
    def matched(self) -> bool:
        return self.rule_id is not None

    @property
    def succeeded_indices(self) -> list[int]:
        return [o.index for o in self.outcomes if o.status is ActionStatus.SUCCEEDED]

    @property
    def failed_indices(self) -> list[int]:
        return [o.index for o in self.outcomes if o.status is ActionStatus.FAILED]

    @property
    def skipped_indices(self) -> list[int]:
        return [o.index for o in self.outcomes if o.status is ActionStatus.SKIPPED]

    @property
    def partially_failed(self) -> bool:
        """Some actions failed or were skipped while others succeeded or were scheduled."""
        not_done = len(self.failed_indices) + len(self.skipped_indices)
        return 0 < not_done < len(self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "state": self.state.value,
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "reasons": [
                {"kind": r.kind.value, "field": r.field, "detail": r.detail} for r in self.reasons
            ],
            "outcomes": [o.to_dict() for o in self.outcomes],
            "succeeded": self.succeeded_indices,
            "failed": self.failed_indices,
            "skipped": self.skipped_indices,
            "partiallyFailed": self.partially_failed,
            "alreadyProcessed": self.already_processed,
            "error": self.error,
        }


class RuleEngine:
    """Apply one account's rules to incoming messages."""

    def __init__(
        self,
        engine: Engine,
        account: EmailAccount,
        provider: EmailProvider,
        llm: LanguageModel,
        settings: Optional[Settings] = None,
        webhooks: Optional[WebhookClient] = None,
    ) -> None:
        from inbox_assistant.config import get_settings

        self.engine = engine
        self.account = account
        self.provider = provider
        self.settings = settings or get_settings()
        self.evaluator = ConditionEvaluator(llm)
        self.resolver = ActionResolver(llm, self.settings)
        self.executor = ActionExecutor(engine, provider, account, webhooks)

    async def process_message_id(self, message_id: str) -> RuleRunResult:
        if await self._already_processed(message_id):
            return self._skip_processed(message_id)
        try:
            message = await self.provider.get_message(message_id)
        except InboxAssistantError as exc:
            logger.error("rule_run_fetch_failed", message_id=message_id, error=str(exc))
            return RuleRunResult(message_id=message_id, state=RuleRunState.FAILED, error=str(exc))
        return await self.process_message(message)

    async def process_message(
        self,
        message: CanonicalMessage,
        *,
        now: Optional[datetime] = None,
    ) -> RuleRunResult:
        """Run the account's rules against one message.

        Never raises for provider, model or webhook failures; they are
        reported on the returned :class:`RuleRunResult`.
        """

        log = logger.bind(account_id=self.account.id, message_id=message.id)
        result = RuleRunResult(message_id=message.id)

        if await self._already_processed(message.id):
            return self._skip_processed(message.id)

        result.state = RuleRunState.EVALUATING
        rules = await asyncio.to_thread(
            rule_repository.list_rules, self.engine, self.account.id, enabled_only=True
        )

        matched_rule: Rule | None = None
        try:
            for rule in rules:
                evaluation = await self.evaluator.evaluate_node(message, rule.condition)
                if evaluation.matched:
                    matched_rule = rule
                    result.reasons = evaluation.reasons
                    break
        except InboxAssistantError as exc:
            log.error("rule_evaluation_failed", error=str(exc))
            result.state = RuleRunState.FAILED
            result.error = str(exc)
            return result

        if matched_rule is None:
            result.state = RuleRunState.NO_MATCH
            await asyncio.to_thread(
                executed_rule_repository.claim_execution,
                self.engine,
                account_id=self.account.id,
                message_id=message.id,
                thread_id=message.thread_id,
                rule_id=executed_rule_repository.NO_RULE,
                status=executed_rule_repository.STATUS_NO_MATCH,
            )
            log.info("rule_no_match", rules_evaluated=len(rules))
            return result

        result.state = RuleRunState.MATCHED
        result.rule_id = matched_rule.id
        result.rule_name = matched_rule.name
        log = log.bind(rule_id=matched_rule.id)
        log.info("rule_matched", rule_name=matched_rule.name)

        execution_id = await asyncio.to_thread(
            executed_rule_repository.claim_execution,
            self.engine,
            account_id=self.account.id,
            message_id=message.id,
            thread_id=message.thread_id,
            rule_id=matched_rule.id,
            reason="; ".join(r.detail for r in result.reasons) or None,
        )
        if execution_id is None:
            log.info("rule_already_applied")
            result.already_processed = True
            result.state = RuleRunState.DONE
            return result

        result.state = RuleRunState.RESOLVING_ACTIONS
        resolutions = await self.resolver.resolve_all(
            message, matched_rule.actions, rule_id=matched_rule.id, now=now
        )

        result.state = RuleRunState.EXECUTING
        auth_expired = False
        for index, (action, resolution) in enumerate(zip(matched_rule.actions, resolutions)):
            if isinstance(resolution, asyncio.CancelledError):
                raise resolution
            if auth_expired and not action.is_delayed and action.type in PROVIDER_ACTIONS:
                outcome = ActionOutcome(
                    index=index,
                    type=action.type,
                    status=ActionStatus.SKIPPED,
                    error="re-authentication required",
                )
            else:
                outcome = await self._apply(message, matched_rule, index, resolution)
                auth_expired = auth_expired or outcome.error == _AUTH_EXPIRED
            result.outcomes.append(outcome)

        if result.outcomes and all(
            o.status in (ActionStatus.FAILED, ActionStatus.SKIPPED) for o in result.outcomes
        ):
            result.state = RuleRunState.FAILED
            status = executed_rule_repository.STATUS_FAILED
        else:
            result.state = RuleRunState.DONE
            status = (
                executed_rule_repository.STATUS_PARTIAL
                if result.partially_failed
                else executed_rule_repository.STATUS_APPLIED
            )

        await asyncio.to_thread(
            executed_rule_repository.complete_execution,
            self.engine,
            execution_id,
            status=status,
            outcomes=[o.to_dict() for o in result.outcomes],
        )
        log.info(
            "rule_applied",
            state=result.state.value,
            succeeded=result.succeeded_indices,
            failed=result.failed_indices,
            partially_failed=result.partially_failed,
        )
        return result

    async def _apply(
        self,
        message: CanonicalMessage,
        rule: Rule,
        index: int,
        resolution: Any,
    ) -> ActionOutcome:
        action_type = rule.actions[index].type

        if isinstance(resolution, BaseException):
            return ActionOutcome(
                index=index, type=action_type, status=ActionStatus.FAILED, error=str(resolution)
            )

        if isinstance(resolution, ScheduledActionDirective):
            job_id, created = await asyncio.to_thread(
                scheduled_action_repository.schedule_action,
                self.engine,
                account_id=self.account.id,
                rule_id=resolution.rule_id,
                message_id=resolution.message_id,
                thread_id=resolution.thread_id,
                action_index=resolution.action_index,
                action=rule.actions[index],
                run_at=resolution.run_at,
            )
            logger.info(
                "rule_action_scheduled",
                job_id=job_id,
                created=created,
                run_at=resolution.run_at.isoformat(),
                action_index=index,
            )
            return ActionOutcome(
                index=index,
                type=action_type,
                status=ActionStatus.SCHEDULED,
                detail=f"runs at {resolution.run_at.isoformat()}",
            )

        if not isinstance(resolution, ResolvedAction):
            raise TypeError(f"unexpected resolution for action {index}: {resolution!r}")
        try:
            detail = await self.executor.execute(message, resolution, rule)
        except ProviderAuthExpiredError as exc:
            logger.warning("rule_action_auth_expired", action_index=index, error=str(exc))
            return ActionOutcome(
                index=index, type=action_type, status=ActionStatus.FAILED, error=_AUTH_EXPIRED
            )
        except InboxAssistantError as exc:
            logger.warning(
                "rule_action_failed",
                action_index=index,
                action_type=action_type.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return ActionOutcome(
                index=index, type=action_type, status=ActionStatus.FAILED, error=str(exc)
            )

        return ActionOutcome(index=index, type=action_type, status=ActionStatus.SUCCEEDED, detail=detail)

    async def _already_processed(self, message_id: str) -> bool:
        return await asyncio.to_thread(
            executed_rule_repository.has_processed,
            self.engine,
            account_id=self.account.id,
            message_id=message_id,
        )

    def _skip_processed(self, message_id: str) -> RuleRunResult:
        logger.info("rule_run_skipped_processed", account_id=self.account.id, message_id=message_id)
        return RuleRunResult(
            message_id=message_id, state=RuleRunState.DONE, already_processed=True
        )

