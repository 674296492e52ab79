"""Action resolution: fill ``{{...}}`` placeholders and honour delays."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import structlog

from inbox_assistant.config import Settings
from inbox_assistant.exceptions import PlaceholderResolutionError
from inbox_assistant.llm import LanguageModel
from inbox_assistant.llm.prompts import PLACEHOLDER_SYSTEM, build_placeholder_prompt
from inbox_assistant.models import Action, ActionFields, ActionType, CanonicalMessage
from inbox_assistant.rules.templating import PlaceholderSpan, parse_template, placeholders, render

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResolvedAction:
    """An action whose fields contain only literal text."""

    index: int
    type: ActionType
    fields: ActionFields


@dataclass(frozen=True)
class ScheduledActionDirective:
    """Hand-off to the deferred runner.

    ``(rule_id, message_id, action_index)`` identifies the job; scheduling
    the same key twice never produces a second execution.
    """

    rule_id: str
    message_id: str
    thread_id: str
    action_index: int
    delay_in_minutes: int
    run_at: datetime


Resolution = Union[ResolvedAction, ScheduledActionDirective]


class ActionResolver:
    """Resolve templated action fields against the triggering message."""

    def __init__(self, llm: LanguageModel, settings: Optional[Settings] = None) -> None:
        from inbox_assistant.config import get_settings

        self.llm = llm
        self.settings = settings or get_settings()

    async def resolve(
        self,
        message: CanonicalMessage,
        action: Action,
        *,
        rule_id: str,
        action_index: int,
        now: Optional[datetime] = None,
        force: bool = False,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> Resolution:
        """Resolve one action.

        Delayed actions return a :class:`ScheduledActionDirective` without any
        model calls unless ``force`` is set (the deferred runner does this when
        the job comes due).

        Raises:
            PlaceholderResolutionError: If any span fails; names the field and span.
        """

        if action.is_delayed and not force:
            now = now or datetime.now(timezone.utc)
            delay = int(action.delay_in_minutes or 0)
            return ScheduledActionDirective(
                rule_id=rule_id,
                message_id=message.id,
                thread_id=message.thread_id,
                action_index=action_index,
                delay_in_minutes=delay,
                run_at=now + timedelta(minutes=delay),
            )

        semaphore = semaphore or asyncio.Semaphore(self.settings.max_placeholder_concurrency)
        present = action.fields.present()

        parsed = {name: parse_template(value) for name, value in present.items()}
        jobs: list[tuple[str, PlaceholderSpan]] = [
            (name, span) for name, spans in parsed.items() for span in placeholders(spans)
        ]

        results = await asyncio.gather(
            *(self._fill(message, name, span, semaphore) for name, span in jobs),
            return_exceptions=True,
        )

        substitutions: dict[str, dict[PlaceholderSpan, str]] = {name: {} for name in parsed}
        for (name, span), result in zip(jobs, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning(
                    "placeholder_resolution_failed",
                    message_id=message.id,
                    rule_id=rule_id,
                    action_index=action_index,
                    field=name,
                    span=span.instruction,
                    error=str(result),
                )
                raise PlaceholderResolutionError(name, span.instruction, str(result)) from result
            substitutions[name][span] = result

        resolved = {
            name: render(spans, substitutions[name]) if substitutions[name] else present[name]
            for name, spans in parsed.items()
        }
        if jobs:
            logger.info(
                "action_placeholders_resolved",
                message_id=message.id,
                rule_id=rule_id,
                action_index=action_index,
                model_calls=len(jobs),
            )
        return ResolvedAction(
            index=action_index,
            type=action.type,
            fields=ActionFields(**resolved),
        )

    async def resolve_all(
        self,
        message: CanonicalMessage,
        actions: Sequence[Action],
        *,
        rule_id: str,
        now: Optional[datetime] = None,
    ) -> list[Union[Resolution, BaseException]]:
        """Resolve every action of a rule; a failure is returned in place of its result."""

        semaphore = asyncio.Semaphore(self.settings.max_placeholder_concurrency)
        return list(
            await asyncio.gather(
                *(
                    self.resolve(
                        message,
                        action,
                        rule_id=rule_id,
                        action_index=index,
                        now=now,
                        semaphore=semaphore,
                    )
                    for index, action in enumerate(actions)
                ),
                return_exceptions=True,
            )
        )

    async def _fill(
        self,
        message: CanonicalMessage,
        field: str,
        span: PlaceholderSpan,
        semaphore: asyncio.Semaphore,
    ) -> str:
        async with semaphore:
            text = await self.llm.generate(
                build_placeholder_prompt(message, span.instruction, field),
                system=PLACEHOLDER_SYSTEM,
            )
        return text.strip()
