"""Condition evaluation.

Static header matches are deterministic and never call the language model.
An AI instruction is judged by the model. Within one :class:`Condition` the
two parts combine through ``condition.combinator`` (AND by default). Siblings
inside a :class:`ConditionGroup` combine through the group's ``operator``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from email.utils import getaddresses
from enum import Enum

import structlog

from inbox_assistant.llm import LanguageModel, extract_json_object
from inbox_assistant.llm.prompts import JUDGE_SYSTEM, build_judge_prompt
from inbox_assistant.models import (
    CanonicalMessage,
    Condition,
    ConditionGroup,
    ConditionNode,
    LogicalOperator,
    StaticCondition,
)

logger = structlog.get_logger()


class MatchKind(str, Enum):
    STATIC = "STATIC"
    AI = "AI"


@dataclass(frozen=True)
class MatchReason:
    kind: MatchKind
    detail: str
    field: str | None = None


@dataclass(frozen=True)
class ConditionResult:
    matched: bool
    reasons: tuple[MatchReason, ...] = field(default_factory=tuple)

    @property
    def reason(self) -> MatchReason | None:
        return self.reasons[0] if self.reasons else None


NO_MATCH = ConditionResult(matched=False)


def _alternatives(pattern: str) -> list[str]:
    return [p.strip().lower() for p in pattern.split("|") if p.strip()]


def match_address(pattern: str, header: str | None) -> bool:
    """Case-insensitive substring or exact address match; ``|`` separates alternatives."""

    if not header:
        return False
    lowered = header.lower()
    addresses = {addr.lower() for _, addr in getaddresses([header]) if addr}
    return any(alt in lowered or alt in addresses for alt in _alternatives(pattern))


def match_subject(pattern: str, subject: str | None) -> bool:
    if not subject:
        return False
    return pattern.strip().lower() in subject.lower()


def evaluate_static(message: CanonicalMessage, static: StaticCondition) -> ConditionResult:
    """All present fields must match."""

    fields = static.present_fields()
    if not fields:
        return NO_MATCH

    reasons: list[MatchReason] = []
    for name, pattern in fields.items():
        if name == "from":
            ok = match_address(pattern, message.headers.from_)
        elif name == "to":
            ok = match_address(pattern, message.headers.to)
        else:
            ok = match_subject(pattern, message.headers.subject)
        if not ok:
            return NO_MATCH
        reasons.append(MatchReason(kind=MatchKind.STATIC, field=name, detail=pattern))
    return ConditionResult(matched=True, reasons=tuple(reasons))


class ConditionEvaluator:
    """Evaluate conditions and condition groups against one message."""

    def __init__(self, llm: LanguageModel) -> None:
        self.llm = llm

    async def evaluate(self, message: CanonicalMessage, condition: Condition) -> ConditionResult:
        static = (
            evaluate_static(message, condition.static)  # type: ignore[arg-type]
            if condition.has_static
            else None
        )

        if not condition.has_ai:
            return static or NO_MATCH
        if static is None:
            return await self.judge(message, condition.ai_instructions or "")

        if condition.combinator is LogicalOperator.AND:
            if not static.matched:
                return NO_MATCH
            judged = await self.judge(message, condition.ai_instructions or "")
            if not judged.matched:
                return NO_MATCH
            return ConditionResult(matched=True, reasons=static.reasons + judged.reasons)

        if static.matched:
            return static
        return await self.judge(message, condition.ai_instructions or "")

    async def evaluate_node(self, message: CanonicalMessage, node: ConditionNode) -> ConditionResult:
        if isinstance(node, Condition):
            return await self.evaluate(message, node)
        return await self._evaluate_group(message, node)

    async def _evaluate_group(self, message: CanonicalMessage, group: ConditionGroup) -> ConditionResult:
        if not group.conditions:
            return NO_MATCH

        reasons: list[MatchReason] = []
        for child in group.conditions:
            result = await self.evaluate_node(message, child)
            if group.operator is LogicalOperator.OR and result.matched:
                return result
            if group.operator is LogicalOperator.AND:
                if not result.matched:
                    return NO_MATCH
                reasons.extend(result.reasons)

        if group.operator is LogicalOperator.OR:
            return NO_MATCH
        return ConditionResult(matched=True, reasons=tuple(reasons))

    async def judge(self, message: CanonicalMessage, instructions: str) -> ConditionResult:
        """Ask the language model whether the message satisfies ``instructions``."""

        raw = await self.llm.generate(
            build_judge_prompt(message, instructions),
            system=JUDGE_SYSTEM,
            json_format=True,
        )
        obj = extract_json_object(raw)

        matched = obj.get("matched")
        if isinstance(matched, str):
            matched = matched.strip().lower() in ("true", "yes", "1")
        matched = bool(matched)
        reason = str(obj.get("reason") or "").strip()

        logger.info(
            "condition_ai_judged",
            message_id=message.id,
            matched=matched,
            reason=reason,
        )
        if not matched:
            return NO_MATCH
        return ConditionResult(
            matched=True,
            reasons=(MatchReason(kind=MatchKind.AI, detail=reason or instructions),),
        )
