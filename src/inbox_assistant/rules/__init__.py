"""Rule evaluation, action resolution and execution."""

from inbox_assistant.rules.conditions import ConditionEvaluator, ConditionResult, MatchKind, MatchReason
from inbox_assistant.rules.engine import (
    ActionOutcome,
    ActionStatus,
    RuleEngine,
    RuleRunResult,
    RuleRunState,
)
from inbox_assistant.rules.resolver import ActionResolver, ResolvedAction, ScheduledActionDirective
from inbox_assistant.rules.scheduler import DeferredActionRunner
from inbox_assistant.rules.schema import (
    action_json_schema,
    get_available_actions,
    get_extra_actions,
    validate_rule_document,
)

__all__ = [
    "ActionOutcome",
    "ActionResolver",
    "ActionStatus",
    "ConditionEvaluator",
    "ConditionResult",
    "DeferredActionRunner",
    "MatchKind",
    "MatchReason",
    "ResolvedAction",
    "RuleEngine",
    "RuleRunResult",
    "RuleRunState",
    "ScheduledActionDirective",
    "action_json_schema",
    "get_available_actions",
    "get_extra_actions",
    "validate_rule_document",
]
