"""Data models for Inbox Assistant.

This module contains Pydantic models for data validation and serialization.
"""

from inbox_assistant.models.message import (
    INBOX_LABEL,
    UNREAD_LABEL,
    Attachment,
    AttachmentHeaders,
    CanonicalMessage,
    EmailThread,
    MessageHeaders,
)
from inbox_assistant.models.rule import (
    Action,
    ActionFields,
    ActionType,
    Condition,
    ConditionGroup,
    ConditionNode,
    LogicalOperator,
    Rule,
    RuleDefinition,
    StaticCondition,
)
from inbox_assistant.models.tracker import (
    EmailAccount,
    ThreadTracker,
    ThreadTrackerType,
    WatchStatus,
)

__all__ = [
    "INBOX_LABEL",
    "UNREAD_LABEL",
    "Action",
    "ActionFields",
    "ActionType",
    "Attachment",
    "AttachmentHeaders",
    "CanonicalMessage",
    "Condition",
    "ConditionGroup",
    "ConditionNode",
    "EmailAccount",
    "EmailThread",
    "LogicalOperator",
    "MessageHeaders",
    "Rule",
    "RuleDefinition",
    "StaticCondition",
    "ThreadTracker",
    "ThreadTrackerType",
    "WatchStatus",
]
