"""Rule, condition and action models.

Rule documents are authored in camelCase (``aiInstructions``,
``delayInMinutes``...) and stored as JSON, so every model here accepts both the
camelCase alias and the Python field name.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class ActionType(str, Enum):
    LABEL = "LABEL"
    MOVE_FOLDER = "MOVE_FOLDER"
    ARCHIVE = "ARCHIVE"
    MARK_READ = "MARK_READ"
    DRAFT_EMAIL = "DRAFT_EMAIL"
    REPLY = "REPLY"
    FORWARD = "FORWARD"
    MARK_SPAM = "MARK_SPAM"
    DIGEST = "DIGEST"
    CALL_WEBHOOK = "CALL_WEBHOOK"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )


class StaticCondition(_CamelModel):
    """Deterministic header matches. All present fields must match."""

    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    subject: str | None = None

    def present_fields(self) -> dict[str, str]:
        values = {"from": self.from_, "to": self.to, "subject": self.subject}
        return {k: v for k, v in values.items() if v is not None and v.strip()}


class Condition(_CamelModel):
    """A single rule condition.

    ``combinator`` decides how the static block and the AI instructions of this
    condition combine. ``conditional_operator`` is accepted from authored
    documents and stored as given; grouped siblings combine through
    :attr:`ConditionGroup.operator`.
    """

    conditional_operator: LogicalOperator | None = None
    ai_instructions: str | None = None
    static: StaticCondition | None = None
    combinator: LogicalOperator = LogicalOperator.AND

    @property
    def has_ai(self) -> bool:
        return bool(self.ai_instructions and self.ai_instructions.strip())

    @property
    def has_static(self) -> bool:
        return self.static is not None and bool(self.static.present_fields())


class ConditionGroup(_CamelModel):
    """AND/OR combination of nested conditions or groups."""

    operator: LogicalOperator = LogicalOperator.AND
    conditions: list[Union[Condition, "ConditionGroup"]] = Field(default_factory=list)


ConditionNode = Union[Condition, ConditionGroup]


class ActionFields(_CamelModel):
    label: str | None = None
    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    subject: str | None = None
    content: str | None = None
    webhook_url: str | None = None
    folder_name: str | None = None

    def present(self) -> dict[str, str]:
        """Field name -> value for every non-empty field."""
        return {k: v for k, v in self.model_dump().items() if v}


class Action(_CamelModel):
    type: ActionType
    fields: ActionFields = Field(default_factory=ActionFields)
    delay_in_minutes: int | None = None

    @field_validator("fields", mode="before")
    @classmethod
    def _null_fields(cls, value: object) -> object:
        return {} if value is None else value

    @property
    def is_delayed(self) -> bool:
        return bool(self.delay_in_minutes and self.delay_in_minutes > 0)


class RuleDefinition(_CamelModel):
    """The authored shape of a rule (what the rule-creation UI/AI submits)."""

    name: str
    condition: Condition
    actions: list[Action] = Field(default_factory=list)


class Rule(BaseModel):
    """A persisted rule owned by one email account."""

    model_config = ConfigDict(frozen=True)

    id: str
    email_account_id: str
    name: str
    position: int = 0
    enabled: bool = True
    condition: ConditionNode
    actions: tuple[Action, ...] = ()


ConditionGroup.model_rebuild()
Rule.model_rebuild()
