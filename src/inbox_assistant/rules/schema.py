"""Rule authoring schema and validation.

Which action types and fields are legal depends on the provider's capability
set, never on a hard-coded provider name.
"""

from __future__ import annotations

import copy
from typing import Any, Iterable, Union

from pydantic import ValidationError as PydanticValidationError

from inbox_assistant.exceptions import ValidationError
from inbox_assistant.models import ActionType, RuleDefinition
from inbox_assistant.providers.base import ProviderCapability
from inbox_assistant.providers.factory import capabilities_for
from inbox_assistant.rules.templating import parse_template

MIN_DELAY_MINUTES = 1
MAX_DELAY_MINUTES = 43_200  # 30 days

ProviderSpec = Union[str, Iterable[ProviderCapability]]

REQUIRED_FIELDS: dict[ActionType, tuple[str, ...]] = {
    ActionType.LABEL: ("label",),
    ActionType.MOVE_FOLDER: ("folder_name",),
    ActionType.REPLY: ("content",),
    ActionType.FORWARD: ("to",),
    ActionType.CALL_WEBHOOK: ("webhook_url",),
}

FIELD_DESCRIPTION = (
    "The fields to use for the action. Static text can be combined with dynamic values "
    "using double braces {{}}. For example: 'Hi {{sender's name}}' or 'Re: {{subject}}'. "
    "Dynamic values are generated by the AI for each email. Only use dynamic values where "
    "necessary; a field can be fully static or fully dynamic."
)


def _capabilities(provider: ProviderSpec) -> frozenset[ProviderCapability]:
    if isinstance(provider, str):
        return capabilities_for(provider)
    return frozenset(provider)


def get_available_actions(provider: ProviderSpec) -> list[ActionType]:
    caps = _capabilities(provider)
    actions = [ActionType.LABEL]
    if ProviderCapability.FOLDERS in caps:
        actions.append(ActionType.MOVE_FOLDER)
    actions.extend(
        [
            ActionType.ARCHIVE,
            ActionType.MARK_READ,
            ActionType.DRAFT_EMAIL,
            ActionType.REPLY,
            ActionType.FORWARD,
            ActionType.MARK_SPAM,
        ]
    )
    return actions


def get_extra_actions() -> list[ActionType]:
    return [ActionType.DIGEST, ActionType.CALL_WEBHOOK]


def _format_pydantic_error(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def validate_rule_document(document: dict[str, Any], provider: ProviderSpec) -> RuleDefinition:
    """Parse and validate an authored rule document.

    Raises:
        ValidationError: If the document is malformed or uses an action or
            field the provider does not support.
    """

    caps = _capabilities(provider)

    actions = document.get("actions") if isinstance(document, dict) else None
    if isinstance(actions, list):
        for index, action in enumerate(actions):
            fields = action.get("fields") if isinstance(action, dict) else None
            if (
                isinstance(fields, dict)
                and fields.get("folderName")
                and ProviderCapability.FOLDERS not in caps
            ):
                raise ValidationError(
                    f"actions.{index}.fields.folderName: folders are not supported by this provider"
                )

    try:
        rule = RuleDefinition.model_validate(document)
    except PydanticValidationError as exc:
        raise ValidationError(_format_pydantic_error(exc)) from exc

    if not rule.name.strip():
        raise ValidationError("name: must not be empty")

    condition = rule.condition
    if not condition.has_ai and not condition.has_static:
        raise ValidationError("condition: needs aiInstructions or at least one static field")

    allowed = set(get_available_actions(caps)) | set(get_extra_actions())
    for index, action in enumerate(rule.actions):
        where = f"actions.{index}"
        if action.type not in allowed:
            raise ValidationError(f"{where}.type: {action.type.value} is not available for this provider")

        present = action.fields.present()
        for name in REQUIRED_FIELDS.get(action.type, ()):
            if not (present.get(name) or "").strip():
                raise ValidationError(f"{where}.fields.{name}: required for {action.type.value}")

        if action.delay_in_minutes is not None and not (
            MIN_DELAY_MINUTES <= action.delay_in_minutes <= MAX_DELAY_MINUTES
        ):
            raise ValidationError(
                f"{where}.delayInMinutes: must be between {MIN_DELAY_MINUTES} and {MAX_DELAY_MINUTES}"
            )

        for name, value in present.items():
            try:
                parse_template(value)
            except ValidationError as exc:
                raise ValidationError(f"{where}.fields.{name}: {exc}") from exc

    return rule


def action_json_schema(provider: ProviderSpec) -> dict[str, Any]:
    """JSON schema of a rule document for the given provider (used by AI rule creation)."""

    caps = _capabilities(provider)
    schema = copy.deepcopy(RuleDefinition.model_json_schema(by_alias=True))
    defs = schema.get("$defs", {})

    allowed = [a.value for a in (*get_available_actions(caps), *get_extra_actions())]
    if "ActionType" in defs:
        defs["ActionType"]["enum"] = allowed

    fields_def = defs.get("ActionFields", {})
    if ProviderCapability.FOLDERS not in caps:
        fields_def.get("properties", {}).pop("folderName", None)
    if fields_def:
        fields_def["description"] = FIELD_DESCRIPTION

    action_def = defs.get("Action", {})
    type_description = "The type of the action. 'DIGEST' adds the email to the user's digest."
    if ProviderCapability.CATEGORIES in caps:
        type_description += " 'LABEL' means emails will be categorized in Outlook."
    action_def.setdefault("properties", {}).setdefault("type", {})["description"] = type_description

    return schema
