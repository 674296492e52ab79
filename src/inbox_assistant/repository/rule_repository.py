"""Rule repository.

Conditions and actions are stored as JSON in their camelCase authoring shape.
"""

from __future__ import annotations

import json

from pydantic import TypeAdapter
from sqlalchemy import text

from inbox_assistant.exceptions import RepositoryError
from inbox_assistant.models import Action, ConditionNode, Rule, RuleDefinition
from inbox_assistant.repository._util import new_id, now_utc, to_ts

_CONDITION_ADAPTER: TypeAdapter[ConditionNode] = TypeAdapter(ConditionNode)
_ACTIONS_ADAPTER: TypeAdapter[list[Action]] = TypeAdapter(list[Action])

_COLUMNS = "id, email_account_id, name, position, enabled, condition_json, actions_json"


def _row_to_rule(r) -> Rule:
    return Rule(
        id=r[0],
        email_account_id=r[1],
        name=r[2],
        position=int(r[3]),
        enabled=bool(r[4]),
        condition=_CONDITION_ADAPTER.validate_json(r[5]),
        actions=tuple(_ACTIONS_ADAPTER.validate_json(r[6])),
    )


def list_rules(engine, account_id: str, *, enabled_only: bool = False) -> list[Rule]:
    """Rules for one account in their stored (execution) order."""

    enabled_clause = "AND enabled = :enabled" if enabled_only else ""
    q = text(
        f"""
        SELECT {_COLUMNS}
        FROM rule
        WHERE email_account_id = :account_id
        {enabled_clause}
        ORDER BY position ASC, created_at ASC
        """
    )
    params: dict[str, object] = {"account_id": account_id}
    if enabled_only:
        params["enabled"] = True

    with engine.begin() as conn:
        rows = conn.execute(q, params).fetchall()

    return [_row_to_rule(r) for r in rows]


def get_rule(engine, rule_id: str) -> Rule | None:
    q = text(f"SELECT {_COLUMNS} FROM rule WHERE id = :id")

    with engine.begin() as conn:
        row = conn.execute(q, {"id": rule_id}).fetchone()

    return _row_to_rule(row) if row else None


def create_rule(
    engine,
    account_id: str,
    definition: RuleDefinition,
    *,
    enabled: bool = True,
    position: int | None = None,
) -> Rule:
    """Persist a validated rule definition; appended after existing rules by default."""

    rule_id = new_id()
    now = to_ts(now_utc())

    condition_json = definition.condition.model_dump_json(by_alias=True, exclude_none=True)
    actions_json = json.dumps(
        [a.model_dump(mode="json", by_alias=True, exclude_none=True) for a in definition.actions]
    )

    with engine.begin() as conn:
        if position is None:
            position = conn.execute(
                text("SELECT COALESCE(MAX(position) + 1, 0) FROM rule WHERE email_account_id = :a"),
                {"a": account_id},
            ).scalar()
        conn.execute(
            text(
                """
                INSERT INTO rule (
                    id, email_account_id, name, position, enabled,
                    condition_json, actions_json, created_at, updated_at
                )
                VALUES (
                    :id, :account_id, :name, :position, :enabled,
                    :condition_json, :actions_json, :now, :now
                )
                """
            ),
            {
                "id": rule_id,
                "account_id": account_id,
                "name": definition.name,
                "position": int(position or 0),
                "enabled": enabled,
                "condition_json": condition_json,
                "actions_json": actions_json,
                "now": now,
            },
        )

    rule = get_rule(engine, rule_id)
    if rule is None:
        raise RepositoryError(f"Rule {rule_id} was not found after insert")
    return rule


def set_rule_enabled(engine, *, rule_id: str, enabled: bool) -> None:
    q = text("UPDATE rule SET enabled = :enabled, updated_at = :now WHERE id = :id")

    with engine.begin() as conn:
        conn.execute(q, {"id": rule_id, "enabled": enabled, "now": to_ts(now_utc())})


def delete_rule(engine, rule_id: str) -> bool:
    with engine.begin() as conn:
        result = conn.execute(text("DELETE FROM rule WHERE id = :id"), {"id": rule_id})

    return bool(result.rowcount)
