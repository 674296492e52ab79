"""Rule authoring and message processing API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.engine import Engine

from inbox_assistant.api.deps import get_account_or_404, get_app_settings, get_db, get_llm, get_provider
from inbox_assistant.config import Settings
from inbox_assistant.exceptions import ValidationError
from inbox_assistant.llm import LanguageModel
from inbox_assistant.models import EmailAccount, Rule
from inbox_assistant.providers import EmailProvider
from inbox_assistant.repository.rule_repository import create_rule, list_rules
from inbox_assistant.rules import RuleEngine, action_json_schema, validate_rule_document

router = APIRouter(prefix="/api/user/email-account", tags=["rules"])


def _rule_json(rule: Rule) -> dict[str, Any]:
    return rule.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.get("/{email_account_id}/rules")
def api_list_rules(
    account: EmailAccount = Depends(get_account_or_404),
    engine: Engine = Depends(get_db),
) -> list[dict[str, Any]]:
    return [_rule_json(r) for r in list_rules(engine, account.id)]


@router.get("/{email_account_id}/rules/schema")
def api_rule_schema(account: EmailAccount = Depends(get_account_or_404)) -> dict[str, Any]:
    return action_json_schema(account.provider)


@router.post("/{email_account_id}/rules", status_code=201)
def api_create_rule(
    document: dict[str, Any] = Body(...),
    account: EmailAccount = Depends(get_account_or_404),
    engine: Engine = Depends(get_db),
) -> dict[str, Any]:
    try:
        definition = validate_rule_document(document, account.provider)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _rule_json(create_rule(engine, account.id, definition))


@router.post("/{email_account_id}/messages/{message_id}/process")
async def api_process_message(
    message_id: str,
    account: EmailAccount = Depends(get_account_or_404),
    provider: EmailProvider = Depends(get_provider),
    llm: LanguageModel = Depends(get_llm),
    engine: Engine = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    rule_engine = RuleEngine(engine, account, provider, llm, settings)
    result = await rule_engine.process_message_id(message_id)
    return result.to_dict()
