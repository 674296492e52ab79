"""Assistant tool dispatch API."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.engine import Engine

from inbox_assistant.api.deps import get_account_or_404, get_app_settings, get_db, get_provider
from inbox_assistant.assistant import AssistantToolbox, tool_definitions
from inbox_assistant.config import Settings
from inbox_assistant.models import EmailAccount
from inbox_assistant.providers import EmailProvider

router = APIRouter(tags=["assistant"])


@router.get("/api/assistant/tools")
def api_tool_definitions() -> list[dict[str, Any]]:
    return tool_definitions()


@router.post("/api/user/email-account/{email_account_id}/assistant/tools/{tool_name}")
async def api_run_tool(
    tool_name: str,
    arguments: Optional[dict[str, Any]] = Body(default=None),
    account: EmailAccount = Depends(get_account_or_404),
    provider: EmailProvider = Depends(get_provider),
    engine: Engine = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    toolbox = AssistantToolbox(engine, account, provider, settings)
    return await toolbox.run_tool(tool_name, arguments or {})
