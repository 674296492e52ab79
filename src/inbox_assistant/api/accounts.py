"""Email account watch API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Engine

from inbox_assistant.api.deps import get_account_or_404, get_db, get_provider
from inbox_assistant.models import EmailAccount
from inbox_assistant.providers import EmailProvider
from inbox_assistant.repository.account_repository import get_watch_status
from inbox_assistant.watch import start_watching, stop_watching

router = APIRouter(prefix="/api/user/email-account", tags=["email-account"])


@router.get("/{email_account_id}/watch-status")
def api_watch_status(email_account_id: str, engine: Engine = Depends(get_db)) -> dict[str, Any]:
    status = get_watch_status(engine, email_account_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Email account not found")
    return status.model_dump(mode="json", by_alias=True)


@router.post("/{email_account_id}/watch")
async def api_watch(
    account: EmailAccount = Depends(get_account_or_404),
    provider: EmailProvider = Depends(get_provider),
    engine: Engine = Depends(get_db),
) -> dict[str, Any]:
    status = await start_watching(engine, account, provider)
    return status.model_dump(mode="json", by_alias=True)


@router.post("/{email_account_id}/unwatch")
async def api_unwatch(
    account: EmailAccount = Depends(get_account_or_404),
    provider: EmailProvider = Depends(get_provider),
    engine: Engine = Depends(get_db),
) -> dict[str, Any]:
    status = await stop_watching(engine, account, provider)
    return status.model_dump(mode="json", by_alias=True)
