"""Deferred action runner API (called by an external cron)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.engine import Engine

from inbox_assistant.api.deps import get_app_settings, get_db, get_llm
from inbox_assistant.config import Settings
from inbox_assistant.llm import LanguageModel
from inbox_assistant.rules import DeferredActionRunner

router = APIRouter(prefix="/api/scheduled-actions", tags=["scheduled-actions"])


@router.post("/run-due")
async def api_run_due(
    request: Request,
    engine: Engine = Depends(get_db),
    llm: LanguageModel = Depends(get_llm),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    runner = DeferredActionRunner(
        engine,
        llm,
        settings,
        provider_factory=request.app.state.provider_factory,
    )
    results = await runner.run_due()
    return {
        "count": len(results),
        "results": [
            {"jobId": r.job_id, "status": r.status, "detail": r.detail, "error": r.error}
            for r in results
        ],
    }
