"""Request-scoped dependencies.

The app factory stores the engine, settings and the provider / language model
factories on ``app.state`` so tests can swap in fakes.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy.engine import Engine

from inbox_assistant.config import Settings
from inbox_assistant.llm import LanguageModel
from inbox_assistant.models import EmailAccount
from inbox_assistant.providers import EmailProvider
from inbox_assistant.repository.account_repository import get_account


def get_db(request: Request) -> Engine:
    return request.app.state.engine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_llm(request: Request) -> LanguageModel:
    return request.app.state.llm_factory()


def get_account_or_404(email_account_id: str, engine: Engine = Depends(get_db)) -> EmailAccount:
    account = get_account(engine, email_account_id)
    if account is None:
        raise HTTPException(status_code=404, detail="Email account not found")
    return account


def get_provider(request: Request, account: EmailAccount = Depends(get_account_or_404)) -> EmailProvider:
    return request.app.state.provider_factory(account)
