"""FastAPI application factory."""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from inbox_assistant import __version__
from inbox_assistant.api.accounts import router as accounts_router
from inbox_assistant.api.assistant import router as assistant_router
from inbox_assistant.api.rules import router as rules_router
from inbox_assistant.api.scheduled import router as scheduled_router
from inbox_assistant.config import Settings
from inbox_assistant.exceptions import (
    ConfigurationError,
    InboxAssistantError,
    ProviderAuthExpiredError,
    ProviderError,
    ProviderNotFoundError,
    UnsupportedCapabilityError,
    ValidationError,
)
from inbox_assistant.llm import LanguageModel, OllamaClient
from inbox_assistant.models import EmailAccount
from inbox_assistant.providers import EmailProvider, create_email_provider
from inbox_assistant.repository.schema import ensure_schema
from inbox_assistant.utils import configure_logging

logger = structlog.get_logger()


def _status_for(exc: InboxAssistantError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, ProviderAuthExpiredError):
        return 401
    if isinstance(exc, ProviderNotFoundError):
        return 404
    if isinstance(exc, UnsupportedCapabilityError):
        return 400
    if isinstance(exc, ProviderError):
        return 502
    if isinstance(exc, ConfigurationError):
        return 503
    return 500


def create_app(
    engine: Optional[Engine] = None,
    settings: Optional[Settings] = None,
    provider_factory: Optional[Callable[[EmailAccount], EmailProvider]] = None,
    llm_factory: Optional[Callable[[], LanguageModel]] = None,
) -> FastAPI:
    """Build the API app.

    Args:
        engine: Database engine. If None, uses the cached engine for settings.
        settings: Application settings. If None, uses default settings.
        provider_factory: Builds the provider for an account.
        llm_factory: Builds the language model used by the rule engine.
    """
    from inbox_assistant.config import get_settings
    from inbox_assistant.db import create_db_engine

    settings = settings or get_settings()
    engine = engine or create_db_engine(settings)
    configure_logging(settings.log_level)
    ensure_schema(engine)

    app = FastAPI(title="Inbox Assistant", version=__version__, debug=settings.debug)
    app.state.engine = engine
    app.state.settings = settings
    app.state.provider_factory = provider_factory or (
        lambda account: create_email_provider(account, settings)
    )
    app.state.llm_factory = llm_factory or (lambda: OllamaClient(settings))

    @app.exception_handler(InboxAssistantError)
    async def _domain_error(request: Request, exc: InboxAssistantError) -> JSONResponse:
        status = _status_for(exc)
        logger.warning(
            "api_request_failed",
            path=request.url.path,
            status_code=status,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    app.include_router(accounts_router)
    app.include_router(rules_router)
    app.include_router(assistant_router)
    app.include_router(scheduled_router)

    logger.info("api_app_created", dialect=engine.dialect.name)
    return app
