"""Command-line interface for Inbox Assistant.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog
from sqlalchemy.engine import Engine

from inbox_assistant import __version__
from inbox_assistant.config import get_settings
from inbox_assistant.db import get_engine
from inbox_assistant.exceptions import InboxAssistantError
from inbox_assistant.llm import OllamaClient
from inbox_assistant.models import EmailAccount
from inbox_assistant.providers import create_email_provider
from inbox_assistant.repository import account_repository, rule_repository
from inbox_assistant.repository.schema import ensure_schema
from inbox_assistant.rules import DeferredActionRunner, RuleEngine, validate_rule_document
from inbox_assistant.utils import configure_logging
from inbox_assistant.watch import get_watch_status, start_watching, stop_watching

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inbox-assistant", description="Inbox Assistant")
    subparsers = parser.add_subparsers(dest="command", required=True)

    db_parser = subparsers.add_parser("db", help="Database management")
    db_sub = db_parser.add_subparsers(dest="db_command", required=True)
    db_sub.add_parser("init", help="Create tables and indexes (idempotent)")

    accounts_parser = subparsers.add_parser("accounts", help="Connected email accounts")
    accounts_sub = accounts_parser.add_subparsers(dest="accounts_command", required=True)
    accounts_sub.add_parser("list", help="List accounts")
    add_parser = accounts_sub.add_parser("add", help="Add or update an account")
    add_parser.add_argument("--email", required=True)
    add_parser.add_argument("--provider", required=True, help="google or microsoft")
    add_parser.add_argument("--access-token", default=None)
    add_parser.add_argument("--refresh-token", default=None)
    add_parser.add_argument("--webhook-url", default=None, help="Task-creation webhook URL")

    rules_parser = subparsers.add_parser("rules", help="Automation rules")
    rules_sub = rules_parser.add_subparsers(dest="rules_command", required=True)

    list_parser = rules_sub.add_parser("list", help="List an account's rules in execution order")
    list_parser.add_argument("--account", required=True, help="Email account id")

    create_parser = rules_sub.add_parser("add", help="Validate and store a rule document")
    create_parser.add_argument("--account", required=True, help="Email account id")
    create_parser.add_argument("file", type=Path, help="Path to a JSON rule document")

    process_parser = rules_sub.add_parser("process", help="Run the rules against one message")
    process_parser.add_argument("--account", required=True, help="Email account id")
    process_parser.add_argument("--message-id", required=True)

    recent_parser = rules_sub.add_parser("process-recent", help="Run the rules against recent messages")
    recent_parser.add_argument("--account", required=True, help="Email account id")
    recent_parser.add_argument("--hours", type=float, default=24)
    recent_parser.add_argument("--limit", type=int, default=50)

    scheduled_parser = subparsers.add_parser("scheduled", help="Delayed rule actions")
    scheduled_sub = scheduled_parser.add_subparsers(dest="scheduled_command", required=True)
    scheduled_sub.add_parser("run-due", help="Execute every due scheduled action")

    watch_parser = subparsers.add_parser("watch", help="Push-notification subscriptions")
    watch_sub = watch_parser.add_subparsers(dest="watch_command", required=True)
    for name, help_text in (
        ("start", "Subscribe to new-mail notifications"),
        ("stop", "Cancel the subscription"),
        ("status", "Show the persisted subscription"),
    ):
        p = watch_sub.add_parser(name, help=help_text)
        p.add_argument("--account", required=True, help="Email account id")

    return parser


def _load_account(engine: Engine, account_id: str) -> EmailAccount:
    account = account_repository.get_account(engine, account_id)
    if account is None:
        raise InboxAssistantError(f"Unknown email account: {account_id}")
    return account


def _cmd_accounts(args: argparse.Namespace, engine: Engine) -> int:
    if args.accounts_command == "add":
        account = account_repository.upsert_account(
            engine,
            email=args.email,
            provider=args.provider,
            access_token=args.access_token,
            refresh_token=args.refresh_token,
            webhook_url=args.webhook_url,
        )
        print(f"{account.id}\t{account.email}\t{account.provider}")
        return 0

    for account in account_repository.list_accounts(engine):
        watching = "watching" if account.watch_subscription_id else "-"
        print(f"{account.id}\t{account.email}\t{account.provider}\t{watching}")
    return 0


async def _cmd_rules(args: argparse.Namespace, engine: Engine) -> int:
    settings = get_settings()
    account = _load_account(engine, args.account)

    if args.rules_command == "list":
        for rule in rule_repository.list_rules(engine, account.id):
            state = "enabled" if rule.enabled else "disabled"
            print(f"{rule.position}\t{rule.id}\t{state}\t{rule.name}\t{len(rule.actions)} actions")
        return 0

    if args.rules_command == "add":
        document = json.loads(args.file.read_text(encoding="utf-8"))
        definition = validate_rule_document(document, account.provider)
        rule = rule_repository.create_rule(engine, account.id, definition)
        print(f"Created rule {rule.id} ({rule.name}) at position {rule.position}")
        return 0

    provider = create_email_provider(account, settings)
    llm = OllamaClient(settings)
    rule_engine = RuleEngine(engine, account, provider, llm, settings)

    if args.rules_command == "process":
        result = await rule_engine.process_message_id(args.message_id)
        print(json.dumps(result.to_dict(), indent=2))
        return 1 if result.state.value == "FAILED" else 0

    from inbox_assistant.agent import InboxAgent

    agent = InboxAgent(engine, account, settings, provider=provider, llm=llm)
    results = await agent.process_recent(hours=args.hours, max_results=args.limit)
    for r in results:
        print(f"{r.message_id}\t{r.state.value}\t{r.rule_name or '-'}")
    return 0


async def _cmd_scheduled(args: argparse.Namespace, engine: Engine) -> int:
    settings = get_settings()
    runner = DeferredActionRunner(engine, OllamaClient(settings), settings)
    results = await runner.run_due()
    for r in results:
        print(f"{r.job_id}\t{r.status}\t{r.detail or r.error or ''}")
    print(f"Ran {len(results)} scheduled actions")
    return 0


async def _cmd_watch(args: argparse.Namespace, engine: Engine) -> int:
    if args.watch_command == "status":
        status = get_watch_status(engine, args.account)
        if status is None:
            raise InboxAssistantError(f"Unknown email account: {args.account}")
        print(status.model_dump_json(by_alias=True, indent=2))
        return 0

    account = _load_account(engine, args.account)
    provider = create_email_provider(account, get_settings())
    if args.watch_command == "start":
        status = await start_watching(engine, account, provider)
    else:
        status = await stop_watching(engine, account, provider)
    print(status.model_dump_json(by_alias=True, indent=2))
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Inbox Assistant CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("inbox_assistant_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    engine = get_engine()
    try:
        ensure_schema(engine)
        if parsed.command == "db":
            print("Schema ready")
            return 0
        if parsed.command == "accounts":
            return _cmd_accounts(parsed, engine)
        if parsed.command == "rules":
            return asyncio.run(_cmd_rules(parsed, engine))
        if parsed.command == "scheduled":
            return asyncio.run(_cmd_scheduled(parsed, engine))
        if parsed.command == "watch":
            return asyncio.run(_cmd_watch(parsed, engine))
    except InboxAssistantError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
