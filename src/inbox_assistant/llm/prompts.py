"""Prompt contracts for rule judging and placeholder generation."""

from __future__ import annotations

from inbox_assistant.models import CanonicalMessage

PROMPT_VERSION = "rules-v1"

_MAX_BODY_CHARS = 8_000


def _message_context(message: CanonicalMessage) -> str:
    headers = message.headers
    return (
        f"From: {headers.from_ or ''}\n"
        f"To: {headers.to or ''}\n"
        f"Cc: {headers.cc or ''}\n"
        f"Date: {headers.date or ''}\n"
        f"Subject: {message.subject}\n"
        "---\n"
        f"{message.body_text(_MAX_BODY_CHARS)}\n"
        "---\n"
    )


JUDGE_SYSTEM = (
    "You decide whether an email matches a user's automation rule. "
    "Return ONLY valid JSON. No markdown. No code fences. No commentary."
)


def build_judge_prompt(message: CanonicalMessage, instructions: str) -> str:
    """Ask for ``{"matched": bool, "reason": str}``."""

    return (
        "Rule instructions:\n"
        f"{instructions.strip()}\n\n"
        "Does the email below match the rule instructions?\n"
        'Respond with JSON: {"matched": true|false, "reason": "<one short sentence>"}\n\n'
        "Email:\n"
        f"{_message_context(message)}"
    )


PLACEHOLDER_SYSTEM = (
    "You write short pieces of text for an email automation. "
    "Output only the requested text, without quotes, labels or explanations."
)


def build_placeholder_prompt(message: CanonicalMessage, instruction: str, field: str) -> str:
    """Prompt for the replacement text of one ``{{...}}`` span."""

    return (
        f"You are filling in the '{field}' field of an automated email action.\n"
        "Instruction for this part of the field:\n"
        f"{instruction.strip()}\n\n"
        "The email that triggered the action:\n"
        f"{_message_context(message)}\n"
        "Write only the text that should replace the instruction."
    )
