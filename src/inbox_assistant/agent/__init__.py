"""Agent orchestration."""

from inbox_assistant.agent.inbox_agent import InboxAgent

__all__ = ["InboxAgent"]
