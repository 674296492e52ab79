"""Assistant tool layer."""

from inbox_assistant.assistant.tools import TOOLS, AssistantToolbox, tool_definitions

__all__ = ["TOOLS", "AssistantToolbox", "tool_definitions"]
