"""Inbox Assistant - AI-assisted email automation backend.

This package ingests messages from Gmail and Microsoft mailboxes, applies
user-defined automation rules, tracks threads that need a reply, and exposes a
set of tools to a conversational assistant.
"""

__version__ = "0.1.0"

from inbox_assistant.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
