"""HTTP API."""

from inbox_assistant.api.main import create_app

__all__ = ["create_app"]
