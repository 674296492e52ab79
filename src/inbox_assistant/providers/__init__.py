"""Email provider abstraction (Gmail, Microsoft Graph)."""

from inbox_assistant.providers.base import EmailProvider, ProviderCapability, WatchSubscription
from inbox_assistant.providers.factory import (
    capabilities_for,
    create_email_provider,
    is_google_provider,
    is_microsoft_provider,
)
from inbox_assistant.providers.query import SearchQuery

__all__ = [
    "EmailProvider",
    "ProviderCapability",
    "SearchQuery",
    "WatchSubscription",
    "capabilities_for",
    "create_email_provider",
    "is_google_provider",
    "is_microsoft_provider",
]
