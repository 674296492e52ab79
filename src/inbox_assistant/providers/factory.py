"""Select the provider implementation for an account."""

from __future__ import annotations

from inbox_assistant.config import Settings
from inbox_assistant.exceptions import ConfigurationError
from inbox_assistant.models import EmailAccount
from inbox_assistant.providers.base import EmailProvider, ProviderCapability

GOOGLE_PROVIDERS = frozenset({"google", "gmail"})
MICROSOFT_PROVIDERS = frozenset({"microsoft", "microsoft-entra-id", "outlook"})


def is_google_provider(provider: str | None) -> bool:
    return (provider or "").lower() in GOOGLE_PROVIDERS


def is_microsoft_provider(provider: str | None) -> bool:
    return (provider or "").lower() in MICROSOFT_PROVIDERS


def capabilities_for(provider: str | None) -> frozenset[ProviderCapability]:
    """Capability set for a provider name, without building a client."""

    from inbox_assistant.providers.gmail import GmailProvider
    from inbox_assistant.providers.outlook import OutlookProvider

    if is_microsoft_provider(provider):
        return OutlookProvider.capabilities
    if is_google_provider(provider):
        return GmailProvider.capabilities
    raise ConfigurationError(f"Unknown email provider: {provider!r}")


def create_email_provider(account: EmailAccount, settings: Settings | None = None) -> EmailProvider:
    """Build the provider for the account's actual provider."""

    if is_microsoft_provider(account.provider):
        from inbox_assistant.providers.outlook import OutlookProvider

        return OutlookProvider(account, settings)
    if is_google_provider(account.provider):
        from inbox_assistant.providers.gmail import GmailProvider

        return GmailProvider(account, settings)
    raise ConfigurationError(f"Unknown email provider: {account.provider!r}")
