"""Custom exceptions for Inbox Assistant."""

from __future__ import annotations


class InboxAssistantError(Exception):
    """Base exception for all Inbox Assistant errors."""


class ConfigurationError(InboxAssistantError):
    """Exception raised for configuration related errors."""


class ValidationError(InboxAssistantError):
    """Exception raised for malformed rules, actions or tool inputs."""


class RepositoryError(InboxAssistantError):
    """Exception raised when a stored row cannot be read back."""


class ProviderError(InboxAssistantError):
    """Exception raised for email provider API failures."""


class ProviderAuthExpiredError(ProviderError):
    """The provider rejected our credentials; the user must re-authenticate."""


class ProviderRateLimitedError(ProviderError):
    """The provider asked us to slow down."""


class ProviderTransientError(ProviderError):
    """Network-level or server-side failure that may succeed on retry."""


class ProviderNotFoundError(ProviderError):
    """The requested message, thread, label or folder does not exist."""


class UnsupportedCapabilityError(ProviderError):
    """The provider does not support the requested operation."""


class ModelInferenceError(InboxAssistantError):
    """Exception raised when language model inference fails."""


class LLMConnectionError(ModelInferenceError):
    """Exception raised when unable to reach the language model server."""


class PlaceholderResolutionError(ModelInferenceError):
    """A ``{{...}}`` span in an action field could not be generated."""

    def __init__(self, field: str, span: str, reason: str) -> None:
        super().__init__(f"Failed to resolve {{{{{span}}}}} in field '{field}': {reason}")
        self.field = field
        self.span = span
        self.reason = reason


class WebhookDeliveryError(InboxAssistantError):
    """Exception raised when a webhook call fails or returns a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


RETRYABLE_PROVIDER_ERRORS: tuple[type[Exception], ...] = (
    ProviderRateLimitedError,
    ProviderTransientError,
)
