"""Thread tracker and account models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ThreadTrackerType(str, Enum):
    """Reply-management state of a thread."""

    NEEDS_REPLY = "NEEDS_REPLY"
    AWAITING = "AWAITING"
    NEEDS_ACTION = "NEEDS_ACTION"


class ThreadTracker(BaseModel):
    """Persisted marker recording a thread's reply-management state."""

    model_config = ConfigDict(frozen=True)

    id: str
    email_account_id: str
    thread_id: str
    message_id: str
    type: ThreadTrackerType
    resolved: bool = False
    sent_at: datetime
    reason: str | None = None


class EmailAccount(BaseModel):
    """A connected mailbox.

    ``provider`` is the account's real provider name (``google``,
    ``microsoft``...) and is threaded through every provider call site.
    """

    id: str
    email: str
    provider: str
    access_token: str | None = None
    refresh_token: str | None = None
    webhook_url: str | None = None
    watch_subscription_id: str | None = None
    watch_expiration_date: datetime | None = None
    last_history_id: str | None = None

    @property
    def has_access_token(self) -> bool:
        return bool(self.access_token)


class WatchStatus(BaseModel):
    """Read-only projection of the account's push-notification subscription."""

    model_config = ConfigDict(populate_by_name=True)

    is_watching: bool = Field(serialization_alias="isWatching")
    subscription_id: str | None = Field(default=None, serialization_alias="subscriptionId")
    expiration_date: datetime | None = Field(default=None, serialization_alias="expirationDate")
