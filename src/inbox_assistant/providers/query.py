"""Search query grammar shared by every provider.

A query is a whitespace-joined list of clauses, all of which must hold:

    is:unread           only unread messages
    in:inbox            only messages in the inbox
    after:<seconds>     received after a unix timestamp
    before:<seconds>    received before a unix timestamp

Gmail understands these clauses natively. Other providers translate the parsed
:class:`SearchQuery` into their own filter syntax.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from inbox_assistant.exceptions import ValidationError


@dataclass(frozen=True)
class SearchQuery:
    unread: bool = False
    in_inbox: bool = False
    after: int | None = None
    before: int | None = None

    @classmethod
    def parse(cls, query: str | None) -> "SearchQuery":
        unread = False
        in_inbox = False
        after: int | None = None
        before: int | None = None

        for clause in (query or "").split():
            key, sep, value = clause.partition(":")
            key = key.lower()
            if not sep or not value:
                raise ValidationError(f"Unsupported search clause: {clause!r}")

            if key == "is" and value.lower() == "unread":
                unread = True
            elif key == "in" and value.lower() == "inbox":
                in_inbox = True
            elif key in ("after", "before"):
                try:
                    seconds = int(value)
                except ValueError as exc:
                    raise ValidationError(
                        f"{key}: expects unix seconds, got {value!r}"
                    ) from exc
                if key == "after":
                    after = seconds
                else:
                    before = seconds
            else:
                raise ValidationError(f"Unsupported search clause: {clause!r}")

        return cls(unread=unread, in_inbox=in_inbox, after=after, before=before)

    @classmethod
    def received_since(cls, since: datetime, *, unread_only: bool = False) -> "SearchQuery":
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        return cls(unread=unread_only, after=int(since.timestamp()))

    def __str__(self) -> str:
        clauses: list[str] = []
        if self.unread:
            clauses.append("is:unread")
        if self.in_inbox:
            clauses.append("in:inbox")
        if self.after is not None:
            clauses.append(f"after:{self.after}")
        if self.before is not None:
            clauses.append(f"before:{self.before}")
        return " ".join(clauses)

    @property
    def after_datetime(self) -> datetime | None:
        if self.after is None:
            return None
        return datetime.fromtimestamp(self.after, tz=timezone.utc)

    @property
    def before_datetime(self) -> datetime | None:
        if self.before is None:
            return None
        return datetime.fromtimestamp(self.before, tz=timezone.utc)
