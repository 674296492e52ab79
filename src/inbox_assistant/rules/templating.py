"""Parser for ``{{...}}`` placeholders in action fields.

A field value is split into an ordered sequence of spans::

    "Hi {{sender first name}}, thanks!"
    -> [LiteralSpan("Hi "), PlaceholderSpan("sender first name"), LiteralSpan(", thanks!")]

Placeholders cannot nest and must be closed. A stray ``}}`` outside a
placeholder is kept as literal text.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Union

from inbox_assistant.exceptions import ValidationError

OPEN = "{{"
CLOSE = "}}"


@dataclass(frozen=True)
class LiteralSpan:
    text: str


@dataclass(frozen=True)
class PlaceholderSpan:
    instruction: str
    start: int
    end: int


Span = Union[LiteralSpan, PlaceholderSpan]


def parse_template(value: str) -> list[Span]:
    spans: list[Span] = []
    pos = 0
    while pos < len(value):
        start = value.find(OPEN, pos)
        if start < 0:
            spans.append(LiteralSpan(value[pos:]))
            break
        if start > pos:
            spans.append(LiteralSpan(value[pos:start]))

        end = value.find(CLOSE, start + len(OPEN))
        if end < 0:
            raise ValidationError(f"Unterminated placeholder at offset {start}: {value[start:start + 30]!r}")

        body = value[start + len(OPEN) : end]
        if OPEN in body:
            raise ValidationError(f"Nested placeholder at offset {start}: {value[start:end + 2]!r}")
        if not body.strip():
            raise ValidationError(f"Empty placeholder at offset {start}")

        spans.append(PlaceholderSpan(instruction=body.strip(), start=start, end=end + len(CLOSE)))
        pos = end + len(CLOSE)
    return spans


def placeholders(spans: Sequence[Span]) -> list[PlaceholderSpan]:
    return [s for s in spans if isinstance(s, PlaceholderSpan)]


def has_placeholders(value: str | None) -> bool:
    if not value or OPEN not in value:
        return False
    return bool(placeholders(parse_template(value)))


def render(spans: Sequence[Span], substitutions: Mapping[PlaceholderSpan, str]) -> str:
    """Join spans, replacing each placeholder with its substitution."""

    parts: list[str] = []
    for span in spans:
        if isinstance(span, LiteralSpan):
            parts.append(span.text)
        else:
            parts.append(substitutions[span])
    return "".join(parts)
