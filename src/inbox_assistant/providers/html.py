"""HTML and snippet helpers shared by the providers."""

from __future__ import annotations

import html
import re

from bs4 import BeautifulSoup

_WHITESPACE_RE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def decode_snippet(snippet: str | None) -> str:
    """Decode HTML entities Gmail leaves in message snippets (``&#39;`` etc.)."""

    if not snippet:
        return ""
    return html.unescape(snippet).replace("\u200c", "").strip()


def html_to_text(markup: str | None) -> str:
    if not markup:
        return ""

    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()

    text = soup.get_text("\n")
    lines = [_WHITESPACE_RE.sub(" ", line).strip() for line in text.splitlines()]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()
