"""Sanitization of error text before it reaches the browser.

Backend failures often come back as HTML error pages or verbose stack
traces. Everything surfaced to a user passes through `sanitize_error_text`:
markup stripped, control characters removed, whitespace collapsed, and the
result capped at `MAX_ERROR_CHARS`.
"""

from __future__ import annotations

import re
import warnings

from bs4 import BeautifulSoup, Comment, MarkupResemblesLocatorWarning


MAX_ERROR_CHARS: int = 240
DEFAULT_ERROR_TEXT: str = "Unknown error"

_UNWANTED_TAGS = ("script", "style", "head")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_markup(text: str) -> str:
    """Return the visible text of an HTML/XML fragment."""
    if "<" not in text:
        return text
    with warnings.catch_warnings():
        # Short strings that look like paths or URLs trigger a bs4 warning
        warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
        soup = BeautifulSoup(text, "html.parser")
    for tag in soup.find_all(_UNWANTED_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    return soup.get_text(" ")


def sanitize_error_text(
    text: object,
    *,
    max_length: int = MAX_ERROR_CHARS,
    default: str = DEFAULT_ERROR_TEXT,
) -> str:
    """Make arbitrary error text safe and short enough to display."""
    if text is None:
        return default
    raw = str(text)
    if not raw.strip():
        return default

    visible = strip_markup(raw)
    # Unbalanced brackets survive the parser as literal text
    visible = visible.replace("<", " ").replace(">", " ")
    visible = _CONTROL_CHARS_RE.sub(" ", visible)
    visible = _WHITESPACE_RE.sub(" ", visible).strip()
    if not visible:
        return default
    return visible[:max_length].rstrip()
