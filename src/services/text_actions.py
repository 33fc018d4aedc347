"""Text filtering and formatting for generated output.

`strip_meta_blocks` removes backend reasoning blocks (``<think>...</think>``)
from streamed text. Only complete blocks are removed: an opening delimiter
whose closing half has not arrived yet stays in place, since chunk
boundaries need not line up with delimiter boundaries.

The remaining helpers turn a finished transform into text fit for insertion
into the editor.
"""

from __future__ import annotations

import re

from schemas.generation import TransformAction


META_OPEN = "<think>"
META_CLOSE = "</think>"

_META_BLOCK_RE = re.compile(
    re.escape(META_OPEN) + r".*?" + re.escape(META_CLOSE),
    re.IGNORECASE | re.DOTALL,
)
_CODE_BLOCK_RE = re.compile(r"```(.*?)```", re.DOTALL)
_TABLE_PIPE_RE = re.compile(r"[ \t]*\|[ \t]*")


def strip_meta_blocks(text: str) -> str:
    """Remove every complete meta-block and trim surrounding whitespace.

    Removal repeats until nothing matches, since dropping one block can join
    the text around it into a new complete block.
    """
    while (stripped := _META_BLOCK_RE.sub("", text)) != text:
        text = stripped
    return text.strip()


def remove_markdown_emphasis(text: str) -> str:
    return text.replace("**", "").strip()


def format_table_text(text: str) -> str:
    """Normalize pipe spacing and drop blank lines in a Markdown table."""
    lines = (_TABLE_PIPE_RE.sub(" | ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def format_inline_text(text: str) -> str:
    """Collapse a multi-line rewrite onto a single line."""
    return re.sub(r"\s+", " ", text).strip()


def format_code_blocks(text: str) -> str:
    """Replace fenced code with a four-space indented block."""

    def _indent(match: re.Match[str]) -> str:
        code = match.group(1).strip()
        return "\n" + "\n".join("    " + line for line in code.split("\n")) + "\n"

    return _CODE_BLOCK_RE.sub(_indent, text)


def format_ai_suggestion(text: str, action: TransformAction | str | None) -> str:
    """Prepare a completed transform for insertion into the document."""
    if not isinstance(action, TransformAction):
        action = TransformAction.parse(action)

    formatted = remove_markdown_emphasis(strip_meta_blocks(text))
    if action is TransformAction.TABULARIZE:
        formatted = format_table_text(formatted)
    elif action in (TransformAction.SHORTEN, TransformAction.LENGTHEN):
        formatted = format_inline_text(formatted)

    return format_code_blocks(formatted).strip()
