"""Checks run before the editor issues a generation request."""

from __future__ import annotations


def validate_generation_params(
    *,
    model: str | None,
    text: str | None = None,
    selection: str | None = None,
    action: str | None = None,
) -> str | None:
    """Return a user-facing error message, or None when the request may go out."""
    if not model or not model.strip():
        return "Valid model is required"

    if selection is not None and action is not None:
        if not selection.strip():
            return "Valid selection is required for text editing"
        if not action.strip():
            return "Valid action is required for text editing"
    elif text is not None:
        if not text.strip():
            return "Valid message is required for chat"
    else:
        return "Either message or selection with action is required"

    return None
