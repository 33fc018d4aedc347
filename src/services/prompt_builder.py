"""Prompt construction for chat messages and selection transforms.

Every function here is pure: the same request always yields a
byte-identical prompt. Input cleaning (control characters, length cap)
happens when the wire body is parsed, so text is embedded as received.
"""

from __future__ import annotations

from typing import Literal

from schemas.generation import GenerationKind, GenerationRequest, TransformAction


TRANSFORM_INSTRUCTIONS: dict[TransformAction, str] = {
    TransformAction.SHORTEN: (
        "Rewrite the following text to be shorter while preserving meaning. "
        "Return only the revised text."
    ),
    TransformAction.LENGTHEN: (
        "Expand the following text with clear detail and smooth flow. "
        "Return only the revised text."
    ),
    TransformAction.TABULARIZE: (
        "Convert the following into a simple Markdown table with headers when "
        "obvious. Return only the table."
    ),
    TransformAction.PROOFREAD: (
        "Improve clarity and grammar. Return only the revised text."
    ),
}

SYSTEM_PROMPTS: dict[str, str] = {
    "chat": (
        "You are a helpful AI assistant. Provide clear, concise, and accurate "
        "responses."
    ),
    "editor": (
        "You are an AI writing assistant. Help improve text by making it "
        "clearer, more engaging, and better structured."
    ),
    "selection": (
        "You are an AI text editor. Transform the given text according to the "
        "specified action while maintaining the original meaning and tone."
    ),
}
DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


def _has_context(document_context: str | None) -> bool:
    return bool(document_context and document_context.strip())


def build_action_prompt(selection: str, action: TransformAction | None) -> str:
    instruction = TRANSFORM_INSTRUCTIONS[action or TransformAction.PROOFREAD]
    return f"{instruction}\n\n{selection.strip()}"


def build_selection_prompt(
    selection: str,
    action: TransformAction | None,
    document_context: str | None = None,
) -> str:
    prompt = build_action_prompt(selection, action)
    if not _has_context(document_context):
        return prompt
    return f"{prompt}\n\nDocument context for reference:\n{document_context}"


def build_chat_prompt(message: str, document_context: str | None = None) -> str:
    if not _has_context(document_context):
        return f"User: {message}\n\nPlease provide a helpful response."
    return (
        f"User: {message}\n\nDocument context:\n{document_context}\n\n"
        "Please provide a helpful response that takes the document context "
        "into account."
    )


def build_prompt(request: GenerationRequest) -> str:
    """Map a validated request to the single prompt string sent upstream."""
    if request.kind is GenerationKind.TRANSFORM:
        return build_selection_prompt(
            request.selection or "",
            request.transform_action,
            request.document_context,
        )
    return build_chat_prompt(request.message or "", request.document_context)


def build_system_prompt(context: Literal["chat", "editor", "selection"] | str) -> str:
    return SYSTEM_PROMPTS.get(context, DEFAULT_SYSTEM_PROMPT)


def system_prompt_for(request: GenerationRequest) -> str:
    if request.kind is GenerationKind.TRANSFORM:
        return build_system_prompt("selection")
    return build_system_prompt("chat")
