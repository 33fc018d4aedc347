"""Tests for prompt construction."""

import pytest

from schemas.generation import GenerationRequest, TransformAction
from services.prompt_builder import (
    DEFAULT_SYSTEM_PROMPT,
    TRANSFORM_INSTRUCTIONS,
    build_chat_prompt,
    build_prompt,
    build_system_prompt,
    system_prompt_for,
)


@pytest.mark.parametrize("action", list(TransformAction))
def test_transform_prompt_is_deterministic(action):
    request = GenerationRequest.transform(
        "The cat sat on the mat.", action, "llama3.2", "A story about cats."
    )
    twin = GenerationRequest.transform(
        "The cat sat on the mat.", action, "llama3.2", "A story about cats."
    )
    assert build_prompt(request) == build_prompt(twin)


def test_transform_prompt_layout():
    request = GenerationRequest.transform("  too many words here  ", "shorten", "m")
    assert build_prompt(request) == (
        f"{TRANSFORM_INSTRUCTIONS[TransformAction.SHORTEN]}\n\ntoo many words here"
    )


def test_transform_prompt_appends_document_context():
    request = GenerationRequest.transform(
        "teh cat", "proofread", "m", "The whole document."
    )
    prompt = build_prompt(request)
    assert prompt.endswith("\n\nDocument context for reference:\nThe whole document.")


def test_unknown_action_falls_back_to_proofread():
    request = GenerationRequest.transform("some text", "rhyme", "m")
    assert request.transform_action is TransformAction.PROOFREAD
    assert build_prompt(request).startswith(
        TRANSFORM_INSTRUCTIONS[TransformAction.PROOFREAD]
    )


def test_table_alias_maps_to_tabularize():
    assert TransformAction.parse("table") is TransformAction.TABULARIZE
    assert TransformAction.parse(" Grammar ") is TransformAction.PROOFREAD


def test_chat_prompt_without_context():
    assert build_chat_prompt("hello", "") == (
        "User: hello\n\nPlease provide a helpful response."
    )


def test_chat_prompt_with_context():
    prompt = build_chat_prompt("What is this about?", "Notes on sourdough.")
    assert prompt == (
        "User: What is this about?\n\nDocument context:\nNotes on sourdough.\n\n"
        "Please provide a helpful response that takes the document context "
        "into account."
    )


def test_whitespace_only_context_is_ignored():
    request = GenerationRequest.chat("hello", "m", "   \n ")
    assert build_prompt(request) == build_chat_prompt("hello")


def test_system_prompts():
    chat = GenerationRequest.chat("hello", "m")
    transform = GenerationRequest.transform("text", "lengthen", "m")
    assert "helpful AI assistant" in system_prompt_for(chat)
    assert "AI text editor" in system_prompt_for(transform)
    assert build_system_prompt("unknown") == DEFAULT_SYSTEM_PROMPT
