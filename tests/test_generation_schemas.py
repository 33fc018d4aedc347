"""Tests for generation request and stream event schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.exceptions import MalformedRequestError
from schemas.generation import (
    GenerationKind,
    GenerationRequest,
    RelayRequest,
    TransformAction,
    clean_input_text,
)
from schemas.streaming import SSE_HEADERS, RelayEvent


class TestGenerationRequest:
    def test_chat_wire_body(self):
        request = GenerationRequest.chat("hello", "llama3.2", "doc text")
        assert request.kind is GenerationKind.CHAT
        assert request.to_wire() == {
            "model": "llama3.2",
            "message": "hello",
            "doc": "doc text",
        }

    def test_transform_wire_body_omits_missing_doc(self):
        request = GenerationRequest.transform("text", "table", "llama3.2")
        assert request.to_wire() == {
            "model": "llama3.2",
            "selection": "text",
            "action": "tabularize",
        }

    def test_chat_requires_message(self):
        with pytest.raises(ValidationError):
            GenerationRequest(kind=GenerationKind.CHAT, model_id="m", message=" ")

    def test_chat_rejects_selection(self):
        with pytest.raises(ValidationError):
            GenerationRequest(
                kind=GenerationKind.CHAT, model_id="m", message="hi", selection="x"
            )

    def test_model_is_required(self):
        with pytest.raises(ValidationError):
            GenerationRequest.chat("hello", "")

    def test_requests_are_immutable(self):
        request = GenerationRequest.chat("hello", "m")
        with pytest.raises(ValidationError):
            request.message = "changed"  # type: ignore[misc]


class TestRelayRequest:
    def test_unknown_fields_are_ignored(self):
        wire = RelayRequest.model_validate({"message": "hi", "temperature": 0.2})
        assert wire.to_generation_request("llama3.2").message == "hi"

    def test_blank_model_uses_default(self):
        wire = RelayRequest(message="hi", model="  ")
        assert wire.to_generation_request("llama3.2").model_id == "llama3.2"

    def test_selection_defaults_to_proofread(self):
        wire = RelayRequest(selection="teh cat")
        request = wire.to_generation_request("m")
        assert request.kind is GenerationKind.TRANSFORM
        assert request.transform_action is TransformAction.PROOFREAD

    def test_both_message_and_selection_is_malformed(self):
        wire = RelayRequest(message="hi", selection="text", action="shorten")
        with pytest.raises(MalformedRequestError, match="not both"):
            wire.to_generation_request("m")


def test_clean_input_text_keeps_line_breaks_and_tabs():
    assert clean_input_text("a\tb\r\nc\x07d\x7f") == "a\tb\r\ncd"


class TestRelayEvent:
    def test_chunk_framing(self):
        assert RelayEvent.chunk("Hello").to_sse() == "data: Hello\n\n"

    def test_multiline_chunk_framing(self):
        assert RelayEvent.chunk("a\r\nb\rc").to_sse() == "data: a\ndata: b\ndata: c\n\n"

    def test_error_framing(self):
        assert RelayEvent.error("boom").to_sse() == "data: [Error] boom\n\n"

    def test_done_framing_has_no_data_line(self):
        assert RelayEvent.done().to_sse() == "event: done\n\n"

    def test_stream_headers(self):
        assert SSE_HEADERS == {
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
