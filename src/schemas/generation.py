"""Schemas for generation requests, streamed chunks and backend reachability."""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.exceptions import MalformedRequestError


MAX_INPUT_CHARS: int = 10_000

# C0 controls and DEL, minus tab, newline and carriage return
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def clean_input_text(value: str) -> str:
    """Strip control characters and cap length of user-supplied text."""
    return _CONTROL_CHARS_RE.sub("", value)[:MAX_INPUT_CHARS]


class GenerationKind(StrEnum):
    CHAT = "chat"
    TRANSFORM = "transform"


class TransformAction(StrEnum):
    SHORTEN = "shorten"
    LENGTHEN = "lengthen"
    TABULARIZE = "tabularize"
    PROOFREAD = "proofread"

    @classmethod
    def parse(cls, value: str | None) -> TransformAction:
        """Map a wire action name to a transform; unknown names proofread."""
        if not value:
            return cls.PROOFREAD
        key = value.strip().lower()
        key = _ACTION_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return cls.PROOFREAD


# Names the browser toolbar historically sent
_ACTION_ALIASES: dict[str, str] = {
    "table": TransformAction.TABULARIZE.value,
    "grammar": TransformAction.PROOFREAD.value,
}


class GenerationRequest(BaseModel):
    """A validated request for one generation.

    Exactly one of `message` (chat) or `selection` (transform) is present.
    `model_id` is opaque and forwarded to the backend unchanged.
    """

    kind: GenerationKind
    model_id: str = Field(..., min_length=1)
    message: str | None = None
    document_context: str | None = None
    selection: str | None = None
    transform_action: TransformAction | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _exactly_one_intent(self) -> GenerationRequest:
        has_message = bool(self.message and self.message.strip())
        has_selection = bool(self.selection and self.selection.strip())
        if self.kind is GenerationKind.CHAT:
            if not has_message or self.selection is not None:
                raise ValueError("chat requests carry a message and no selection")
        else:
            if not has_selection or self.message is not None:
                raise ValueError("transform requests carry a selection and no message")
        return self

    @classmethod
    def chat(
        cls, message: str, model_id: str, document_context: str | None = None
    ) -> GenerationRequest:
        return cls(
            kind=GenerationKind.CHAT,
            message=message,
            document_context=document_context,
            model_id=model_id,
        )

    @classmethod
    def transform(
        cls,
        selection: str,
        action: TransformAction | str | None,
        model_id: str,
        document_context: str | None = None,
    ) -> GenerationRequest:
        if not isinstance(action, TransformAction):
            action = TransformAction.parse(action)
        return cls(
            kind=GenerationKind.TRANSFORM,
            selection=selection,
            transform_action=action,
            document_context=document_context,
            model_id=model_id,
        )

    def to_wire(self) -> dict[str, Any]:
        """Render as the JSON body accepted by `POST /api/ai`."""
        body: dict[str, Any] = {"model": self.model_id}
        if self.kind is GenerationKind.CHAT:
            body["message"] = self.message
        else:
            body["selection"] = self.selection
            body["action"] = (self.transform_action or TransformAction.PROOFREAD).value
        if self.document_context is not None:
            body["doc"] = self.document_context
        return body


class RelayRequest(BaseModel):
    """Wire body of `POST /api/ai` as sent by the browser."""

    message: str | None = None
    doc: str | None = None
    selection: str | None = None
    action: str | None = None
    model: str | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("message", "doc", "selection")
    @classmethod
    def _clean_text(cls, v: str | None) -> str | None:
        return clean_input_text(v) if v is not None else None

    def to_generation_request(self, default_model: str) -> GenerationRequest:
        """Resolve the wire body into a domain request.

        Raises:
            MalformedRequestError: if the body is neither a chat message nor a
                selection to transform, or is both at once.
        """
        has_message = bool(self.message and self.message.strip())
        has_selection = bool(self.selection and self.selection.strip())
        if has_message and has_selection:
            raise MalformedRequestError(
                "Send either a chat message or a selection, not both"
            )
        if not has_message and not has_selection:
            raise MalformedRequestError()

        model_id = self.model if self.model and self.model.strip() else default_model
        if has_selection:
            return GenerationRequest.transform(
                selection=self.selection or "",
                action=self.action,
                model_id=model_id,
                document_context=self.doc,
            )
        return GenerationRequest.chat(
            message=self.message or "",
            model_id=model_id,
            document_context=self.doc,
        )


class StreamChunk(BaseModel):
    """One increment of generated text, in emission order."""

    text: str

    model_config = ConfigDict(frozen=True)


class PingResult(BaseModel):
    """Reachability report for the inference backend."""

    ok: bool
    status: int | None = None
    length: int = 0
    models_available: int | None = None
    preview: str = ""
    error: str | None = None
