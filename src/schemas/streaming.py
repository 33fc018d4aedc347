"""Schemas for the generation SSE stream.

Wire framing on `POST /api/ai`:

* chunk: ``data: <token text>\\n\\n``; multi-line text uses one ``data:`` line
  per line, which SSE decoders join back with ``\\n``
* error: ``data: [Error] <sanitized message>\\n\\n``, then the stream ends
* done:  ``event: done\\n\\n``, a clean end; carries no ``data:`` line so
  readers that only look at data lines never see it
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict


ERROR_MARKER: str = "[Error]"
DONE_EVENT: str = "done"
SSE_MEDIA_TYPE: str = "text/event-stream"

# Line terminators recognized by SSE decoders
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

# Sent with every stream so proxies flush each event as it is written
SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RelayEvent(BaseModel):
    """One event on the relay stream."""

    kind: Literal["chunk", "error", "done"]
    text: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def chunk(cls, text: str) -> RelayEvent:
        return cls(kind="chunk", text=text)

    @classmethod
    def error(cls, message: str) -> RelayEvent:
        return cls(kind="error", text=message)

    @classmethod
    def done(cls) -> RelayEvent:
        return cls(kind="done")

    def to_sse(self) -> str:
        """Serialize event to SSE wire format."""
        if self.kind == "done":
            return f"event: {DONE_EVENT}\n\n"
        payload = self.text
        if self.kind == "error":
            payload = f"{ERROR_MARKER} {self.text}"
        lines = _LINE_BREAK_RE.split(payload)
        return "".join(f"data: {line}\n" for line in lines) + "\n"
