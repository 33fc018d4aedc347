"""Incremental Server-Sent Events decoder for the relay stream."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from schemas.streaming import DONE_EVENT, ERROR_MARKER


DEFAULT_EVENT = "message"


@dataclass(frozen=True, slots=True)
class SseEvent:
    event: str = DEFAULT_EVENT
    data: str = ""

    @property
    def is_done(self) -> bool:
        return self.event == DONE_EVENT

    @property
    def is_error(self) -> bool:
        return self.event == DEFAULT_EVENT and self.data.startswith(ERROR_MARKER)

    @property
    def error_message(self) -> str:
        return self.data[len(ERROR_MARKER) :].strip() if self.is_error else ""


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[SseEvent]:
    """Group decoded text lines into events.

    Expects lines without terminators (as `httpx.Response.aiter_lines`
    yields them). Multiple `data:` lines in one event are joined with
    ``\\n``. An event cut off by end of input is discarded.
    """
    event_type = ""
    data_lines: list[str] = []
    pending = False

    async for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if pending:
                yield SseEvent(
                    event=event_type or DEFAULT_EVENT, data="\n".join(data_lines)
                )
            event_type, data_lines, pending = "", [], False
            continue
        if line.startswith(":"):
            continue

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if field == "data":
            data_lines.append(value)
            pending = True
        elif field == "event":
            event_type = value
            pending = True
        # `id` and `retry` carry nothing the relay uses
