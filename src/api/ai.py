"""Generation relay and backend reachability endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from core.exceptions import UpstreamConnectionError
from schemas.generation import PingResult
from schemas.streaming import SSE_HEADERS, SSE_MEDIA_TYPE, RelayEvent
from services.relay import RelayService


router = APIRouter(tags=["ai"])


def get_relay_service(request: Request) -> RelayService:
    """Return the relay built at start-up (see `main.lifespan`)."""
    return request.app.state.relay_service


async def encode_sse(events: AsyncIterator[RelayEvent]) -> AsyncIterator[str]:
    async with aclosing(events) as stream:
        async for event in stream:
            yield event.to_sse()


@router.post("/ai", response_class=StreamingResponse)
async def generate(
    request: Request,
    relay: Annotated[RelayService, Depends(get_relay_service)],
) -> StreamingResponse:
    """Stream a generation as Server-Sent Events.

    The response is always `200 text/event-stream`, including for malformed
    bodies and backend failures; those arrive as a single
    `data: [Error] <message>` event. Body shape:
    `{message?, doc?, selection?, action?, model?}`.
    """
    # The body is read before streaming starts; afterwards the receive
    # channel belongs to Starlette's disconnect listener.
    try:
        payload: object = await request.json()
    except ValueError:
        payload = None

    return StreamingResponse(
        encode_sse(relay.stream_events(payload)),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )


@router.get("/ai-ping", response_model=PingResult)
async def ai_ping(
    relay: Annotated[RelayService, Depends(get_relay_service)],
) -> Any:
    """Report whether the inference backend is reachable (diagnostics only)."""
    try:
        return await relay.ping()
    except UpstreamConnectionError as exc:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=PingResult(ok=False, error=exc.message).model_dump(),
        )
