"""Client-side generation session.

A `GenerationSession` issues at most one relay request at a time and moves
between two states::

    IDLE --issue()--> STREAMING --(done | error | cancel())--> IDLE

`cancel()` is synchronous: the session reads IDLE as soon as it returns,
before the connection has finished tearing down. The read loop checks the
run's cancellation token before applying each chunk, so a chunk that was
already in flight when `cancel()` ran is dropped ("cancel wins").

All methods must be called from the event loop that runs the session.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

import httpx

from client.exceptions import RelayStreamError, SessionBusyError, SessionIdleError
from client.sse import iter_sse_events
from schemas.generation import GenerationRequest
from services.sanitize import sanitize_error_text
from services.text_actions import strip_meta_blocks


logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "/api/ai"
CORRELATION_HEADER = "X-Correlation-ID"

UpdateCallback = Callable[[str], None]


class SessionStatus(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"


class OutcomeKind(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class SessionOutcome:
    """How a generation ended, with the raw text accumulated up to then."""

    kind: OutcomeKind
    text: str = ""
    error: str | None = None

    @property
    def visible_text(self) -> str:
        return strip_meta_blocks(self.text)


class CancellationToken:
    """One-shot flag shared between `cancel()` and the read loop."""

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass(slots=True)
class _InFlight:
    token: CancellationToken
    on_update: UpdateCallback | None
    buffer: str = ""
    started: bool = False
    task: asyncio.Task[SessionOutcome] | None = field(default=None, repr=False)


def describe_error(error: BaseException | str) -> str:
    """Turn a transport failure into a short message fit for the transcript."""
    if isinstance(error, httpx.TimeoutException):
        return "Request timed out. Please try again."
    if isinstance(error, httpx.ConnectError):
        return "Unable to connect to AI service. Please check your connection."

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        if response.status_code == 403:
            return "Access denied. Please check your API configuration."
        if response.status_code >= 500:
            return "AI service is temporarily unavailable. Please try again later."
        return f"Relay responded {response.status_code} {response.reason_phrase}"
    return sanitize_error_text(str(error), default="An unexpected error occurred.")


class GenerationSession:
    """Single-flight streaming client for `POST /api/ai`.

    Args:
        client: HTTP client whose base URL points at the relay.
        endpoint: Relay path for generation requests.
        on_update: Default callback receiving the meta-filtered text after
            every applied chunk. `issue()` may override it per request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        on_update: UpdateCallback | None = None,
    ) -> None:
        self._client = client
        self._endpoint = endpoint
        self._on_update = on_update
        self._status = SessionStatus.IDLE
        self._inflight: _InFlight | None = None
        self.last_outcome: SessionOutcome | None = None

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_streaming(self) -> bool:
        return self._status is SessionStatus.STREAMING

    @property
    def accumulated_text(self) -> str:
        """Raw text received by the latest run, meta-blocks included."""
        return self._inflight.buffer if self._inflight else ""

    @property
    def visible_text(self) -> str:
        return strip_meta_blocks(self.accumulated_text)

    def issue(
        self,
        request: GenerationRequest,
        *,
        on_update: UpdateCallback | None = None,
    ) -> asyncio.Task[SessionOutcome]:
        """Start streaming `request`; returns the task running the read loop.

        Raises:
            SessionBusyError: a generation is already streaming.
        """
        if self._status is SessionStatus.STREAMING:
            raise SessionBusyError("A generation is already streaming; cancel it first")

        inflight = _InFlight(
            token=CancellationToken(),
            on_update=on_update or self._on_update,
        )
        self._inflight = inflight
        self._status = SessionStatus.STREAMING
        inflight.task = asyncio.get_running_loop().create_task(
            self._run(request, inflight)
        )
        return inflight.task

    def cancel(self) -> None:
        """Abort the in-flight generation and return to IDLE immediately.

        Raises:
            SessionIdleError: nothing is streaming.
        """
        inflight = self._inflight
        if self._status is not SessionStatus.STREAMING or inflight is None:
            raise SessionIdleError("No generation is streaming")

        inflight.token.cancel()
        self._status = SessionStatus.IDLE
        self.last_outcome = SessionOutcome(OutcomeKind.CANCELLED, inflight.buffer)
        # A run that has not started yet sees the token and never connects.
        # Called from an update callback, the read loop stops on the token.
        task = inflight.task
        if (
            inflight.started
            and task is not None
            and not task.done()
            and task is not asyncio.current_task()
        ):
            task.cancel()
        logger.debug("Generation cancelled after %d chars", len(inflight.buffer))

    async def wait(self) -> SessionOutcome:
        """Wait for the latest run to reach a terminal state."""
        if self._inflight is None or self._inflight.task is None:
            raise SessionIdleError("Nothing has been issued")
        return await self._inflight.task

    def _apply_chunk(self, inflight: _InFlight, text: str) -> None:
        if inflight.token.cancelled or self._inflight is not inflight:
            return
        inflight.buffer += text
        if inflight.on_update is not None:
            inflight.on_update(strip_meta_blocks(inflight.buffer))

    def _finish(
        self, inflight: _InFlight, kind: OutcomeKind, error: str | None = None
    ) -> SessionOutcome:
        outcome = SessionOutcome(kind=kind, text=inflight.buffer, error=error)
        if self._inflight is inflight:
            self._status = SessionStatus.IDLE
            self.last_outcome = outcome
        return outcome

    async def _run(
        self, request: GenerationRequest, inflight: _InFlight
    ) -> SessionOutcome:
        try:
            return await self._read(request, inflight)
        finally:
            # Also covers failures raised from an update callback
            if self._inflight is inflight:
                self._status = SessionStatus.IDLE

    async def _read(
        self, request: GenerationRequest, inflight: _InFlight
    ) -> SessionOutcome:
        token = inflight.token
        if token.cancelled:
            return self._finish(inflight, OutcomeKind.CANCELLED)
        inflight.started = True

        correlation_id = str(uuid.uuid4())
        done = False
        try:
            async with self._client.stream(
                "POST",
                self._endpoint,
                json=request.to_wire(),
                headers={CORRELATION_HEADER: correlation_id},
            ) as response:
                if response.is_error:
                    await response.aread()
                    response.raise_for_status()
                async for event in iter_sse_events(response.aiter_lines()):
                    if token.cancelled:
                        break
                    if event.is_done:
                        done = True
                        break
                    if event.is_error:
                        raise RelayStreamError(event.error_message)
                    self._apply_chunk(inflight, event.data)
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            return self._finish(inflight, OutcomeKind.CANCELLED)
        except RelayStreamError as exc:
            if token.cancelled:
                return self._finish(inflight, OutcomeKind.CANCELLED)
            logger.info("Generation %s failed: %s", correlation_id, exc)
            return self._finish(
                inflight, OutcomeKind.FAILED, sanitize_error_text(str(exc))
            )
        except httpx.HTTPError as exc:
            if token.cancelled:
                return self._finish(inflight, OutcomeKind.CANCELLED)
            if inflight.buffer and not isinstance(exc, httpx.ConnectError):
                logger.warning(
                    "Relay connection %s dropped after %d chars; keeping partial output",
                    correlation_id,
                    len(inflight.buffer),
                )
                return self._finish(inflight, OutcomeKind.COMPLETED)
            return self._finish(inflight, OutcomeKind.FAILED, describe_error(exc))

        if token.cancelled:
            return self._finish(inflight, OutcomeKind.CANCELLED)
        if not done:
            logger.warning(
                "Relay stream %s ended without a done event; keeping output",
                correlation_id,
            )
        return self._finish(inflight, OutcomeKind.COMPLETED)
