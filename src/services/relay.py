"""Streaming relay between the browser and the inference backend.

`RelayService` is stateless per request: each call to `stream_events` owns
its own backend response for exactly as long as the caller keeps reading.
When the caller goes away, Starlette cancels the response task or closes the
event generator; both unwind through `aclosing`/`client.stream`, which
closes the backend response instead of draining it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

import httpx
from pydantic import ValidationError

from core.config import BackendConfig
from core.error_handler import StructuredLogger
from core.exceptions import (
    MalformedRequestError,
    RelayError,
    UpstreamConnectionError,
    UpstreamGenerationError,
    UpstreamStatusError,
)
from schemas.generation import (
    GenerationRequest,
    PingResult,
    RelayRequest,
    StreamChunk,
)
from schemas.streaming import RelayEvent
from services.prompt_builder import build_prompt, system_prompt_for
from services.sanitize import sanitize_error_text


logger = logging.getLogger(__name__)
structured_logger = StructuredLogger(__name__)

GENERATE_PATH = "/api/generate"
TAGS_PATH = "/api/tags"
PING_PREVIEW_CHARS = 200
UNEXPECTED_ERROR_TEXT = "Unable to process request"


def create_backend_client(
    config: BackendConfig, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    """Build the pooled HTTP client used for every backend call.

    Reads have no timeout: a generation may legitimately pause for a long
    time between tokens, and only the caller decides when to give up.
    """
    auth = (
        httpx.BasicAuth(config.username or "", config.password or "")
        if config.has_credentials
        else None
    )
    return httpx.AsyncClient(
        base_url=config.base_url,
        auth=auth,
        transport=transport,
        headers={
            "accept": "application/json",
            "user-agent": config.user_agent,
        },
        timeout=httpx.Timeout(None, connect=config.connect_timeout),
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )


def decode_record(line: str) -> dict[str, Any] | None:
    """Parse one NDJSON line from the backend; None means drop it."""
    line = line.strip()
    if not line:
        return None
    try:
        record = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Dropping unparsable backend line (%d chars)", len(line))
        return None
    if not isinstance(record, dict):
        logger.debug("Dropping non-object backend record")
        return None
    return record


def _status_message(response: httpx.Response, body: bytes) -> str:
    text = body.decode("utf-8", errors="replace")
    # Ollama reports failures as {"error": "..."}; prefer that over raw JSON
    record = decode_record(text) if "\n" not in text.strip() else None
    if record and record.get("error"):
        text = str(record["error"])
    detail = sanitize_error_text(text, default="")
    message = f"Upstream {response.status_code} {response.reason_phrase}".strip()
    if detail:
        message = f"{message} :: {detail}"
    return sanitize_error_text(message)


class RelayService:
    """Forwards generation requests upstream and re-emits their tokens."""

    def __init__(self, config: BackendConfig, client: httpx.AsyncClient) -> None:
        self._config = config
        self._client = client

    @property
    def config(self) -> BackendConfig:
        return self._config

    def parse_request(self, payload: object) -> GenerationRequest:
        """Validate a decoded JSON body into a generation request.

        Raises:
            MalformedRequestError: for anything other than a chat message or
                a selection to transform.
        """
        if not isinstance(payload, dict):
            raise MalformedRequestError("Request body must be a JSON object")
        try:
            wire = RelayRequest.model_validate(payload)
        except ValidationError as exc:
            fields = ", ".join(
                str(err["loc"][0]) for err in exc.errors() if err.get("loc")
            )
            raise MalformedRequestError(
                f"Invalid request fields: {fields or 'body'}"
            ) from exc
        return wire.to_generation_request(self._config.default_model)

    def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model_id,
            "prompt": build_prompt(request),
            "stream": True,
        }
        if self._config.send_system_prompt:
            payload["system"] = system_prompt_for(request)
        return payload

    async def generate(self, request: GenerationRequest) -> AsyncIterator[StreamChunk]:
        """Yield the backend's tokens in order as they arrive.

        Raises:
            UpstreamStatusError: the backend rejected the request.
            UpstreamGenerationError: the backend reported an error mid-stream.
            UpstreamConnectionError: the backend could not be reached or the
                connection dropped.
        """
        payload = self.build_payload(request)
        receiving = False
        try:
            async with self._client.stream(
                "POST", GENERATE_PATH, json=payload
            ) as response:
                if response.is_error:
                    body = await response.aread()
                    raise UpstreamStatusError(
                        response.status_code, _status_message(response, body)
                    )
                receiving = True
                async for line in response.aiter_lines():
                    record = decode_record(line)
                    if record is None:
                        continue
                    if record.get("error"):
                        raise UpstreamGenerationError(
                            sanitize_error_text(record["error"])
                        )
                    text = record.get("response")
                    if isinstance(text, str) and text:
                        yield StreamChunk(text=text)
                    if record.get("done") is True:
                        break
        except httpx.TimeoutException as exc:
            raise UpstreamConnectionError(
                "Timed out connecting to the inference backend"
            ) from exc
        except httpx.HTTPError as exc:
            if receiving:
                message = "Connection to the inference backend was lost"
            else:
                reason = sanitize_error_text(str(exc), default=type(exc).__name__)
                message = f"Unable to reach the inference backend: {reason}"
            raise UpstreamConnectionError(sanitize_error_text(message)) from exc

    async def stream_events(self, payload: object) -> AsyncIterator[RelayEvent]:
        """Run one relay cycle, reporting every outcome as a stream event.

        Yields chunk events, then either a single `done` event or a single
        sanitized error event. Never raises for request or backend failures.
        """
        try:
            request = self.parse_request(payload)
        except MalformedRequestError as exc:
            structured_logger.warning("Rejected malformed generation request")
            yield RelayEvent.error(sanitize_error_text(exc.message))
            return

        structured_logger.info(
            "Relaying generation",
            kind=request.kind.value,
            model=request.model_id,
        )
        started = time.monotonic()
        chunks = 0
        try:
            async with aclosing(self.generate(request)) as stream:
                async for chunk in stream:
                    chunks += 1
                    yield RelayEvent.chunk(chunk.text)
        except RelayError as exc:
            structured_logger.warning(
                "Generation failed",
                error_code=exc.error_code,
                chunks=chunks,
            )
            yield RelayEvent.error(sanitize_error_text(exc.message))
            return
        except (asyncio.CancelledError, GeneratorExit):
            structured_logger.info(
                "Caller disconnected; abandoned backend stream", chunks=chunks
            )
            raise
        except Exception:
            structured_logger.exception("Unexpected relay failure", chunks=chunks)
            yield RelayEvent.error(UNEXPECTED_ERROR_TEXT)
            return

        structured_logger.info(
            "Generation complete",
            chunks=chunks,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        yield RelayEvent.done()

    async def ping(self) -> PingResult:
        """Check that the backend answers its model listing.

        Raises:
            UpstreamConnectionError: the backend could not be reached.
        """
        try:
            response = await self._client.get(TAGS_PATH)
        except httpx.HTTPError as exc:
            raise UpstreamConnectionError(
                sanitize_error_text(str(exc), default="Connection error occurred")
            ) from exc

        text = response.text
        models_available: int | None = None
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("models"), list):
            models_available = len(data["models"])

        return PingResult(
            ok=response.is_success,
            status=response.status_code,
            length=len(text),
            models_available=models_available,
            preview=sanitize_error_text(
                text, max_length=PING_PREVIEW_CHARS, default=""
            ),
        )
