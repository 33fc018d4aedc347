"""One-shot transforms for the editor's selection actions."""

from __future__ import annotations

import asyncio
import logging

import httpx

from client.exceptions import GenerationFailedError
from client.session import DEFAULT_ENDPOINT, GenerationSession, OutcomeKind
from schemas.generation import GenerationRequest, TransformAction
from services.text_actions import format_ai_suggestion


logger = logging.getLogger(__name__)


async def generate_text_suggestion(
    client: httpx.AsyncClient,
    selection: str,
    action: TransformAction | str | None,
    model: str,
    document: str | None = None,
    *,
    endpoint: str = DEFAULT_ENDPOINT,
) -> str:
    """Run a transform to completion and return text ready to insert.

    Cancelling the awaiting task cancels the underlying generation.

    Raises:
        GenerationFailedError: the relay reported an error or could not be
            reached. The selection should be left as it was.
    """
    request = GenerationRequest.transform(selection, action, model, document)
    session = GenerationSession(client, endpoint=endpoint)
    session.issue(request)
    try:
        outcome = await session.wait()
    except asyncio.CancelledError:
        if session.is_streaming:
            session.cancel()
        raise

    if outcome.kind is OutcomeKind.FAILED:
        raise GenerationFailedError(outcome.error or "Text suggestion generation failed")
    if outcome.kind is OutcomeKind.CANCELLED:
        raise asyncio.CancelledError()

    suggestion = format_ai_suggestion(outcome.text, request.transform_action)
    logger.debug(
        "Suggestion for %s: %d chars in, %d chars out",
        request.transform_action,
        len(selection),
        len(suggestion),
    )
    return suggestion
