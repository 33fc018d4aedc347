"""Python client for the relay: generation sessions, chat and suggestions."""

from client.exceptions import (
    GenerationFailedError,
    GenerationSessionError,
    RelayStreamError,
    SessionBusyError,
    SessionIdleError,
    TranscriptEntryFinalError,
)
from client.session import (
    CancellationToken,
    GenerationSession,
    OutcomeKind,
    SessionOutcome,
    SessionStatus,
    describe_error,
)
from client.sse import SseEvent, iter_sse_events
from client.suggestions import generate_text_suggestion
from client.transcript import ChatController, ChatTranscript, Role, TranscriptEntry
from client.validation import validate_generation_params

__all__ = [
    "CancellationToken",
    "ChatController",
    "ChatTranscript",
    "GenerationFailedError",
    "GenerationSession",
    "GenerationSessionError",
    "OutcomeKind",
    "RelayStreamError",
    "Role",
    "SessionBusyError",
    "SessionIdleError",
    "SessionOutcome",
    "SessionStatus",
    "SseEvent",
    "TranscriptEntry",
    "TranscriptEntryFinalError",
    "describe_error",
    "generate_text_suggestion",
    "iter_sse_events",
    "validate_generation_params",
]
