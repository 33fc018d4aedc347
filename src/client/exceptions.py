"""Client-side errors for generation sessions."""

from __future__ import annotations


class GenerationSessionError(Exception):
    """Base class for generation session misuse and failures."""


class SessionBusyError(GenerationSessionError):
    """`issue()` was called while a generation is still streaming."""


class SessionIdleError(GenerationSessionError):
    """`cancel()` or `wait()` was called with nothing in flight."""


class RelayStreamError(GenerationSessionError):
    """The relay reported a failure in-band, or answered with an error status."""


class GenerationFailedError(GenerationSessionError):
    """A generation ended in failure; the message is already sanitized."""


class TranscriptEntryFinalError(GenerationSessionError):
    """An assistant entry was modified after its session ended."""
