"""Chat transcript driven by a generation session."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum

from client.exceptions import TranscriptEntryFinalError
from client.session import GenerationSession, OutcomeKind, SessionOutcome
from schemas.generation import GenerationRequest


THINKING_PLACEHOLDER = "__thinking__"
NO_RESPONSE_TEXT = "[No response]"
ERROR_PREFIX = "Error: "


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(slots=True)
class TranscriptEntry:
    """One chat message; assistant content grows until the entry is final."""

    role: Role
    content: str
    final: bool = False

    @property
    def is_placeholder(self) -> bool:
        return self.role is Role.ASSISTANT and self.content == THINKING_PLACEHOLDER

    def update(self, content: str) -> None:
        if self.final:
            raise TranscriptEntryFinalError("Transcript entry is already final")
        self.content = content

    def finalize(self, content: str | None = None) -> None:
        if content is not None:
            self.update(content)
        self.final = True


@dataclass(slots=True)
class ChatTranscript:
    entries: list[TranscriptEntry] = field(default_factory=list)

    def add_user(self, content: str) -> TranscriptEntry:
        entry = TranscriptEntry(Role.USER, content, final=True)
        self.entries.append(entry)
        return entry

    def add_assistant_placeholder(self) -> TranscriptEntry:
        entry = TranscriptEntry(Role.ASSISTANT, THINKING_PLACEHOLDER)
        self.entries.append(entry)
        return entry

    def remove(self, entry: TranscriptEntry) -> None:
        self.entries = [e for e in self.entries if e is not entry]

    def as_messages(self) -> list[dict[str, str]]:
        return [{"role": e.role.value, "content": e.content} for e in self.entries]


class ChatController:
    """Connects the chat pane's send/stop controls to a generation session.

    `send` is a no-op for blank input or while a reply is streaming, which
    mirrors the pane swapping its Send button for Stop.
    """

    def __init__(
        self,
        session: GenerationSession,
        model_id: str,
        transcript: ChatTranscript | None = None,
    ) -> None:
        self.session = session
        self.model_id = model_id
        self.transcript = transcript or ChatTranscript()
        self._reply: TranscriptEntry | None = None

    def send(
        self, message: str, document: str = ""
    ) -> asyncio.Task[SessionOutcome] | None:
        """Append the user's message and stream the assistant reply.

        Returns a task resolving to the session outcome once the reply entry
        has been settled, or None when nothing was sent.
        """
        content = message.strip()
        if not content or self.session.is_streaming:
            return None

        self.transcript.add_user(content)
        reply = self.transcript.add_assistant_placeholder()
        self._reply = reply

        request = GenerationRequest.chat(content, self.model_id, document)
        run = self.session.issue(request, on_update=reply.update)
        return asyncio.get_running_loop().create_task(self._settle(reply, run))

    def cancel(self) -> None:
        """Stop the streaming reply, keeping whatever text already arrived."""
        if not self.session.is_streaming:
            return
        self.session.cancel()
        if self._reply is not None:
            self._settle_cancelled(self._reply)

    async def _settle(
        self, reply: TranscriptEntry, run: asyncio.Task[SessionOutcome]
    ) -> SessionOutcome:
        outcome = await run
        if reply.final or not any(e is reply for e in self.transcript.entries):
            return outcome

        if outcome.kind is OutcomeKind.CANCELLED:
            self._settle_cancelled(reply)
        elif outcome.kind is OutcomeKind.FAILED:
            reply.finalize(f"{ERROR_PREFIX}{outcome.error or 'request failed'}")
        else:
            reply.finalize(outcome.visible_text or NO_RESPONSE_TEXT)
        return outcome

    def _settle_cancelled(self, reply: TranscriptEntry) -> None:
        if reply.final:
            return
        if reply.is_placeholder:
            self.transcript.remove(reply)
        else:
            reply.finalize()
        if self._reply is reply:
            self._reply = None
