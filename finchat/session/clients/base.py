from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from finchat.session.clients.schemas import ChatMessage, RequestEnvelope
from finchat.session.config import LLMSettings
from finchat.session.types import Turn


FALLBACK_REPLY = "I could not process that. Please try again."


class CompletionUnreachableError(Exception):
    """The completion service could not produce a usable response.

    Covers timeouts, transport errors, non-success status codes and malformed
    bodies alike. ``reason`` names which one happened, for logs only.
    """

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        message = f"{reason}: {detail}" if detail else reason
        super().__init__(message)


def build_envelope(directive: str, transcript: Sequence[Turn], settings: LLMSettings) -> RequestEnvelope:
    """Project the directive and the whole transcript into a request body."""
    messages = [ChatMessage(role="system", content=directive)]
    messages.extend(ChatMessage(**turn.to_message()) for turn in transcript)
    return RequestEnvelope(
        model=settings.model,
        messages=messages,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    )


class CompletionClient(ABC):
    """Abstract base class for completion backends.

    One call to complete() is exactly one network attempt. The remote service keeps no
    conversation state, so the full transcript is sent every time.
    """

    settings: LLMSettings

    @abstractmethod
    async def complete(self, directive: str, transcript: Sequence[Turn]) -> str:
        """Return the assistant reply for the transcript.

        Returns FALLBACK_REPLY when the service answered without text.

        Raises:
            CompletionUnreachableError: On any transport, status or parse failure.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources held by the client."""
        return None
