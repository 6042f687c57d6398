"""Wire models for chat-completions style requests and responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ChatMessage(BaseModel):
    """One role-tagged message in a request."""

    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class RequestEnvelope(BaseModel):
    """Request body built fresh for every call; never stored."""

    model_config = ConfigDict(frozen=True)

    model: str
    messages: list[ChatMessage]
    temperature: float
    max_tokens: int


class CompletionMessage(BaseModel):
    content: str | None = None


class CompletionChoice(BaseModel):
    message: CompletionMessage | None = None


class ChatCompletionResponse(BaseModel):
    """Response body of a chat completions endpoint.

    Every field is optional: a reachable service that answers without usable text is
    a soft failure, while a body that does not fit this shape at all fails validation.
    """

    choices: list[CompletionChoice] | None = None

    def first_text(self) -> str:
        """Return the first candidate's text, or an empty string when there is none."""
        if not self.choices:
            return ""
        message = self.choices[0].message
        if message is None or message.content is None:
            return ""
        return message.content
