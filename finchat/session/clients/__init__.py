from finchat.session.clients.base import (
    FALLBACK_REPLY,
    CompletionClient,
    CompletionUnreachableError,
    build_envelope,
)
from finchat.session.clients.ollama_chat import OllamaCompletionClient
from finchat.session.clients.openai_compatible import OpenAICompatibleClient
from finchat.session.config import LLMSettings


def build_completion_client(settings: LLMSettings) -> CompletionClient:
    """Return the client for the configured provider."""
    if settings.provider == "ollama":
        return OllamaCompletionClient(settings)
    return OpenAICompatibleClient(settings)


__all__ = [
    "FALLBACK_REPLY",
    "CompletionClient",
    "CompletionUnreachableError",
    "OllamaCompletionClient",
    "OpenAICompatibleClient",
    "build_completion_client",
    "build_envelope",
]
