"""Completion client for an Ollama server."""

from __future__ import annotations

import json
from typing import Sequence

import httpx
import ollama
from pydantic import ValidationError

from finchat.session.clients.base import (
    FALLBACK_REPLY,
    CompletionClient,
    CompletionUnreachableError,
    build_envelope,
)
from finchat.session.config import LLMSettings
from finchat.session.types import Turn
from finchat.session.utils.logging import get_logger


logger = get_logger("finchat")


class OllamaCompletionClient(CompletionClient):
    """Send the envelope through ollama.AsyncClient.chat and read message.content."""

    def __init__(self, settings: LLMSettings, client: ollama.AsyncClient | None = None) -> None:
        self.settings = settings
        self._owns_client = client is None
        if client is None:
            headers = {"Authorization": f"Bearer {settings.api_key}"} if settings.api_key else None
            client = ollama.AsyncClient(
                host=settings.base_url,
                headers=headers,
                timeout=settings.request_timeout_seconds,
            )
        self._client = client

    async def complete(self, directive: str, transcript: Sequence[Turn]) -> str:
        envelope = build_envelope(directive, transcript, self.settings)
        logger.debug(f"Requesting Ollama chat: model={envelope.model} messages={len(envelope.messages)}")

        try:
            response = await self._client.chat(
                model=envelope.model,
                messages=[message.model_dump() for message in envelope.messages],
                stream=False,
                options={
                    "temperature": envelope.temperature,
                    "num_predict": envelope.max_tokens,
                },
            )
        except ollama.ResponseError as exc:
            raise CompletionUnreachableError("status", f"HTTP {exc.status_code}: {exc.error}") from exc
        except httpx.TimeoutException as exc:
            raise CompletionUnreachableError("timeout", str(exc)) from exc
        except (httpx.HTTPError, ConnectionError) as exc:
            raise CompletionUnreachableError("transport", str(exc)) from exc
        except (ValidationError, json.JSONDecodeError) as exc:
            raise CompletionUnreachableError("malformed", str(exc)) from exc

        message = response.get("message") or {}
        text = message.get("content") or ""
        if not text.strip():
            logger.warning("Ollama response carried no text; using fallback reply")
            return FALLBACK_REPLY
        return text

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.close()
