"""Completion client for OpenAI-compatible chat completions endpoints (Groq, OpenAI, vLLM...)."""

from __future__ import annotations

from typing import Sequence

import httpx
from pydantic import ValidationError

from finchat.session.clients.base import (
    FALLBACK_REPLY,
    CompletionClient,
    CompletionUnreachableError,
    build_envelope,
)
from finchat.session.clients.schemas import ChatCompletionResponse
from finchat.session.config import LLMSettings
from finchat.session.types import Turn
from finchat.session.utils.logging import get_logger


logger = get_logger("finchat")


class OpenAICompatibleClient(CompletionClient):
    """POST {base_url}/chat/completions and read choices[0].message.content."""

    def __init__(self, settings: LLMSettings, http_client: httpx.AsyncClient | None = None) -> None:
        """Initialize the client.

        Args:
            settings: Endpoint, credential and sampling settings.
            http_client: Optional pre-built httpx client (tests pass one with a mock transport).
                When omitted, the client owns an httpx.AsyncClient using the configured timeout.
        """
        self.settings = settings
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)

    @property
    def endpoint(self) -> str:
        return f"{self.settings.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return headers

    async def complete(self, directive: str, transcript: Sequence[Turn]) -> str:
        envelope = build_envelope(directive, transcript, self.settings)
        logger.debug(f"Requesting completion: model={envelope.model} messages={len(envelope.messages)}")

        try:
            response = await self._http.post(
                self.endpoint,
                json=envelope.model_dump(),
                headers=self._headers(),
            )
        except httpx.TimeoutException as exc:
            raise CompletionUnreachableError("timeout", str(exc)) from exc
        except httpx.HTTPError as exc:
            raise CompletionUnreachableError("transport", str(exc)) from exc

        if not response.is_success:
            raise CompletionUnreachableError("status", f"HTTP {response.status_code}")

        try:
            parsed = ChatCompletionResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise CompletionUnreachableError("malformed", f"{exc.error_count()} validation error(s)") from exc

        text = parsed.first_text()
        if not text.strip():
            logger.warning("Completion response carried no text; using fallback reply")
            return FALLBACK_REPLY
        return text

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()
