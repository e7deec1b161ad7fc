"""
OpenAI-Compatible Reasoning Provider

Chat completions over HTTP for OpenAI-style endpoints (hosted APIs,
local inference servers).

Design decisions:
- Implements ReasoningProviderProtocol with httpx, no vendor SDK
- Retries transient failures (timeouts, connection errors, 429, 5xx)
  with exponential backoff; other HTTP errors fail immediately
- The client can be injected, which also makes the provider testable
  with httpx.MockTransport
"""

import asyncio
from typing import Any

import httpx

from autonomy.config.settings import ProviderSettings
from autonomy.core.interfaces import ReasoningProviderProtocol
from autonomy.core.types import ChatMessage
from autonomy.observability.logging import StructuredLogger, get_logger
from autonomy.reasoning.stub_provider import ScriptedReasoningProvider

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class ProviderRequestError(Exception):
    """An HTTP call to the provider failed."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class OpenAICompatibleProvider:
    """
    Reasoning provider for `/chat/completions` endpoints.

    Usage:
        provider = OpenAICompatibleProvider(settings.provider)
        text = await provider.chat(messages)
        await provider.aclose()
    """

    def __init__(
        self,
        settings: ProviderSettings,
        client: httpx.AsyncClient | None = None,
        logger: StructuredLogger | None = None,
    ):
        self.settings = settings
        self._logger = logger or get_logger("autonomy.provider")

        headers = {"Content-Type": "application/json"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key.get_secret_value()}"

        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            headers=headers,
            timeout=settings.request_timeout,
        )

    async def chat(self, messages: list[ChatMessage]) -> str:
        payload = {
            "model": self.settings.model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }

        attempt = 0
        while True:
            try:
                return await self._complete(payload)
            except ProviderRequestError as e:
                if not e.retryable or attempt >= self.settings.max_retries:
                    raise
                delay = self.settings.retry_delay * (2**attempt)
                attempt += 1
                self._logger.warning(
                    "Provider call failed, retrying",
                    attempt=attempt,
                    delay_s=delay,
                    reason=str(e),
                )
                await asyncio.sleep(delay)

    async def _complete(self, payload: dict[str, Any]) -> str:
        try:
            response = await self._client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise ProviderRequestError(f"Request timed out: {e}", retryable=True) from e
        except httpx.TransportError as e:
            raise ProviderRequestError(f"Connection failed: {e}", retryable=True) from e

        if response.status_code >= 400:
            raise ProviderRequestError(
                f"Provider returned HTTP {response.status_code}",
                retryable=response.status_code in _RETRYABLE_STATUS,
            )

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderRequestError(f"Malformed completion response: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()


def create_provider(settings: ProviderSettings) -> ReasoningProviderProtocol:
    """Pick the provider named by the settings."""
    if settings.kind == "openai_compatible":
        return OpenAICompatibleProvider(settings)
    return ScriptedReasoningProvider()
