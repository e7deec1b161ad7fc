"""
Reasoning Client

Thin wrapper between the engine and the reasoning provider.

Design decisions:
- One place builds the conversation (system prompt + user prompt)
- Provider failures surface as ReasoningProviderError; callers decide
  whether that is fatal, retryable or degraded to a default
- Decoding is strict and returns a tagged result
"""

import time

from autonomy.core.exceptions import ReasoningProviderError
from autonomy.core.interfaces import ReasoningProviderProtocol
from autonomy.core.types import ChatMessage, MessageRole
from autonomy.observability.logging import StructuredLogger, get_logger
from autonomy.reasoning.parser import DecodeResult, T, decode
from autonomy.reasoning.prompts import SYSTEM_PROMPT


class ReasoningClient:
    """Sends prompts to the provider and decodes structured answers."""

    def __init__(
        self,
        provider: ReasoningProviderProtocol,
        logger: StructuredLogger | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self._provider = provider
        self._logger = logger or get_logger("autonomy.reasoning")
        self._system_prompt = system_prompt
        self._call_count = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    async def ask(self, prompt: str) -> str:
        """Send a single user prompt and return the raw answer."""
        messages = [
            ChatMessage(role=MessageRole.SYSTEM, content=self._system_prompt),
            ChatMessage(role=MessageRole.USER, content=prompt),
        ]

        self._call_count += 1
        start_time = time.perf_counter()

        try:
            text = await self._provider.chat(messages)
        except Exception as e:
            self._logger.warning("Reasoning provider call failed", reason=str(e))
            raise ReasoningProviderError(
                f"Reasoning provider failed: {e}",
                cause=e,
            ) from e

        self._logger.debug(
            "Reasoning provider answered",
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            chars=len(text or ""),
        )
        return text or ""

    async def ask_structured(self, prompt: str, schema: type[T]) -> DecodeResult:
        """Send a prompt and decode the answer into the schema."""
        text = await self.ask(prompt)
        result = decode(text, schema)

        if not result.ok:
            self._logger.debug(
                "Provider answer did not match schema",
                schema=schema.__name__,
                reason=result.reason,
            )
        return result
