"""
Scripted Reasoning Provider

A deterministic, offline reasoning provider for demos, tests and CI.

Design decisions:
- Implements ReasoningProviderProtocol
- Picks a response by regex on the last user message
- A response may hold a sequence of answers consumed in order; the last
  one repeats once the sequence is exhausted
- A response may raise instead of answering, to simulate outages
- NEVER makes external network calls

Usage:
    provider = ScriptedReasoningProvider()
    provider.add_response(ScriptedResponse(
        pattern=r"^Execute this task",
        content=fenced({"output": "done", "confidence": 0.95}),
    ))
"""

import asyncio
import re
from dataclasses import dataclass, field

from autonomy.core.types import ChatMessage, MessageRole
from autonomy.reasoning.parser import fenced

# Prompt prefixes, see autonomy.reasoning.prompts
DECOMPOSE = r"^Analyze this task"
EXECUTE = r"^Execute this task"
REFLECT = r"^Reflect on this task"
CORRECT = r"^A task execution failed"


@dataclass
class ScriptedResponse:
    """A scripted answer for prompts matching `pattern`."""

    pattern: str | None = None  # None matches anything
    content: str | list[str] = ""
    error: Exception | None = None

    _served: int = field(default=0, init=False, repr=False)

    def matches(self, message: str) -> bool:
        if self.pattern is None:
            return True
        return bool(re.search(self.pattern, message, re.IGNORECASE))

    def next_content(self) -> str:
        contents = self.content if isinstance(self.content, list) else [self.content]
        if not contents:
            return ""
        index = min(self._served, len(contents) - 1)
        self._served += 1
        return contents[index]


def default_responses() -> list[ScriptedResponse]:
    """Answers under which every task is a confident, accepted leaf."""
    return [
        ScriptedResponse(
            pattern=DECOMPOSE,
            content=fenced({"needsDecomposition": False, "reasoning": "single step"}),
        ),
        ScriptedResponse(
            pattern=EXECUTE,
            content=fenced(
                {
                    "output": "[STUB] task completed",
                    "explanation": "offline scripted execution",
                    "confidence": 0.9,
                    "artifacts": [],
                }
            ),
        ),
        ScriptedResponse(
            pattern=REFLECT,
            content=fenced(
                {
                    "isSuccessful": True,
                    "issues": [],
                    "suggestions": [],
                    "shouldRetry": False,
                    "shouldRollback": False,
                }
            ),
        ),
        ScriptedResponse(
            pattern=CORRECT,
            content=fenced({"diagnosis": "unknown", "corrections": {}}),
        ),
        ScriptedResponse(pattern=None, content="{}"),
    ]


class ScriptedReasoningProvider:
    """
    A deterministic reasoning provider.

    Features:
    - No external API calls
    - Pattern-based response selection
    - Call recording for assertions
    - Optional simulated latency
    """

    def __init__(
        self,
        responses: list[ScriptedResponse] | None = None,
        delay_ms: int = 0,
        include_defaults: bool = True,
    ):
        self._responses = list(responses or [])
        if include_defaults:
            self._responses.extend(default_responses())
        self._delay = delay_ms / 1000.0
        self.prompts: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    def add_response(self, response: ScriptedResponse) -> None:
        """Add a response pattern ahead of the existing ones."""
        self._responses.insert(0, response)

    def calls_matching(self, pattern: str) -> list[str]:
        return [p for p in self.prompts if re.search(pattern, p, re.IGNORECASE)]

    async def chat(self, messages: list[ChatMessage]) -> str:
        user_message = ""
        for msg in reversed(messages):
            if msg.role == MessageRole.USER:
                user_message = msg.content
                break

        self.prompts.append(user_message)

        if self._delay:
            await asyncio.sleep(self._delay)

        for response in self._responses:
            if response.matches(user_message):
                if response.error is not None:
                    raise response.error
                return response.next_content()

        return "{}"

    def __repr__(self) -> str:
        return f"ScriptedReasoningProvider(calls={self.call_count})"
