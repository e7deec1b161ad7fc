"""
Response Decoding

Strict schema decoding of reasoning-provider output.

Design decisions:
- The provider answers in free text; a fenced ```json block is preferred,
  otherwise the whole text is tried as JSON
- Decoding returns a tagged result (Ok | ParseError) and never raises
- Fail-safe defaults are chosen by each caller, not here
- Provider JSON uses camelCase keys; snake_case is accepted as well
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

T = TypeVar("T", bound=BaseModel)

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")


# =============================================================================
# TAGGED RESULT
# =============================================================================


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successfully decoded payload."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ParseError:
    """Provider output that did not match the expected schema."""

    reason: str
    raw: str = ""

    @property
    def ok(self) -> bool:
        return False


DecodeResult = Ok[T] | ParseError


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================


class ProviderPayload(BaseModel):
    """Base for all provider payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PlannedSubtask(ProviderPayload):
    description: str = Field(min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[int | str] = Field(default_factory=list)


class DecompositionPlan(ProviderPayload):
    """Answer to "does this task need breaking down?"."""

    needs_decomposition: bool = False
    reasoning: str = ""
    subtasks: list[PlannedSubtask] = Field(default_factory=list)


class CandidateResult(ProviderPayload):
    """A leaf task's candidate result with self-reported confidence."""

    output: Any = None
    explanation: str = ""
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    artifacts: list[str] = Field(default_factory=list)

    @property
    def effective_confidence(self) -> float:
        return self.confidence if self.confidence is not None else 0.0


class ReflectionVerdict(ProviderPayload):
    """Post-attempt judgement of a candidate result."""

    is_successful: bool = True
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    should_retry: bool = False
    should_rollback: bool = False
    modified_approach: str | None = None


class CorrectionProposal(ProviderPayload):
    """Self-correction proposed after a failed attempt."""

    diagnosis: str = ""
    corrections: dict[str, Any] = Field(default_factory=dict)
    new_approach: str | None = None


# =============================================================================
# DECODING
# =============================================================================


def extract_json_text(text: str) -> str:
    """Return the fenced JSON block if present, else the stripped text."""
    match = _FENCED_JSON.search(text)
    return match.group(1) if match else text.strip()


def decode(text: str, schema: type[T]) -> "Ok[T] | ParseError":
    """
    Decode provider text into a schema instance.

    Returns ParseError for missing JSON, invalid JSON, a non-object payload
    or a payload failing validation.
    """
    if not text or not text.strip():
        return ParseError(reason="empty response", raw=text or "")

    candidate = extract_json_text(text)

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        return ParseError(reason=f"invalid JSON: {e.msg}", raw=text)

    if not isinstance(data, dict):
        return ParseError(reason=f"expected a JSON object, got {type(data).__name__}", raw=text)

    try:
        return Ok(schema.model_validate(data))
    except ValidationError as e:
        return ParseError(reason=f"schema mismatch: {e.error_count()} error(s)", raw=text)


def fenced(payload: dict[str, Any]) -> str:
    """Wrap a payload the way providers are asked to answer."""
    return f"```json\n{json.dumps(payload, indent=2, default=str)}\n```"
