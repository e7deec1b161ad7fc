"""
Test Fixtures

Scripted provider answers shared by the engine tests.
"""

import re
from typing import Any

from autonomy.reasoning.parser import fenced
from autonomy.reasoning.stub_provider import (
    CORRECT,
    DECOMPOSE,
    EXECUTE,
    REFLECT,
    ScriptedResponse,
)


def about(prefix: str, description: str) -> str:
    """Pattern matching a prompt of one kind for one task description."""
    return prefix + r"[\s\S]*?Task: " + re.escape(description) + r"\n"


def decomposition(*descriptions: str, dependencies: dict[int, list[Any]] | None = None) -> str:
    dependencies = dependencies or {}
    return fenced(
        {
            "needsDecomposition": True,
            "reasoning": "multi-step",
            "subtasks": [
                {"description": d, "context": {}, "dependencies": dependencies.get(i, [])}
                for i, d in enumerate(descriptions)
            ],
        }
    )


def execution(confidence: float | None = 0.9, output: Any = "done") -> str:
    payload: dict[str, Any] = {"output": output, "explanation": "test", "artifacts": []}
    if confidence is not None:
        payload["confidence"] = confidence
    return fenced(payload)


def reflection(**overrides: Any) -> str:
    payload = {
        "isSuccessful": True,
        "issues": [],
        "suggestions": [],
        "shouldRetry": False,
        "shouldRollback": False,
    }
    payload.update(overrides)
    return fenced(payload)


def correction(corrections: dict[str, Any] | None = None, new_approach: str | None = None) -> str:
    payload: dict[str, Any] = {"diagnosis": "test", "corrections": corrections or {}}
    if new_approach:
        payload["newApproach"] = new_approach
    return fenced(payload)


def split(description: str, *subtasks: str) -> ScriptedResponse:
    """Decompose `description` into `subtasks`."""
    return ScriptedResponse(pattern=about(DECOMPOSE, description), content=decomposition(*subtasks))


def answer(description: str, content: str | list[str]) -> ScriptedResponse:
    """Execution answer(s) for one task."""
    return ScriptedResponse(pattern=about(EXECUTE, description), content=content)


def verdict(content: str | list[str], description: str | None = None) -> ScriptedResponse:
    pattern = about(REFLECT, description) if description else REFLECT
    return ScriptedResponse(pattern=pattern, content=content)


def fix(content: str) -> ScriptedResponse:
    return ScriptedResponse(pattern=CORRECT, content=content)
