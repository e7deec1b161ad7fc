"""
Reasoning Module

Provider access, prompt templates and strict response decoding.
"""

from autonomy.reasoning.client import ReasoningClient
from autonomy.reasoning.http_provider import OpenAICompatibleProvider, create_provider
from autonomy.reasoning.parser import (
    CandidateResult,
    CorrectionProposal,
    DecompositionPlan,
    Ok,
    ParseError,
    PlannedSubtask,
    ReflectionVerdict,
    decode,
    fenced,
)
from autonomy.reasoning.stub_provider import ScriptedReasoningProvider, ScriptedResponse

__all__ = [
    "CandidateResult",
    "CorrectionProposal",
    "DecompositionPlan",
    "OpenAICompatibleProvider",
    "Ok",
    "ParseError",
    "PlannedSubtask",
    "ReasoningClient",
    "ReflectionVerdict",
    "ScriptedReasoningProvider",
    "ScriptedResponse",
    "create_provider",
    "decode",
    "fenced",
]
