"""
Core Interfaces and Protocols

Defines the contracts between the engine and its external collaborators.
The engine only ever talks to these protocols; concrete implementations
are supplied by the composition root.

Design decisions:
- Protocol-based for structural subtyping
- Minimal interface surface
- Plain dataclasses for request/response payloads
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from autonomy.core.types import ChatMessage


# =============================================================================
# REASONING PROVIDER PROTOCOL
# =============================================================================

@runtime_checkable
class ReasoningProviderProtocol(Protocol):
    """
    Interface for the text-generation service.

    Implemented by: ScriptedReasoningProvider, any model client
    Used by: ReasoningClient
    """

    async def chat(self, messages: list[ChatMessage]) -> str:
        """Answer a conversation with free-form text."""
        ...


# =============================================================================
# POLICY ENGINE PROTOCOL
# =============================================================================

@dataclass
class PolicyRequest:
    """An action submitted for policy evaluation."""

    agent: str
    action: str
    content: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class PolicyViolation:
    """A single policy that objected to an action."""

    policy_name: str
    policy_id: str | None = None
    severity: str = "medium"
    message: str | None = None


@dataclass
class PolicyCheck:
    """Result of a policy evaluation."""

    passed: bool = True
    violations: list[PolicyViolation] = field(default_factory=list)
    required_approvals: list[str] = field(default_factory=list)


@runtime_checkable
class PolicyEngineProtocol(Protocol):
    """
    Interface for safety policy evaluation.

    Implemented by: PermissivePolicyEngine, external policy stores
    Used by: SafetyGate
    """

    async def check_action(self, request: PolicyRequest) -> PolicyCheck:
        """Evaluate an action against the active policies."""
        ...


# =============================================================================
# MODE / APPROVAL GATE PROTOCOL
# =============================================================================

@dataclass
class ModeRequest:
    """An action submitted to the mode gate."""

    agent: str
    action: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class ModeCheck:
    """Result of a mode gate check."""

    allowed: bool = True
    requires_approval: bool = False
    reason: str | None = None


@dataclass
class ApprovalRequest:
    """A request for a human decision."""

    agent: str
    action: str
    description: str
    risk: str = "medium"
    context: dict[str, Any] = field(default_factory=dict)
    timeout_seconds: float = 300.0


@dataclass
class ApprovalDecision:
    """A human decision on an approval request."""

    approved: bool
    reason: str | None = None


@runtime_checkable
class ModeGateProtocol(Protocol):
    """
    Interface for operating-mode checks and human approval.

    Implemented by: ModeGate
    Used by: SafetyGate
    """

    async def check_action(self, request: ModeRequest) -> ModeCheck:
        """Check whether the current mode permits an action."""
        ...

    async def request_approval(self, request: ApprovalRequest) -> ApprovalDecision:
        """Ask a human to approve an action, waiting at most the request timeout."""
        ...


# =============================================================================
# METRICS SINK PROTOCOL
# =============================================================================

@runtime_checkable
class MetricsSinkProtocol(Protocol):
    """
    Interface for fire-and-forget outcome recording.

    Implemented by: InMemoryMetricsSink
    Used by: AgenticLoop
    """

    def record_safety_event(self, kind: str, payload: dict[str, Any]) -> None:
        ...

    def record_productivity(self, kind: str, value: float, payload: dict[str, Any]) -> None:
        ...

    def record_calibration(self, predicted: float, actual: float, task: str) -> None:
        ...
