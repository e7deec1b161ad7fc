"""
Safety Gate

Admission control run once before any work starts.

Design decisions:
- Two independent sources: the policy engine and the mode gate
- A denial by either source is fatal
- Approval waits are bounded; a timeout is a denial
- Every non-trivial outcome is recorded on the metrics sink
"""

from dataclasses import dataclass
from typing import Any

from autonomy.config.settings import SafetySettings
from autonomy.core.interfaces import (
    ApprovalRequest,
    MetricsSinkProtocol,
    ModeGateProtocol,
    ModeRequest,
    PolicyEngineProtocol,
    PolicyRequest,
)
from autonomy.observability.logging import StructuredLogger, get_logger

EXECUTE_ACTION = "execute_task"


@dataclass
class SafetyVerdict:
    """Final admission decision for a task."""

    allowed: bool
    requires_approval: bool = False
    reason: str | None = None


class SafetyGate:
    """
    Combines policy checks, operating mode and human approval.

    Usage:
        verdict = await gate.authorize(description, context)
        if not verdict.allowed:
            ...
    """

    def __init__(
        self,
        policy_engine: PolicyEngineProtocol,
        mode_gate: ModeGateProtocol,
        settings: SafetySettings | None = None,
        metrics: MetricsSinkProtocol | None = None,
        logger: StructuredLogger | None = None,
    ):
        self.policy_engine = policy_engine
        self.mode_gate = mode_gate
        self._settings = settings or SafetySettings()
        self._metrics = metrics
        self._logger = logger or get_logger("autonomy.safety")

    async def check(self, description: str, context: dict[str, Any]) -> SafetyVerdict:
        """Run the policy engine and mode gate without asking for approval."""
        agent = self._settings.agent_name

        policy = await self.policy_engine.check_action(
            PolicyRequest(agent=agent, action=EXECUTE_ACTION, content=description, context=context)
        )
        if not policy.passed:
            names = ", ".join(v.policy_name for v in policy.violations) or "unnamed policy"
            return SafetyVerdict(allowed=False, reason=f"Policy violation: {names}")

        mode = await self.mode_gate.check_action(
            ModeRequest(agent=agent, action=EXECUTE_ACTION, context=context)
        )
        if not mode.allowed:
            return SafetyVerdict(allowed=False, reason=mode.reason or "Blocked by operating mode")

        requires_approval = mode.requires_approval or bool(policy.required_approvals)
        return SafetyVerdict(allowed=True, requires_approval=requires_approval)

    async def authorize(self, description: str, context: dict[str, Any]) -> SafetyVerdict:
        """Full admission: checks, then a bounded approval wait if one is required."""
        verdict = await self.check(description, context)

        if not verdict.allowed:
            self._logger.warning("Task blocked by safety gate", reason=verdict.reason)
            self._record("blocked", {"description": description, "reason": verdict.reason})
            return verdict

        if not verdict.requires_approval:
            return verdict

        self._record("approval_required", {"description": description})
        decision = await self.mode_gate.request_approval(
            ApprovalRequest(
                agent=self._settings.agent_name,
                action=EXECUTE_ACTION,
                description=description,
                risk=self._settings.default_risk,
                context=context,
                timeout_seconds=self._settings.approval_timeout_seconds,
            )
        )

        if not decision.approved:
            reason = decision.reason or "Approval denied"
            self._logger.warning("Task approval denied", reason=reason)
            self._record("approval_denied", {"description": description, "reason": reason})
            return SafetyVerdict(allowed=False, requires_approval=True, reason=reason)

        self._record("approval_granted", {"description": description})
        return SafetyVerdict(allowed=True, requires_approval=True)

    def _record(self, kind: str, payload: dict[str, Any]) -> None:
        if self._metrics is not None:
            self._metrics.record_safety_event(kind, payload)
