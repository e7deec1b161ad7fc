"""
Unit Tests - Safety

Tests for operating modes, approvals and the safety gate.
"""

import asyncio

import pytest

from autonomy.config import SafetySettings
from autonomy.core import (
    ApprovalDecision,
    ApprovalRequest,
    ModeCheck,
    ModeRequest,
    PolicyCheck,
    PolicyRequest,
    PolicyViolation,
)
from autonomy.observability import InMemoryMetricsSink
from autonomy.safety import (
    ApprovalChannel,
    ModeGate,
    OperatingMode,
    PermissivePolicyEngine,
    SafetyGate,
)


class StaticPolicyEngine:
    """Policy engine returning a fixed check and recording requests."""

    def __init__(self, check: PolicyCheck):
        self.check = check
        self.requests: list[PolicyRequest] = []

    async def check_action(self, request: PolicyRequest) -> PolicyCheck:
        self.requests.append(request)
        return self.check


class AnsweringModeGate(ModeGate):
    """Supervised gate that answers approvals itself."""

    def __init__(self, approved: bool, reason: str | None = None):
        super().__init__(OperatingMode.SUPERVISED)
        self.decision = ApprovalDecision(approved=approved, reason=reason)
        self.approval_requests: list[ApprovalRequest] = []

    async def request_approval(self, request: ApprovalRequest) -> ApprovalDecision:
        self.approval_requests.append(request)
        return self.decision


class RecordingModeGate(ModeGate):
    """Autonomous gate remembering every request it judged."""

    def __init__(self):
        super().__init__(OperatingMode.AUTONOMOUS)
        self.requests: list[ModeRequest] = []

    async def check_action(self, request: ModeRequest) -> ModeCheck:
        self.requests.append(request)
        return await super().check_action(request)


def approval_request(timeout: float = 5.0) -> ApprovalRequest:
    return ApprovalRequest(
        agent="tester",
        action="execute_task",
        description="drop table",
        timeout_seconds=timeout,
    )


class TestModeGate:
    """Tests for ModeGate."""

    @pytest.mark.asyncio
    async def test_autonomous_allows(self):
        check = await ModeGate().check_action(ModeRequest(agent="a", action="x"))

        assert check.allowed
        assert not check.requires_approval

    @pytest.mark.asyncio
    async def test_supervised_requires_approval(self):
        check = await ModeGate("supervised").check_action(ModeRequest(agent="a", action="x"))

        assert check.allowed
        assert check.requires_approval

    @pytest.mark.asyncio
    async def test_locked_denies(self):
        gate = ModeGate()
        gate.set_mode(OperatingMode.LOCKED)

        check = await gate.check_action(ModeRequest(agent="a", action="x"))

        assert not check.allowed
        assert "locked" in check.reason

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            ModeGate("reckless")


class TestApprovalChannel:
    """Tests for ApprovalChannel."""

    @pytest.mark.asyncio
    async def test_resolve_pending_request(self, logger):
        channel = ApprovalChannel(logger)

        waiter = asyncio.create_task(channel.request(approval_request()))
        await asyncio.sleep(0)
        [pending] = channel.pending()
        assert pending.to_dict()["description"] == "drop table"

        assert channel.resolve(pending.id, approved=True, reason="looks fine")
        decision = await waiter

        assert decision.approved
        assert decision.reason == "looks fine"
        assert channel.pending() == []

    @pytest.mark.asyncio
    async def test_timeout_is_denial(self, logger):
        channel = ApprovalChannel(logger)

        decision = await channel.request(approval_request(timeout=0.01))

        assert not decision.approved
        assert "timed out" in decision.reason
        assert channel.pending() == []

    def test_resolve_unknown(self, logger):
        assert not ApprovalChannel(logger).resolve("approval-missing", approved=True)


class TestSafetyGate:
    """Tests for SafetyGate."""

    @pytest.mark.asyncio
    async def test_permissive_autonomous_allows(self, logger):
        metrics = InMemoryMetricsSink()
        gate = SafetyGate(PermissivePolicyEngine(), ModeGate(), metrics=metrics, logger=logger)

        verdict = await gate.authorize("refactor", {})

        assert verdict.allowed
        assert not verdict.requires_approval
        assert metrics.safety_events == []

    @pytest.mark.asyncio
    async def test_policy_violation_blocks(self, logger):
        metrics = InMemoryMetricsSink()
        policies = StaticPolicyEngine(
            PolicyCheck(passed=False, violations=[PolicyViolation("no-prod"), PolicyViolation("pii")])
        )
        gate = SafetyGate(
            policies,
            ModeGate(),
            settings=SafetySettings(agent_name="builder"),
            metrics=metrics,
            logger=logger,
        )

        verdict = await gate.authorize("deploy to prod", {"env": "prod"})

        assert not verdict.allowed
        assert verdict.reason == "Policy violation: no-prod, pii"
        assert policies.requests[0].agent == "builder"
        assert policies.requests[0].content == "deploy to prod"
        assert metrics.safety_events[0][0] == "blocked"

    @pytest.mark.asyncio
    async def test_locked_mode_blocks(self, logger):
        gate = SafetyGate(PermissivePolicyEngine(), ModeGate("locked"), logger=logger)

        verdict = await gate.authorize("anything", {})

        assert not verdict.allowed
        assert "locked" in verdict.reason

    @pytest.mark.asyncio
    async def test_approval_granted(self, logger):
        metrics = InMemoryMetricsSink()
        mode_gate = AnsweringModeGate(approved=True)
        gate = SafetyGate(
            PermissivePolicyEngine(),
            mode_gate,
            settings=SafetySettings(approval_timeout_seconds=7, default_risk="high"),
            metrics=metrics,
            logger=logger,
        )

        verdict = await gate.authorize("migrate", {})

        assert verdict.allowed
        assert verdict.requires_approval
        assert mode_gate.approval_requests[0].timeout_seconds == 7
        assert mode_gate.approval_requests[0].risk == "high"
        assert [kind for kind, _ in metrics.safety_events] == [
            "approval_required",
            "approval_granted",
        ]

    @pytest.mark.asyncio
    async def test_approval_denied(self, logger):
        metrics = InMemoryMetricsSink()
        gate = SafetyGate(
            PermissivePolicyEngine(),
            AnsweringModeGate(approved=False, reason="not today"),
            metrics=metrics,
            logger=logger,
        )

        verdict = await gate.authorize("migrate", {})

        assert not verdict.allowed
        assert verdict.reason == "not today"
        assert metrics.safety_events[-1][0] == "approval_denied"

    @pytest.mark.asyncio
    async def test_policy_required_approvals(self, logger):
        mode_gate = AnsweringModeGate(approved=True)
        mode_gate.set_mode(OperatingMode.AUTONOMOUS)
        gate = SafetyGate(
            StaticPolicyEngine(PolicyCheck(passed=True, required_approvals=["security"])),
            mode_gate,
            logger=logger,
        )

        verdict = await gate.authorize("rotate keys", {})

        assert verdict.allowed
        assert len(mode_gate.approval_requests) == 1

    @pytest.mark.asyncio
    async def test_check_does_not_wait_for_approval(self, logger):
        mode_gate = AnsweringModeGate(approved=False)
        gate = SafetyGate(PermissivePolicyEngine(), mode_gate, logger=logger)

        verdict = await gate.check("migrate", {})

        assert verdict.allowed
        assert verdict.requires_approval
        assert mode_gate.approval_requests == []

    @pytest.mark.asyncio
    async def test_mode_gate_sees_task_context(self, logger):
        mode_gate = RecordingModeGate()
        gate = SafetyGate(PermissivePolicyEngine(), mode_gate, logger=logger)

        await gate.authorize("deploy", {"env": "prod"})

        assert mode_gate.requests[0].context == {"env": "prod"}
        assert mode_gate.requests[0].action == "execute_task"

    @pytest.mark.asyncio
    async def test_run_context_reaches_mode_gate(self, make_engine):
        mode_gate = RecordingModeGate()
        engine = make_engine(mode_gate=mode_gate)

        result = await engine.execute_task("Deploy", {"env": "prod"})

        assert result.success
        assert mode_gate.requests[0].context.get("env") == "prod"
