"""
Operating Modes and Approvals

Default policy engine, mode gate and an in-process approval channel.

Design decisions:
- Modes are coarse: autonomous (allow), supervised (allow after a human
  approves), locked (deny)
- Approvals are futures resolved from outside the run (API, CLI, tests)
- An approval nobody answers within its timeout counts as a denial
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from autonomy.core.interfaces import (
    ApprovalDecision,
    ApprovalRequest,
    ModeCheck,
    ModeRequest,
    PolicyCheck,
    PolicyRequest,
)
from autonomy.observability.logging import StructuredLogger, get_logger


class OperatingMode(str, Enum):
    AUTONOMOUS = "autonomous"
    SUPERVISED = "supervised"
    LOCKED = "locked"


class PermissivePolicyEngine:
    """Policy engine with no policies; every action passes."""

    async def check_action(self, request: PolicyRequest) -> PolicyCheck:
        return PolicyCheck(passed=True)


# =============================================================================
# APPROVAL CHANNEL
# =============================================================================

@dataclass
class PendingApproval:
    """An approval request waiting for a human decision."""

    id: str
    request: ApprovalRequest
    created_at: datetime = field(default_factory=datetime.utcnow)
    future: "asyncio.Future[ApprovalDecision] | None" = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "agent": self.request.agent,
            "action": self.request.action,
            "description": self.request.description,
            "risk": self.request.risk,
            "context": self.request.context,
            "timeout_seconds": self.request.timeout_seconds,
            "created_at": self.created_at.isoformat(),
        }


class ApprovalChannel:
    """
    In-process rendezvous between a waiting run and a human decision.

    Usage:
        decision = await channel.request(approval_request)   # in the run
        channel.resolve(request_id, approved=True)           # elsewhere
    """

    def __init__(self, logger: StructuredLogger | None = None):
        self._logger = logger or get_logger("autonomy.approvals")
        self._pending: dict[str, PendingApproval] = {}

    async def request(self, request: ApprovalRequest) -> ApprovalDecision:
        """Wait for a decision, at most `request.timeout_seconds`."""
        loop = asyncio.get_running_loop()
        pending = PendingApproval(
            id=f"approval-{uuid4().hex[:12]}",
            request=request,
            future=loop.create_future(),
        )
        self._pending[pending.id] = pending

        self._logger.info(
            "Approval requested",
            approval_id=pending.id,
            action=request.action,
            risk=request.risk,
        )

        try:
            return await asyncio.wait_for(pending.future, timeout=request.timeout_seconds)
        except asyncio.TimeoutError:
            self._logger.warning(
                "Approval timed out",
                approval_id=pending.id,
                timeout_seconds=request.timeout_seconds,
            )
            return ApprovalDecision(
                approved=False,
                reason=f"Approval timed out after {request.timeout_seconds}s",
            )
        finally:
            self._pending.pop(pending.id, None)

    def pending(self) -> list[PendingApproval]:
        return list(self._pending.values())

    def resolve(self, request_id: str, approved: bool, reason: str | None = None) -> bool:
        """Answer a pending request. Returns False if it is unknown or settled."""
        pending = self._pending.get(request_id)
        if pending is None or pending.future is None or pending.future.done():
            return False

        pending.future.set_result(ApprovalDecision(approved=approved, reason=reason))
        self._logger.info("Approval resolved", approval_id=request_id, approved=approved)
        return True


# =============================================================================
# MODE GATE
# =============================================================================

class ModeGate:
    """Mode gate implementing ModeGateProtocol."""

    def __init__(
        self,
        mode: OperatingMode | str = OperatingMode.AUTONOMOUS,
        channel: ApprovalChannel | None = None,
        logger: StructuredLogger | None = None,
    ):
        self._mode = OperatingMode(mode)
        self._logger = logger or get_logger("autonomy.modes")
        self.channel = channel or ApprovalChannel(self._logger)

    @property
    def mode(self) -> OperatingMode:
        return self._mode

    def set_mode(self, mode: OperatingMode | str) -> None:
        self._mode = OperatingMode(mode)
        self._logger.info("Operating mode changed", mode=self._mode.value)

    async def check_action(self, request: ModeRequest) -> ModeCheck:
        if self._mode == OperatingMode.LOCKED:
            return ModeCheck(
                allowed=False,
                reason="Engine is locked; autonomous execution is disabled",
            )
        if self._mode == OperatingMode.SUPERVISED:
            return ModeCheck(allowed=True, requires_approval=True)
        return ModeCheck(allowed=True)

    async def request_approval(self, request: ApprovalRequest) -> ApprovalDecision:
        return await self.channel.request(request)
