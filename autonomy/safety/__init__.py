"""
Safety Module

Admission control: policies, operating modes and human approval.
"""

from autonomy.safety.gate import SafetyGate, SafetyVerdict
from autonomy.safety.modes import (
    ApprovalChannel,
    ModeGate,
    OperatingMode,
    PendingApproval,
    PermissivePolicyEngine,
)

__all__ = [
    "ApprovalChannel",
    "ModeGate",
    "OperatingMode",
    "PendingApproval",
    "PermissivePolicyEngine",
    "SafetyGate",
    "SafetyVerdict",
]
