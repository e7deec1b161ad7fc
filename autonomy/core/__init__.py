"""
Core Module

Contains fundamental types, exceptions and interfaces used across
all other modules of the engine.

The interfaces module defines protocols for the external collaborators,
keeping the engine independent of any concrete provider.
"""

from autonomy.core.types import (
    ChatMessage,
    ExecutionStep,
    Goal,
    GoalCheckpoint,
    GoalPriority,
    GoalStatus,
    MessageRole,
    RunResult,
    Task,
    TaskAttempt,
    TaskStatus,
)
from autonomy.core.exceptions import (
    ApprovalDeniedError,
    AutonomyError,
    CheckpointError,
    ConfigurationError,
    DecompositionParseError,
    ExecutionError,
    ForcedRollbackError,
    GoalNotFoundError,
    LowConfidenceError,
    MaxAttemptsExceededError,
    PlanningError,
    ReasoningError,
    ReasoningProviderError,
    SafetyBlockedError,
    SafetyError,
    TaskNotFoundError,
)
from autonomy.core.interfaces import (
    ApprovalDecision,
    ApprovalRequest,
    MetricsSinkProtocol,
    ModeCheck,
    ModeGateProtocol,
    ModeRequest,
    PolicyCheck,
    PolicyEngineProtocol,
    PolicyRequest,
    PolicyViolation,
    ReasoningProviderProtocol,
)

__all__ = [
    # Types
    "ChatMessage",
    "ExecutionStep",
    "Goal",
    "GoalCheckpoint",
    "GoalPriority",
    "GoalStatus",
    "MessageRole",
    "RunResult",
    "Task",
    "TaskAttempt",
    "TaskStatus",
    # Exceptions
    "ApprovalDeniedError",
    "AutonomyError",
    "CheckpointError",
    "ConfigurationError",
    "DecompositionParseError",
    "ExecutionError",
    "ForcedRollbackError",
    "GoalNotFoundError",
    "LowConfidenceError",
    "MaxAttemptsExceededError",
    "PlanningError",
    "ReasoningError",
    "ReasoningProviderError",
    "SafetyBlockedError",
    "SafetyError",
    "TaskNotFoundError",
    # Interfaces/Protocols
    "ApprovalDecision",
    "ApprovalRequest",
    "MetricsSinkProtocol",
    "ModeCheck",
    "ModeGateProtocol",
    "ModeRequest",
    "PolicyCheck",
    "PolicyEngineProtocol",
    "PolicyRequest",
    "PolicyViolation",
    "ReasoningProviderProtocol",
]
