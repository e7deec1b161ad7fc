"""
Exception Hierarchy

Errors raised by the engine, grouped by the component that raises them.
The API maps each error class to an HTTP status and returns `to_dict()`.

Design decisions:
- Every engine error is an AutonomyError carrying a code and a context dict
- A class-level `retryable` flag tells the execution loop whether
  another attempt makes sense
"""

from typing import Any


class AutonomyError(Exception):
    """
    Base exception for all engine errors.

    `code` defaults to the class-level `error_code`; `context` holds the ids
    and values needed to diagnose the failure.
    """

    error_code: str = "AUTONOMY_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.error_code
        self.context = context or {}
        self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "context": self.context,
        }


# ============================================================
# Configuration Errors
# ============================================================

class ConfigurationError(AutonomyError):
    """Error in configuration or settings."""

    error_code = "CONFIGURATION_ERROR"


# ============================================================
# Reasoning Errors
# ============================================================

class ReasoningError(AutonomyError):
    """Base error for reasoning-provider issues."""

    error_code = "REASONING_ERROR"


class ReasoningProviderError(ReasoningError):
    """The reasoning provider failed to answer."""

    error_code = "REASONING_PROVIDER_ERROR"
    retryable = True


class DecompositionParseError(ReasoningError):
    """Provider output could not be decoded into a decomposition."""

    error_code = "DECOMPOSITION_PARSE_ERROR"

    def __init__(self, message: str, *, raw: str = "", **kwargs: Any):
        super().__init__(message, **kwargs)
        self.raw = raw


# ============================================================
# Execution Errors
# ============================================================

class ExecutionError(AutonomyError):
    """Base error for task execution issues."""

    error_code = "EXECUTION_ERROR"


class LowConfidenceError(ExecutionError):
    """Candidate result confidence fell below the threshold."""

    error_code = "LOW_CONFIDENCE"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        confidence: float,
        threshold: float,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.confidence = confidence
        self.threshold = threshold


class MaxAttemptsExceededError(ExecutionError):
    """A leaf task used up its attempts."""

    error_code = "MAX_ATTEMPTS_EXCEEDED"

    def __init__(self, message: str, *, task_id: str, attempts: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.task_id = task_id
        self.attempts = attempts


class ForcedRollbackError(ExecutionError):
    """Reflection asked for the run to be rolled back."""

    error_code = "FORCED_ROLLBACK"


# ============================================================
# Safety Errors
# ============================================================

class SafetyError(AutonomyError):
    """Base error for safety gate outcomes."""

    error_code = "SAFETY_ERROR"


class SafetyBlockedError(SafetyError):
    """Policy engine or mode gate refused the task."""

    error_code = "SAFETY_BLOCKED"


class ApprovalDeniedError(SafetyError):
    """Human approval was denied or timed out."""

    error_code = "APPROVAL_DENIED"


# ============================================================
# Planning Errors
# ============================================================

class PlanningError(AutonomyError):
    """Base error for planning and tracking issues."""

    error_code = "PLANNING_ERROR"


class TaskNotFoundError(PlanningError):
    """Task id is not in the arena."""

    error_code = "TASK_NOT_FOUND"


class GoalNotFoundError(PlanningError):
    """Goal id is not tracked."""

    error_code = "GOAL_NOT_FOUND"


class CheckpointError(PlanningError):
    """Error with checkpoint operations."""

    error_code = "CHECKPOINT_ERROR"
