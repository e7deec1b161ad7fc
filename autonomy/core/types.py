"""
Core Types and Data Structures

Defines the entities shared by every component of the engine.
Tasks and goals reference each other by id only; the owning arena or
tracker resolves ids to objects.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_task_id() -> str:
    return f"task-{uuid4().hex[:12]}"


def new_goal_id() -> str:
    return f"goal-{uuid4().hex[:12]}"


# =============================================================================
# CONVERSATION
# =============================================================================


class MessageRole(str, Enum):
    """Role of a message sent to the reasoning provider."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A single message in a reasoning-provider conversation."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# TASKS
# =============================================================================


class TaskStatus(str, Enum):
    """
    Lifecycle of a task.

    pending → decomposing → executing → reflecting → correcting
            → completed | failed | rolled_back
    """

    PENDING = "pending"
    DECOMPOSING = "decomposing"
    EXECUTING = "executing"
    REFLECTING = "reflecting"
    CORRECTING = "correcting"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


TERMINAL_TASK_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.ROLLED_BACK}
)


class TaskAttempt(BaseModel):
    """
    Immutable record of one execution attempt.

    A new record is appended for every attempt, so rewriting the task's
    approach between attempts never alters what earlier attempts saw.
    """

    model_config = ConfigDict(frozen=True)

    task_id: str
    attempt: int
    description: str
    context: dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=datetime.utcnow)


class Task(BaseModel):
    """
    A unit of work in the decomposition tree.

    Leaf tasks perform work; composite tasks aggregate their children.
    """

    id: str = Field(default_factory=new_task_id)
    description: str
    context: dict[str, Any] = Field(default_factory=dict)

    # Tree links (ids into the arena)
    parent_id: str | None = None
    subtask_ids: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    depth: int = 0

    # Execution state
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    max_attempts: int = Field(default=3, ge=1)
    result: Any = None
    error: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None

    # Audit trail
    attempt_history: list[TaskAttempt] = Field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.subtask_ids

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    @property
    def attempts_remaining(self) -> int:
        return self.max_attempts - self.attempts

    @property
    def duration_seconds(self) -> float | None:
        """Calculate task duration if finished."""
        if self.started_at and self.ended_at:
            return (self.ended_at - self.started_at).total_seconds()
        return None

    def begin_attempt(self) -> TaskAttempt:
        """Consume one attempt and record what it starts from."""
        if self.attempts >= self.max_attempts:
            raise ValueError(f"Task {self.id} has no attempts left ({self.max_attempts} max)")

        self.attempts += 1
        record = TaskAttempt(
            task_id=self.id,
            attempt=self.attempts,
            description=self.description,
            context=dict(self.context),
        )
        self.attempt_history.append(record)
        return record


class ExecutionStep(BaseModel):
    """One entry of the append-only execution log."""

    action: str
    params: dict[str, Any] = Field(default_factory=dict)
    expected_outcome: str = "Successful completion"
    actual_outcome: str | None = None
    success: bool | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    # Correlation
    task_id: str | None = None
    attempt: int | None = None


# =============================================================================
# GOALS
# =============================================================================


class GoalStatus(str, Enum):
    """Lifecycle of a goal."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GoalCheckpoint(BaseModel):
    """A milestone inside a goal."""

    id: str = Field(default_factory=lambda: f"cp-{uuid4().hex[:8]}")
    description: str
    reached: bool = False
    reached_at: datetime | None = None


class Goal(BaseModel):
    """
    A success-tracking entity mirroring a task or task tree.

    Progress of a goal with subgoals is always derived from the subgoals.
    """

    id: str = Field(default_factory=new_goal_id)
    description: str
    success_criteria: list[str] = Field(default_factory=list)
    status: GoalStatus = GoalStatus.PENDING
    priority: GoalPriority = GoalPriority.MEDIUM
    progress: int = Field(default=0, ge=0, le=100)

    parent_id: str | None = None
    subgoal_ids: list[str] = Field(default_factory=list)
    checkpoints: list[GoalCheckpoint] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None

    @property
    def is_composite(self) -> bool:
        return bool(self.subgoal_ids)

    @property
    def is_active(self) -> bool:
        return self.status in {GoalStatus.PENDING, GoalStatus.IN_PROGRESS}


# =============================================================================
# RUN RESULT
# =============================================================================


class RunResult(BaseModel):
    """
    Structured outcome of a top-level run.

    Callers always receive one of these; errors never escape a run.
    """

    success: bool
    result: Any = None
    execution_trace: list[ExecutionStep] = Field(default_factory=list)
    reflections: list[dict[str, Any]] = Field(default_factory=list)

    task_id: str | None = None
    goal_id: str | None = None
    error: str | None = None
    duration_ms: float = 0.0
