"""
Checkpoint Management

Saves pre-attempt task state and restores it on failure.

Design decisions:
- One checkpoint per task; each new attempt overwrites the previous one
- Snapshots are deep copies, so later mutation of the task never leaks
  into a stored checkpoint (and vice versa on restore)
- Rollback is a whole-run safety net: it walks the tree top-down
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from autonomy.core.types import Task, TaskStatus
from autonomy.observability.events import EventBus, EventType
from autonomy.observability.logging import StructuredLogger, get_logger
from autonomy.planning.arena import TaskArena


@dataclass
class TaskCheckpoint:
    """A saved pre-attempt state of a task."""

    task_id: str
    context: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    attempt: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)


class CheckpointManager:
    """
    Task checkpointing and rollback.

    Provides:
    - Snapshot before each attempt
    - Recursive rollback of a task tree
    """

    def __init__(
        self,
        arena: TaskArena,
        events: EventBus,
        logger: StructuredLogger | None = None,
    ):
        self._arena = arena
        self._events = events
        self._logger = logger or get_logger("autonomy.checkpoints")
        self._checkpoints: dict[str, TaskCheckpoint] = {}

    def __len__(self) -> int:
        return len(self._checkpoints)

    def save(self, task: Task) -> TaskCheckpoint:
        """Snapshot a task, replacing any earlier checkpoint for it."""
        checkpoint = TaskCheckpoint(
            task_id=task.id,
            context=copy.deepcopy(task.context),
            result=copy.deepcopy(task.result),
            attempt=task.attempts,
        )
        self._checkpoints[task.id] = checkpoint
        return checkpoint

    def get(self, task_id: str) -> TaskCheckpoint | None:
        return self._checkpoints.get(task_id)

    async def rollback(self, task_id: str) -> list[str]:
        """
        Roll a task and all its descendants back.

        Context is restored wherever a checkpoint exists; every task in the
        tree ends `rolled_back` with result and error cleared.
        Returns the ids rolled back, parents first.
        """
        task = self._arena.get(task_id)
        self._logger.info("Rolling back task", task_id=task.id)

        checkpoint = self._checkpoints.get(task.id)
        if checkpoint is not None:
            task.context = copy.deepcopy(checkpoint.context)

        task.result = None
        task.error = None
        task.status = TaskStatus.ROLLED_BACK

        await self._events.publish(
            EventType.TASK_ROLLED_BACK,
            {"task_id": task.id, "restored": checkpoint is not None},
        )

        rolled_back = [task.id]
        for child_id in list(task.subtask_ids):
            rolled_back.extend(await self.rollback(child_id))
        return rolled_back

    def discard(self, task_ids: list[str]) -> None:
        for task_id in task_ids:
            self._checkpoints.pop(task_id, None)

    def clear(self) -> None:
        self._checkpoints.clear()
