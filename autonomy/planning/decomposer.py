"""
Task Decomposition

Breaks complex tasks into a bounded tree of subtasks.

Design decisions:
- The reasoning provider decides whether a task needs breaking down
- Depth is bounded by max_depth; at the bound a task is always a leaf
- Any provider or decoding failure makes the task a leaf; it is logged,
  never raised
- Subtasks are decomposed depth-first before the next sibling
"""

import copy

from autonomy.core.exceptions import DecompositionParseError, ReasoningProviderError
from autonomy.core.types import Task, TaskStatus
from autonomy.observability.events import EventBus, EventType
from autonomy.observability.logging import StructuredLogger, get_logger
from autonomy.planning.arena import TaskArena
from autonomy.reasoning.client import ReasoningClient
from autonomy.reasoning.parser import DecompositionPlan, PlannedSubtask
from autonomy.reasoning.prompts import DECOMPOSITION_PROMPT, dump


class TaskDecomposer:
    """
    Reasoning-driven recursive decomposition.

    The tree is written into the arena; the decomposer itself keeps no
    state between calls apart from its limits.
    """

    def __init__(
        self,
        client: ReasoningClient,
        arena: TaskArena,
        events: EventBus,
        logger: StructuredLogger | None = None,
        max_depth: int = 5,
        max_subtasks: int = 5,
    ):
        self._client = client
        self._arena = arena
        self._events = events
        self._logger = logger or get_logger("autonomy.decomposer")
        self.max_depth = max_depth
        self.max_subtasks = max_subtasks

    async def decompose(self, task: Task, depth: int = 0) -> None:
        """Decompose a task in place, recursing into each new subtask."""
        if depth >= self.max_depth:
            self._logger.debug("Depth bound reached, task is a leaf", task_id=task.id, depth=depth)
            return

        task.status = TaskStatus.DECOMPOSING
        await self._events.publish(
            EventType.TASK_DECOMPOSING,
            {"task_id": task.id, "description": task.description, "depth": depth},
        )

        plan = await self._request_plan(task)
        subtasks = self._accepted_subtasks(task, plan)
        task.status = TaskStatus.PENDING

        if not subtasks:
            return

        self._logger.info(
            "Task decomposed",
            task_id=task.id,
            subtasks=len(subtasks),
            depth=depth,
        )

        created: list[Task] = []
        for planned in subtasks:
            context = copy.deepcopy(task.context)
            context.update(planned.context)

            child = self._arena.create(
                planned.description,
                context,
                parent_id=task.id,
                max_attempts=task.max_attempts,
            )
            child.dependencies = self._resolve_dependencies(planned, created)
            created.append(child)

            await self.decompose(child, depth + 1)

    async def _request_plan(self, task: Task) -> DecompositionPlan | None:
        prompt = DECOMPOSITION_PROMPT.format(
            description=task.description,
            context=dump(task.context),
            max_subtasks=self.max_subtasks,
        )

        try:
            result = await self._client.ask_structured(prompt, DecompositionPlan)
        except ReasoningProviderError as e:
            self._logger.warning(
                "Decomposition unavailable, treating task as leaf",
                task_id=task.id,
                reason=e.message,
            )
            return None

        if not result.ok:
            self._logger.warning(
                "Decomposition parse failed, treating task as leaf",
                error=DecompositionParseError(
                    f"Could not decode decomposition: {result.reason}",
                    raw=result.raw,
                    context={"task_id": task.id},
                ),
                task_id=task.id,
            )
            return None

        return result.value

    def _accepted_subtasks(
        self,
        task: Task,
        plan: DecompositionPlan | None,
    ) -> list[PlannedSubtask]:
        if plan is None or not plan.needs_decomposition:
            return []

        subtasks = plan.subtasks
        if len(subtasks) < 2:
            self._logger.debug("Fewer than two subtasks proposed, task is a leaf", task_id=task.id)
            return []

        if len(subtasks) > self.max_subtasks:
            self._logger.warning(
                "Too many subtasks proposed, keeping the first ones",
                task_id=task.id,
                proposed=len(subtasks),
                kept=self.max_subtasks,
            )
            subtasks = subtasks[: self.max_subtasks]

        return subtasks

    def _resolve_dependencies(
        self,
        planned: PlannedSubtask,
        earlier: list[Task],
    ) -> list[str]:
        """Map sibling indices to sibling ids; unknown references are dropped."""
        resolved: list[str] = []
        for ref in planned.dependencies:
            index: int | None = None
            if isinstance(ref, int):
                index = ref
            elif isinstance(ref, str) and ref.strip().isdigit():
                index = int(ref.strip())

            if index is not None and 0 <= index < len(earlier):
                sibling_id = earlier[index].id
                if sibling_id not in resolved:
                    resolved.append(sibling_id)
            else:
                self._logger.debug("Ignoring unresolvable dependency", dependency=str(ref))
        return resolved
