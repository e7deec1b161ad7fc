"""
Agentic Loop

The execution engine: admit, decompose, execute with reflection, evaluate.

Design decisions:
- One call to execute_task() is one run and always returns a RunResult;
  failures are reported, never raised
- Leaf tasks run a bounded retry loop: attempt, reflect, self-correct
- Composite tasks fan out to their children, in parallel or in order
- Every run mirrors its task tree into a goal tree so progress is visible
  while the run is in flight
- A failed run is rolled back from the root when rollback is enabled
- All collaborators are injected; see runtime.factory for the wiring
"""

import asyncio
import time
from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from autonomy.config.settings import LoopSettings
from autonomy.core.exceptions import (
    ConfigurationError,
    ForcedRollbackError,
    LowConfidenceError,
    MaxAttemptsExceededError,
    ReasoningProviderError,
)
from autonomy.core.interfaces import MetricsSinkProtocol
from autonomy.core.types import (
    ExecutionStep,
    GoalPriority,
    GoalStatus,
    RunResult,
    Task,
    TaskStatus,
    new_goal_id,
)
from autonomy.observability.events import EventBus, EventType
from autonomy.observability.logging import StructuredLogger, get_logger
from autonomy.planning.arena import TaskArena
from autonomy.planning.checkpoints import CheckpointManager
from autonomy.planning.decomposer import TaskDecomposer
from autonomy.planning.goals import GoalTracker
from autonomy.reasoning.client import ReasoningClient
from autonomy.reasoning.parser import CandidateResult, CorrectionProposal, ReflectionVerdict
from autonomy.reasoning.prompts import (
    CORRECTION_PROMPT,
    EXECUTION_PROMPT,
    REFLECTION_PROMPT,
    dump,
)
from autonomy.safety.gate import SafetyGate

DEFAULT_CRITERIA = ["Task completed successfully"]


class AgenticLoop:
    """
    Autonomous task-execution engine.

    Usage:
        engine = create_engine(provider)
        result = await engine.execute_task("Add input validation", {"repo": "api"})
    """

    def __init__(
        self,
        client: ReasoningClient,
        safety: SafetyGate,
        goals: GoalTracker,
        events: EventBus,
        metrics: MetricsSinkProtocol,
        settings: LoopSettings | None = None,
        arena: TaskArena | None = None,
        checkpoints: CheckpointManager | None = None,
        logger: StructuredLogger | None = None,
    ):
        self._settings = settings or LoopSettings()
        self._logger = logger or get_logger("autonomy.loop")

        self.client = client
        self.safety = safety
        self.goals = goals
        self.events = events
        self.metrics = metrics
        self.arena = arena or TaskArena()
        self.checkpoints = checkpoints or CheckpointManager(self.arena, events, self._logger)

        self._decomposer = TaskDecomposer(
            client,
            self.arena,
            events,
            self._logger,
            max_depth=self._settings.max_depth,
            max_subtasks=self._settings.max_subtasks,
        )

        self._history: list[ExecutionStep] = []
        self._current_task: Task | None = None
        self._task_goals: dict[str, str] = {}

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def settings(self) -> LoopSettings:
        return self._settings

    def get_config(self) -> dict[str, Any]:
        return self._settings.model_dump()

    def set_config(self, **overrides: Any) -> LoopSettings:
        """Apply a validated partial update; takes effect from the next run."""
        try:
            settings = LoopSettings(**{**self._settings.model_dump(), **overrides})
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid loop configuration",
                context={"errors": e.errors(include_url=False)},
                cause=e,
            ) from e

        self._settings = settings
        self._decomposer.max_depth = settings.max_depth
        self._decomposer.max_subtasks = settings.max_subtasks
        self._logger.info("Loop configuration updated", fields=sorted(overrides))
        return settings

    # =========================================================================
    # Runs
    # =========================================================================

    async def execute_task(
        self,
        description: str,
        context: dict[str, Any] | None = None,
        success_criteria: list[str] | None = None,
    ) -> RunResult:
        """
        Run a task end to end.

        Phases:
        1. Safety admission (policy, mode, approval)
        2. Recursive decomposition
        3. Execution with reflection
        4. Success evaluation and metrics
        """
        start_time = time.perf_counter()
        run_id = f"run-{uuid4().hex[:8]}"
        settings = self._settings
        reflections: list[dict[str, Any]] = []

        self._discard_previous_run()

        root = self.arena.create(description, context, max_attempts=settings.max_attempts)
        self._current_task = root
        history_start = len(self._history)
        goal_id = new_goal_id()

        def finish(success: bool, result: Any = None, error: str | None = None) -> RunResult:
            tree = {t.id for t in self.arena.walk(root.id)}
            return RunResult(
                success=success,
                result=result,
                execution_trace=[s for s in self._history[history_start:] if s.task_id in tree],
                reflections=reflections,
                task_id=root.id,
                goal_id=goal_id,
                error=error,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )

        with self._logger.context(run_id=run_id, goal_id=goal_id):
            self._logger.info("Run started", task_id=root.id)
            await self.events.publish(
                EventType.LOOP_STARTED,
                {"task_id": root.id, "goal_id": goal_id, "run_id": run_id, "description": description},
            )

            goal = await self.goals.create_goal(
                description,
                success_criteria or DEFAULT_CRITERIA,
                priority=GoalPriority.HIGH,
                metadata={"task_id": root.id, "run_id": run_id},
                goal_id=goal_id,
            )
            self._task_goals = {root.id: goal.id}

            try:
                verdict = await self.safety.authorize(description, root.context)
                if not verdict.allowed:
                    await self.goals.update_goal(goal.id, GoalStatus.FAILED)
                    await self.events.publish(
                        EventType.LOOP_FAILED,
                        {"task_id": root.id, "blocked": True, "reason": verdict.reason},
                    )
                    return finish(False, {"blocked": True, "reason": verdict.reason})

                await self.goals.update_goal(goal.id, GoalStatus.IN_PROGRESS)

                await self._decomposer.decompose(root, depth=0)
                await self._mirror_goals(root, goal.id, goal.priority)

                result = await self.execute(root.id, reflections)

                success = self._evaluate_success(root, goal.id, success_criteria)
                await self._settle_goal(root, GoalStatus.COMPLETED if success else GoalStatus.FAILED)

                self.metrics.record_productivity("task_completed", 1, {"task": description})
                self.metrics.record_calibration(
                    predicted=settings.confidence_threshold,
                    actual=1.0 if success else 0.0,
                    task=description,
                )

                self._logger.info("Run finished", task_id=root.id, success=success)
                await self.events.publish(
                    EventType.LOOP_COMPLETED,
                    {"task_id": root.id, "success": success, "result": result},
                )
                return finish(success, result)

            except Exception as e:
                self._logger.error("Run failed", error=e, task_id=root.id)

                if settings.rollback_enabled:
                    await self.checkpoints.rollback(root.id)

                await self._settle_goal(root, GoalStatus.FAILED)
                await self.events.publish(
                    EventType.LOOP_FAILED,
                    {"task_id": root.id, "error": str(e)},
                )
                return finish(False, None, str(e))

    async def execute(self, task_id: str, reflections: list[dict[str, Any]] | None = None) -> Any:
        """
        Execute a task of the current tree.

        Leaves the task in a terminal status or raises. Reflection verdicts
        are appended to `reflections` when given.
        """
        task = self.arena.get(task_id)
        if reflections is None:
            reflections = []

        with self._logger.context(task_id=task.id):
            if task.is_leaf:
                return await self._execute_leaf(task, reflections)
            return await self._execute_composite(task, reflections)

    async def _execute_composite(self, task: Task, reflections: list[dict[str, Any]]) -> Any:
        children = self.arena.children(task.id)

        task.status = TaskStatus.EXECUTING
        task.started_at = datetime.utcnow()
        self.checkpoints.save(task)
        await self.events.publish(
            EventType.TASK_EXECUTING,
            {"task_id": task.id, "subtasks": len(children)},
        )

        if self._settings.parallel_execution:
            outcomes = await asyncio.gather(
                *(self.execute(child.id, reflections) for child in children),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    await self._fail(task, outcome)
                    raise outcome
            task.result = list(outcomes)
        else:
            for child in children:
                try:
                    await self.execute(child.id, reflections)
                except Exception as e:
                    await self._fail(task, e)
                    raise
            task.result = [child.result for child in children]

        task.status = TaskStatus.COMPLETED
        task.error = None
        task.ended_at = datetime.utcnow()
        await self.events.publish(EventType.TASK_COMPLETED, {"task_id": task.id, "result": task.result})
        return task.result

    async def _execute_leaf(self, task: Task, reflections: list[dict[str, Any]]) -> Any:
        settings = self._settings

        while task.attempts < task.max_attempts:
            attempt = task.begin_attempt()
            task.status = TaskStatus.EXECUTING
            task.started_at = task.started_at or attempt.started_at

            self._logger.debug("Executing leaf", attempt=attempt.attempt)
            await self.events.publish(
                EventType.TASK_EXECUTING,
                {"task_id": task.id, "attempt": attempt.attempt},
            )

            self.checkpoints.save(task)

            try:
                candidate = await self._attempt(task)
                task.result = candidate.model_dump()
                await self._record_step(task, success=True, outcome=dump(task.result))

                if settings.reflection_enabled:
                    task.status = TaskStatus.REFLECTING
                    verdict = await self._reflect(task)
                    reflections.append(verdict.model_dump())

                    if verdict.should_rollback:
                        raise ForcedRollbackError(
                            "Reflection determined rollback is needed",
                            context={"task_id": task.id, "issues": verdict.issues},
                        )

                    if verdict.should_retry and not verdict.is_successful:
                        self._logger.info(
                            "Reflection requested a retry",
                            attempt=attempt.attempt,
                            issues=verdict.issues,
                        )
                        if verdict.modified_approach:
                            task.description = verdict.modified_approach
                        continue

                task.status = TaskStatus.COMPLETED
                task.error = None
                task.ended_at = datetime.utcnow()
                await self.events.publish(
                    EventType.TASK_COMPLETED,
                    {"task_id": task.id, "result": task.result},
                )
                await self._settle_goal(task, GoalStatus.COMPLETED)
                return task.result

            except ForcedRollbackError as e:
                await self._record_step(task, success=False, outcome=e.message)
                await self._fail(task, e)
                raise

            except Exception as e:
                task.error = str(e)
                self._logger.warning("Attempt failed", attempt=attempt.attempt, reason=task.error)
                await self._record_step(task, success=False, outcome=task.error)

                if task.attempts >= task.max_attempts:
                    error = MaxAttemptsExceededError(
                        f"Task failed after {task.attempts} attempts: {e}",
                        task_id=task.id,
                        attempts=task.attempts,
                        cause=e,
                    )
                    await self._fail(task, error)
                    raise error from e

                task.status = TaskStatus.CORRECTING
                await self._self_correct(task, e)

        # Reflection asked for a retry on the final attempt
        error = MaxAttemptsExceededError(
            f"Task failed after {task.attempts} attempts",
            task_id=task.id,
            attempts=task.attempts,
        )
        await self._fail(task, error)
        raise error

    # =========================================================================
    # Reasoning steps
    # =========================================================================

    async def _attempt(self, task: Task) -> CandidateResult:
        """Ask for a candidate result; raises when it cannot be trusted."""
        prompt = EXECUTION_PROMPT.format(description=task.description, context=dump(task.context))
        decoded = await self.client.ask_structured(prompt, CandidateResult)

        candidate = decoded.value if decoded.ok else CandidateResult()
        confidence = candidate.effective_confidence
        threshold = self._settings.confidence_threshold

        if confidence < threshold:
            raise LowConfidenceError(
                f"Low confidence ({confidence:.2f}) - below threshold {threshold:.2f}",
                confidence=confidence,
                threshold=threshold,
                context={"task_id": task.id},
            )
        return candidate

    async def _reflect(self, task: Task) -> ReflectionVerdict:
        """Judge the current result; an unusable answer accepts it."""
        window = self._settings.history_window
        recent = self._history[-window:] if window else []

        prompt = REFLECTION_PROMPT.format(
            description=task.description,
            result=dump(task.result),
            attempts=task.attempts,
            history=dump([s.model_dump(mode="json") for s in recent]),
        )

        try:
            decoded = await self.client.ask_structured(prompt, ReflectionVerdict)
        except ReasoningProviderError as e:
            self._logger.warning("Reflection unavailable, accepting result", reason=e.message)
            return ReflectionVerdict()

        return decoded.value if decoded.ok else ReflectionVerdict()

    async def _self_correct(self, task: Task, error: Exception) -> CorrectionProposal:
        """Merge proposed corrections into the task; no proposal changes nothing."""
        prompt = CORRECTION_PROMPT.format(
            description=task.description,
            error=str(error),
            context=dump(task.context),
            attempts=task.attempts,
        )

        try:
            decoded = await self.client.ask_structured(prompt, CorrectionProposal)
        except ReasoningProviderError as e:
            self._logger.warning("Self-correction unavailable", reason=e.message)
            return CorrectionProposal()

        proposal = decoded.value if decoded.ok else CorrectionProposal()
        if proposal.corrections:
            task.context = {**task.context, **proposal.corrections}
        if proposal.new_approach:
            task.description = proposal.new_approach

        self._logger.debug(
            "Self-correction applied",
            diagnosis=proposal.diagnosis,
            corrections=list(proposal.corrections),
        )
        return proposal

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _record_step(self, task: Task, success: bool, outcome: str) -> ExecutionStep:
        step = ExecutionStep(
            action=task.description,
            params=dict(task.context),
            actual_outcome=outcome[: self._settings.outcome_preview_chars],
            success=success,
            task_id=task.id,
            attempt=task.attempts,
        )
        self._history.append(step)
        await self.events.publish(EventType.STEP_EXECUTED, step.model_dump(mode="json"))
        return step

    async def _fail(self, task: Task, error: BaseException) -> None:
        task.status = TaskStatus.FAILED
        task.error = str(error)
        task.ended_at = datetime.utcnow()
        await self._settle_goal(task, GoalStatus.FAILED)

    async def _mirror_goals(self, task: Task, goal_id: str, priority: GoalPriority) -> None:
        """Create one subgoal per subtask, recursively."""
        for child in self.arena.children(task.id):
            subgoal = await self.goals.create_goal(
                child.description,
                priority=priority,
                parent_id=goal_id,
                metadata={"task_id": child.id},
            )
            self._task_goals[child.id] = subgoal.id
            await self._mirror_goals(child, subgoal.id, priority)

    async def _settle_goal(self, task: Task, status: GoalStatus) -> None:
        goal_id = self._task_goals.get(task.id)
        if goal_id is None:
            return
        goal = self.goals.get_goal(goal_id)
        goal.metadata["run_outcome"] = status.value

        # Completion of a goal with subgoals follows its subgoals
        if goal.is_composite and (status == GoalStatus.COMPLETED) != self.goals.subgoals_completed(goal):
            self._logger.info(
                "Goal status follows its subgoals",
                goal_id=goal_id,
                requested=status.value,
                kept=goal.status.value,
            )
            return
        if goal.status != status:
            await self.goals.update_goal(goal_id, status)

    def _evaluate_success(
        self,
        root: Task,
        goal_id: str,
        success_criteria: list[str] | None,
    ) -> bool:
        if root.status != TaskStatus.COMPLETED or root.error:
            return False
        if not success_criteria:
            return True
        evaluation = self.goals.evaluate_goal(goal_id, root.result)
        self.goals.get_goal(goal_id).metadata["criteria_met"] = evaluation.success
        return evaluation.success

    def _discard_previous_run(self) -> None:
        """Drop the previous run's tree; its goals stay with the tracker."""
        previous = self._current_task
        if previous is not None and previous.id in self.arena:
            self.checkpoints.discard(self.arena.remove_tree(previous.id))
        self._task_goals = {}

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_current_task(self) -> Task | None:
        return self._current_task

    def get_task_tree(self) -> list[Task]:
        if self._current_task is None or self._current_task.id not in self.arena:
            return []
        return list(self.arena.walk(self._current_task.id))

    def get_execution_history(self) -> list[ExecutionStep]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()
        self.checkpoints.clear()

    def get_stats(self) -> dict[str, Any]:
        total = len(self._history)
        successful = sum(1 for s in self._history if s.success)
        return {
            "total_steps": total,
            "successful_steps": successful,
            "failed_steps": total - successful,
            "success_rate": successful / total if total else 0.0,
        }
