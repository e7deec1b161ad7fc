"""
Goal Tracking

Hierarchical goals with derived progress and success-criteria evaluation.

Design decisions:
- Goals live in one id-keyed table; hierarchy is id references
- A goal with subgoals derives its progress from them: the rounded mean of
  its direct subgoals, re-aggregated up the chain on every change
- A goal with subgoals is completed exactly when all of them are
- Criteria evaluation is a lexical heuristic, not semantic judgement
"""

import json
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from autonomy.core.exceptions import GoalNotFoundError, PlanningError
from autonomy.core.types import Goal, GoalCheckpoint, GoalPriority, GoalStatus
from autonomy.observability.events import EventBus, EventType
from autonomy.observability.logging import StructuredLogger, get_logger

# Requirement phrasing that says nothing about the result itself
_CRITERIA_STOP_WORDS = frozenset(
    {
        "must", "should", "shall", "will", "with", "that", "this", "have",
        "from", "into", "each", "when", "where", "which", "also", "only",
        "some", "such", "than", "then", "they", "them", "their", "been",
    }
)

_WORD = re.compile(r"[a-z0-9]+")


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def criterion_tokens(criterion: str) -> list[str]:
    """Significant words of a criterion, lowercased."""
    return [
        word
        for word in _WORD.findall(criterion.lower())
        if len(word) > 3 and word not in _CRITERIA_STOP_WORDS
    ]


def stringify_results(results: Any) -> str:
    if isinstance(results, str):
        return results.lower()
    return json.dumps(results, default=str).lower()


@dataclass
class CriterionResult:
    """Outcome of a single success criterion."""

    criterion: str
    met: bool
    matched: list[str] = field(default_factory=list)
    tokens: list[str] = field(default_factory=list)

    @property
    def coverage(self) -> float:
        return len(self.matched) / len(self.tokens) if self.tokens else 0.0


@dataclass
class GoalEvaluation:
    """Outcome of evaluating a goal against results."""

    goal_id: str
    success: bool
    criteria_results: list[CriterionResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal_id": self.goal_id,
            "success": self.success,
            "criteria_results": [
                {
                    "criterion": r.criterion,
                    "met": r.met,
                    "matched": r.matched,
                    "tokens": r.tokens,
                }
                for r in self.criteria_results
            ],
        }


def evaluate_criteria(criteria: list[str], results: Any) -> list[CriterionResult]:
    """
    Check each criterion against the stringified results.

    A criterion is met when at least half of its significant words appear
    in the results. A criterion without significant words is not met.
    """
    haystack = stringify_results(results)
    outcomes = []
    for criterion in criteria:
        tokens = criterion_tokens(criterion)
        matched = [t for t in tokens if t in haystack]
        met = bool(tokens) and len(matched) * 2 >= len(tokens)
        outcomes.append(CriterionResult(criterion, met, matched, tokens))
    return outcomes


class GoalTracker:
    """
    Tracks goal hierarchies and their progress.

    Features:
    - Subgoal aggregation with cascading completion
    - Checkpoint-driven progress for leaf goals
    - Lexical success-criteria evaluation
    """

    def __init__(self, events: EventBus, logger: StructuredLogger | None = None):
        self._events = events
        self._logger = logger or get_logger("autonomy.goals")
        self._goals: dict[str, Goal] = {}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_goal(
        self,
        description: str,
        success_criteria: list[str] | None = None,
        priority: GoalPriority = GoalPriority.MEDIUM,
        parent_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        goal_id: str | None = None,
    ) -> Goal:
        """Create a goal; `goal_id` lets a caller announce the id before creation."""
        parent = self.get_goal(parent_id) if parent_id else None
        if goal_id is not None and goal_id in self._goals:
            raise PlanningError(f"Goal already exists: {goal_id}", context={"goal_id": goal_id})

        ids = {"id": goal_id} if goal_id is not None else {}
        goal = Goal(
            description=description,
            success_criteria=list(success_criteria or []),
            priority=priority,
            parent_id=parent_id,
            metadata=dict(metadata or {}),
            **ids,
        )
        self._goals[goal.id] = goal

        await self._events.publish(
            EventType.GOAL_CREATED,
            {"goal_id": goal.id, "description": description, "parent_id": parent_id},
        )

        if parent is not None:
            parent.subgoal_ids.append(goal.id)
            await self._aggregate_upwards(goal)

        return goal

    async def update_goal(self, goal_id: str, status: GoalStatus) -> Goal:
        """
        Set a goal's status explicitly and re-aggregate its ancestors.

        A goal with subgoals is completed exactly when all of them are, so
        its status can only be set where it agrees with that rule.
        """
        goal = self.get_goal(goal_id)
        previous = goal.status

        if goal.is_composite and (status == GoalStatus.COMPLETED) != self.subgoals_completed(goal):
            raise PlanningError(
                f"Goal with subgoals cannot be {status.value}: completion is derived from its subgoals",
                context={"goal_id": goal_id, "status": status.value},
            )

        goal.status = status
        goal.updated_at = datetime.utcnow()
        if status == GoalStatus.COMPLETED:
            goal.progress = 100
            goal.completed_at = goal.updated_at
        else:
            goal.completed_at = None

        await self._events.publish(
            EventType.GOAL_UPDATED,
            {"goal_id": goal.id, "status": status.value, "previous": previous.value},
        )
        if status == GoalStatus.COMPLETED and previous != GoalStatus.COMPLETED:
            await self._events.publish(EventType.GOAL_COMPLETED, {"goal_id": goal.id})

        await self._aggregate_upwards(goal)
        return goal

    async def set_progress(self, goal_id: str, progress: float) -> Goal:
        """Set a leaf goal's progress, clamped to [0, 100]."""
        goal = self.get_goal(goal_id)
        if goal.is_composite:
            raise PlanningError(
                "Progress of a goal with subgoals is derived from its subgoals",
                context={"goal_id": goal_id},
            )

        await self._apply_progress(goal, round_half_up(min(100.0, max(0.0, progress))))
        await self._aggregate_upwards(goal)
        return goal

    async def remove_goal(self, goal_id: str) -> list[str]:
        """Remove a goal and its subtree; returns the removed ids."""
        goal = self.get_goal(goal_id)
        removed = [g.id for g in self._walk(goal)]

        parent = self._goals.get(goal.parent_id) if goal.parent_id else None
        for gid in removed:
            del self._goals[gid]

        await self._events.publish(EventType.GOAL_REMOVED, {"goal_id": goal_id, "removed": removed})

        if parent is not None:
            parent.subgoal_ids.remove(goal_id)
            if parent.subgoal_ids:
                await self._aggregate(parent)

        return removed

    # =========================================================================
    # Checkpoints
    # =========================================================================

    async def add_checkpoint(self, goal_id: str, description: str) -> GoalCheckpoint:
        goal = self.get_goal(goal_id)
        checkpoint = GoalCheckpoint(description=description)
        goal.checkpoints.append(checkpoint)
        goal.updated_at = datetime.utcnow()

        if any(cp.reached for cp in goal.checkpoints) and not goal.is_composite:
            await self._apply_progress(goal, self.checkpoint_progress(goal))
            await self._aggregate_upwards(goal)

        return checkpoint

    async def reach_checkpoint(self, goal_id: str, checkpoint_id: str) -> Goal:
        goal = self.get_goal(goal_id)
        checkpoint = next((cp for cp in goal.checkpoints if cp.id == checkpoint_id), None)
        if checkpoint is None:
            raise PlanningError(
                f"Checkpoint not found: {checkpoint_id}",
                context={"goal_id": goal_id, "checkpoint_id": checkpoint_id},
            )

        if not checkpoint.reached:
            checkpoint.reached = True
            checkpoint.reached_at = datetime.utcnow()

        # Composite goals keep their derived progress
        if not goal.is_composite:
            await self._apply_progress(goal, self.checkpoint_progress(goal))
            await self._aggregate_upwards(goal)

        return goal

    @staticmethod
    def checkpoint_progress(goal: Goal) -> int:
        if not goal.checkpoints:
            return goal.progress
        reached = sum(1 for cp in goal.checkpoints if cp.reached)
        return round_half_up(reached / len(goal.checkpoints) * 100)

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate_goal(self, goal_id: str, results: Any) -> GoalEvaluation:
        goal = self.get_goal(goal_id)
        outcomes = evaluate_criteria(goal.success_criteria, results)
        return GoalEvaluation(
            goal_id=goal.id,
            success=all(r.met for r in outcomes),
            criteria_results=outcomes,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_goal(self, goal_id: str) -> Goal:
        goal = self._goals.get(goal_id)
        if goal is None:
            raise GoalNotFoundError(f"Goal not found: {goal_id}", context={"goal_id": goal_id})
        return goal

    def get_all_goals(self) -> list[Goal]:
        return list(self._goals.values())

    def get_active_goals(self) -> list[Goal]:
        return [g for g in self._goals.values() if g.is_active]

    def get_subgoals(self, goal_id: str) -> list[Goal]:
        return [self._goals[gid] for gid in self.get_goal(goal_id).subgoal_ids]

    def subgoals_completed(self, goal: Goal) -> bool:
        """True when the goal has subgoals and every one is completed."""
        return bool(goal.subgoal_ids) and all(
            self._goals[gid].status == GoalStatus.COMPLETED for gid in goal.subgoal_ids
        )

    def get_stats(self) -> dict[str, Any]:
        goals = list(self._goals.values())
        by_status = {status.value: 0 for status in GoalStatus}
        for goal in goals:
            by_status[goal.status.value] += 1

        total = len(goals)
        return {
            "total": total,
            "by_status": by_status,
            "average_progress": sum(g.progress for g in goals) / total if total else 0.0,
            "completion_rate": by_status[GoalStatus.COMPLETED.value] / total if total else 0.0,
        }

    def clear(self) -> None:
        self._goals.clear()

    # =========================================================================
    # Aggregation
    # =========================================================================

    def _walk(self, goal: Goal):
        yield goal
        for gid in goal.subgoal_ids:
            yield from self._walk(self._goals[gid])

    async def _apply_progress(self, goal: Goal, progress: int) -> None:
        if progress == goal.progress:
            return

        goal.progress = progress
        goal.updated_at = datetime.utcnow()
        if goal.status == GoalStatus.PENDING and progress > 0:
            goal.status = GoalStatus.IN_PROGRESS

        await self._events.publish(
            EventType.GOAL_PROGRESS,
            {"goal_id": goal.id, "progress": progress},
        )

    async def _aggregate_upwards(self, goal: Goal) -> None:
        if goal.parent_id and goal.parent_id in self._goals:
            await self._aggregate(self._goals[goal.parent_id])

    async def _aggregate(self, goal: Goal) -> None:
        """Recompute a composite goal from its subgoals, then its ancestors."""
        subgoals = [self._goals[gid] for gid in goal.subgoal_ids]
        if not subgoals:
            return

        mean = sum(s.progress for s in subgoals) / len(subgoals)
        all_completed = all(s.status == GoalStatus.COMPLETED for s in subgoals)
        previous = goal.status.value

        if all_completed and goal.status != GoalStatus.COMPLETED:
            goal.status = GoalStatus.COMPLETED
            goal.progress = 100
            goal.updated_at = goal.completed_at = datetime.utcnow()
            self._logger.debug("Goal completed by its subgoals", goal_id=goal.id)
            await self._events.publish(
                EventType.GOAL_UPDATED,
                {"goal_id": goal.id, "status": goal.status.value, "previous": previous},
            )
            await self._events.publish(EventType.GOAL_COMPLETED, {"goal_id": goal.id})
        elif not all_completed and goal.status == GoalStatus.COMPLETED:
            goal.status = GoalStatus.IN_PROGRESS
            goal.completed_at = None
            await self._events.publish(
                EventType.GOAL_UPDATED,
                {"goal_id": goal.id, "status": goal.status.value, "previous": previous},
            )
            await self._apply_progress(goal, round_half_up(mean))
        else:
            await self._apply_progress(goal, round_half_up(mean))

        await self._aggregate_upwards(goal)
