"""
Goal Tracking Routes
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from autonomy.api.dependencies import get_goal_tracker
from autonomy.core.types import Goal, GoalCheckpoint, GoalPriority, GoalStatus
from autonomy.planning.goals import GoalTracker

router = APIRouter()


class CreateGoalRequest(BaseModel):
    """Request to create a goal."""

    description: str = Field(..., min_length=1)
    success_criteria: list[str] = Field(default_factory=list)
    priority: GoalPriority = GoalPriority.MEDIUM
    parent_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateStatusRequest(BaseModel):
    status: GoalStatus


class UpdateProgressRequest(BaseModel):
    progress: float


class AddCheckpointRequest(BaseModel):
    description: str = Field(..., min_length=1)


class EvaluateRequest(BaseModel):
    results: Any = None


@router.post("/goals", response_model=Goal)
async def create_goal(
    request: CreateGoalRequest,
    tracker: GoalTracker = Depends(get_goal_tracker),
):
    return await tracker.create_goal(
        request.description,
        request.success_criteria,
        priority=request.priority,
        parent_id=request.parent_id,
        metadata=request.metadata,
    )


@router.get("/goals", response_model=list[Goal])
async def list_goals(tracker: GoalTracker = Depends(get_goal_tracker)):
    return tracker.get_all_goals()


@router.get("/goals/active", response_model=list[Goal])
async def list_active_goals(tracker: GoalTracker = Depends(get_goal_tracker)):
    """Goals that are pending or in progress."""
    return tracker.get_active_goals()


@router.get("/goals/stats")
async def goal_stats(tracker: GoalTracker = Depends(get_goal_tracker)) -> dict[str, Any]:
    return tracker.get_stats()


@router.get("/goals/{goal_id}", response_model=Goal)
async def get_goal(goal_id: str, tracker: GoalTracker = Depends(get_goal_tracker)):
    return tracker.get_goal(goal_id)


@router.get("/goals/{goal_id}/subgoals", response_model=list[Goal])
async def get_subgoals(goal_id: str, tracker: GoalTracker = Depends(get_goal_tracker)):
    return tracker.get_subgoals(goal_id)


@router.put("/goals/{goal_id}/status", response_model=Goal)
async def update_status(
    goal_id: str,
    request: UpdateStatusRequest,
    tracker: GoalTracker = Depends(get_goal_tracker),
):
    return await tracker.update_goal(goal_id, request.status)


@router.put("/goals/{goal_id}/progress", response_model=Goal)
async def update_progress(
    goal_id: str,
    request: UpdateProgressRequest,
    tracker: GoalTracker = Depends(get_goal_tracker),
):
    return await tracker.set_progress(goal_id, request.progress)


@router.post("/goals/{goal_id}/checkpoints", response_model=GoalCheckpoint)
async def add_checkpoint(
    goal_id: str,
    request: AddCheckpointRequest,
    tracker: GoalTracker = Depends(get_goal_tracker),
):
    return await tracker.add_checkpoint(goal_id, request.description)


@router.post("/goals/{goal_id}/checkpoints/{checkpoint_id}/reach", response_model=Goal)
async def reach_checkpoint(
    goal_id: str,
    checkpoint_id: str,
    tracker: GoalTracker = Depends(get_goal_tracker),
):
    return await tracker.reach_checkpoint(goal_id, checkpoint_id)


@router.post("/goals/{goal_id}/evaluate")
async def evaluate_goal(
    goal_id: str,
    request: EvaluateRequest,
    tracker: GoalTracker = Depends(get_goal_tracker),
) -> dict[str, Any]:
    return tracker.evaluate_goal(goal_id, request.results).to_dict()


@router.delete("/goals/{goal_id}")
async def remove_goal(
    goal_id: str,
    tracker: GoalTracker = Depends(get_goal_tracker),
) -> dict[str, Any]:
    removed = await tracker.remove_goal(goal_id)
    return {"removed": removed}
