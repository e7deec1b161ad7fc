"""
Planning Module

Task tree storage, decomposition, checkpoints and goal tracking.
"""

from autonomy.planning.arena import TaskArena
from autonomy.planning.checkpoints import CheckpointManager, TaskCheckpoint
from autonomy.planning.decomposer import TaskDecomposer
from autonomy.planning.goals import (
    CriterionResult,
    GoalEvaluation,
    GoalTracker,
    evaluate_criteria,
)

__all__ = [
    "CheckpointManager",
    "CriterionResult",
    "GoalEvaluation",
    "GoalTracker",
    "TaskArena",
    "TaskCheckpoint",
    "TaskDecomposer",
    "evaluate_criteria",
]
