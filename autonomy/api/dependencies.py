"""
FastAPI Dependencies

Dependency injection for API routes.

Components are built once by the application factory and stored in
app.state.components; routes only ever see them through these functions.
"""

from typing import Any

from fastapi import Depends, HTTPException, Request

from autonomy.observability.metrics import InMemoryMetricsSink
from autonomy.planning.goals import GoalTracker
from autonomy.runtime.loop import AgenticLoop
from autonomy.safety.modes import ApprovalChannel


async def get_components(request: Request) -> dict[str, Any]:
    """Get application components from state."""
    return getattr(request.app.state, "components", {})


async def get_engine(
    components: dict[str, Any] = Depends(get_components),
) -> AgenticLoop:
    """Get the execution engine."""
    if "engine" not in components:
        raise HTTPException(status_code=503, detail="Engine not available")
    value = components["engine"]
    assert isinstance(value, AgenticLoop)
    return value


async def get_goal_tracker(
    components: dict[str, Any] = Depends(get_components),
) -> GoalTracker:
    """Get the goal tracker."""
    if "goals" not in components:
        raise HTTPException(status_code=503, detail="Goal tracker not available")
    value = components["goals"]
    assert isinstance(value, GoalTracker)
    return value


async def get_approval_channel(
    components: dict[str, Any] = Depends(get_components),
) -> ApprovalChannel:
    """
    Get the approval channel.

    Only present when the engine uses the built-in ModeGate.
    """
    if components.get("approvals") is None:
        raise HTTPException(status_code=503, detail="Approval channel not available")
    value = components["approvals"]
    assert isinstance(value, ApprovalChannel)
    return value


async def get_metrics_sink(
    components: dict[str, Any] = Depends(get_components),
) -> InMemoryMetricsSink:
    """Get the in-memory metrics sink."""
    value = components.get("metrics")
    if not isinstance(value, InMemoryMetricsSink):
        raise HTTPException(status_code=503, detail="Metrics not available")
    return value
