"""
Task Execution Routes
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field

from autonomy.api.dependencies import get_engine
from autonomy.api.streaming import EventStream, sse_response
from autonomy.core.types import ExecutionStep, RunResult, Task
from autonomy.observability.events import WILDCARD
from autonomy.runtime.loop import AgenticLoop

router = APIRouter()


class ExecuteTaskRequest(BaseModel):
    """Request to run a task."""

    description: str = Field(..., min_length=1)
    context: dict[str, Any] = Field(default_factory=dict)
    success_criteria: list[str] | None = None


class StatsResponse(BaseModel):
    """Execution step statistics."""

    total_steps: int
    successful_steps: int
    failed_steps: int
    success_rate: float


@router.post("/tasks/execute", response_model=RunResult)
async def execute_task(
    request: ExecuteTaskRequest,
    engine: AgenticLoop = Depends(get_engine),
):
    """Run a task to completion and return the outcome."""
    return await engine.execute_task(
        request.description,
        request.context,
        request.success_criteria,
    )


@router.post("/tasks/execute/stream")
async def execute_task_stream(
    request: ExecuteTaskRequest,
    engine: AgenticLoop = Depends(get_engine),
):
    """
    Run a task and stream engine events as Server-Sent Events.

    The final event is `result`, carrying the RunResult.
    """
    stream = EventStream()
    unsubscribe = engine.events.subscribe(WILDCARD, stream.forward)

    async def run() -> None:
        try:
            result = await engine.execute_task(
                request.description,
                request.context,
                request.success_criteria,
            )
            await stream.send(result.model_dump(mode="json"), event="result")
        finally:
            unsubscribe()
            await stream.close()

    async def events() -> AsyncIterator[str]:
        runner = asyncio.create_task(run())
        async for chunk in stream:
            yield chunk
        await runner

    return sse_response(events())


@router.get("/tasks/current", response_model=Task | None)
async def get_current_task(engine: AgenticLoop = Depends(get_engine)):
    """The root task of the most recent run."""
    return engine.get_current_task()


@router.get("/tasks/tree", response_model=list[Task])
async def get_task_tree(engine: AgenticLoop = Depends(get_engine)):
    """Every task of the most recent run, parents first."""
    return engine.get_task_tree()


@router.get("/tasks/history", response_model=list[ExecutionStep])
async def get_history(engine: AgenticLoop = Depends(get_engine)):
    return engine.get_execution_history()


@router.delete("/tasks/history")
async def clear_history(engine: AgenticLoop = Depends(get_engine)) -> dict[str, Any]:
    engine.clear_history()
    return {"cleared": True}


@router.get("/tasks/stats", response_model=StatsResponse)
async def get_stats(engine: AgenticLoop = Depends(get_engine)):
    return engine.get_stats()


# =============================================================================
# Configuration
# =============================================================================

@router.get("/config")
async def get_config(engine: AgenticLoop = Depends(get_engine)) -> dict[str, Any]:
    return engine.get_config()


@router.patch("/config")
async def update_config(
    overrides: dict[str, Any] = Body(...),
    engine: AgenticLoop = Depends(get_engine),
) -> dict[str, Any]:
    """Partially update loop configuration; invalid values are rejected."""
    return engine.set_config(**overrides).model_dump()
