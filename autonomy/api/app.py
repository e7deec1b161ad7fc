"""
FastAPI Application Factory

Creates and configures the engine API.

Design decisions:
- Factory pattern for testability: pass a prebuilt engine, or let the
  lifespan build one from settings
- Components live in app.state.components for DI
- Engine errors map to HTTP status codes in one place
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from autonomy import __version__
from autonomy.config import Settings, get_settings
from autonomy.core.exceptions import (
    AutonomyError,
    ConfigurationError,
    GoalNotFoundError,
    PlanningError,
    TaskNotFoundError,
)
from autonomy.observability.logging import get_logger
from autonomy.runtime.factory import create_engine_from_settings
from autonomy.runtime.loop import AgenticLoop
from autonomy.safety.modes import ModeGate

logger = get_logger("autonomy.api")


def build_components(engine: AgenticLoop) -> dict[str, Any]:
    """Expose the engine and its services to the route dependencies."""
    mode_gate = engine.safety.mode_gate
    return {
        "engine": engine,
        "goals": engine.goals,
        "metrics": engine.metrics,
        "approvals": mode_gate.channel if isinstance(mode_gate, ModeGate) else None,
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Builds an engine from settings when the app was created without one.
    """
    if not getattr(app.state, "components", None):
        logger.info("No engine supplied, building one from settings")
        app.state.components = build_components(create_engine_from_settings(app.state.settings))

    logger.info("Engine API started")
    yield
    logger.info("Engine API stopped")


def _status_for(error: AutonomyError) -> int:
    if isinstance(error, (TaskNotFoundError, GoalNotFoundError)):
        return 404
    if isinstance(error, ConfigurationError):
        return 422
    if isinstance(error, PlanningError):
        return 409
    return 500


async def autonomy_error_handler(request: Request, exc: AutonomyError) -> JSONResponse:
    return JSONResponse(status_code=_status_for(exc), content=exc.to_dict())


def create_app(
    engine: AgenticLoop | None = None,
    settings: Settings | None = None,
    **kwargs: Any,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        engine: Prebuilt engine; when omitted one is built at startup
        settings: Settings for title and the fallback engine
        **kwargs: Additional FastAPI arguments
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Autonomous task-execution engine",
        debug=settings.debug,
        lifespan=lifespan,
        **kwargs,
    )
    app.state.settings = settings
    app.state.components = build_components(engine) if engine is not None else {}

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from autonomy.api.middleware import TracingMiddleware

    app.add_middleware(TracingMiddleware)
    app.add_exception_handler(AutonomyError, autonomy_error_handler)

    from autonomy.api.routes import approvals, goals, health, tasks

    app.include_router(health.router, tags=["health"])
    app.include_router(tasks.router, prefix="/api/v1", tags=["tasks"])
    app.include_router(goals.router, prefix="/api/v1", tags=["goals"])
    app.include_router(approvals.router, prefix="/api/v1", tags=["approvals"])

    return app
