"""
Runtime Module

The AgenticLoop is the single orchestration point for task execution.
"""

from autonomy.runtime.factory import EngineBuilder, create_engine, create_engine_from_settings
from autonomy.runtime.loop import AgenticLoop

__all__ = [
    "AgenticLoop",
    "EngineBuilder",
    "create_engine",
    "create_engine_from_settings",
]
