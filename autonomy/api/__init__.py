"""
Interface & Serving Layer

FastAPI endpoints over the engine, goal tracker and approval channel.
"""

from autonomy.api.app import create_app
from autonomy.api.dependencies import get_engine, get_goal_tracker
from autonomy.api.middleware import TracingMiddleware
from autonomy.api.streaming import EventStream, sse_response

__all__ = [
    "EventStream",
    "sse_response",
    "TracingMiddleware",
    "create_app",
    "get_engine",
    "get_goal_tracker",
]
