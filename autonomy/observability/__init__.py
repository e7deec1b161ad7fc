"""
Observability Module

Structured logging, engine events and metrics.
"""

from autonomy.observability.events import EngineEvent, EventBus, EventType
from autonomy.observability.logging import (
    BufferHandler,
    ConsoleHandler,
    LogLevel,
    StructuredLogger,
    configure_logging,
    get_logger,
)
from autonomy.observability.metrics import (
    Counter,
    Histogram,
    InMemoryMetricsSink,
    MetricsCollector,
)

__all__ = [
    # Events
    "EngineEvent",
    "EventBus",
    "EventType",
    # Logging
    "BufferHandler",
    "ConsoleHandler",
    "LogLevel",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    # Metrics
    "Counter",
    "Histogram",
    "InMemoryMetricsSink",
    "MetricsCollector",
]
