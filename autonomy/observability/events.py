"""
Engine Events

Subscriber registry for lifecycle notifications.

Design decisions:
- Explicit registry owned by the composition root (no global emitter)
- Handlers may be plain callables or coroutines
- Handler errors are logged and never interrupt a run
- Recent events are kept for inspection and tests
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from autonomy.observability.logging import StructuredLogger, get_logger


class EventType(str, Enum):
    """Notifications emitted by the engine."""

    # Run lifecycle
    LOOP_STARTED = "loop:started"
    LOOP_COMPLETED = "loop:completed"
    LOOP_FAILED = "loop:failed"

    # Tasks
    TASK_DECOMPOSING = "task:decomposing"
    TASK_EXECUTING = "task:executing"
    TASK_COMPLETED = "task:completed"
    TASK_ROLLED_BACK = "task:rolled_back"
    STEP_EXECUTED = "step:executed"

    # Goals
    GOAL_CREATED = "goal:created"
    GOAL_UPDATED = "goal:updated"
    GOAL_PROGRESS = "goal:progress"
    GOAL_COMPLETED = "goal:completed"
    GOAL_REMOVED = "goal:removed"


WILDCARD = "*"

EventHandler = Callable[["EngineEvent"], Awaitable[None] | None]


@dataclass
class EngineEvent:
    """Event emitted during a run."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)


class EventBus:
    """
    Routes engine events to subscribers.

    Subscribe to a single event type or to "*" for everything:

        bus = EventBus()
        unsubscribe = bus.subscribe(EventType.TASK_COMPLETED, on_done)
        await bus.publish(EventType.TASK_COMPLETED, {"task_id": "task-1"})
        unsubscribe()
    """

    def __init__(
        self,
        logger: StructuredLogger | None = None,
        max_history: int = 500,
    ):
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._history: list[EngineEvent] = []
        self._max_history = max_history
        self._logger = logger or get_logger("autonomy.events")

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> Callable[[], None]:
        """Register a handler; returns a callable that removes it."""
        key = event_type.value if isinstance(event_type, EventType) else event_type
        self._subscribers.setdefault(key, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, event_type: EventType | str | None = None) -> int:
        if event_type is None:
            return sum(len(h) for h in self._subscribers.values())
        key = event_type.value if isinstance(event_type, EventType) else event_type
        return len(self._subscribers.get(key, []))

    async def publish(self, event_type: EventType, data: dict[str, Any] | None = None) -> EngineEvent:
        """Deliver an event to its subscribers and the wildcard subscribers."""
        event = EngineEvent(type=event_type, data=data or {})
        self._add_to_history(event)

        handlers = [
            *self._subscribers.get(event_type.value, []),
            *self._subscribers.get(WILDCARD, []),
        ]
        for handler in handlers:
            try:
                outcome = handler(event)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception as e:
                self._logger.warning(
                    "Event handler failed",
                    event=event_type.value,
                    reason=str(e),
                )

        return event

    def history(self, event_type: EventType | None = None, limit: int = 100) -> list[EngineEvent]:
        """Recent events, oldest first."""
        events = self._history
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        return events[-limit:]

    def clear_history(self) -> None:
        self._history.clear()

    def _add_to_history(self, event: EngineEvent) -> None:
        self._history.append(event)

        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history :]
