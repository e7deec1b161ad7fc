"""
Run Event Streaming

Server-Sent Events carrying engine events of a run to an HTTP client.

Design decisions:
- An EventStream is an EventBus subscriber feeding a queue of SSE frames
- Frames are numbered so a client can tell whether it missed one
- `close()` ends the iteration after the frames already queued
"""

import asyncio
import itertools
import json
from collections.abc import AsyncIterator
from typing import Any

from starlette.responses import StreamingResponse

from autonomy.observability.events import EngineEvent

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # nginx
}


def sse_frame(data: Any, event: str | None = None, frame_id: int | None = None) -> str:
    """Render one text/event-stream frame."""
    lines = []
    if frame_id is not None:
        lines.append(f"id: {frame_id}")
    if event:
        lines.append(f"event: {event}")

    payload = json.dumps(data, default=str) if isinstance(data, (dict, list)) else str(data)
    lines.extend(f"data: {line}" for line in payload.split("\n"))
    return "\n".join(lines) + "\n\n"


class EventStream:
    """
    Queue of SSE frames for one client.

    Usage:
        stream = EventStream()
        unsubscribe = bus.subscribe(WILDCARD, stream.forward)
        ...
        await stream.send(result, event="result")
        await stream.close()
    """

    def __init__(self):
        self._frames: asyncio.Queue[str | None] = asyncio.Queue()
        self._ids = itertools.count(1)

    async def send(self, data: Any, event: str | None = None) -> None:
        await self._frames.put(sse_frame(data, event, next(self._ids)))

    async def forward(self, event: EngineEvent) -> None:
        """EventBus handler."""
        await self.send(event.data, event=event.type.value)

    async def close(self) -> None:
        await self._frames.put(None)

    async def __aiter__(self) -> AsyncIterator[str]:
        while (frame := await self._frames.get()) is not None:
            yield frame


def sse_response(frames: AsyncIterator[str], **kwargs: Any) -> StreamingResponse:
    return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS, **kwargs)
