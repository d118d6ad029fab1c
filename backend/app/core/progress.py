"""
ProgressNotifier: per-session server-sent event channels.

One instance per application (``app.state.progress``).  Each session id
has at most one subscriber; subscribing again with the same id replaces
the earlier stream, which then ends.  Publishing to a session nobody is
listening to is a no-op.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator

from app.core.logging import get_logger

logger = get_logger(__name__)

_CLOSE = object()


def sse_frame(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class ProgressNotifier:
    def __init__(self, heartbeat_seconds: float = 30.0) -> None:
        self.heartbeat_seconds = heartbeat_seconds
        self._queues: dict[str, asyncio.Queue] = {}

    def is_subscribed(self, session_id: str) -> bool:
        return session_id in self._queues

    async def subscribe(self, session_id: str) -> AsyncIterator[str]:
        """Yield SSE frames for ``session_id`` until replaced or closed."""
        previous = self._queues.get(session_id)
        if previous is not None:
            previous.put_nowait(_CLOSE)
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[session_id] = queue
        log = logger.bind(session_id=session_id)
        log.debug("Progress subscriber connected")

        try:
            yield sse_frame("connected", {"sessionId": session_id})
            while True:
                try:
                    item = await asyncio.wait_for(queue.get(), timeout=self.heartbeat_seconds)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                if item is _CLOSE:
                    break
                yield item
        finally:
            if self._queues.get(session_id) is queue:
                del self._queues[session_id]
            log.debug("Progress subscriber disconnected")

    async def publish(self, session_id: str | None, event: str, data: dict[str, Any]) -> None:
        if not session_id:
            return
        queue = self._queues.get(session_id)
        if queue is not None:
            queue.put_nowait(sse_frame(event, data))

    async def progress(self, session_id: str | None, step: int, total_steps: int, message: str) -> None:
        await self.publish(session_id, "progress", {"step": step, "totalSteps": total_steps, "message": message})

    async def complete(self, session_id: str | None, message: str = "Processing complete") -> None:
        await self.publish(session_id, "complete", {"message": message})

    async def error(self, session_id: str | None, message: str) -> None:
        await self.publish(session_id, "processing-error", {"message": message})

    def close(self, session_id: str) -> None:
        """End the session's stream, if any."""
        queue = self._queues.get(session_id)
        if queue is not None:
            queue.put_nowait(_CLOSE)
