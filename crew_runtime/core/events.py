"""In-process publish/subscribe for task and execution lifecycle events."""
from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[None] | None]

TASK_CREATED = "task_created"
TASK_UPDATED = "task_updated"
TASK_ASSIGNED = "task_assigned"
TASK_ASSIGNED_TO_CREW = "task_assigned_to_crew"
TASK_DELETED = "task_deleted"
EXECUTION_STARTED = "task_execution_started"
EXECUTION_COMPLETED = "task_execution_completed"
EXECUTION_FAILED = "task_execution_failed"
EXECUTION_CANCELLED = "task_execution_cancelled"
EXECUTION_RETRY = "task_execution_retry"


class EventBus:
    """Fan events out to registered handlers.

    Handlers may be plain callables or coroutine functions. Coroutines are
    scheduled on the running loop and never awaited by the emitter, and a
    failing handler is logged without affecting the caller.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def on(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(payload)
            except Exception:
                logger.exception("event_bus.handler_failed", event_name=event)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(lambda done, name=event: self._finish(name, done))

    def _finish(self, event: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("event_bus.handler_failed", event_name=event, error=str(task.exception()))

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
