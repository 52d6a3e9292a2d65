"""Hand-off of retried executions to whatever will actually run them."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Protocol

import structlog
from celery import Celery

logger = structlog.get_logger(__name__)

EXECUTE_TASK = "crew_runtime.execute_task"

RetryRunner = Callable[[dict[str, Any]], Awaitable[Any]]


class RetryDispatcher(Protocol):
    def dispatch(self, payload: dict[str, Any]) -> None:
        ...


class InProcessRetryDispatcher:
    """Run retries as background tasks on the current event loop."""

    def __init__(self, runner: RetryRunner | None = None) -> None:
        self._runner = runner
        self._tasks: set[asyncio.Task] = set()

    def bind(self, runner: RetryRunner) -> None:
        self._runner = runner

    def dispatch(self, payload: dict[str, Any]) -> None:
        if self._runner is None:
            raise RuntimeError("InProcessRetryDispatcher has no runner bound")
        task = asyncio.create_task(self._runner(payload))
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._finish(payload, done))
        logger.info("retry.dispatched", execution_id=payload.get("execution_id"), transport="inline")

    def _finish(self, payload: dict[str, Any], task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("retry.failed", execution_id=payload.get("execution_id"), error=str(exc))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class CeleryRetryDispatcher:
    """Publish retries to the broker for a worker to pick up."""

    def __init__(self, celery_app: Celery) -> None:
        self._celery_app = celery_app

    def dispatch(self, payload: dict[str, Any]) -> None:
        result = self._celery_app.send_task(EXECUTE_TASK, args=[payload])
        logger.info("retry.dispatched", execution_id=payload.get("execution_id"), transport="celery", celery_id=result.id)
