"""Run tasks against an LLM provider and keep their execution records."""
from __future__ import annotations

import time
from copy import deepcopy
from typing import Any

import structlog
from prometheus_client import Counter, Histogram

from crew_runtime.core.errors import (
    ExecutionCancelledError,
    InvalidStateError,
    NotFoundError,
    ProviderError,
    RepositoryError,
)
from crew_runtime.core.events import (
    EXECUTION_CANCELLED,
    EXECUTION_COMPLETED,
    EXECUTION_FAILED,
    EXECUTION_RETRY,
    EXECUTION_STARTED,
    EventBus,
)
from crew_runtime.core.prompts import build_task_prompt
from crew_runtime.core.providers import ProviderFactory
from crew_runtime.core.registry import ExecutionRegistry
from crew_runtime.db.repository import TaskRepository
from crew_runtime.schemas.common import utcnow
from crew_runtime.schemas.execution import (
    CANCELLABLE_STATUSES,
    RETRYABLE_STATUSES,
    Execution,
    ExecutionMetrics,
    ExecutionResult,
    ExecutionStatus,
)
from crew_runtime.schemas.task import TaskRead
from crew_runtime.schemas.template import TemplateRead
from crew_runtime.services.dispatch import RetryDispatcher

logger = structlog.get_logger(__name__)

EXECUTION_COUNT = Counter("task_executions_total", "Task executions by final status", ["status"])
EXECUTION_LATENCY = Histogram("task_execution_latency_seconds", "Latency of provider calls made by task executions")


class TaskExecutor:
    """Owns the execution lifecycle: start, terminal transition, cancel and retry.

    An execution is registered in the :class:`ExecutionRegistry` while its
    provider call is in flight. Cancelling it flips the status of that same
    object, and the executor checks for this (and for a terminal record in the
    repository) before writing its own result, so a late provider response
    never overwrites a cancellation.
    """

    def __init__(
        self,
        repository: TaskRepository,
        providers: ProviderFactory,
        registry: ExecutionRegistry,
        events: EventBus,
        dispatcher: RetryDispatcher,
        default_temperature: float = 0.7,
    ) -> None:
        self._repository = repository
        self._providers = providers
        self._registry = registry
        self._events = events
        self._dispatcher = dispatcher
        self._default_temperature = default_temperature

    async def execute(
        self,
        task_id: str,
        agent_id: str | None = None,
        *,
        crew_id: str | None = None,
        input: dict[str, Any] | None = None,
        model_name: str | None = None,
        temperature: float | None = None,
        session_id: str | None = None,
        save_history: bool = True,
        execution_id: str | None = None,
    ) -> ExecutionResult:
        logger.info("task_execution.start", task_id=task_id, agent_id=agent_id, crew_id=crew_id)

        task = await self._repository.find_by_id(task_id)
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        if agent_id is None and crew_id is None:
            agent_id, crew_id = task.assigned_agent_id, task.assigned_crew_id

        if execution_id is not None:
            execution = await self._adopt_pending(execution_id, task)
        else:
            execution = Execution(
                task_id=task.id,
                agent_id=agent_id,
                crew_id=crew_id,
                input=dict(input or {}),
                status=ExecutionStatus.IN_PROGRESS,
            )
            execution.add_log("info", f"Execution started for task: {task.description}")

        self._registry.register(execution)
        try:
            if save_history:
                await self._repository.save_execution(execution)
            self._events.emit(
                EXECUTION_STARTED,
                {
                    "execution_id": execution.id,
                    "task_id": task.id,
                    "agent_id": execution.agent_id,
                    "crew_id": execution.crew_id,
                },
            )

            try:
                template = await self._load_template(task)
                provider, model = self._providers.resolve(
                    model_name or (template.default_model_name if template else None)
                )
                prompt = build_task_prompt(task, execution.input, template)

                call_started = time.perf_counter()
                try:
                    output = await provider.generate_text(
                        prompt,
                        temperature=temperature if temperature is not None else self._default_temperature,
                        max_tokens=model.max_tokens,
                        model=model.model,
                    )
                except ProviderError:
                    raise
                except Exception as exc:
                    raise ProviderError(str(exc)) from exc
                latency_ms = int((time.perf_counter() - call_started) * 1000)
            except Exception as exc:
                await self._record_failure(execution, exc, save_history)
                raise

            if await self._cancelled_in_flight(execution):
                raise ExecutionCancelledError(f"Execution {execution.id} was cancelled")

            execution.output = output
            execution.metrics = ExecutionMetrics(latency=latency_ms)
            execution.finish(ExecutionStatus.COMPLETED)
            execution.add_log("info", "Execution completed successfully")
            if save_history:
                await self._save_result(execution)
        finally:
            # Unknown ids are ignored, so paths that already unregistered are fine.
            self._registry.unregister(execution.id)

        EXECUTION_COUNT.labels(status=ExecutionStatus.COMPLETED.value).inc()
        EXECUTION_LATENCY.observe(latency_ms / 1000)
        self._events.emit(
            EXECUTION_COMPLETED,
            {
                "execution_id": execution.id,
                "task_id": task.id,
                "agent_id": execution.agent_id,
                "crew_id": execution.crew_id,
                "output": output,
                "success": True,
                "execution_time": execution.execution_time,
            },
        )
        logger.info("task_execution.completed", execution_id=execution.id, execution_time=execution.execution_time)

        return ExecutionResult(
            execution_id=execution.id,
            task_id=task.id,
            output=output,
            success=True,
            execution_time=execution.execution_time,
            metadata={
                "agent_id": execution.agent_id,
                "crew_id": execution.crew_id,
                "session_id": session_id,
                "model": model.model,
                "timestamp": utcnow().isoformat(),
            },
        )

    async def run_retry(self, payload: dict[str, Any]) -> ExecutionResult:
        """Consume a dispatched retry by running the pending record it names."""
        return await self.execute(
            payload["task_id"],
            payload.get("agent_id"),
            crew_id=payload.get("crew_id"),
            input=payload.get("input"),
            execution_id=payload["execution_id"],
        )

    async def _adopt_pending(self, execution_id: str, task: TaskRead) -> Execution:
        execution = await self._repository.find_execution_by_id(execution_id)
        if execution is None:
            raise NotFoundError(f"Execution with ID {execution_id} not found")
        if execution.status != ExecutionStatus.PENDING:
            raise InvalidStateError(f"Cannot start execution with status: {execution.status.value}")
        execution.status = ExecutionStatus.IN_PROGRESS
        execution.started_at = utcnow()
        execution.add_log("info", f"Execution started for task: {task.description}")
        return execution

    async def _load_template(self, task: TaskRead) -> TemplateRead | None:
        if not task.template_id:
            return None
        template = await self._repository.find_template_by_id(task.template_id)
        if template is None:
            logger.warning("task_execution.template_missing", task_id=task.id, template_id=task.template_id)
        return template

    async def _cancelled_in_flight(self, execution: Execution) -> bool:
        cancelled = execution.status == ExecutionStatus.CANCELLED
        if not cancelled:
            stored = await self._repository.find_execution_by_id(execution.id)
            cancelled = stored is not None and stored.is_terminal
        if cancelled:
            self._registry.unregister(execution.id)
            logger.info("task_execution.cancelled_in_flight", execution_id=execution.id)
        return cancelled

    async def _save_result(self, execution: Execution) -> None:
        try:
            await self._repository.save_execution(execution)
        except RepositoryError as exc:
            logger.error("task_execution.result_not_saved", execution_id=execution.id, error=str(exc))
            execution.output = None
            await self._record_failure(execution, exc, save_history=True)
            raise

    async def _record_failure(self, execution: Execution, exc: Exception, save_history: bool) -> None:
        if await self._cancelled_in_flight(execution):
            return

        execution.error = str(exc)
        execution.finish(ExecutionStatus.FAILED)
        execution.add_log("error", f"Execution failed: {exc}")
        if save_history:
            try:
                await self._repository.save_execution(execution)
            except RepositoryError:
                # The caller re-raises the original error.
                logger.exception("task_execution.failure_not_saved", execution_id=execution.id)
        self._registry.unregister(execution.id)

        EXECUTION_COUNT.labels(status=ExecutionStatus.FAILED.value).inc()
        self._events.emit(
            EXECUTION_FAILED,
            {
                "execution_id": execution.id,
                "task_id": execution.task_id,
                "agent_id": execution.agent_id,
                "error": str(exc),
                "auto_retry": False,
            },
        )
        logger.error("task_execution.failed", execution_id=execution.id, error=str(exc))

    async def cancel_execution(self, execution_id: str) -> Execution:
        logger.info("task_execution.cancel", execution_id=execution_id)

        execution = self._registry.lookup(execution_id)
        if execution is None:
            execution = await self._repository.find_execution_by_id(execution_id)
            if execution is None:
                raise NotFoundError(f"Execution with ID {execution_id} not found")
            if execution.status not in CANCELLABLE_STATUSES:
                logger.warning("task_execution.cancel_rejected", execution_id=execution_id, status=execution.status.value)
                raise InvalidStateError(f"Cannot cancel execution with status: {execution.status.value}")

        execution.finish(ExecutionStatus.CANCELLED)
        execution.add_log("info", "Execution cancelled by user")
        await self._repository.save_execution(execution)
        self._registry.unregister(execution_id)

        EXECUTION_COUNT.labels(status=ExecutionStatus.CANCELLED.value).inc()
        self._events.emit(
            EXECUTION_CANCELLED,
            {"execution_id": execution.id, "task_id": execution.task_id, "agent_id": execution.agent_id},
        )
        return execution.model_copy(deep=True)

    async def retry_execution(self, execution_id: str) -> str:
        logger.info("task_execution.retry", execution_id=execution_id)

        original = await self._repository.find_execution_by_id(execution_id)
        if original is None:
            raise NotFoundError(f"Execution with ID {execution_id} not found")
        if original.status not in RETRYABLE_STATUSES:
            raise InvalidStateError(f"Cannot retry execution with status: {original.status.value}")
        if await self._repository.find_by_id(original.task_id) is None:
            raise NotFoundError(f"Task with ID {original.task_id} not found")

        retry = Execution(
            task_id=original.task_id,
            agent_id=original.agent_id,
            crew_id=original.crew_id,
            input=deepcopy(original.input),
            status=ExecutionStatus.PENDING,
            attempts=original.attempts + 1,
        )
        retry.add_log("info", f"Retry of execution {original.id} started")
        await self._repository.save_execution(retry)

        self._events.emit(
            EXECUTION_RETRY,
            {
                "execution_id": retry.id,
                "original_execution_id": original.id,
                "task_id": retry.task_id,
                "attempts": retry.attempts,
            },
        )
        self._dispatcher.dispatch(
            {
                "execution_id": retry.id,
                "task_id": retry.task_id,
                "agent_id": retry.agent_id,
                "crew_id": retry.crew_id,
                "input": retry.input,
            }
        )
        logger.info("task_execution.retry_dispatched", execution_id=retry.id, original_execution_id=original.id)
        return retry.id
