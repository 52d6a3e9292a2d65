"""Externally driven execution tracking plus reports over stored executions."""
from __future__ import annotations

from collections import Counter
from typing import Any

import structlog

from crew_runtime.core.errors import NotFoundError
from crew_runtime.core.events import (
    EXECUTION_CANCELLED,
    EXECUTION_COMPLETED,
    EXECUTION_FAILED,
    EXECUTION_RETRY,
    EXECUTION_STARTED,
    EventBus,
)
from crew_runtime.db.repository import TaskRepository
from crew_runtime.schemas.common import utcnow
from crew_runtime.schemas.execution import Execution, ExecutionMetrics, ExecutionStatus, LogLevel

logger = structlog.get_logger(__name__)

OUTPUT_PREVIEW_LENGTH = 200
RECENT_EXECUTIONS = 5


def _output_preview(output: str | None) -> str | None:
    if output is None:
        return None
    if len(output) <= OUTPUT_PREVIEW_LENGTH:
        return output
    return output[:OUTPUT_PREVIEW_LENGTH] + "..."


class ExecutionTracker:
    def __init__(self, repository: TaskRepository) -> None:
        self._repository = repository

    def attach(self, events: EventBus) -> None:
        for event in (EXECUTION_STARTED, EXECUTION_COMPLETED, EXECUTION_FAILED, EXECUTION_CANCELLED, EXECUTION_RETRY):
            events.on(event, lambda payload, name=event: logger.debug(
                "tracker.event_received", event_name=name, execution_id=payload.get("execution_id")
            ))

    async def get_execution(self, execution_id: str) -> Execution:
        execution = await self._repository.find_execution_by_id(execution_id)
        if execution is None:
            raise NotFoundError(f"Execution with ID {execution_id} not found")
        return execution

    async def get_task_executions(self, task_id: str) -> list[Execution]:
        executions = await self._repository.find_executions(task_id)
        logger.debug("tracker.task_executions", task_id=task_id, count=len(executions))
        return executions

    async def _load_for_tracking(self, execution_id: str, action: str) -> Execution | None:
        execution = await self._repository.find_execution_by_id(execution_id)
        if execution is None:
            logger.warning("tracker.execution_missing", execution_id=execution_id, action=action)
        return execution

    async def track_execution_start(self, execution_id: str) -> Execution | None:
        execution = await self._load_for_tracking(execution_id, "start")
        if execution is None or execution.status != ExecutionStatus.PENDING:
            return None
        execution.status = ExecutionStatus.IN_PROGRESS
        execution.add_log("info", "Execution started tracking")
        return await self._repository.save_execution(execution)

    async def track_execution_completion(
        self,
        execution_id: str,
        output: str,
        success: bool = True,
        metrics: ExecutionMetrics | None = None,
    ) -> Execution | None:
        execution = await self._load_for_tracking(execution_id, "completion")
        if execution is None or execution.status != ExecutionStatus.IN_PROGRESS:
            return None
        execution.output = output
        if metrics is not None:
            execution.metrics = metrics
        execution.finish(ExecutionStatus.COMPLETED)
        execution.add_log(
            "info",
            "Execution completed",
            {"success": success, "execution_time": execution.execution_time},
        )
        return await self._repository.save_execution(execution)

    async def track_execution_failure(
        self,
        execution_id: str,
        error: str,
        metrics: ExecutionMetrics | None = None,
    ) -> Execution | None:
        execution = await self._load_for_tracking(execution_id, "failure")
        if execution is None or execution.status not in (ExecutionStatus.PENDING, ExecutionStatus.IN_PROGRESS):
            return None
        execution.error = error
        if metrics is not None:
            execution.metrics = metrics
        execution.finish(ExecutionStatus.FAILED)
        execution.add_log("error", "Execution failed", {"error": error, "execution_time": execution.execution_time})
        return await self._repository.save_execution(execution)

    async def add_execution_log(
        self,
        execution_id: str,
        level: LogLevel,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> Execution | None:
        execution = await self._load_for_tracking(execution_id, "log")
        if execution is None:
            return None
        execution.add_log(level, message, metadata)
        return await self._repository.save_execution(execution)

    async def generate_execution_report(self, execution_id: str) -> dict[str, Any]:
        execution = await self.get_execution(execution_id)
        task = await self._repository.find_by_id(execution.task_id)
        if task is None:
            raise NotFoundError(f"Task with ID {execution.task_id} not found")

        log_summary = {"info": 0, "warning": 0, "error": 0, "debug": 0}
        log_summary.update(Counter(entry.level for entry in execution.logs))

        return {
            "execution_id": execution.id,
            "task_id": execution.task_id,
            "task_description": task.description,
            "agent_id": execution.agent_id,
            "crew_id": execution.crew_id,
            "status": execution.status.value,
            "started_at": execution.started_at,
            "finished_at": execution.finished_at,
            "execution_time": execution.execution_time,
            "attempts": execution.attempts,
            "metrics": execution.metrics.model_dump() if execution.metrics else None,
            "error": execution.error,
            "log_summary": log_summary,
            "output_preview": _output_preview(execution.output),
            "timestamp": utcnow().isoformat(),
        }

    async def generate_task_execution_summary(self, task_id: str) -> dict[str, Any]:
        executions = await self._repository.find_executions(task_id)
        if not executions:
            logger.warning("tracker.no_executions", task_id=task_id)
            return {"task_id": task_id, "total_executions": 0, "message": "No executions found for this task"}

        task = await self._repository.find_by_id(task_id)
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")

        statuses = Counter(execution.status for execution in executions)
        total = len(executions)
        timed = [
            execution.execution_time
            for execution in executions
            if execution.status == ExecutionStatus.COMPLETED and execution.execution_time
        ]
        average_ms = sum(timed) / len(timed) if timed else 0
        recent = sorted(executions, key=lambda execution: execution.started_at, reverse=True)[:RECENT_EXECUTIONS]

        return {
            "task_id": task_id,
            "task_description": task.description,
            "total_executions": total,
            "statistics": {
                "successful": statuses[ExecutionStatus.COMPLETED],
                "failed": statuses[ExecutionStatus.FAILED],
                "cancelled": statuses[ExecutionStatus.CANCELLED],
                "in_progress": statuses[ExecutionStatus.IN_PROGRESS],
                "success_rate": f"{statuses[ExecutionStatus.COMPLETED] / total * 100:.2f}%",
                "avg_execution_time": f"{average_ms / 1000:.2f}s" if average_ms > 0 else "N/A",
            },
            "recent_executions": [
                {
                    "id": execution.id,
                    "status": execution.status.value,
                    "started_at": execution.started_at,
                    "finished_at": execution.finished_at,
                    "execution_time": execution.execution_time,
                }
                for execution in recent
            ],
            "timestamp": utcnow().isoformat(),
        }
