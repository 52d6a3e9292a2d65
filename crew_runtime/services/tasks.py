"""Task and template management on top of the repository."""
from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from crew_runtime.core.analysis import analyze_task
from crew_runtime.core.errors import CrewRuntimeError, InvalidStateError, NotFoundError
from crew_runtime.core.events import (
    TASK_ASSIGNED,
    TASK_ASSIGNED_TO_CREW,
    TASK_CREATED,
    TASK_DELETED,
    TASK_UPDATED,
    EventBus,
)
from crew_runtime.db.repository import TaskRepository
from crew_runtime.schemas.common import new_id
from crew_runtime.schemas.execution import CANCELLABLE_STATUSES, Execution
from crew_runtime.schemas.task import BatchFailure, BatchResult, TaskCreate, TaskPriority, TaskRead, TaskUpdate
from crew_runtime.schemas.template import TemplateCreate, TemplateRead

logger = structlog.get_logger(__name__)


def _check_assignment(agent_id: str | None, crew_id: str | None) -> None:
    if agent_id and crew_id:
        raise InvalidStateError("A task can be assigned to an agent or to a crew, not both")


class TaskService:
    def __init__(self, repository: TaskRepository, events: EventBus) -> None:
        self._repository = repository
        self._events = events

    async def create_task(self, data: TaskCreate) -> TaskRead:
        _check_assignment(data.assigned_agent_id, data.assigned_crew_id)
        task = await self._repository.create(TaskRead(id=new_id("task"), **data.model_dump()))
        self._events.emit(
            TASK_CREATED,
            {
                "task_id": task.id,
                "description": task.description,
                "assigned_agent_id": task.assigned_agent_id,
                "assigned_crew_id": task.assigned_crew_id,
            },
        )
        logger.info("task.created", task_id=task.id)
        return task

    async def batch_create(self, items: list[TaskCreate | dict[str, Any]]) -> BatchResult:
        """Create tasks one by one; an invalid or failing item does not stop the rest."""
        result = BatchResult()
        for index, item in enumerate(items):
            try:
                task = await self.create_task(TaskCreate.model_validate(item))
            except (CrewRuntimeError, ValidationError) as exc:
                logger.warning("task.batch_create_failed", index=index, error=str(exc))
                result.failed.append(BatchFailure(index=index, reason=str(exc)))
            else:
                result.success.append(task.id)
        logger.info("task.batch_created", created=len(result.success), failed=len(result.failed))
        return result

    async def get_task(self, task_id: str) -> TaskRead:
        task = await self._repository.find_by_id(task_id)
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        return task

    async def find_tasks(self, filters: dict[str, Any] | None = None) -> list[TaskRead]:
        filters = {key: value for key, value in (filters or {}).items() if value is not None}
        return await self._repository.find_all(filters)

    async def update_task(self, task_id: str, data: TaskUpdate | dict[str, Any]) -> TaskRead:
        existing = await self.get_task(task_id)
        changes = TaskUpdate.model_validate(data).model_dump(exclude_unset=True)
        _check_assignment(
            changes.get("assigned_agent_id", existing.assigned_agent_id),
            changes.get("assigned_crew_id", existing.assigned_crew_id),
        )

        task = await self._repository.update(task_id, changes)
        self._events.emit(
            TASK_UPDATED,
            {"task_id": task_id, "updates": changes, "previous_state": existing.model_dump(mode="json")},
        )

        agent_id = changes.get("assigned_agent_id")
        if agent_id and agent_id != existing.assigned_agent_id:
            self._events.emit(
                TASK_ASSIGNED,
                {"task_id": task_id, "agent_id": agent_id, "previous_agent_id": existing.assigned_agent_id},
            )
        crew_id = changes.get("assigned_crew_id")
        if crew_id and crew_id != existing.assigned_crew_id:
            self._events.emit(
                TASK_ASSIGNED_TO_CREW,
                {"task_id": task_id, "crew_id": crew_id, "previous_crew_id": existing.assigned_crew_id},
            )
        logger.info("task.updated", task_id=task_id, fields=sorted(changes))
        return task

    async def update_priority(self, task_id: str, priority: TaskPriority) -> TaskRead:
        return await self.update_task(task_id, {"priority": priority})

    async def delete_task(self, task_id: str) -> None:
        task = await self.get_task(task_id)
        executions = await self._repository.find_executions(task_id)
        if any(execution.status in CANCELLABLE_STATUSES for execution in executions):
            raise InvalidStateError("Cannot delete task with active executions. Please cancel executions first.")

        await self._repository.delete(task_id)
        self._events.emit(TASK_DELETED, {"task_id": task_id, "description": task.description})
        logger.info("task.deleted", task_id=task_id)

    async def batch_delete(self, task_ids: list[str]) -> BatchResult:
        result = BatchResult()
        for task_id in task_ids:
            try:
                await self.delete_task(task_id)
            except CrewRuntimeError as exc:
                result.failed.append(BatchFailure(id=task_id, reason=str(exc)))
            else:
                result.success.append(task_id)
        return result

    async def get_task_executions(self, task_id: str) -> list[Execution]:
        await self.get_task(task_id)
        return await self._repository.find_executions(task_id)

    async def find_executions(self, filters: dict[str, Any] | None = None) -> list[Execution]:
        filters = {key: value for key, value in (filters or {}).items() if value is not None}
        return await self._repository.find_all_executions(filters)

    async def create_template(self, data: TemplateCreate) -> TemplateRead:
        template = await self._repository.save_template(TemplateRead(id=new_id("template"), **data.model_dump()))
        logger.info("template.created", template_id=template.id, name=template.name)
        return template

    async def get_template(self, template_id: str) -> TemplateRead:
        template = await self._repository.find_template_by_id(template_id)
        if template is None:
            raise NotFoundError(f"Template with ID {template_id} not found")
        return template

    async def list_templates(self, filters: dict[str, Any] | None = None) -> list[TemplateRead]:
        filters = {key: value for key, value in (filters or {}).items() if value is not None}
        return await self._repository.find_all_templates(filters)

    def analyze_task(self, description: str, context: dict[str, Any] | None = None) -> dict[str, Any]:
        analysis = analyze_task(description, context)
        logger.info("task.analyzed", domain=analysis["domain"], complexity=analysis["complexity"])
        return analysis
