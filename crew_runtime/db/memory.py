"""Dictionary-backed repository for tests and single-process deployments."""
from __future__ import annotations

from typing import Any

from crew_runtime.core.errors import NotFoundError
from crew_runtime.db.repository import matches_execution_filters, matches_task_filters, matches_template_filters
from crew_runtime.schemas.common import utcnow
from crew_runtime.schemas.execution import Execution
from crew_runtime.schemas.task import TaskRead
from crew_runtime.schemas.template import TemplateRead


class InMemoryTaskRepository:
    """Stores deep copies so callers never share mutable state with the store."""

    def __init__(self) -> None:
        self.tasks: dict[str, TaskRead] = {}
        self.executions: dict[str, Execution] = {}
        self.templates: dict[str, TemplateRead] = {}

    async def create(self, task: TaskRead) -> TaskRead:
        self.tasks[task.id] = task.model_copy(deep=True)
        return task.model_copy(deep=True)

    async def update(self, task_id: str, data: dict[str, Any]) -> TaskRead:
        current = self.tasks.get(task_id)
        if current is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        merged = TaskRead.model_validate({**current.model_dump(), **data, "updated_at": utcnow()})
        self.tasks[task_id] = merged
        return merged.model_copy(deep=True)

    async def delete(self, task_id: str) -> None:
        if self.tasks.pop(task_id, None) is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        for execution_id in [key for key, value in self.executions.items() if value.task_id == task_id]:
            del self.executions[execution_id]

    async def find_by_id(self, task_id: str) -> TaskRead | None:
        task = self.tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def find_all(self, filters: dict[str, Any] | None = None) -> list[TaskRead]:
        filters = filters or {}
        tasks = [task for task in self.tasks.values() if matches_task_filters(task, filters)]
        tasks.sort(key=lambda task: task.created_at, reverse=True)
        return [task.model_copy(deep=True) for task in tasks]

    async def save_execution(self, execution: Execution) -> Execution:
        self.executions[execution.id] = execution.model_copy(deep=True)
        return execution.model_copy(deep=True)

    async def find_execution_by_id(self, execution_id: str) -> Execution | None:
        execution = self.executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def find_executions(self, task_id: str) -> list[Execution]:
        return await self.find_all_executions({"task_id": task_id})

    async def find_all_executions(self, filters: dict[str, Any] | None = None) -> list[Execution]:
        filters = filters or {}
        executions = [item for item in self.executions.values() if matches_execution_filters(item, filters)]
        executions.sort(key=lambda item: item.started_at, reverse=True)
        return [item.model_copy(deep=True) for item in executions]

    async def save_template(self, template: TemplateRead) -> TemplateRead:
        self.templates[template.id] = template.model_copy(deep=True)
        return template.model_copy(deep=True)

    async def find_template_by_id(self, template_id: str) -> TemplateRead | None:
        template = self.templates.get(template_id)
        return template.model_copy(deep=True) if template else None

    async def find_all_templates(self, filters: dict[str, Any] | None = None) -> list[TemplateRead]:
        filters = filters or {}
        templates = [item for item in self.templates.values() if matches_template_filters(item, filters)]
        templates.sort(key=lambda item: item.created_at, reverse=True)
        return [item.model_copy(deep=True) for item in templates]
