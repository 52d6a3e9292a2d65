"""Task repository contract and its SQLAlchemy implementation."""
from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Protocol

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crew_runtime.core.errors import NotFoundError, RepositoryError
from crew_runtime.models import Task, TaskExecution, TaskTemplate
from crew_runtime.schemas.common import ensure_utc, utcnow
from crew_runtime.schemas.execution import Execution
from crew_runtime.schemas.task import TaskRead
from crew_runtime.schemas.template import TemplateRead

logger = structlog.get_logger(__name__)


class TaskRepository(Protocol):
    async def create(self, task: TaskRead) -> TaskRead:
        ...

    async def update(self, task_id: str, data: dict[str, Any]) -> TaskRead:
        ...

    async def delete(self, task_id: str) -> None:
        ...

    async def find_by_id(self, task_id: str) -> TaskRead | None:
        ...

    async def find_all(self, filters: dict[str, Any] | None = None) -> list[TaskRead]:
        ...

    async def save_execution(self, execution: Execution) -> Execution:
        ...

    async def find_execution_by_id(self, execution_id: str) -> Execution | None:
        ...

    async def find_executions(self, task_id: str) -> list[Execution]:
        ...

    async def find_all_executions(self, filters: dict[str, Any] | None = None) -> list[Execution]:
        ...

    async def save_template(self, template: TemplateRead) -> TemplateRead:
        ...

    async def find_template_by_id(self, template_id: str) -> TemplateRead | None:
        ...

    async def find_all_templates(self, filters: dict[str, Any] | None = None) -> list[TemplateRead]:
        ...


def _as_datetime(value: datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return ensure_utc(value)


def _has_any_tag(item_tags: list[str], wanted: list[str] | str | None) -> bool:
    if not wanted:
        return True
    if isinstance(wanted, str):
        wanted = [wanted]
    return any(tag in item_tags for tag in wanted)


def matches_task_filters(task: TaskRead, filters: dict[str, Any]) -> bool:
    """Evaluate task filters in Python; shared with the in-memory repository."""
    for field in ("priority", "assigned_agent_id", "assigned_crew_id", "template_id"):
        if filters.get(field) is not None and getattr(task, field) != filters[field]:
            return False
    search = filters.get("search")
    if search and search.lower() not in task.description.lower():
        return False
    if filters.get("created_after") and task.created_at < _as_datetime(filters["created_after"]):
        return False
    if filters.get("created_before") and task.created_at > _as_datetime(filters["created_before"]):
        return False
    return _has_any_tag(task.tags, filters.get("tags"))


def matches_execution_filters(execution: Execution, filters: dict[str, Any]) -> bool:
    for field in ("task_id", "agent_id", "crew_id"):
        if filters.get(field) is not None and getattr(execution, field) != filters[field]:
            return False
    status = filters.get("status")
    return status is None or execution.status == status


def matches_template_filters(template: TemplateRead, filters: dict[str, Any]) -> bool:
    if filters.get("id") is not None and template.id != filters["id"]:
        return False
    if filters.get("category") is not None and template.category != filters["category"]:
        return False
    search = filters.get("search")
    if search and search.lower() not in template.name.lower():
        return False
    return _has_any_tag(template.tags, filters.get("tags"))


def _execution_values(execution: Execution) -> dict[str, Any]:
    values = execution.model_dump(exclude={"logs", "metrics", "status"})
    values["status"] = execution.status.value
    values["logs"] = [entry.model_dump(mode="json") for entry in execution.logs]
    values["metrics"] = execution.metrics.model_dump(mode="json") if execution.metrics else None
    return values


class SqlAlchemyTaskRepository:
    """Persist tasks, executions and templates with an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("repository.failed", error=str(exc))
            raise RepositoryError(str(exc)) from exc

    async def create(self, task: TaskRead) -> TaskRead:
        async with self._session() as session:
            row = Task(**task.model_dump())
            session.add(row)
            await session.commit()
            return TaskRead.model_validate(row)

    async def update(self, task_id: str, data: dict[str, Any]) -> TaskRead:
        async with self._session() as session:
            row = await session.get(Task, task_id)
            if row is None:
                raise NotFoundError(f"Task with ID {task_id} not found")
            for key, value in data.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            await session.commit()
            return TaskRead.model_validate(row)

    async def delete(self, task_id: str) -> None:
        async with self._session() as session:
            await session.execute(delete(TaskExecution).where(TaskExecution.task_id == task_id))
            result = await session.execute(delete(Task).where(Task.id == task_id))
            if result.rowcount == 0:
                await session.rollback()
                raise NotFoundError(f"Task with ID {task_id} not found")
            await session.commit()

    async def find_by_id(self, task_id: str) -> TaskRead | None:
        async with self._session() as session:
            row = await session.get(Task, task_id)
            return TaskRead.model_validate(row) if row else None

    async def find_all(self, filters: dict[str, Any] | None = None) -> list[TaskRead]:
        filters = filters or {}
        stmt = select(Task)
        for field in ("priority", "assigned_agent_id", "assigned_crew_id", "template_id"):
            if filters.get(field) is not None:
                stmt = stmt.where(getattr(Task, field) == filters[field])
        if filters.get("search"):
            stmt = stmt.where(Task.description.ilike(f"%{filters['search']}%"))
        if filters.get("created_after"):
            stmt = stmt.where(Task.created_at >= _as_datetime(filters["created_after"]))
        if filters.get("created_before"):
            stmt = stmt.where(Task.created_at <= _as_datetime(filters["created_before"]))
        stmt = stmt.order_by(Task.created_at.desc())

        async with self._session() as session:
            result = await session.execute(stmt)
            tasks = [TaskRead.model_validate(row) for row in result.scalars().all()]
        # JSON list membership is not portable across dialects.
        return [task for task in tasks if _has_any_tag(task.tags, filters.get("tags"))]

    async def save_execution(self, execution: Execution) -> Execution:
        async with self._session() as session:
            await session.merge(TaskExecution(**_execution_values(execution)))
            await session.commit()
        return execution.model_copy(deep=True)

    async def find_execution_by_id(self, execution_id: str) -> Execution | None:
        async with self._session() as session:
            row = await session.get(TaskExecution, execution_id)
            return Execution.model_validate(row) if row else None

    async def find_executions(self, task_id: str) -> list[Execution]:
        return await self.find_all_executions({"task_id": task_id})

    async def find_all_executions(self, filters: dict[str, Any] | None = None) -> list[Execution]:
        filters = filters or {}
        stmt = select(TaskExecution)
        for field in ("task_id", "agent_id", "crew_id"):
            if filters.get(field) is not None:
                stmt = stmt.where(getattr(TaskExecution, field) == filters[field])
        if filters.get("status") is not None:
            stmt = stmt.where(TaskExecution.status == str(getattr(filters["status"], "value", filters["status"])))
        stmt = stmt.order_by(TaskExecution.started_at.desc())

        async with self._session() as session:
            result = await session.execute(stmt)
            return [Execution.model_validate(row) for row in result.scalars().all()]

    async def save_template(self, template: TemplateRead) -> TemplateRead:
        async with self._session() as session:
            await session.merge(TaskTemplate(**template.model_dump(mode="json", exclude={"created_at", "updated_at"}),
                                             created_at=template.created_at, updated_at=template.updated_at))
            await session.commit()
        return template.model_copy(deep=True)

    async def find_template_by_id(self, template_id: str) -> TemplateRead | None:
        async with self._session() as session:
            row = await session.get(TaskTemplate, template_id)
            return TemplateRead.model_validate(row) if row else None

    async def find_all_templates(self, filters: dict[str, Any] | None = None) -> list[TemplateRead]:
        filters = filters or {}
        stmt = select(TaskTemplate)
        if filters.get("id") is not None:
            stmt = stmt.where(TaskTemplate.id == filters["id"])
        if filters.get("category") is not None:
            stmt = stmt.where(TaskTemplate.category == filters["category"])
        if filters.get("search"):
            stmt = stmt.where(TaskTemplate.name.ilike(f"%{filters['search']}%"))
        stmt = stmt.order_by(TaskTemplate.created_at.desc())

        async with self._session() as session:
            result = await session.execute(stmt)
            templates = [TemplateRead.model_validate(row) for row in result.scalars().all()]
        return [template for template in templates if _has_any_tag(template.tags, filters.get("tags"))]
