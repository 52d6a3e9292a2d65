"""Celery worker exposing task, execution and agent operations over the broker."""
from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any, Awaitable, Callable

import structlog
from celery.exceptions import Reject
from pydantic_core import to_jsonable_python
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crew_runtime.celery_app import celery_app
from crew_runtime.db.repository import SqlAlchemyTaskRepository
from crew_runtime.db.session import build_engine
from crew_runtime.dependencies import Runtime, build_runtime
from crew_runtime.schemas.agent import AgentCreate, BackendTaskRequest, CrewCreate, FullstackTaskRequest
from crew_runtime.schemas.task import TaskCreate, TaskUpdate
from crew_runtime.services.dispatch import CeleryRetryDispatcher
from crew_runtime.settings import get_settings

logger = structlog.get_logger(__name__)

Handler = Callable[[Runtime, dict], Awaitable[dict[str, Any]]]


@lru_cache()
def get_worker_runtime() -> Runtime:
    settings = get_settings()
    repository = None
    if settings.repository_backend == "sql":
        # Every message runs in a fresh event loop via asyncio.run.
        engine = build_engine(settings.database_url, null_pool=True)
        repository = SqlAlchemyTaskRepository(async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession))
    return build_runtime(settings, repository=repository, retry_dispatcher=CeleryRetryDispatcher(celery_app))


def _run(operation: str, payload: dict, handler: Handler) -> dict[str, Any]:
    logger.info(f"{operation}.start", payload=payload)
    try:
        result = asyncio.run(handler(get_worker_runtime(), payload))
    except Exception as exc:
        logger.exception(f"{operation}.failed", error=str(exc))
        raise Reject(str(exc), requeue=False) from exc
    logger.info(f"{operation}.done")
    return {"success": True, **to_jsonable_python(result)}


async def _create_task(runtime: Runtime, payload: dict) -> dict:
    task = await runtime.tasks.create_task(TaskCreate.model_validate(payload))
    return {"id": task.id}


async def _batch_create_tasks(runtime: Runtime, payload: dict) -> dict:
    return (await runtime.tasks.batch_create(payload.get("tasks") or [])).model_dump()


async def _get_task(runtime: Runtime, payload: dict) -> dict:
    return {"task": await runtime.tasks.get_task(payload["id"])}


async def _find_tasks(runtime: Runtime, payload: dict) -> dict:
    return {"tasks": await runtime.tasks.find_tasks(payload.get("filters") or {})}


async def _update_task(runtime: Runtime, payload: dict) -> dict:
    updates = TaskUpdate.model_validate(payload.get("updates") or {})
    return {"task": await runtime.tasks.update_task(payload["id"], updates)}


async def _delete_task(runtime: Runtime, payload: dict) -> dict:
    await runtime.tasks.delete_task(payload["id"])
    return {"id": payload["id"]}


async def _execute_task(runtime: Runtime, payload: dict) -> dict:
    if payload.get("execution_id"):
        result = await runtime.executor.run_retry(payload)
    else:
        result = await runtime.executor.execute(
            payload["task_id"],
            payload.get("agent_id"),
            crew_id=payload.get("crew_id"),
            input=payload.get("input"),
            model_name=payload.get("model_name"),
            temperature=payload.get("temperature"),
            session_id=payload.get("session_id"),
            save_history=payload.get("save_history", True),
        )
    return {"result": result}


async def _cancel_execution(runtime: Runtime, payload: dict) -> dict:
    return {"execution": await runtime.executor.cancel_execution(payload["execution_id"])}


async def _retry_execution(runtime: Runtime, payload: dict) -> dict:
    return {"execution_id": await runtime.executor.retry_execution(payload["execution_id"])}


async def _get_execution(runtime: Runtime, payload: dict) -> dict:
    return {"execution": await runtime.tracker.get_execution(payload["execution_id"])}


async def _get_task_executions(runtime: Runtime, payload: dict) -> dict:
    return {"executions": await runtime.tracker.get_task_executions(payload["task_id"])}


async def _get_execution_report(runtime: Runtime, payload: dict) -> dict:
    return {"report": await runtime.tracker.generate_execution_report(payload["execution_id"])}


async def _get_task_execution_summary(runtime: Runtime, payload: dict) -> dict:
    return {"summary": await runtime.tracker.generate_task_execution_summary(payload["task_id"])}



async def _analyze_task(runtime: Runtime, payload: dict) -> dict:
    return {"analysis": runtime.tasks.analyze_task(payload["description"], payload.get("context"))}


async def _create_agent(runtime: Runtime, payload: dict) -> dict:
    return {"agent_id": runtime.agents.create_agent(AgentCreate.model_validate(payload)).id}


async def _create_crew(runtime: Runtime, payload: dict) -> dict:
    return {"crew_id": runtime.agents.create_crew(CrewCreate.model_validate(payload)).id}


async def _run_agent(runtime: Runtime, payload: dict) -> dict:
    return {"response": await runtime.agents.run_agent(payload["agent_id"], payload["prompt"])}


async def _run_crew_task(runtime: Runtime, payload: dict) -> dict:
    return {"result": await runtime.agents.run_task(payload["crew_id"], payload["task_id"], payload.get("input"))}


async def _execute_backend_task(runtime: Runtime, payload: dict) -> dict:
    request = BackendTaskRequest.model_validate(payload)
    return {"result": await runtime.agents.execute_backend_task(request.model_dump())}


async def _execute_fullstack_task(runtime: Runtime, payload: dict) -> dict:
    request = FullstackTaskRequest.model_validate(payload)
    return {"result": await runtime.agents.execute_fullstack_task(request.model_dump())}

@celery_app.task(name="crew_runtime.create_task")
def create_task(payload: dict) -> dict:
    return _run("create_task", payload, _create_task)


@celery_app.task(name="crew_runtime.batch_create_tasks")
def batch_create_tasks(payload: dict) -> dict:
    return _run("batch_create_tasks", payload, _batch_create_tasks)


@celery_app.task(name="crew_runtime.get_task")
def get_task(payload: dict) -> dict:
    return _run("get_task", payload, _get_task)


@celery_app.task(name="crew_runtime.find_tasks")
def find_tasks(payload: dict) -> dict:
    return _run("find_tasks", payload, _find_tasks)


@celery_app.task(name="crew_runtime.update_task")
def update_task(payload: dict) -> dict:
    return _run("update_task", payload, _update_task)


@celery_app.task(name="crew_runtime.delete_task")
def delete_task(payload: dict) -> dict:
    return _run("delete_task", payload, _delete_task)


@celery_app.task(name="crew_runtime.execute_task")
def execute_task(payload: dict) -> dict:
    return _run("execute_task", payload, _execute_task)


@celery_app.task(name="crew_runtime.cancel_execution")
def cancel_execution(payload: dict) -> dict:
    return _run("cancel_execution", payload, _cancel_execution)


@celery_app.task(name="crew_runtime.retry_execution")
def retry_execution(payload: dict) -> dict:
    return _run("retry_execution", payload, _retry_execution)


@celery_app.task(name="crew_runtime.get_execution")
def get_execution(payload: dict) -> dict:
    return _run("get_execution", payload, _get_execution)


@celery_app.task(name="crew_runtime.get_task_executions")
def get_task_executions(payload: dict) -> dict:
    return _run("get_task_executions", payload, _get_task_executions)


@celery_app.task(name="crew_runtime.get_execution_report")
def get_execution_report(payload: dict) -> dict:
    return _run("get_execution_report", payload, _get_execution_report)


@celery_app.task(name="crew_runtime.get_task_execution_summary")
def get_task_execution_summary(payload: dict) -> dict:
    return _run("get_task_execution_summary", payload, _get_task_execution_summary)


@celery_app.task(name="crew_runtime.analyze_task")
def analyze_task(payload: dict) -> dict:
    return _run("analyze_task", payload, _analyze_task)


@celery_app.task(name="crew_runtime.create_agent")
def create_agent(payload: dict) -> dict:
    return _run("create_agent", payload, _create_agent)


@celery_app.task(name="crew_runtime.create_crew")
def create_crew(payload: dict) -> dict:
    return _run("create_crew", payload, _create_crew)


@celery_app.task(name="crew_runtime.run_agent")
def run_agent(payload: dict) -> dict:
    return _run("run_agent", payload, _run_agent)


@celery_app.task(name="crew_runtime.run_crew_task")
def run_crew_task(payload: dict) -> dict:
    return _run("run_crew_task", payload, _run_crew_task)


@celery_app.task(name="crew_runtime.execute_backend_task")
def execute_backend_task(payload: dict) -> dict:
    return _run("execute_backend_task", payload, _execute_backend_task)


@celery_app.task(name="crew_runtime.execute_fullstack_task")
def execute_fullstack_task(payload: dict) -> dict:
    return _run("execute_fullstack_task", payload, _execute_fullstack_task)
