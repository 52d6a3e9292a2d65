"""Task management, execution and summary endpoints."""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status

from crew_runtime.dependencies import Runtime, get_runtime
from crew_runtime.schemas.execution import ExecuteTaskRequest, Execution, ExecutionResult
from crew_runtime.schemas.task import (
    BatchDeleteRequest,
    BatchResult,
    TaskAnalysisRequest,
    TaskCreate,
    TaskPriority,
    TaskRead,
    TaskUpdate,
)

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_task(task: TaskCreate, runtime: Runtime = Depends(get_runtime)) -> dict:
    created = await runtime.tasks.create_task(task)
    return {"id": created.id}


@router.post("/batch", response_model=BatchResult)
async def batch_create_tasks(tasks: list[dict[str, Any]], runtime: Runtime = Depends(get_runtime)) -> BatchResult:
    return await runtime.tasks.batch_create(tasks)


@router.post("/batch-delete", response_model=BatchResult)
async def batch_delete_tasks(request: BatchDeleteRequest, runtime: Runtime = Depends(get_runtime)) -> BatchResult:
    return await runtime.tasks.batch_delete(request.ids)


@router.post("/analyze", response_model=dict)
async def analyze_task(request: TaskAnalysisRequest, runtime: Runtime = Depends(get_runtime)) -> dict:
    return runtime.tasks.analyze_task(request.description, request.context)


@router.get("", response_model=list[TaskRead])
async def find_tasks(
    priority: TaskPriority | None = None,
    assigned_agent_id: str | None = None,
    assigned_crew_id: str | None = None,
    template_id: str | None = None,
    search: str | None = None,
    tags: list[str] | None = Query(default=None),
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    runtime: Runtime = Depends(get_runtime),
) -> list[TaskRead]:
    return await runtime.tasks.find_tasks(
        {
            "priority": priority,
            "assigned_agent_id": assigned_agent_id,
            "assigned_crew_id": assigned_crew_id,
            "template_id": template_id,
            "search": search,
            "tags": tags,
            "created_after": created_after,
            "created_before": created_before,
        }
    )


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(task_id: str, runtime: Runtime = Depends(get_runtime)) -> TaskRead:
    return await runtime.tasks.get_task(task_id)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(task_id: str, updates: TaskUpdate, runtime: Runtime = Depends(get_runtime)) -> TaskRead:
    return await runtime.tasks.update_task(task_id, updates)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str, runtime: Runtime = Depends(get_runtime)) -> Response:
    await runtime.tasks.delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{task_id}/execute", response_model=ExecutionResult)
async def execute_task(
    task_id: str, request: ExecuteTaskRequest, runtime: Runtime = Depends(get_runtime)
) -> ExecutionResult:
    return await runtime.executor.execute(
        task_id,
        request.agent_id,
        crew_id=request.crew_id,
        input=request.input,
        model_name=request.model_name,
        temperature=request.temperature,
        session_id=request.session_id,
        save_history=request.save_history,
    )


@router.get("/{task_id}/executions", response_model=list[Execution])
async def get_task_executions(task_id: str, runtime: Runtime = Depends(get_runtime)) -> list[Execution]:
    return await runtime.tasks.get_task_executions(task_id)


@router.get("/{task_id}/summary", response_model=dict)
async def get_task_execution_summary(task_id: str, runtime: Runtime = Depends(get_runtime)) -> dict:
    return await runtime.tracker.generate_task_execution_summary(task_id)
