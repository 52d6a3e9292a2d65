"""Execution inspection, cancel and retry endpoints."""
from fastapi import APIRouter, Depends

from crew_runtime.core.errors import NotFoundError
from crew_runtime.dependencies import Runtime, get_runtime
from crew_runtime.schemas.execution import Execution, ExecutionLogCreate, ExecutionStatus

router = APIRouter()


@router.get("", response_model=list[Execution])
async def find_executions(
    task_id: str | None = None,
    status: ExecutionStatus | None = None,
    agent_id: str | None = None,
    crew_id: str | None = None,
    runtime: Runtime = Depends(get_runtime),
) -> list[Execution]:
    return await runtime.tasks.find_executions(
        {"task_id": task_id, "status": status, "agent_id": agent_id, "crew_id": crew_id}
    )


@router.get("/{execution_id}", response_model=Execution)
async def get_execution(execution_id: str, runtime: Runtime = Depends(get_runtime)) -> Execution:
    return await runtime.tracker.get_execution(execution_id)


@router.get("/{execution_id}/report", response_model=dict)
async def get_execution_report(execution_id: str, runtime: Runtime = Depends(get_runtime)) -> dict:
    return await runtime.tracker.generate_execution_report(execution_id)


@router.post("/{execution_id}/logs", response_model=Execution)
async def add_execution_log(
    execution_id: str, entry: ExecutionLogCreate, runtime: Runtime = Depends(get_runtime)
) -> Execution:
    execution = await runtime.tracker.add_execution_log(execution_id, entry.level, entry.message, entry.metadata)
    if execution is None:
        raise NotFoundError(f"Execution with ID {execution_id} not found")
    return execution


@router.post("/{execution_id}/cancel", response_model=Execution)
async def cancel_execution(execution_id: str, runtime: Runtime = Depends(get_runtime)) -> Execution:
    return await runtime.executor.cancel_execution(execution_id)


@router.post("/{execution_id}/retry", status_code=202)
async def retry_execution(execution_id: str, runtime: Runtime = Depends(get_runtime)) -> dict:
    return {"execution_id": await runtime.executor.retry_execution(execution_id)}
