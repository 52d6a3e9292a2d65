import asyncio
from datetime import timedelta

import pytest

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
)
from crew_runtime.db.memory import InMemoryTaskRepository
from crew_runtime.dependencies import build_runtime
from crew_runtime.schemas.execution import Execution, ExecutionStatus
from crew_runtime.schemas.task import TaskCreate
from crew_runtime.schemas.template import TemplateCreate


def record(runtime, *events):
    received = {event: [] for event in events}
    for event in events:
        runtime.events.on(event, received[event].append)
    return received


def assert_timing(execution: Execution):
    assert execution.finished_at >= execution.started_at
    assert execution.execution_time == int((execution.finished_at - execution.started_at) / timedelta(milliseconds=1))


async def create_task(runtime, **kwargs):
    data = {"description": "Summarize the quarterly numbers", "expected_output": "A short summary", **kwargs}
    return await runtime.tasks.create_task(TaskCreate(**data))


@pytest.mark.asyncio
async def test_execute_success_records_completed_execution(runtime, repository, provider):
    received = record(runtime, EXECUTION_STARTED, EXECUTION_COMPLETED)
    task = await create_task(runtime)

    result = await runtime.executor.execute(task.id, "agent-1", input={"quarter": "Q2"}, session_id="s-1")

    assert result.success is True
    assert result.output == "generated output"
    assert result.metadata["session_id"] == "s-1"
    assert result.metadata["agent_id"] == "agent-1"

    stored = repository.executions[result.execution_id]
    assert stored.status == ExecutionStatus.COMPLETED
    assert stored.output == "generated output"
    assert stored.attempts == 1
    assert stored.metrics.latency is not None
    assert stored.execution_time == result.execution_time
    assert_timing(stored)
    assert stored.logs[0].message == f"Execution started for task: {task.description}"
    assert stored.logs[-1].message == "Execution completed successfully"

    assert len(runtime.registry) == 0
    assert received[EXECUTION_STARTED][0]["execution_id"] == result.execution_id
    assert received[EXECUTION_COMPLETED][0]["success"] is True


@pytest.mark.asyncio
async def test_execute_defaults_to_task_assignment(runtime, repository):
    task = await create_task(runtime, assigned_crew_id="crew-7")

    result = await runtime.executor.execute(task.id)

    stored = repository.executions[result.execution_id]
    assert stored.crew_id == "crew-7"
    assert stored.agent_id is None


@pytest.mark.asyncio
async def test_execute_honours_zero_temperature(runtime, provider):
    task = await create_task(runtime)

    await runtime.executor.execute(task.id, "agent-1", temperature=0.0)
    await runtime.executor.execute(task.id, "agent-1")

    assert provider.calls[0]["temperature"] == 0.0
    assert provider.calls[1]["temperature"] == 0.7


@pytest.mark.asyncio
async def test_model_resolution_order(runtime, provider):
    template = await runtime.tasks.create_template(
        TemplateCreate(
            name="summary",
            description="Summaries",
            prompt_template="Summarize {{topic}}",
            default_model_name="gpt-4",
            category="writing",
        )
    )
    templated = await create_task(runtime, template_id=template.id)
    plain = await create_task(runtime)

    await runtime.executor.execute(templated.id, "agent-1", model_name="llama3", input={"topic": "sales"})
    await runtime.executor.execute(templated.id, "agent-1", input={"topic": "sales"})
    await runtime.executor.execute(plain.id, "agent-1")

    assert [call["model"] for call in provider.calls] == ["llama3", "gpt-4-0125-preview", "gpt-3.5-turbo"]
    assert provider.calls[0]["prompt"] == "Summarize sales"


@pytest.mark.asyncio
async def test_missing_template_falls_back_to_generic_prompt(runtime, provider):
    task = await create_task(runtime, template_id="template-missing")

    result = await runtime.executor.execute(task.id, "agent-1")

    assert result.success is True
    assert "Summarize the quarterly numbers" in provider.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_execute_failure_marks_execution_failed(runtime, repository, provider):
    received = record(runtime, EXECUTION_FAILED)
    provider.error = RuntimeError("model unavailable")
    task = await create_task(runtime)

    with pytest.raises(ProviderError, match="model unavailable"):
        await runtime.executor.execute(task.id, "agent-1")

    [stored] = repository.executions.values()
    assert stored.status == ExecutionStatus.FAILED
    assert stored.error == "model unavailable"
    assert stored.logs[-1].level == "error"
    assert_timing(stored)
    assert len(runtime.registry) == 0
    assert received[EXECUTION_FAILED][0]["auto_retry"] is False


@pytest.mark.asyncio
async def test_execute_unknown_task(runtime, repository):
    with pytest.raises(NotFoundError):
        await runtime.executor.execute("task-missing", "agent-1")

    assert repository.executions == {}


@pytest.mark.asyncio
async def test_execute_without_history_persists_nothing(runtime, repository):
    task = await create_task(runtime)

    result = await runtime.executor.execute(task.id, "agent-1", save_history=False)

    assert result.success is True
    assert repository.executions == {}


@pytest.mark.asyncio
async def test_cancel_in_flight_is_not_overwritten_by_late_result(runtime, repository, provider):
    received = record(runtime, EXECUTION_COMPLETED, EXECUTION_CANCELLED)
    provider.gate = asyncio.Event()
    task = await create_task(runtime)

    running = asyncio.create_task(runtime.executor.execute(task.id, "agent-1"))
    while not runtime.registry.ids():
        await asyncio.sleep(0)
    execution_id = runtime.registry.ids()[0]

    cancelled = await runtime.executor.cancel_execution(execution_id)
    provider.gate.set()

    with pytest.raises(ExecutionCancelledError):
        await running

    assert cancelled.status == ExecutionStatus.CANCELLED
    stored = repository.executions[execution_id]
    assert stored.status == ExecutionStatus.CANCELLED
    assert stored.output is None
    assert stored.logs[-1].message == "Execution cancelled by user"
    assert_timing(stored)
    assert received[EXECUTION_COMPLETED] == []
    assert len(received[EXECUTION_CANCELLED]) == 1
    assert len(runtime.registry) == 0


@pytest.mark.asyncio
async def test_cancel_stored_execution_is_state_gated(runtime, repository):
    pending = await repository.save_execution(Execution(task_id="task-1", agent_id="agent-1"))

    cancelled = await runtime.executor.cancel_execution(pending.id)

    assert cancelled.status == ExecutionStatus.CANCELLED
    assert_timing(repository.executions[pending.id])

    with pytest.raises(InvalidStateError, match="Cannot cancel execution with status: cancelled"):
        await runtime.executor.cancel_execution(pending.id)
    with pytest.raises(NotFoundError):
        await runtime.executor.cancel_execution("exec-missing")


@pytest.mark.asyncio
async def test_retry_creates_pending_execution_and_dispatches_it(runtime, repository, dispatcher):
    received = record(runtime, EXECUTION_RETRY)
    task = await create_task(runtime)
    failed = Execution(task_id=task.id, agent_id="agent-1", input={"a": 1}, status=ExecutionStatus.FAILED, attempts=2)
    failed.finish(ExecutionStatus.FAILED)
    await repository.save_execution(failed)

    retry_id = await runtime.executor.retry_execution(failed.id)

    assert retry_id != failed.id
    retry = repository.executions[retry_id]
    assert retry.status == ExecutionStatus.PENDING
    assert retry.attempts == 3
    assert retry.input == {"a": 1}
    assert retry.finished_at is None and retry.execution_time is None
    assert retry.logs[0].message == f"Retry of execution {failed.id} started"
    assert repository.executions[failed.id].status == ExecutionStatus.FAILED
    assert dispatcher.payloads == [
        {"execution_id": retry_id, "task_id": task.id, "agent_id": "agent-1", "crew_id": None, "input": {"a": 1}}
    ]
    assert received[EXECUTION_RETRY][0]["original_execution_id"] == failed.id


@pytest.mark.asyncio
async def test_retry_rejects_non_retryable_status(runtime, repository):
    task = await create_task(runtime)
    result = await runtime.executor.execute(task.id, "agent-1")

    with pytest.raises(InvalidStateError, match="Cannot retry execution with status: completed"):
        await runtime.executor.retry_execution(result.execution_id)
    with pytest.raises(NotFoundError):
        await runtime.executor.retry_execution("exec-missing")


@pytest.mark.asyncio
async def test_fail_then_retry_runs_the_retried_record(inline_runtime, repository, provider):
    runtime = inline_runtime
    provider.error = RuntimeError("flaky")
    task = await create_task(runtime)

    with pytest.raises(ProviderError):
        await runtime.executor.execute(task.id, "agent-1")
    [failed] = repository.executions.values()

    provider.error = None
    retry_id = await runtime.executor.retry_execution(failed.id)
    await runtime.dispatcher.drain()

    executions = await runtime.tracker.get_task_executions(task.id)
    assert len(executions) == 2
    retried = repository.executions[retry_id]
    assert retried.status == ExecutionStatus.COMPLETED
    assert retried.attempts == 2
    assert retried.output == "generated output"


@pytest.mark.asyncio
async def test_run_retry_requires_pending_record(runtime, repository):
    task = await create_task(runtime)
    result = await runtime.executor.execute(task.id, "agent-1")

    with pytest.raises(InvalidStateError):
        await runtime.executor.run_retry({"execution_id": result.execution_id, "task_id": task.id})


class FlakyRepository(InMemoryTaskRepository):
    """Fails the save_execution calls whose 1-based position is listed."""

    def __init__(self, failing_calls):
        super().__init__()
        self.failing_calls = set(failing_calls)
        self.save_calls = 0

    async def save_execution(self, execution):
        self.save_calls += 1
        if self.save_calls in self.failing_calls:
            raise RepositoryError("database unavailable")
        return await super().save_execution(execution)


@pytest.mark.asyncio
async def test_result_write_failure_marks_execution_failed(settings, provider):
    repository = FlakyRepository(failing_calls={2})
    runtime = build_runtime(settings, repository=repository, providers={"openai": provider, "ollama": provider})
    received = record(runtime, EXECUTION_COMPLETED, EXECUTION_FAILED)
    task = await create_task(runtime)

    with pytest.raises(RepositoryError):
        await runtime.executor.execute(task.id, "agent-1")

    assert len(runtime.registry) == 0
    [stored] = repository.executions.values()
    assert stored.status == ExecutionStatus.FAILED
    assert stored.error == "database unavailable"
    assert stored.output is None
    assert_timing(stored)
    assert received[EXECUTION_COMPLETED] == []
    assert received[EXECUTION_FAILED][0]["execution_id"] == stored.id

    await runtime.tasks.delete_task(task.id)


@pytest.mark.asyncio
async def test_start_write_failure_releases_registry(settings, provider):
    repository = FlakyRepository(failing_calls={1})
    runtime = build_runtime(settings, repository=repository, providers={"openai": provider, "ollama": provider})
    task = await create_task(runtime)

    with pytest.raises(RepositoryError):
        await runtime.executor.execute(task.id, "agent-1")

    assert len(runtime.registry) == 0
    assert repository.executions == {}
    assert provider.calls == []
