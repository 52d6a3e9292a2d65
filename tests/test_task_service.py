import pytest
from pydantic import ValidationError

from crew_runtime.core.errors import InvalidStateError, NotFoundError
from crew_runtime.core.events import TASK_ASSIGNED, TASK_ASSIGNED_TO_CREW, TASK_CREATED, TASK_DELETED, TASK_UPDATED
from crew_runtime.schemas.execution import Execution, ExecutionStatus
from crew_runtime.schemas.task import TaskCreate, TaskUpdate
from crew_runtime.schemas.template import TemplateCreate, TemplateParameter


@pytest.fixture
def service(runtime):
    return runtime.tasks


def listen(runtime, event):
    received = []
    runtime.events.on(event, received.append)
    return received


@pytest.mark.asyncio
async def test_create_task(runtime, service):
    created = listen(runtime, TASK_CREATED)

    task = await service.create_task(TaskCreate(description="Index the docs", tags=["docs"]))

    assert task.id.startswith("task-")
    assert task.priority == "medium"
    assert (await service.get_task(task.id)).tags == ["docs"]
    assert created == [
        {"task_id": task.id, "description": "Index the docs", "assigned_agent_id": None, "assigned_crew_id": None}
    ]


@pytest.mark.asyncio
async def test_task_cannot_target_agent_and_crew(service):
    with pytest.raises(InvalidStateError):
        await service.create_task(TaskCreate(description="x", assigned_agent_id="a", assigned_crew_id="c"))


@pytest.mark.asyncio
async def test_batch_create_reports_per_item(service):
    result = await service.batch_create(
        [
            TaskCreate(description="first"),
            TaskCreate(description="second", assigned_agent_id="a", assigned_crew_id="c"),
            TaskCreate(description="third"),
        ]
    )

    assert len(result.success) == 2
    assert len(result.failed) == 1
    assert result.failed[0].index == 1
    assert len(await service.find_tasks()) == 2


@pytest.mark.asyncio
async def test_update_task_merges_and_emits_assignment_events(runtime, service):
    updated_events = listen(runtime, TASK_UPDATED)
    assigned = listen(runtime, TASK_ASSIGNED)
    crew_assigned = listen(runtime, TASK_ASSIGNED_TO_CREW)
    task = await service.create_task(TaskCreate(description="Triage bugs", priority="low"))

    updated = await service.update_task(task.id, TaskUpdate(assigned_agent_id="agent-9"))

    assert updated.description == "Triage bugs"
    assert updated.priority == "low"
    assert updated.assigned_agent_id == "agent-9"
    assert updated_events[0]["updates"] == {"assigned_agent_id": "agent-9"}
    assert assigned == [{"task_id": task.id, "agent_id": "agent-9", "previous_agent_id": None}]
    assert crew_assigned == []


@pytest.mark.asyncio
async def test_update_rechecks_assignment_on_merged_task(service):
    task = await service.create_task(TaskCreate(description="Triage bugs", assigned_agent_id="agent-1"))

    with pytest.raises(InvalidStateError):
        await service.update_task(task.id, TaskUpdate(assigned_crew_id="crew-1"))

    moved = await service.update_task(task.id, TaskUpdate(assigned_agent_id=None, assigned_crew_id="crew-1"))
    assert moved.assigned_agent_id is None
    assert moved.assigned_crew_id == "crew-1"


@pytest.mark.asyncio
async def test_update_priority_and_missing_task(service):
    task = await service.create_task(TaskCreate(description="Rotate keys"))

    assert (await service.update_priority(task.id, "critical")).priority == "critical"
    with pytest.raises(NotFoundError):
        await service.update_priority("task-missing", "high")


@pytest.mark.asyncio
async def test_delete_blocked_by_active_execution(service, repository):
    task = await service.create_task(TaskCreate(description="Long job"))
    await repository.save_execution(Execution(task_id=task.id, status=ExecutionStatus.IN_PROGRESS))

    with pytest.raises(InvalidStateError) as excinfo:
        await service.delete_task(task.id)

    assert str(excinfo.value) == "Cannot delete task with active executions. Please cancel executions first."
    assert await service.get_task(task.id)


@pytest.mark.asyncio
async def test_delete_removes_task_and_its_finished_executions(runtime, service, repository):
    deleted = listen(runtime, TASK_DELETED)
    task = await service.create_task(TaskCreate(description="Short job"))
    done = Execution(task_id=task.id)
    done.finish(ExecutionStatus.COMPLETED)
    await repository.save_execution(done)

    await service.delete_task(task.id)

    with pytest.raises(NotFoundError):
        await service.get_task(task.id)
    assert await repository.find_execution_by_id(done.id) is None
    assert deleted[0]["task_id"] == task.id


@pytest.mark.asyncio
async def test_batch_delete(service, repository):
    keep = await service.create_task(TaskCreate(description="busy"))
    await repository.save_execution(Execution(task_id=keep.id))
    gone = await service.create_task(TaskCreate(description="idle"))

    result = await service.batch_delete([gone.id, keep.id, "task-missing"])

    assert result.success == [gone.id]
    assert [failure.id for failure in result.failed] == [keep.id, "task-missing"]
    assert "active executions" in result.failed[0].reason


@pytest.mark.asyncio
async def test_find_tasks_filters(service):
    await service.create_task(TaskCreate(description="Fix LOGIN bug", tags=["auth", "bug"], priority="high"))
    await service.create_task(TaskCreate(description="Write docs", tags=["docs"]))

    assert [task.description for task in await service.find_tasks({"search": "login"})] == ["Fix LOGIN bug"]
    assert [task.description for task in await service.find_tasks({"tags": ["docs", "ops"]})] == ["Write docs"]
    assert [task.description for task in await service.find_tasks({"priority": "high"})] == ["Fix LOGIN bug"]
    assert len(await service.find_tasks({"priority": None})) == 2


@pytest.mark.asyncio
async def test_get_task_executions_requires_task(service):
    with pytest.raises(NotFoundError):
        await service.get_task_executions("task-missing")


@pytest.mark.asyncio
async def test_templates(service):
    template = await service.create_template(
        TemplateCreate(
            name="Bug report",
            description="Turns notes into a bug report",
            prompt_template="Write a bug report about {{topic}}",
            parameters=[TemplateParameter(name="topic", required=True)],
            category="support",
            tags=["bugs"],
        )
    )

    assert template.id.startswith("template-")
    assert (await service.get_template(template.id)).parameters[0].name == "topic"
    assert [item.id for item in await service.list_templates({"category": "support"})] == [template.id]
    assert await service.list_templates({"category": "sales"}) == []
    with pytest.raises(NotFoundError):
        await service.get_template("template-missing")


def test_analyze_task(service):
    analysis = service.analyze_task("Build a REST API controller for users")

    assert analysis["domain"] == "backend-development"
    assert analysis["complexity"] == "low"
    assert analysis["estimated_time"] == "30-60 minutes"
    assert analysis["recommended_agents"] == ["Backend Developer", "Database Designer"]
    assert "TypeScript" in analysis["required_knowledge"]
    assert analysis["subtasks"]


def test_analyze_task_complexity_and_general_domain(service):
    analysis = service.analyze_task("Optimize the complex nightly performance report")

    assert analysis["domain"] == "general-development"
    assert analysis["complexity"] == "high"
    assert analysis["recommended_agents"] == ["Fullstack Developer"]


@pytest.mark.asyncio
async def test_batch_create_reports_invalid_items(service):
    result = await service.batch_create([{"description": "valid"}, {"description": ""}, {"priority": "urgent"}])

    assert len(result.success) == 1
    assert [failure.index for failure in result.failed] == [1, 2]
    assert "description" in result.failed[0].reason
    assert len(await service.find_tasks()) == 1


@pytest.mark.asyncio
async def test_update_rejects_null_for_required_fields(service):
    task = await service.create_task(TaskCreate(description="Keep context", context={"env": "prod"}, tags=["ops"]))

    with pytest.raises(ValidationError):
        TaskUpdate(context=None)
    with pytest.raises(ValidationError):
        await service.update_task(task.id, {"tags": None})

    cleared = await service.update_task(task.id, TaskUpdate(template_id=None, deadline=None))
    assert cleared.context == {"env": "prod"}
    assert cleared.tags == ["ops"]
