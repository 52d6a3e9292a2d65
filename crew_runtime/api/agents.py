"""Agent and crew endpoints."""
from fastapi import APIRouter, Depends, status

from crew_runtime.core.errors import NotFoundError
from crew_runtime.dependencies import Runtime, get_runtime
from crew_runtime.schemas.agent import (
    AgentCreate,
    AgentExecutionResult,
    AgentRead,
    AgentRunRequest,
    BackendTaskRequest,
    CrewCreate,
    CrewRead,
    CrewRunRequest,
    FullstackTaskRequest,
)

router = APIRouter()
crews_router = APIRouter()


@router.post("", response_model=AgentRead, status_code=status.HTTP_201_CREATED)
async def create_agent(agent: AgentCreate, runtime: Runtime = Depends(get_runtime)) -> AgentRead:
    return runtime.agents.create_agent(agent).to_read()


@router.get("", response_model=list[AgentRead])
async def list_agents(runtime: Runtime = Depends(get_runtime)) -> list[AgentRead]:
    return [agent.to_read() for agent in runtime.agents.list_agents()]


@router.post("/run")
async def run_agent(request: AgentRunRequest, runtime: Runtime = Depends(get_runtime)) -> dict:
    return {"response": await runtime.agents.run_agent(request.agent_id, request.prompt)}


@router.post("/backend-task")
async def execute_backend_task(request: BackendTaskRequest, runtime: Runtime = Depends(get_runtime)) -> dict:
    return {"result": await runtime.agents.execute_backend_task(request.model_dump())}


@router.post("/fullstack-task")
async def execute_fullstack_task(request: FullstackTaskRequest, runtime: Runtime = Depends(get_runtime)) -> dict:
    return {"result": await runtime.agents.execute_fullstack_task(request.model_dump())}


@router.get("/{agent_id}", response_model=AgentRead)
async def get_agent(agent_id: str, runtime: Runtime = Depends(get_runtime)) -> AgentRead:
    return runtime.agents.get_agent(agent_id).to_read()


@crews_router.post("", response_model=CrewRead, status_code=status.HTTP_201_CREATED)
async def create_crew(crew: CrewCreate, runtime: Runtime = Depends(get_runtime)) -> CrewRead:
    return runtime.agents.create_crew(crew).to_read()


@crews_router.get("", response_model=list[CrewRead])
async def list_crews(runtime: Runtime = Depends(get_runtime)) -> list[CrewRead]:
    return [crew.to_read() for crew in runtime.agents.list_crews()]


@crews_router.post("/presets/{name}", response_model=CrewRead, status_code=status.HTTP_201_CREATED)
async def create_preset_crew(name: str, runtime: Runtime = Depends(get_runtime)) -> CrewRead:
    presets = {"backend": runtime.agents.create_backend_crew, "fullstack": runtime.agents.create_fullstack_crew}
    if name not in presets:
        raise NotFoundError(f"Crew preset {name} not found")
    return presets[name]().to_read()


@crews_router.get("/{crew_id}", response_model=CrewRead)
async def get_crew(crew_id: str, runtime: Runtime = Depends(get_runtime)) -> CrewRead:
    return runtime.agents.get_crew(crew_id).to_read()


@crews_router.post("/{crew_id}/tasks/{task_id}/run", response_model=AgentExecutionResult)
async def run_crew_task(
    crew_id: str, task_id: str, request: CrewRunRequest, runtime: Runtime = Depends(get_runtime)
) -> AgentExecutionResult:
    return await runtime.agents.run_task(crew_id, task_id, request.input)
