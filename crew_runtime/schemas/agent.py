"""Pydantic schemas for agents and crews."""
from typing import Any

from pydantic import BaseModel, Field


class ToolSpec(BaseModel):
    name: str
    description: str = ""


class AgentCreate(BaseModel):
    id: str | None = None
    role: str
    goal: str
    backstory: str
    tools: list[ToolSpec] = Field(default_factory=list)
    allow_delegation: bool = False
    model_name: str | None = None


class AgentRead(BaseModel):
    id: str
    role: str
    goal: str
    backstory: str
    tools: list[ToolSpec] = Field(default_factory=list)
    allow_delegation: bool = False
    model_name: str | None = None


class CrewTask(BaseModel):
    id: str
    description: str
    expected_output: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class CrewCreate(BaseModel):
    agents: list[AgentCreate] = Field(min_length=1)
    tasks: list[CrewTask] = Field(default_factory=list)
    verbose: bool = False


class CrewRead(BaseModel):
    id: str
    agents: list[AgentRead]
    tasks: list[CrewTask]
    verbose: bool = False


class CrewRunRequest(BaseModel):
    input: dict[str, Any] = Field(default_factory=dict)


class AgentExecutionResult(BaseModel):
    task_id: str
    agent_id: str
    output: str
    success: bool
    execution_time: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class AgentRunRequest(BaseModel):
    agent_id: str
    prompt: str = Field(min_length=1)


class BackendTaskRequest(BaseModel):
    resource: str
    endpoints: list[str] = Field(default_factory=list)
    methods: list[str] = Field(default_factory=list)


class FullstackTaskRequest(BaseModel):
    feature: str
    endpoints: list[str] = Field(default_factory=list)
    components: list[str] = Field(default_factory=list)
