"""Agents, crews and the manager that keeps them for the lifetime of the process."""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog

from crew_runtime.core.errors import InvalidStateError, NotFoundError
from crew_runtime.core.providers import BaseProvider, ModelConfig, ProviderFactory
from crew_runtime.schemas.agent import AgentCreate, AgentExecutionResult, AgentRead, CrewCreate, CrewRead, CrewTask, ToolSpec
from crew_runtime.schemas.common import new_id, utcnow

logger = structlog.get_logger(__name__)

ToolCallback = Callable[..., Awaitable[str]]


@dataclass
class Tool:
    name: str
    description: str = ""
    callback: ToolCallback | None = None

    async def run(self, **params: Any) -> str:
        if self.callback is None:
            raise InvalidStateError(f"Tool {self.name} has no callback")
        return await self.callback(**params)


@dataclass
class Agent:
    id: str
    role: str
    goal: str
    backstory: str
    provider: BaseProvider
    model: ModelConfig
    tools: list[Tool] = field(default_factory=list)
    allow_delegation: bool = False
    model_name: str | None = None

    async def generate_response(self, prompt: str, temperature: float | None = None) -> str:
        return await self.provider.generate_text(
            prompt,
            temperature=self.model.temperature if temperature is None else temperature,
            max_tokens=self.model.max_tokens,
            model=self.model.model,
        )

    async def generate_code(self, prompt: str, language: str) -> str:
        return await self.provider.generate_code(prompt, language, max_tokens=self.model.max_tokens, model=self.model.model)

    def get_tool(self, name: str) -> Tool:
        for tool in self.tools:
            if tool.name == name:
                return tool
        raise NotFoundError(f"Tool {name} not found on agent {self.id}")

    def to_read(self) -> AgentRead:
        return AgentRead(
            id=self.id,
            role=self.role,
            goal=self.goal,
            backstory=self.backstory,
            tools=[ToolSpec(name=tool.name, description=tool.description) for tool in self.tools],
            allow_delegation=self.allow_delegation,
            model_name=self.model_name,
        )


@dataclass
class Crew:
    id: str
    agents: list[Agent]
    tasks: list[CrewTask]
    verbose: bool = False

    async def run_task(self, task_id: str, input: dict[str, Any] | None = None) -> AgentExecutionResult:
        task = next((item for item in self.tasks if item.id == task_id), None)
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        if not self.agents:
            raise InvalidStateError(f"Crew {self.id} has no agents")

        # The first agent takes every task.
        agent = self.agents[0]
        prompt = (
            f"Task: {task.description}\n"
            f"Context: {json.dumps(task.context)}\n"
            f"Expected Output: {task.expected_output}\n"
            f"Input: {json.dumps(input or {})}"
        )

        start = time.perf_counter()
        success = True
        try:
            output = await agent.generate_response(prompt)
        except Exception as exc:
            logger.warning("crew.task_failed", crew_id=self.id, task_id=task_id, error=str(exc))
            output = f"Error: {exc}"
            success = False
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        if self.verbose:
            logger.info("crew.task_done", crew_id=self.id, task_id=task_id, agent_id=agent.id, success=success)

        return AgentExecutionResult(
            task_id=task_id,
            agent_id=agent.id,
            output=output,
            success=success,
            execution_time=elapsed_ms,
            metadata={"crew_id": self.id, "timestamp": utcnow().isoformat()},
        )

    def to_read(self) -> CrewRead:
        return CrewRead(
            id=self.id,
            agents=[agent.to_read() for agent in self.agents],
            tasks=list(self.tasks),
            verbose=self.verbose,
        )


class AgentFactory:
    """Build agents bound to the provider their model name resolves to."""

    def __init__(self, providers: ProviderFactory) -> None:
        self._providers = providers

    def create_agent(self, config: AgentCreate, tools: list[Tool] | None = None) -> Agent:
        provider, model = self._providers.resolve(config.model_name)
        logger.info("agent.create", role=config.role, provider=provider.name, model=model.model)
        return Agent(
            id=config.id or new_id("agent"),
            role=config.role,
            goal=config.goal,
            backstory=config.backstory,
            provider=provider,
            model=model,
            tools=tools if tools is not None else [Tool(name=spec.name, description=spec.description) for spec in config.tools],
            allow_delegation=config.allow_delegation,
            model_name=config.model_name,
        )

    def _code_tool(self, name: str, description: str, render: Callable[..., str], language: str = "typescript") -> Tool:
        async def callback(**params: Any) -> str:
            provider = self._providers.get_provider("gpt-4")
            return await provider.generate_code(render(**params), language)

        return Tool(name=name, description=description, callback=callback)

    def create_backend_agent(self) -> Agent:
        tools = [
            self._code_tool(
                "generate_controller",
                "Generate a NestJS controller with endpoints",
                lambda resource, endpoints: (
                    f"Create a NestJS controller for {resource} with the following endpoints: {', '.join(endpoints)}"
                ),
            ),
            self._code_tool(
                "generate_service",
                "Generate a NestJS service",
                lambda resource, methods: (
                    f"Create a NestJS service for {resource} with the following methods: {', '.join(methods)}"
                ),
            ),
        ]
        config = AgentCreate(
            id=new_id("backend"),
            role="Backend Developer",
            goal="Create high-quality NestJS code following best practices and SOLID principles",
            backstory="I am an expert NestJS developer with years of experience in creating scalable backend applications.",
        )
        return self.create_agent(config, tools=tools)

    def create_frontend_agent(self) -> Agent:
        tools = [
            self._code_tool(
                "generate_component",
                "Generate a React component",
                lambda purpose, props: f"Create a React component for {purpose} with the following props: {json.dumps(props)}",
            )
        ]
        config = AgentCreate(
            id=new_id("frontend"),
            role="Frontend Developer",
            goal="Create beautiful and functional React components using Next.js",
            backstory="I am a frontend expert specializing in React and Next.js applications.",
        )
        return self.create_agent(config, tools=tools)

    def create_devops_agent(self) -> Agent:
        return self.create_agent(
            AgentCreate(
                id=new_id("devops"),
                role="DevOps Engineer",
                goal="Set up and manage infrastructure and deployment pipelines",
                backstory="I am a DevOps specialist with expertise in Docker, Kubernetes, and CI/CD.",
            )
        )

    def create_database_agent(self) -> Agent:
        return self.create_agent(
            AgentCreate(
                id=new_id("db-designer"),
                role="Database Designer",
                goal="Design efficient and normalized database schemas",
                backstory="I am a database expert specializing in PostgreSQL schema design.",
            )
        )


class AgentManager:
    def __init__(self, factory: AgentFactory) -> None:
        self._factory = factory
        self._agents: dict[str, Agent] = {}
        self._crews: dict[str, Crew] = {}

    def create_agent(self, config: AgentCreate) -> Agent:
        agent = self._factory.create_agent(config)
        self._agents[agent.id] = agent
        logger.info("agent.created", agent_id=agent.id)
        return agent

    def get_agent(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent with ID {agent_id} not found")
        return agent

    def list_agents(self) -> list[Agent]:
        return list(self._agents.values())

    def _register_crew(self, agents: list[Agent], tasks: list[CrewTask], verbose: bool) -> Crew:
        crew = Crew(id=new_id("crew"), agents=agents, tasks=tasks, verbose=verbose)
        self._crews[crew.id] = crew
        logger.info("crew.created", crew_id=crew.id, agents=len(agents), tasks=len(tasks))
        return crew

    def create_crew(self, config: CrewCreate) -> Crew:
        agents = [self._factory.create_agent(agent_config) for agent_config in config.agents]
        return self._register_crew(agents, list(config.tasks), config.verbose)

    def get_crew(self, crew_id: str) -> Crew:
        crew = self._crews.get(crew_id)
        if crew is None:
            raise NotFoundError(f"Crew with ID {crew_id} not found")
        return crew

    def list_crews(self) -> list[Crew]:
        return list(self._crews.values())

    async def run_task(self, crew_id: str, task_id: str, input: dict[str, Any] | None = None) -> AgentExecutionResult:
        return await self.get_crew(crew_id).run_task(task_id, input)

    def create_backend_crew(self) -> Crew:
        agents = [
            self._factory.create_backend_agent(),
            self._factory.create_database_agent(),
            self._factory.create_devops_agent(),
        ]
        tasks = [
            CrewTask(
                id="create-api",
                description="Create a complete REST API for a given resource",
                expected_output="Complete NestJS module with controller, service, and DTOs",
            ),
            CrewTask(
                id="design-schema",
                description="Design database schema for a given domain",
                expected_output="Prisma schema and migration files",
            ),
            CrewTask(
                id="setup-deployment",
                description="Create deployment configuration",
                expected_output="Docker and Kubernetes configuration files",
            ),
        ]
        return self._register_crew(agents, tasks, verbose=True)

    def create_fullstack_crew(self) -> Crew:
        agents = [
            self._factory.create_backend_agent(),
            self._factory.create_frontend_agent(),
            self._factory.create_devops_agent(),
        ]
        tasks = [
            CrewTask(
                id="create-fullstack-feature",
                description="Create a complete full-stack feature",
                expected_output="Backend API and Frontend components",
            )
        ]
        return self._register_crew(agents, tasks, verbose=True)

    async def run_agent(self, agent_id: str, prompt: str) -> str:
        agent = self.get_agent(agent_id)
        logger.info("agent.run", agent_id=agent_id)
        return await agent.generate_response(prompt)

    def _find_crew(self, task_id: str, *roles: str) -> Crew | None:
        for crew in self._crews.values():
            has_task = any(task.id == task_id for task in crew.tasks)
            if has_task and all(any(agent.role == role for agent in crew.agents) for role in roles):
                return crew
        return None

    async def execute_backend_task(self, input: dict[str, Any]) -> str:
        """Run ``create-api`` on an existing backend crew, creating one on first use."""
        crew = self._find_crew("create-api", "Backend Developer") or self.create_backend_crew()
        result = await crew.run_task("create-api", input)
        logger.info("crew.backend_task_done", crew_id=crew.id, success=result.success)
        return result.output

    async def execute_fullstack_task(self, input: dict[str, Any]) -> dict[str, str]:
        crew = self._find_crew(
            "create-fullstack-feature", "Backend Developer", "Frontend Developer"
        ) or self.create_fullstack_crew()
        result = await crew.run_task("create-fullstack-feature", input)
        logger.info("crew.fullstack_task_done", crew_id=crew.id, success=result.success)
        # The model is asked for one answer; a FRONTEND marker splits the two halves.
        backend, _, frontend = result.output.partition("FRONTEND")
        return {"backend": backend.strip(), "frontend": frontend.strip() or "No frontend code generated"}
