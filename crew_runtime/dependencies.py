"""Object graph shared by the HTTP app and the Celery worker."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from crew_runtime.core.agents import AgentFactory, AgentManager
from crew_runtime.core.events import EventBus
from crew_runtime.core.providers import BaseProvider, ProviderFactory
from crew_runtime.core.registry import ExecutionRegistry
from crew_runtime.db.memory import InMemoryTaskRepository
from crew_runtime.db.repository import SqlAlchemyTaskRepository, TaskRepository
from crew_runtime.services.dispatch import CeleryRetryDispatcher, InProcessRetryDispatcher, RetryDispatcher
from crew_runtime.services.executor import TaskExecutor
from crew_runtime.services.tasks import TaskService
from crew_runtime.services.tracker import ExecutionTracker
from crew_runtime.settings import Settings, get_settings


@dataclass
class Runtime:
    settings: Settings
    repository: TaskRepository
    events: EventBus
    registry: ExecutionRegistry
    providers: ProviderFactory
    dispatcher: RetryDispatcher
    executor: TaskExecutor
    tracker: ExecutionTracker
    tasks: TaskService
    agents: AgentManager


def _default_repository(settings: Settings) -> TaskRepository:
    if settings.repository_backend == "memory":
        return InMemoryTaskRepository()
    from crew_runtime.db.session import async_session_factory

    return SqlAlchemyTaskRepository(async_session_factory)


def _default_dispatcher(settings: Settings) -> RetryDispatcher:
    if settings.retry_dispatch == "celery":
        from crew_runtime.celery_app import celery_app

        return CeleryRetryDispatcher(celery_app)
    return InProcessRetryDispatcher()


def build_runtime(
    settings: Settings,
    *,
    repository: TaskRepository | None = None,
    providers: dict[str, BaseProvider] | None = None,
    retry_dispatcher: RetryDispatcher | None = None,
) -> Runtime:
    repository = repository or _default_repository(settings)
    events = EventBus()
    registry = ExecutionRegistry()
    provider_factory = ProviderFactory(settings, providers)
    dispatcher = retry_dispatcher or _default_dispatcher(settings)

    executor = TaskExecutor(
        repository,
        provider_factory,
        registry,
        events,
        dispatcher,
        default_temperature=settings.default_temperature,
    )
    if isinstance(dispatcher, InProcessRetryDispatcher):
        dispatcher.bind(executor.run_retry)

    tracker = ExecutionTracker(repository)
    tracker.attach(events)

    return Runtime(
        settings=settings,
        repository=repository,
        events=events,
        registry=registry,
        providers=provider_factory,
        dispatcher=dispatcher,
        executor=executor,
        tracker=tracker,
        tasks=TaskService(repository, events),
        agents=AgentManager(AgentFactory(provider_factory)),
    )


@lru_cache()
def get_runtime() -> Runtime:
    return build_runtime(get_settings())
