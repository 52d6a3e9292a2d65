import asyncio
from typing import Any

import pytest

from crew_runtime.core.providers import BaseProvider
from crew_runtime.db.memory import InMemoryTaskRepository
from crew_runtime.dependencies import build_runtime
from crew_runtime.settings import Settings


class FakeProvider(BaseProvider):
    """Provider double that records calls and can block or fail on demand."""

    name = "fake"

    def __init__(self, output: str = "generated output", error: Exception | None = None) -> None:
        super().__init__("fake-model")
        self.output = output
        self.error = error
        self.gate: asyncio.Event | None = None
        self.calls: list[dict[str, Any]] = []

    async def generate_text(self, prompt, *, temperature=None, max_tokens=None, model=None):
        self.calls.append({"prompt": prompt, "temperature": temperature, "max_tokens": max_tokens, "model": model})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.output


class RecordingDispatcher:
    def __init__(self) -> None:
        self.payloads: list[dict[str, Any]] = []

    def dispatch(self, payload: dict[str, Any]) -> None:
        self.payloads.append(payload)


@pytest.fixture
def settings():
    return Settings(_env_file=None, repository_backend="memory", retry_dispatch="inline")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def repository():
    return InMemoryTaskRepository()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def runtime(settings, repository, provider, dispatcher):
    return build_runtime(
        settings,
        repository=repository,
        providers={"openai": provider, "ollama": provider},
        retry_dispatcher=dispatcher,
    )


@pytest.fixture
def inline_runtime(settings, repository, provider):
    """Runtime whose retries run on the event loop instead of being recorded."""
    return build_runtime(settings, repository=repository, providers={"openai": provider, "ollama": provider})
