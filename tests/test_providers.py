import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from crew_runtime.core import providers as providers_module
from crew_runtime.core.errors import ProviderError
from crew_runtime.core.providers import OllamaProvider, OpenAIProvider, ProviderFactory
from crew_runtime.settings import Settings


def make_factory(**overrides):
    return ProviderFactory(Settings(_env_file=None, **overrides))


def test_factory_maps_model_names_to_providers():
    factory = make_factory()

    provider, config = factory.resolve("llama3")
    assert isinstance(provider, OllamaProvider)
    assert config.model == "llama3"
    assert config.max_tokens == 4000

    provider, config = factory.resolve("gpt-4")
    assert isinstance(provider, OpenAIProvider)
    assert config.model == "gpt-4-0125-preview"


def test_factory_falls_back_to_configured_default():
    assert make_factory().get_model_config("no-such-model").model == "gpt-3.5-turbo"
    assert make_factory().get_model_config(None).model == "gpt-3.5-turbo"
    assert make_factory(default_ai_model="mistral").get_model_config(None).model == "mistral"
    assert isinstance(make_factory(default_ai_model="mistral").get_provider("unknown"), OllamaProvider)


@pytest.mark.asyncio
async def test_ollama_provider_posts_generate_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "hello from llama"})

    provider = OllamaProvider("http://ollama:11434/", "llama3", transport=httpx.MockTransport(handler))

    output = await provider.generate_text("Say hi", temperature=0.0, max_tokens=50)

    assert output == "hello from llama"
    assert seen["url"] == "http://ollama:11434/api/generate"
    assert seen["body"] == {
        "model": "llama3",
        "prompt": "Say hi",
        "options": {"temperature": 0.0, "num_predict": 50},
        "stream": False,
    }


@pytest.mark.asyncio
async def test_ollama_provider_wraps_http_errors():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "model not loaded"}))
    provider = OllamaProvider("http://ollama:11434", "llama3", transport=transport)

    with pytest.raises(ProviderError):
        await provider.generate_text("Say hi")


@pytest.mark.asyncio
async def test_openai_provider_calls_chat_completions(monkeypatch):
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="def add(a, b): ..."))])
    client = MagicMock()
    client.__aenter__.return_value = client
    client.chat.completions.create = AsyncMock(return_value=completion)
    client_factory = MagicMock(return_value=client)
    monkeypatch.setattr(providers_module, "AsyncOpenAI", client_factory)

    provider = OpenAIProvider("sk-test", "gpt-4-0125-preview", max_retries=5)
    output = await provider.generate_code("add two numbers", "python", model="gpt-3.5-turbo")

    assert output == "def add(a, b): ..."
    client_factory.assert_called_once_with(api_key="sk-test", max_retries=5)
    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "gpt-3.5-turbo"
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 2000
    assert kwargs["messages"][0]["content"].startswith("Generate python code for the following task.")
    assert kwargs["messages"][0]["content"].endswith("add two numbers")


def test_model_info():
    info = OllamaProvider("http://ollama:11434", "mistral").get_model_info()

    assert info == {"provider": "ollama", "model": "mistral", "capabilities": ["text", "code", "reasoning"]}
