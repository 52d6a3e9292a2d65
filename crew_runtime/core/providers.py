"""LLM provider clients and the model-name lookup used to pick one."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from openai import AsyncOpenAI, OpenAIError

from crew_runtime.core.errors import ProviderError
from crew_runtime.settings import Settings

logger = structlog.get_logger(__name__)

CODE_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 2000


@dataclass(frozen=True)
class ModelConfig:
    provider: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 4000


DEFAULT_MODELS: dict[str, ModelConfig] = {
    "gpt-3": ModelConfig(provider="openai", model="gpt-3.5-turbo"),
    "gpt-4": ModelConfig(provider="openai", model="gpt-4-0125-preview"),
    "llama3": ModelConfig(provider="ollama", model="llama3"),
    "mistral": ModelConfig(provider="ollama", model="mistral"),
}


class BaseProvider:
    name = "base"

    def __init__(self, default_model: str) -> None:
        self.default_model = default_model

    async def generate_text(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> str:
        raise NotImplementedError

    async def generate_code(
        self,
        prompt: str,
        language: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> str:
        code_prompt = (
            f"Generate {language} code for the following task. "
            f"Return ONLY the code without explanations or markdown:\n\n{prompt}"
        )
        return await self.generate_text(
            code_prompt,
            temperature=CODE_TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens,
            model=model,
        )

    def get_model_info(self) -> dict[str, Any]:
        return {"provider": self.name, "model": self.default_model, "capabilities": ["text", "code", "reasoning"]}


class OpenAIProvider(BaseProvider):
    name = "openai"

    def __init__(self, api_key: str, default_model: str, max_retries: int = 2) -> None:
        super().__init__(default_model)
        self._api_key = api_key
        self._max_retries = max_retries

    async def generate_text(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> str:
        try:
            async with AsyncOpenAI(api_key=self._api_key or None, max_retries=self._max_retries) as client:
                completion = await client.chat.completions.create(
                    model=model or self.default_model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=0.7 if temperature is None else temperature,
                    max_tokens=max_tokens or DEFAULT_MAX_TOKENS,
                )
        except OpenAIError as exc:
            logger.error("openai.generate_failed", error=str(exc))
            raise ProviderError(str(exc)) from exc
        return completion.choices[0].message.content or ""


class OllamaProvider(BaseProvider):
    name = "ollama"

    def __init__(self, base_url: str, default_model: str, timeout: float | None = 120.0,
                 transport: httpx.AsyncBaseTransport | None = None) -> None:
        super().__init__(default_model)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def generate_text(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> str:
        payload = {
            "model": model or self.default_model,
            "prompt": prompt,
            "options": {
                "temperature": 0.7 if temperature is None else temperature,
                "num_predict": max_tokens or DEFAULT_MAX_TOKENS,
            },
            "stream": False,
        }
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.post(f"{self._base_url}/api/generate", json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("ollama.generate_failed", error=str(exc))
            raise ProviderError(str(exc)) from exc
        return response.json().get("response") or ""


class ProviderFactory:
    """Map model names to a provider instance and its model configuration."""

    def __init__(self, settings: Settings, providers: dict[str, BaseProvider] | None = None) -> None:
        self._default_model = settings.default_ai_model
        self._providers = providers or {
            "openai": OpenAIProvider(settings.openai_api_key, settings.openai_model, settings.openai_max_retries),
            "ollama": OllamaProvider(settings.ollama_base_url, settings.ollama_model, settings.ollama_timeout),
        }

    @property
    def default_model(self) -> str:
        return self._default_model

    def get_model_config(self, model_name: str | None = None) -> ModelConfig:
        name = model_name or self._default_model
        if name in DEFAULT_MODELS:
            return DEFAULT_MODELS[name]
        if name != self._default_model:
            logger.debug("provider.unknown_model", model_name=name, fallback=self._default_model)
        return DEFAULT_MODELS.get(self._default_model, DEFAULT_MODELS["gpt-3"])

    def resolve(self, model_name: str | None = None) -> tuple[BaseProvider, ModelConfig]:
        config = self.get_model_config(model_name)
        provider = self._providers.get(config.provider) or next(iter(self._providers.values()))
        return provider, config

    def get_provider(self, model_name: str | None = None) -> BaseProvider:
        return self.resolve(model_name)[0]
