"""Application settings loaded from environment variables."""
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./crew_runtime.db"
    database_null_pool: bool = False
    auto_create_tables: bool = False
    repository_backend: Literal["sql", "memory"] = "sql"

    redis_url: str = "redis://localhost:6379/0"
    broker_url: str | None = None
    result_backend: str | None = None

    openai_api_key: str = ""
    openai_model: str = "gpt-4-0125-preview"
    openai_max_retries: int = 2
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    ollama_timeout: float | None = 120.0
    default_ai_model: str = "gpt-3"
    default_temperature: float = 0.7

    retry_dispatch: Literal["inline", "celery"] = "inline"

    service_name: str = "crew-runtime"
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
