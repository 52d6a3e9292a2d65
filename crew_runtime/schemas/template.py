"""Pydantic schemas for reusable prompt templates."""
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from .common import ensure_utc, utcnow


class TemplateParameter(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    required: bool = False
    type: Literal["string", "number", "boolean", "array", "object"] = "string"
    default_value: Any = None


class TemplateCreate(BaseModel):
    """A reusable prompt with ``{{name}}`` placeholders.

    Besides the execution input keys, a template can reference ``task_id``,
    ``task_description``, ``expected_output`` and ``context`` (JSON), or the
    camelCase forms ``taskId``, ``taskDescription`` and ``expectedOutput``.
    ``{{name}}`` placeholders with no matching variable are left as written.
    """

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    prompt_template: str = Field(min_length=1)
    default_model_name: str | None = None
    parameters: list[TemplateParameter] = Field(default_factory=list)
    category: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)


class TemplateRead(TemplateCreate):
    id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    class Config:
        from_attributes = True
