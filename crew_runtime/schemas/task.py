"""Pydantic schemas for task definitions and batch operations."""
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from .common import ensure_utc, utcnow

TaskPriority = Literal["low", "medium", "high", "critical"]


class TaskBase(BaseModel):
    description: str = Field(min_length=1)
    expected_output: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    priority: TaskPriority = "medium"
    deadline: datetime | None = None
    assigned_agent_id: str | None = None
    assigned_crew_id: str | None = None
    dependencies: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    template_id: str | None = None


class TaskCreate(TaskBase):
    pass


class TaskUpdate(BaseModel):
    description: str | None = Field(default=None, min_length=1)
    expected_output: str | None = None
    context: dict[str, Any] | None = None
    priority: TaskPriority | None = None
    deadline: datetime | None = None
    assigned_agent_id: str | None = None
    assigned_crew_id: str | None = None
    dependencies: list[str] | None = None
    tags: list[str] | None = None
    template_id: str | None = None

    @field_validator("description", "context", "priority", "dependencies", "tags")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        # Omit a field to keep it; only the optional references accept null.
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class TaskRead(TaskBase):
    id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("deadline", "created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    class Config:
        from_attributes = True


class TaskAnalysisRequest(BaseModel):
    description: str = Field(min_length=1)
    context: dict[str, Any] | None = None


class BatchFailure(BaseModel):
    reason: str
    id: str | None = None
    index: int | None = None


class BatchResult(BaseModel):
    success: list[str] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)


class BatchDeleteRequest(BaseModel):
    ids: list[str]
