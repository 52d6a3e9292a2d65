"""Pydantic schemas for task executions and their lifecycle."""
from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .common import ensure_utc, new_id, utcnow

LogLevel = Literal["info", "warning", "error", "debug"]


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    # Declared for compatibility with stored records; never assigned.
    WAITING = "waiting"
    RETRYING = "retrying"


TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED})
CANCELLABLE_STATUSES = frozenset({ExecutionStatus.PENDING, ExecutionStatus.IN_PROGRESS})
RETRYABLE_STATUSES = frozenset({ExecutionStatus.FAILED, ExecutionStatus.CANCELLED})


def new_execution_id() -> str:
    return new_id("exec")


class ExecutionLog(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    level: LogLevel = "info"
    message: str
    metadata: dict[str, Any] | None = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ExecutionMetrics(BaseModel):
    token_count: int | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_cost: float | None = None
    latency: int | None = None


class Execution(BaseModel):
    """One timed attempt to run a task."""

    id: str = Field(default_factory=new_execution_id)
    task_id: str
    agent_id: str | None = None
    crew_id: str | None = None
    input: dict[str, Any] = Field(default_factory=dict)
    output: str | None = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    execution_time: int | None = None
    metrics: ExecutionMetrics | None = None
    error: str | None = None
    attempts: int = Field(default=1, ge=1)
    logs: list[ExecutionLog] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @field_validator("started_at", "finished_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def add_log(self, level: LogLevel, message: str, metadata: dict[str, Any] | None = None) -> ExecutionLog:
        entry = ExecutionLog(level=level, message=message, metadata=metadata)
        self.logs.append(entry)
        return entry

    def finish(self, status: ExecutionStatus) -> None:
        """Move to a terminal status, stamping finished_at and execution_time."""
        finished_at = max(utcnow(), self.started_at)
        self.status = status
        self.finished_at = finished_at
        self.execution_time = int((finished_at - self.started_at) / timedelta(milliseconds=1))


class ExecutionResult(BaseModel):
    execution_id: str
    task_id: str
    output: str
    success: bool
    execution_time: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExecuteTaskRequest(BaseModel):
    agent_id: str | None = None
    crew_id: str | None = None
    input: dict[str, Any] = Field(default_factory=dict)
    model_name: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    session_id: str | None = None
    save_history: bool = True

    @model_validator(mode="after")
    def check_route(self) -> "ExecuteTaskRequest":
        if self.agent_id and self.crew_id:
            raise ValueError("agent_id and crew_id are mutually exclusive")
        return self


class ExecutionLogCreate(BaseModel):
    level: LogLevel = "info"
    message: str
    metadata: dict[str, Any] | None = None
