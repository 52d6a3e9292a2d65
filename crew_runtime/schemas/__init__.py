"""Schema exports."""
from .agent import (
    AgentCreate,
    AgentExecutionResult,
    AgentRead,
    AgentRunRequest,
    BackendTaskRequest,
    CrewCreate,
    CrewRead,
    CrewRunRequest,
    CrewTask,
    FullstackTaskRequest,
    ToolSpec,
)
from .execution import (
    ExecuteTaskRequest,
    Execution,
    ExecutionLog,
    ExecutionLogCreate,
    ExecutionMetrics,
    ExecutionResult,
    ExecutionStatus,
)
from .task import BatchDeleteRequest, BatchFailure, BatchResult, TaskAnalysisRequest, TaskCreate, TaskRead, TaskUpdate
from .template import TemplateCreate, TemplateParameter, TemplateRead

__all__ = [
    "AgentCreate",
    "AgentExecutionResult",
    "AgentRead",
    "AgentRunRequest",
    "BackendTaskRequest",
    "BatchDeleteRequest",
    "BatchFailure",
    "BatchResult",
    "CrewCreate",
    "CrewRead",
    "CrewRunRequest",
    "CrewTask",
    "ExecuteTaskRequest",
    "Execution",
    "ExecutionLog",
    "ExecutionLogCreate",
    "ExecutionMetrics",
    "ExecutionResult",
    "ExecutionStatus",
    "FullstackTaskRequest",
    "TaskAnalysisRequest",
    "TaskCreate",
    "TaskRead",
    "TaskUpdate",
    "TemplateCreate",
    "TemplateParameter",
    "TemplateRead",
    "ToolSpec",
]
