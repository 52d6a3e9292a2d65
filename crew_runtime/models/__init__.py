"""Import models for Alembic autogeneration."""
from .execution import TaskExecution
from .task import Task
from .template import TaskTemplate

__all__ = ["Task", "TaskExecution", "TaskTemplate"]
