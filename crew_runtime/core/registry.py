"""Process-local map of executions that are currently running."""
from __future__ import annotations

from crew_runtime.schemas.execution import Execution


class ExecutionRegistry:
    """Advisory view of in-flight executions; the repository is authoritative."""

    def __init__(self) -> None:
        self._active: dict[str, Execution] = {}

    def register(self, execution: Execution) -> None:
        self._active[execution.id] = execution

    def unregister(self, execution_id: str) -> Execution | None:
        return self._active.pop(execution_id, None)

    def lookup(self, execution_id: str) -> Execution | None:
        return self._active.get(execution_id)

    def ids(self) -> list[str]:
        return list(self._active)

    def __contains__(self, execution_id: object) -> bool:
        return execution_id in self._active

    def __len__(self) -> int:
        return len(self._active)
