"""Store abstraction for workflow definitions and run history."""

from __future__ import annotations

from typing import Protocol

from ..contracts import Workflow, WorkflowResult


class WorkflowStore(Protocol):
    """Protocol for workflow persistence backends."""

    async def save_workflow(self, workflow: Workflow) -> None:
        """Insert or replace a workflow definition."""

    async def load_workflow(self, workflow_id: str) -> Workflow:
        """Return the workflow or raise ``WorkflowNotFoundError``."""

    async def list_workflows(self) -> list[Workflow]:
        """Return all stored workflow definitions."""

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Remove a workflow; return ``True`` if it existed."""

    async def record_run(self, result: WorkflowResult) -> None:
        """Append a finished run to the history."""

    async def list_runs(self, limit: int | None = None) -> list[WorkflowResult]:
        """Return recorded runs, oldest first, keeping the newest ``limit``."""

    async def get_run(self, run_id: str) -> WorkflowResult:
        """Return a recorded run or raise ``WorkflowNotFoundError``."""

    async def clear_runs(self) -> None:
        """Forget all recorded runs."""
