"""In-memory implementation of the workflow store."""

from __future__ import annotations

from typing import Dict, List, Optional

from ..contracts import Workflow, WorkflowResult
from ..errors import WorkflowNotFoundError
from .repository import WorkflowStore


class InMemoryWorkflowStore(WorkflowStore):
    """Store workflows and run history in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. At most ``max_runs`` run records are
    kept when it is set.
    """

    def __init__(self, max_runs: Optional[int] = None) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._runs: List[WorkflowResult] = []
        self.max_runs = max_runs

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def load_workflow(self, workflow_id: str) -> Workflow:
        wf = self._workflows.get(workflow_id)
        if wf is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return wf.model_copy(deep=True)

    async def list_workflows(self) -> list[Workflow]:
        return [wf.model_copy(deep=True) for wf in self._workflows.values()]

    async def delete_workflow(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None

    # ------------------------------------------------------------------
    async def record_run(self, result: WorkflowResult) -> None:
        self._runs.append(result.model_copy(deep=True))
        if self.max_runs is not None and len(self._runs) > self.max_runs:
            # oldest runs are dropped first
            del self._runs[: len(self._runs) - self.max_runs]

    async def list_runs(self, limit: int | None = None) -> list[WorkflowResult]:
        runs = self._runs
        if limit is not None:
            runs = self._runs[-limit:] if limit > 0 else []
        return [r.model_copy(deep=True) for r in runs]

    async def get_run(self, run_id: str) -> WorkflowResult:
        for run in self._runs:
            if run.run_id == run_id:
                return run.model_copy(deep=True)
        raise WorkflowNotFoundError(f"Run {run_id} not found")

    async def clear_runs(self) -> None:
        self._runs.clear()
