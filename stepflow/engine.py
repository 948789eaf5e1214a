"""Programmatic entry point wiring the executor, orchestrator and batch runner."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from .batch import BatchRunner
from .config import StepflowConfig, load_config
from .contracts import BatchOptions, Workflow, WorkflowResult, WorkflowStep
from .execute import StepExecutor
from .operations.base import OperationDispatcher, RangeReader, RangeWriter
from .orchestrator import CancellationToken, WorkflowOrchestrator, new_run_id
from .persistence import InMemoryWorkflowStore, WorkflowStore
from .templates import builtin_templates
from .utils.retry import SleepFn

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Runs workflows and batches against injected collaborators.

    Each engine owns its own running-run registry and history; nothing is
    shared between engine instances.
    """

    def __init__(
        self,
        dispatcher: OperationDispatcher,
        range_reader: Optional[RangeReader] = None,
        range_writer: Optional[RangeWriter] = None,
        store: Optional[WorkflowStore] = None,
        config: Optional[StepflowConfig] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config or load_config()
        self.store: WorkflowStore = store or InMemoryWorkflowStore(
            max_runs=self.config.engine.history_limit
        )
        self.executor = StepExecutor(
            dispatcher,
            range_reader=range_reader,
            range_writer=range_writer,
            default_timeout_ms=self.config.engine.default_step_timeout_ms,
            sleep=sleep,
        )
        self.orchestrator = WorkflowOrchestrator(self.executor)
        self.batch_runner = BatchRunner(
            self.run_workflow, concurrency=self.config.engine.batch_concurrency
        )
        self._running: Dict[str, CancellationToken] = {}

    async def run_workflow(
        self,
        workflow: Workflow,
        initial_variables: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> WorkflowResult:
        """Run ``workflow`` under ``run_id`` so it can be aborted while in flight."""
        run_id = run_id or new_run_id(workflow)
        if run_id in self._running:
            raise ValueError(f"Run {run_id} is already in progress")
        token = CancellationToken()
        self._running[run_id] = token
        try:
            result = await self.orchestrator.run(
                workflow, initial_variables, cancel_token=token, run_id=run_id
            )
        finally:
            self._running.pop(run_id, None)
        try:
            await self.store.record_run(result)
        except Exception:
            logger.exception(f"Could not record run_id={run_id} in run history")
        return result

    async def run_batch(
        self,
        targets: Sequence[str],
        operation: Union[Workflow, WorkflowStep],
        options: Optional[BatchOptions] = None,
    ) -> List[WorkflowResult]:
        options = options or BatchOptions()
        return await self.batch_runner.run(
            targets,
            operation,
            parallel=options.parallel,
            on_progress=options.on_progress,
            on_error=options.on_error,
            concurrency=options.concurrency,
        )

    def abort(self, run_id: str) -> bool:
        """Request cancellation of a running workflow.

        The in-flight step finishes; no further steps start. Returns ``False``
        when no run with ``run_id`` is in progress.
        """
        token = self._running.pop(run_id, None)
        if token is None:
            return False
        token.cancel()
        logger.info(f"Abort requested for run_id={run_id}")
        return True

    def running_runs(self) -> List[str]:
        return list(self._running)

    # ------------------------------------------------------------------
    # History
    async def history(self) -> List[WorkflowResult]:
        return await self.store.list_runs(limit=self.config.engine.history_limit)

    async def clear_history(self) -> None:
        await self.store.clear_runs()

    # ------------------------------------------------------------------
    # Definitions and templates
    async def save_workflow(self, workflow: Workflow) -> None:
        await self.store.save_workflow(workflow)

    async def load_workflow(self, workflow_id: str) -> Workflow:
        return await self.store.load_workflow(workflow_id)

    async def save_workflow_template(self, workflow: Workflow) -> Workflow:
        template = workflow.model_copy(
            update={"is_template": True, "last_modified": datetime.now(timezone.utc)}
        )
        await self.store.save_workflow(template)
        return template

    async def get_workflow_templates(self) -> List[Workflow]:
        stored = [wf for wf in await self.store.list_workflows() if wf.is_template]
        return builtin_templates() + stored
