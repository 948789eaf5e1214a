"""Sequential execution of a single workflow run."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, Optional

from .constants import WORKFLOW_ERROR_STEP_ID
from .context import ExecutionContext
from .contracts import (
    ErrorStrategy,
    RunStatus,
    StepResult,
    Workflow,
    WorkflowError,
    WorkflowResult,
)
from .errors import StepFailedError, WorkflowCancelledError, get_error_message
from .execute import StepExecutor

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag checked between steps."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def new_run_id(workflow: Workflow) -> str:
    return f"{workflow.id}_{uuid.uuid4().hex}"


class WorkflowOrchestrator:
    """Runs the steps of one workflow in declaration order."""

    def __init__(self, executor: StepExecutor) -> None:
        self.executor = executor

    async def run(
        self,
        workflow: Workflow,
        initial_variables: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancellationToken] = None,
        run_id: Optional[str] = None,
    ) -> WorkflowResult:
        """Execute ``workflow`` and return its result.

        A result is always returned: step failures, cancellation and
        unexpected errors are recorded in ``errors`` and the outputs gathered
        before the run ended are preserved.
        """
        workflow = workflow.model_copy(deep=True)
        run_id = run_id or new_run_id(workflow)
        token = cancel_token or CancellationToken()
        strategy = workflow.error_handling
        context = ExecutionContext.create(workflow.variables, initial_variables, run_id=run_id)
        result = WorkflowResult(run_id=run_id, workflow_id=workflow.id)
        start = time.perf_counter()

        result.status = RunStatus.RUNNING
        logger.info(
            f"Starting workflow {workflow.id} run_id={run_id} "
            f"({len(workflow.steps)} steps, error_handling={strategy.value})"
        )
        try:
            for step in workflow.steps:
                if token.cancelled:
                    raise WorkflowCancelledError(run_id)

                try:
                    step_result = await self.executor.execute_step(step, context, strategy)
                except StepFailedError as e:
                    step_result = e.result

                result.steps.append(step_result)
                if step_result.success:
                    continue

                result.errors.append(_step_error(step_result))
                if strategy == ErrorStrategy.STOP:
                    logger.error(
                        f"Stopping workflow {workflow.id} run_id={run_id} after step {step.id} failed"
                    )
                    result.status = RunStatus.ABORTED
                    break
            else:
                result.status = RunStatus.COMPLETED
        except WorkflowCancelledError as e:
            logger.warning(f"Workflow {workflow.id} run_id={run_id} aborted")
            result.status = RunStatus.ABORTED
            result.errors.append(
                WorkflowError(
                    step_id=WORKFLOW_ERROR_STEP_ID,
                    message=str(e),
                    code=e.code,
                )
            )
        except Exception as e:
            logger.exception(f"Workflow {workflow.id} run_id={run_id} failed unexpectedly")
            result.status = RunStatus.ABORTED
            result.errors.append(
                WorkflowError(
                    step_id=WORKFLOW_ERROR_STEP_ID,
                    message=get_error_message(e),
                    code=getattr(e, "code", None),
                    details=type(e).__name__,
                )
            )
        finally:
            result.outputs = context.outputs
            result.duration_ms = (time.perf_counter() - start) * 1000

        result.success = (
            result.status == RunStatus.COMPLETED
            and all(step.success for step in result.steps)
        )
        logger.info(
            f"Workflow {workflow.id} run_id={run_id} {result.status.value} "
            f"success={result.success} in {result.duration_ms:.1f} ms"
        )
        return result


def _step_error(step_result: StepResult) -> WorkflowError:
    return WorkflowError(
        step_id=step_result.step_id,
        message=step_result.error or f"Step {step_result.step_id} failed",
        details={"error_type": step_result.error_type, "retries": step_result.retries},
    )
