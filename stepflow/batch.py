"""Replaying a workflow or single step across many targets."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from .constants import (
    BATCH_COMPLETE_ITEM,
    CURRENT_ITEM_VARIABLE,
    CURRENT_RANGE_VARIABLE,
    DEFAULT_BATCH_CONCURRENCY,
)
from .contracts import (
    BatchError,
    BatchProgress,
    ErrorStrategy,
    Workflow,
    WorkflowResult,
    WorkflowStep,
)
from .errors import BatchTargetError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BatchProgress], None]
ErrorCallback = Callable[[BatchError], None]
RunFn = Callable[[Workflow, Optional[Dict[str, Any]]], Awaitable[WorkflowResult]]


def wrap_step(step: WorkflowStep, target: str) -> Workflow:
    """Build the synthetic single-step workflow used for step batches."""
    return Workflow(
        id=f"batch_{step.id}",
        name="Batch Operation",
        description="Batch operation",
        steps=[step],
        variables={CURRENT_ITEM_VARIABLE: target},
        error_handling=ErrorStrategy.CONTINUE,
    )


class _BatchState:
    def __init__(self, total: int) -> None:
        self.total = total
        self.completed = 0
        self.failed = 0

    def progress(self, current_item: str, percentage: Optional[float] = None) -> BatchProgress:
        if percentage is None:
            percentage = (self.completed / self.total) * 100 if self.total else 100.0
        return BatchProgress(
            total=self.total,
            completed=self.completed,
            failed=self.failed,
            current_item=current_item,
            percentage=percentage,
        )


class BatchRunner:
    """Runs one operation per target, sequentially or in bounded chunks.

    ``run_workflow`` is called once per target, typically
    ``WorkflowOrchestrator.run`` or ``WorkflowEngine.run_workflow``; each
    call builds its own execution context.

    In parallel mode at most ``concurrency`` targets are in flight; a chunk
    must finish entirely before the next one starts.
    """

    def __init__(
        self,
        run_workflow: RunFn,
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._run_workflow = run_workflow
        self.concurrency = concurrency

    async def run(
        self,
        targets: Sequence[str],
        operation: Union[Workflow, WorkflowStep],
        parallel: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        concurrency: Optional[int] = None,
    ) -> List[WorkflowResult]:
        """Run ``operation`` once per target and return the results in target order.

        Raises:
            BatchTargetError: A target failed and the operation's error strategy
                is ``stop``. No further targets are started.
        """
        targets = list(targets)
        state = _BatchState(len(targets))
        can_continue = _error_strategy(operation) != ErrorStrategy.STOP
        results: List[WorkflowResult] = []

        async def process(target: str) -> WorkflowResult:
            if on_progress is not None:
                on_progress(state.progress(target))
            result = await self._run_target(target, operation)
            state.completed += 1
            if not result.success:
                state.failed += 1
                error = BatchTargetError(target, result)
                logger.warning(f"Batch target {target} failed (can_continue={can_continue})")
                if on_error is not None:
                    on_error(BatchError(item=target, error=error, can_continue=can_continue))
            return result

        def check(chunk_results: List[WorkflowResult], chunk: List[str]) -> None:
            for target, result in zip(chunk, chunk_results):
                if not result.success and not can_continue:
                    raise BatchTargetError(target, result, results=list(results))

        logger.info(
            f"Starting batch of {len(targets)} targets (parallel={parallel})"
        )
        if parallel:
            size = concurrency or self.concurrency
            for i in range(0, len(targets), size):
                chunk = targets[i : i + size]
                chunk_results = await asyncio.gather(*(process(t) for t in chunk))
                results.extend(chunk_results)
                check(chunk_results, chunk)
        else:
            for target in targets:
                result = await process(target)
                results.append(result)
                check([result], [target])

        if on_progress is not None:
            on_progress(state.progress(BATCH_COMPLETE_ITEM, percentage=100.0))
        logger.info(
            f"Batch finished: {state.completed} completed, {state.failed} failed"
        )
        return results

    async def _run_target(
        self, target: str, operation: Union[Workflow, WorkflowStep]
    ) -> WorkflowResult:
        if isinstance(operation, WorkflowStep):
            return await self._run_workflow(wrap_step(operation, target), None)
        return await self._run_workflow(
            operation,
            {CURRENT_ITEM_VARIABLE: target, CURRENT_RANGE_VARIABLE: target},
        )


def _error_strategy(operation: Union[Workflow, WorkflowStep]) -> ErrorStrategy:
    if isinstance(operation, WorkflowStep):
        return ErrorStrategy.CONTINUE
    return operation.error_handling
