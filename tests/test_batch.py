"""Batch runner tests."""

import asyncio
from typing import List

import pytest

from stepflow import BatchRunner, StepExecutor, WorkflowOrchestrator
from stepflow.contracts import BatchError, BatchProgress, Workflow, WorkflowStep
from stepflow.errors import BatchTargetError


class TargetDispatcher:
    """Echoes the current target; tracks how many targets are in flight."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.in_flight = 0
        self.max_in_flight = 0
        self.seen: List[str] = []

    async def dispatch(self, step_type, operation, inputs):
        target = inputs["target"]
        self.seen.append(target)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # yield so the other targets of a chunk get scheduled
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            if target in self.failing:
                raise RuntimeError(f"cannot process {target}")
            return {"result": f"done:{target}"}
        finally:
            self.in_flight -= 1


STEP = {
    "id": "process",
    "type": "data-transform",
    "operation": "process",
    "inputs": [{"name": "target", "type": "variable", "source": "currentItem", "required": True}],
    "outputs": [{"name": "result", "type": "value", "target": "result"}],
}


def _workflow(error_handling: str = "continue") -> Workflow:
    return Workflow.model_validate(
        {"id": "per-target", "error_handling": error_handling, "steps": [STEP]}
    )


def _runner(dispatcher: TargetDispatcher, concurrency: int = 5) -> BatchRunner:
    orchestrator = WorkflowOrchestrator(StepExecutor(dispatcher))
    return BatchRunner(orchestrator.run, concurrency=concurrency)


@pytest.mark.asyncio
async def test_sequential_batch_reports_progress():
    dispatcher = TargetDispatcher()
    progress: List[BatchProgress] = []

    results = await _runner(dispatcher).run(
        ["R1", "R2", "R3"], _workflow(), on_progress=progress.append
    )

    assert [r.outputs["process.result"] for r in results] == ["done:R1", "done:R2", "done:R3"]
    assert [p.current_item for p in progress] == ["R1", "R2", "R3", "Complete"]
    assert progress[1].completed == 1
    assert progress[1].percentage == pytest.approx(100 / 3)
    assert progress[-1].percentage == 100.0
    assert progress[-1].completed == 3


@pytest.mark.asyncio
async def test_parallel_targets_are_isolated():
    dispatcher = TargetDispatcher()

    results = await _runner(dispatcher).run(["R1", "R2"], _workflow(), parallel=True)

    assert results[0].outputs == {"process.result": "done:R1"}
    assert results[1].outputs == {"process.result": "done:R2"}
    assert results[0].run_id != results[1].run_id


@pytest.mark.asyncio
async def test_parallel_batch_respects_concurrency():
    dispatcher = TargetDispatcher()
    targets = [f"T{i}" for i in range(12)]

    results = await _runner(dispatcher).run(targets, _workflow(), parallel=True)

    assert len(results) == 12
    assert dispatcher.max_in_flight <= 5
    assert [r.outputs["process.result"] for r in results] == [f"done:{t}" for t in targets]


@pytest.mark.asyncio
async def test_concurrency_override():
    dispatcher = TargetDispatcher()

    await _runner(dispatcher).run(
        [f"T{i}" for i in range(6)], _workflow(), parallel=True, concurrency=2
    )

    assert dispatcher.max_in_flight <= 2


@pytest.mark.asyncio
async def test_continue_strategy_reports_and_keeps_going():
    dispatcher = TargetDispatcher(failing={"R2"})
    errors: List[BatchError] = []
    progress: List[BatchProgress] = []

    results = await _runner(dispatcher).run(
        ["R1", "R2", "R3"],
        _workflow("continue"),
        on_error=errors.append,
        on_progress=progress.append,
    )

    assert [r.success for r in results] == [True, False, True]
    assert len(errors) == 1
    assert errors[0].item == "R2"
    assert errors[0].can_continue
    assert isinstance(errors[0].error, BatchTargetError)
    assert progress[-1].failed == 1


@pytest.mark.asyncio
async def test_stop_strategy_raises_and_starts_no_more_targets():
    dispatcher = TargetDispatcher(failing={"R2"})
    errors: List[BatchError] = []

    with pytest.raises(BatchTargetError) as exc_info:
        await _runner(dispatcher).run(
            ["R1", "R2", "R3"], _workflow("stop"), on_error=errors.append
        )

    assert exc_info.value.target == "R2"
    assert [r.success for r in exc_info.value.results] == [True, False]
    assert dispatcher.seen == ["R1", "R2"]
    assert not errors[0].can_continue


@pytest.mark.asyncio
async def test_stop_strategy_in_parallel_finishes_chunk_first():
    dispatcher = TargetDispatcher(failing={"T1"})
    targets = [f"T{i}" for i in range(7)]

    with pytest.raises(BatchTargetError) as exc_info:
        await _runner(dispatcher, concurrency=3).run(targets, _workflow("stop"), parallel=True)

    assert sorted(dispatcher.seen) == ["T0", "T1", "T2"]
    assert len(exc_info.value.results) == 3


@pytest.mark.asyncio
async def test_single_step_batch_wraps_step():
    dispatcher = TargetDispatcher(failing={"B"})
    step = WorkflowStep.model_validate(STEP)

    results = await _runner(dispatcher).run(["A", "B"], step)

    assert results[0].workflow_id == "batch_process"
    assert results[0].success
    assert not results[1].success


def test_runner_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        BatchRunner(lambda wf, variables: None, concurrency=0)
