"""Step execution for stepflow workflows."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from .constants import LOOP_ITEM_VARIABLE
from .context import ExecutionContext, split_output_key
from .contracts import (
    ConditionType,
    ErrorStrategy,
    InputSourceKind,
    OutputTargetKind,
    StepResult,
    StepType,
    WorkflowStep,
)
from .errors import InputError, OperationError, StepFailedError, StepflowError, get_error_message
from .expressions import ExpressionEvaluator
from .operations.base import OperationDispatcher, RangeReader, RangeWriter
from .operations.ranges import as_grid
from .utils.retry import SleepFn, schedule_retry

logger = logging.getLogger(__name__)

StepHandler = Callable[[WorkflowStep, Dict[str, Any], ExecutionContext], Awaitable[Any]]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class StepExecutor:
    """Resolves inputs, dispatches a step's operation and applies its retry policy."""

    def __init__(
        self,
        dispatcher: OperationDispatcher,
        range_reader: Optional[RangeReader] = None,
        range_writer: Optional[RangeWriter] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
        default_timeout_ms: Optional[float] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._dispatcher = dispatcher
        self._range_reader = range_reader
        self._range_writer = range_writer
        self.evaluator = evaluator or ExpressionEvaluator()
        self._default_timeout_ms = default_timeout_ms
        self._sleep = sleep
        self._handlers: Dict[StepType, StepHandler] = {
            StepType.AI_ANALYSIS: self._dispatch_operation,
            StepType.AI_GENERATION: self._dispatch_operation,
            StepType.DATA_TRANSFORM: self._dispatch_operation,
            StepType.DOCUMENT_OPERATION: self._dispatch_operation,
            StepType.VALIDATION: self._dispatch_operation,
            StepType.FORMATTING: self._dispatch_operation,
            StepType.CONDITIONAL: self._run_conditional,
            StepType.LOOP: self._run_loop,
        }
        missing = set(StepType) - set(self._handlers)
        if missing:
            raise RuntimeError(
                f"No executor handler for step types: {sorted(t.value for t in missing)}"
            )

    async def execute_step(
        self,
        step: WorkflowStep,
        context: ExecutionContext,
        error_strategy: ErrorStrategy = ErrorStrategy.STOP,
    ) -> StepResult:
        """Execute ``step`` against ``context``.

        Conditions are checked once before the first attempt. Failed attempts
        are retried according to the step's retry policy. Once attempts are
        exhausted a failed result is returned under the ``continue`` strategy;
        any other strategy raises ``StepFailedError``.
        """
        start = time.perf_counter()

        if step.conditions and not self.conditions_pass(step, context):
            logger.info(f"Skipping step {step.id}: conditions not met")
            return StepResult(
                step_id=step.id,
                success=True,
                skipped=True,
                duration_ms=_elapsed_ms(start),
            )

        max_attempts = step.max_attempts
        last_error: Optional[BaseException] = None
        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = await schedule_retry(attempt, step.retry_policy, sleep=self._sleep)
                logger.debug(f"Retrying step {step.id} (attempt {attempt}) after {delay:.3f}s")
            try:
                inputs = await self.resolve_inputs(step, context)
                output = await self._run_with_timeout(step, inputs, context)
                await self.store_outputs(step, output, context)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Step {step.id} attempt {attempt}/{max_attempts} failed: {get_error_message(e)}"
                )
                continue

            logger.info(f"Step {step.id} completed after {attempt} attempt(s)")
            return StepResult(
                step_id=step.id,
                success=True,
                output=output,
                duration_ms=_elapsed_ms(start),
                retries=attempt - 1,
            )

        result = StepResult(
            step_id=step.id,
            success=False,
            error=get_error_message(last_error),
            error_type=type(last_error).__name__ if last_error else None,
            duration_ms=_elapsed_ms(start),
            retries=max_attempts - 1,
        )
        logger.error(f"Step {step.id} failed after {max_attempts} attempt(s): {result.error}")
        if error_strategy == ErrorStrategy.CONTINUE:
            return result
        raise StepFailedError(result, cause=last_error)

    def conditions_pass(self, step: WorkflowStep, context: ExecutionContext) -> bool:
        variables = context.variables
        for condition in step.conditions:
            value = self.evaluator.evaluate(condition.expression, variables)
            if condition.type == ConditionType.UNLESS:
                if value:
                    return False
            elif not value:
                # ``if`` and ``while`` both require a true expression; ``while``
                # is checked once per call, iteration belongs to loop steps
                return False
        return True

    async def resolve_inputs(
        self, step: WorkflowStep, context: ExecutionContext
    ) -> Dict[str, Any]:
        resolved: Dict[str, Any] = {}
        for spec in step.inputs:
            if spec.type == InputSourceKind.LITERAL:
                value = spec.source
            elif spec.type == InputSourceKind.VARIABLE:
                value = _variable_value(context, str(spec.source))
            elif spec.type == InputSourceKind.PREVIOUS_OUTPUT:
                try:
                    source_step, output_name = split_output_key(str(spec.source))
                except ValueError as e:
                    raise InputError(step.id, spec.name) from e
                value = context.get_output(source_step, output_name)
            else:
                value = await self._read_range(str(spec.source))

            if value is None:
                value = spec.default
            if value is None and spec.required:
                raise InputError(step.id, spec.name)
            resolved[spec.name] = value
        return resolved

    async def store_outputs(
        self, step: WorkflowStep, output: Any, context: ExecutionContext
    ) -> None:
        for spec in step.outputs:
            if isinstance(output, Mapping) and spec.name in output:
                value = output[spec.name]
            else:
                value = output
            context.set_output(step.id, spec.name, value)
            if spec.type == OutputTargetKind.RANGE:
                if self._range_writer is None:
                    raise StepflowError(f"No range writer configured for output {spec.name}")
                await self._range_writer.write_range(spec.target, as_grid(value))
            else:
                context.set(spec.target, value)

    async def _read_range(self, address: str) -> Any:
        if self._range_reader is None:
            raise StepflowError(f"No range reader configured for {address}")
        try:
            return await self._range_reader.read_range(address)
        except KeyError:
            return None

    async def _run_with_timeout(
        self, step: WorkflowStep, inputs: Dict[str, Any], context: ExecutionContext
    ) -> Any:
        handler = self._handlers[step.type]
        timeout_ms = step.timeout_ms or self._default_timeout_ms
        if timeout_ms is None:
            return await handler(step, inputs, context)
        try:
            return await asyncio.wait_for(handler(step, inputs, context), timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise OperationError(f"Step {step.id} timed out after {timeout_ms:g} ms") from e

    async def _dispatch_operation(
        self, step: WorkflowStep, inputs: Dict[str, Any], context: ExecutionContext
    ) -> Any:
        try:
            return await self._dispatcher.dispatch(step.type, step.operation, inputs)
        except StepflowError:
            raise
        except Exception as e:
            raise OperationError(
                f"Operation {step.operation} failed: {get_error_message(e)}"
            ) from e

    async def _run_conditional(
        self, step: WorkflowStep, inputs: Dict[str, Any], context: ExecutionContext
    ) -> bool:
        expression = inputs.get("expression") or step.operation
        return self.evaluator.evaluate(str(expression), context.variables)

    async def _run_loop(
        self, step: WorkflowStep, inputs: Dict[str, Any], context: ExecutionContext
    ) -> list:
        items = inputs.get("items") or []
        if isinstance(items, (str, bytes)) or not hasattr(items, "__iter__"):
            raise OperationError(f"Loop step {step.id} needs an iterable 'items' input")
        collected = []
        for item in items:
            context.set(LOOP_ITEM_VARIABLE, item)
            collected.append(item)
        return collected


def _variable_value(context: ExecutionContext, name: str) -> Any:
    """Look up ``name``, descending into mappings for dotted names."""
    if context.has(name):
        return context.get(name)
    head, _, rest = name.partition(".")
    value = context.get(head)
    for segment in rest.split(".") if rest else []:
        if not isinstance(value, Mapping):
            return None
        value = value.get(segment)
    return value
