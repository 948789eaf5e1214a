"""Exception hierarchy for stepflow."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

if TYPE_CHECKING:
    from .contracts import StepResult, WorkflowResult


class StepflowError(Exception):
    """Base class for all engine errors."""

    code = "STEPFLOW_ERROR"

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InputError(StepflowError):
    """A required step input could not be resolved."""

    code = "INPUT_ERROR"

    def __init__(self, step_id: str, input_name: str) -> None:
        super().__init__(f"Required input {input_name} is missing for step {step_id}")
        self.step_id = step_id
        self.input_name = input_name


class OperationError(StepflowError):
    """The dispatched operation failed or timed out."""

    code = "OPERATION_ERROR"


class UnknownOperationError(OperationError):
    """No handler is registered for the requested operation."""

    code = "UNKNOWN_OPERATION"


class ConditionError(StepflowError):
    """A condition expression is malformed or cannot be evaluated."""

    code = "CONDITION_ERROR"


class StepFailedError(StepflowError):
    """A step exhausted its attempts under a halting error strategy."""

    code = "STEP_FAILED"

    def __init__(self, result: "StepResult", cause: Optional[BaseException] = None) -> None:
        message = result.error or f"Step {result.step_id} failed"
        super().__init__(message)
        self.result = result
        self.__cause__ = cause


class WorkflowCancelledError(StepflowError):
    """The run observed its cancellation signal."""

    code = "CANCELLED"

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Workflow run {run_id} was aborted")
        self.run_id = run_id


class BatchTargetError(StepflowError):
    """Failure of a single batch target."""

    code = "BATCH_TARGET_ERROR"

    def __init__(
        self,
        target: str,
        result: "WorkflowResult",
        results: Optional[List["WorkflowResult"]] = None,
    ) -> None:
        reason = result.errors[0].message if result.errors else "workflow unsuccessful"
        super().__init__(f"Batch target {target} failed: {reason}")
        self.target = target
        self.result = result
        self.results = results or []


class WorkflowNotFoundError(StepflowError):
    """Lookup of an unknown workflow, template or run."""

    code = "NOT_FOUND"


def get_error_message(error: object) -> str:
    """Return a printable message for ``error``."""
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if isinstance(error, str):
        return error
    return "An unknown error occurred"
