"""stepflow: step-based workflow execution engine."""

from .batch import BatchRunner
from .cli_utils.workflow import load_workflow_file
from .context import ExecutionContext
from .contracts import (
    BatchError,
    BatchOptions,
    BatchProgress,
    ErrorStrategy,
    RetryPolicy,
    RunStatus,
    StepCondition,
    StepInput,
    StepOutput,
    StepResult,
    StepType,
    Workflow,
    WorkflowError,
    WorkflowResult,
    WorkflowStep,
)
from .engine import WorkflowEngine
from .execute import StepExecutor
from .expressions import ExpressionEvaluator
from .operations import InMemoryRangeStore, OperationRegistry, default_registry
from .orchestrator import CancellationToken, WorkflowOrchestrator
from .persistence import get_store

__version__ = "0.1.0"
__all__ = [
    "BatchError",
    "BatchOptions",
    "BatchProgress",
    "BatchRunner",
    "CancellationToken",
    "ErrorStrategy",
    "ExecutionContext",
    "ExpressionEvaluator",
    "InMemoryRangeStore",
    "OperationRegistry",
    "RetryPolicy",
    "RunStatus",
    "StepCondition",
    "StepExecutor",
    "StepInput",
    "StepOutput",
    "StepResult",
    "StepType",
    "Workflow",
    "WorkflowEngine",
    "WorkflowError",
    "WorkflowOrchestrator",
    "WorkflowResult",
    "WorkflowStep",
    "default_registry",
    "get_store",
    "load_workflow_file",
]
