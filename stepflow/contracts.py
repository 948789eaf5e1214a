"""Core workflow contracts for the stepflow engine."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StepType(str, Enum):
    """Closed set of step kinds understood by the executor."""

    AI_ANALYSIS = "ai-analysis"
    AI_GENERATION = "ai-generation"
    DATA_TRANSFORM = "data-transform"
    DOCUMENT_OPERATION = "document-operation"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    VALIDATION = "validation"
    FORMATTING = "formatting"


class ErrorStrategy(str, Enum):
    """How a step failure affects the rest of the run."""

    STOP = "stop"
    CONTINUE = "continue"
    RETRY = "retry"
    FALLBACK = "fallback"


class InputSourceKind(str, Enum):
    RANGE = "range"
    LITERAL = "literal"
    VARIABLE = "variable"
    PREVIOUS_OUTPUT = "previous-output"


class OutputTargetKind(str, Enum):
    RANGE = "range"
    VALUE = "value"
    VARIABLE = "variable"


class ConditionType(str, Enum):
    IF = "if"
    UNLESS = "unless"
    WHILE = "while"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepInput(BaseModel):
    """Declares where a step input comes from."""

    name: str
    type: InputSourceKind
    source: Any = None
    required: bool = False
    default: Any = None

    @field_validator("type", mode="before")
    @classmethod
    def _legacy_value_kind(cls, v: Any) -> Any:
        # older definitions call literal inputs "value"
        if v == "value":
            return InputSourceKind.LITERAL
        return v


class StepOutput(BaseModel):
    """Declares where a step output is written."""

    name: str
    type: OutputTargetKind
    target: str


class StepCondition(BaseModel):
    type: ConditionType
    expression: str


class RetryPolicy(BaseModel):
    """Per-step attempt count and exponential backoff."""

    max_attempts: int = Field(default=1, ge=1)
    delay_ms: float = Field(default=0, ge=0)
    backoff_multiplier: float = Field(default=1, ge=0)

    def delay_before(self, attempt: int) -> float:
        """Milliseconds to wait before ``attempt`` (1-indexed)."""
        if attempt <= 1:
            return 0.0
        return self.delay_ms * self.backoff_multiplier ** (attempt - 2)


class WorkflowStep(BaseModel):
    """Defines one unit of work in a workflow."""

    id: str
    name: str = ""
    type: StepType
    operation: str
    inputs: List[StepInput] = Field(default_factory=list)
    outputs: List[StepOutput] = Field(default_factory=list)
    conditions: List[StepCondition] = Field(default_factory=list)
    retry_policy: Optional[RetryPolicy] = None
    timeout_ms: Optional[float] = Field(default=None, gt=0)

    @property
    def max_attempts(self) -> int:
        return self.retry_policy.max_attempts if self.retry_policy else 1


class Workflow(BaseModel):
    """Ordered sequence of steps plus run-level settings."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = "Unnamed Workflow"
    description: str = ""
    steps: List[WorkflowStep] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    error_handling: ErrorStrategy = ErrorStrategy.STOP
    created: datetime = Field(default_factory=_utcnow)
    last_modified: datetime = Field(default_factory=_utcnow)
    author: Optional[str] = None
    is_template: bool = False

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "Workflow":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)
        return self

    def step(self, step_id: str) -> Optional[WorkflowStep]:
        return next((s for s in self.steps if s.id == step_id), None)


class StepResult(BaseModel):
    """Outcome of executing one step."""

    step_id: str
    success: bool
    skipped: bool = False
    output: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_ms: float = 0.0
    retries: int = 0


class WorkflowError(BaseModel):
    step_id: str
    message: str
    code: Optional[str] = None
    details: Any = None
    timestamp: datetime = Field(default_factory=_utcnow)


class WorkflowResult(BaseModel):
    """Aggregated outcome of one workflow run."""

    run_id: str
    workflow_id: str
    status: RunStatus = RunStatus.PENDING
    success: bool = True
    outputs: Dict[str, Any] = Field(default_factory=dict)
    errors: List[WorkflowError] = Field(default_factory=list)
    duration_ms: float = 0.0
    steps: List[StepResult] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)

    @property
    def cancelled(self) -> bool:
        return any(e.code == "CANCELLED" for e in self.errors)


class BatchProgress(BaseModel):
    total: int
    completed: int
    failed: int
    current_item: str
    percentage: float


class BatchError(BaseModel):
    """Report for a failed batch target."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    item: str
    error: Exception
    can_continue: bool


class BatchOptions(BaseModel):
    """Options accepted by ``WorkflowEngine.run_batch``."""

    parallel: bool = False
    concurrency: Optional[int] = Field(default=None, ge=1)
    on_progress: Optional[Callable[[BatchProgress], None]] = None
    on_error: Optional[Callable[[BatchError], None]] = None
