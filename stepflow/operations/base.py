"""Collaborator interfaces required by the step executor."""

from __future__ import annotations

from typing import Any, Dict, List, Protocol, runtime_checkable

from ..contracts import StepType

Grid = List[List[Any]]


@runtime_checkable
class OperationDispatcher(Protocol):
    """Performs the concrete work behind a step.

    The executor calls ``dispatch`` once per attempt, so a step with a retry
    policy may dispatch the same operation several times. Implementations must
    be safe to repeat or must suppress duplicate side effects themselves.
    Failure is signalled by raising.
    """

    async def dispatch(
        self, step_type: StepType, operation: str, inputs: Dict[str, Any]
    ) -> Any:
        """Run ``operation`` with resolved ``inputs`` and return its result."""


@runtime_checkable
class RangeReader(Protocol):
    async def read_range(self, address: str) -> Grid:
        """Return the values stored at ``address``."""


@runtime_checkable
class RangeWriter(Protocol):
    async def write_range(self, address: str, values: Grid) -> None:
        """Replace the values stored at ``address``."""
