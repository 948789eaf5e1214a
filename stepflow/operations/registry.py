"""Handler registry implementing the operation dispatcher protocol."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from ..contracts import StepType
from ..errors import UnknownOperationError

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class OperationRegistry:
    """Dispatches steps to handlers registered per step type and operation.

    Handlers receive the resolved inputs and may be plain functions or
    coroutines. Each registry is an independent instance; there is no global
    registry.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Tuple[StepType, str], Handler] = {}

    def register(
        self,
        step_type: Union[StepType, str],
        operation: str,
        handler: Optional[Handler] = None,
    ) -> Any:
        """Register ``handler``; usable directly or as a decorator."""
        key = (StepType(step_type), operation)

        def _add(fn: Handler) -> Handler:
            if key in self._handlers:
                logger.warning(f"Replacing handler for {key[0].value}/{operation}")
            self._handlers[key] = fn
            return fn

        if handler is not None:
            return _add(handler)
        return _add

    def has(self, step_type: Union[StepType, str], operation: str) -> bool:
        return (StepType(step_type), operation) in self._handlers

    def operations(self) -> List[Tuple[StepType, str]]:
        return sorted(self._handlers, key=lambda k: (k[0].value, k[1]))

    async def dispatch(
        self, step_type: StepType, operation: str, inputs: Dict[str, Any]
    ) -> Any:
        handler = self._handlers.get((StepType(step_type), operation))
        if handler is None:
            raise UnknownOperationError(
                f"Unknown {StepType(step_type).value} operation: {operation}"
            )
        if inspect.iscoroutinefunction(handler):
            return await handler(inputs)
        # plain functions run in a worker thread
        result = await asyncio.to_thread(handler, inputs)
        if inspect.isawaitable(result):
            result = await result
        return result
