"""Operation dispatch and range access collaborators."""

from __future__ import annotations

from .base import Grid, OperationDispatcher, RangeReader, RangeWriter
from .builtin import default_registry, register_builtins
from .ranges import InMemoryRangeStore, as_grid
from .registry import OperationRegistry

__all__ = [
    "Grid",
    "OperationDispatcher",
    "RangeReader",
    "RangeWriter",
    "OperationRegistry",
    "InMemoryRangeStore",
    "as_grid",
    "default_registry",
    "register_builtins",
]
