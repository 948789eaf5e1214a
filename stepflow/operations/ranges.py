"""In-memory range storage for testing and the CLI."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, Mapping, Optional

from .base import Grid


def as_grid(value: Any) -> Grid:
    """Coerce ``value`` into a two-dimensional list of cells."""
    if isinstance(value, (list, tuple)):
        if all(isinstance(row, (list, tuple)) for row in value):
            return [list(row) for row in value]
        return [list(value)]
    return [[value]]


class InMemoryRangeStore:
    """Simple address -> grid mapping implementing both range protocols."""

    def __init__(self, ranges: Optional[Mapping[str, Any]] = None) -> None:
        self._ranges: Dict[str, Grid] = {
            address: as_grid(values) for address, values in (ranges or {}).items()
        }
        self._lock = asyncio.Lock()

    async def read_range(self, address: str) -> Grid:
        async with self._lock:
            if address not in self._ranges:
                raise KeyError(f"No values stored at {address}")
            return copy.deepcopy(self._ranges[address])

    async def write_range(self, address: str, values: Grid) -> None:
        async with self._lock:
            self._ranges[address] = as_grid(values)

    def snapshot(self) -> Dict[str, Grid]:
        return copy.deepcopy(self._ranges)
