"""Persistence layer for stepflow workflows and run history."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StepflowConfig, load_config
from .inmemory import InMemoryWorkflowStore
from .repository import WorkflowStore
from .sqlite import SQLiteWorkflowStore


def get_store(
    database_url: Optional[str] = None, config: Optional[StepflowConfig] = None
) -> WorkflowStore:
    """Factory function to obtain a workflow store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``STEPFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned. Every call builds a new store.
    """

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("STEPFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        return InMemoryWorkflowStore(max_runs=config.engine.history_limit)

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return SQLiteWorkflowStore(path)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "WorkflowStore",
    "InMemoryWorkflowStore",
    "SQLiteWorkflowStore",
    "get_store",
]
